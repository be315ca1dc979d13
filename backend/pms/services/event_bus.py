"""
事件总线 - 进程内同步发布/订阅
服务在事务提交后发布事件，处理器异常只记录日志，不影响已提交的业务
"""
from typing import Callable, Dict, List, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime
from collections import deque
import logging
import threading

logger = logging.getLogger(__name__)


@dataclass
class Event:
    """事件"""
    event_type: str
    timestamp: datetime
    data: Dict[str, Any]
    source: str  # 触发来源（服务名）
    event_id: str = field(default_factory=lambda: datetime.now().strftime("%Y%m%d%H%M%S%f"))


class EventBus:
    """
    内存级事件总线

    使用方式：
    1. 订阅事件：event_bus.subscribe("guest.checked_out", handler)
    2. 发布事件：event_bus.publish(Event(...))
    """

    def __init__(self, history_size: int = 100):
        self._subscribers: Dict[str, List[Callable[[Event], None]]] = {}
        self._history: deque = deque(maxlen=history_size)
        self._lock = threading.Lock()

    def subscribe(self, event_type: str, handler: Callable[[Event], None]) -> None:
        """订阅事件，同一处理器重复订阅只登记一次"""
        with self._lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)
                logger.debug(f"Handler {handler.__name__} subscribed to {event_type}")

    def unsubscribe(self, event_type: str, handler: Callable[[Event], None]) -> None:
        """取消订阅"""
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Event) -> None:
        """发布事件（同步执行所有处理器）"""
        self._history.append(event)

        with self._lock:
            handlers = list(self._subscribers.get(event.event_type, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Event handler {handler.__name__} error for {event.event_type}: {e}",
                    exc_info=True
                )

    def get_history(self, event_type: Optional[str] = None, limit: int = 50) -> List[Event]:
        """事件历史，最新的在前"""
        history = list(self._history)
        if event_type:
            history = [e for e in history if e.event_type == event_type]
        return list(reversed(history))[:limit]

    def clear_subscribers(self) -> None:
        """清空所有订阅（用于测试）"""
        with self._lock:
            self._subscribers.clear()

    def clear_history(self) -> None:
        self._history.clear()


# 全局事件总线实例
event_bus = EventBus()
