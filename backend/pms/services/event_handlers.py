"""
事件处理器
退房后的房间交由客房管理（外部系统）接手，这里记录交接和审计日志
"""
import logging

from pms.models.events import EventType
from pms.services.event_bus import Event, EventBus, event_bus

logger = logging.getLogger("pms.audit")


def log_checked_in(event: Event) -> None:
    data = event.data
    logger.info(
        f"[check-in] occupancy={data['occupancy_id']} room={data['room_number']} "
        f"guests={data['guest_count']} total={data['total_amount']} paid={data['paid_amount']}"
    )


def log_payment_received(event: Event) -> None:
    data = event.data
    logger.info(
        f"[payment] occupancy={data['occupancy_id']} payment={data['payment_id']} "
        f"amount={data['amount']} method={data['payment_method']} balance={data['balance_amount']}"
    )


def log_stay_revised(event: Event) -> None:
    data = event.data
    logger.info(
        f"[revise] occupancy={data['occupancy_id']} rate={data['old_rate']}→{data['new_rate']} "
        f"total={data['total_amount']} balance={data['balance_amount']}"
    )


def log_checked_out(event: Event) -> None:
    data = event.data
    logger.info(
        f"[checkout] occupancy={data['occupancy_id']} room={data['room_number']} "
        f"nights={data['nights_stayed']} paid={data['paid_amount']}"
    )


def notify_housekeeping(event: Event) -> None:
    """房间变为 DIRTY 时交给客房管理"""
    data = event.data
    if data.get("new_status") == "DIRTY":
        logger.info(f"[housekeeping] room {data['room_number']} (id={data['room_id']}) needs cleaning")


def register_event_handlers(bus: EventBus = event_bus) -> None:
    """应用启动时注册处理器"""
    bus.subscribe(EventType.GUEST_CHECKED_IN, log_checked_in)
    bus.subscribe(EventType.PAYMENT_RECEIVED, log_payment_received)
    bus.subscribe(EventType.STAY_REVISED, log_stay_revised)
    bus.subscribe(EventType.GUEST_CHECKED_OUT, log_checked_out)
    bus.subscribe(EventType.ROOM_STATUS_CHANGED, notify_housekeeping)
