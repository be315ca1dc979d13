"""
房间状态机
入住引擎只执行两条转换：VACANT|RESERVED → OCCUPIED（入住）与 OCCUPIED → DIRTY（退房）。
客房管理的其余转换由外部动作完成，这里登记出来用于校验。
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List

from pms.models.ontology import Room, RoomStatus
from pms.services.errors import RoomNotAvailable

logger = logging.getLogger(__name__)

CHECK_IN_ALLOWED: FrozenSet[RoomStatus] = frozenset({RoomStatus.VACANT, RoomStatus.RESERVED})

# 当前状态 → 可到达状态
TRANSITIONS: Dict[RoomStatus, FrozenSet[RoomStatus]] = {
    RoomStatus.VACANT: frozenset({RoomStatus.OCCUPIED, RoomStatus.RESERVED, RoomStatus.MAINTENANCE}),
    RoomStatus.RESERVED: frozenset({RoomStatus.OCCUPIED, RoomStatus.VACANT, RoomStatus.MAINTENANCE}),
    RoomStatus.OCCUPIED: frozenset({RoomStatus.DIRTY}),
    RoomStatus.DIRTY: frozenset({RoomStatus.CLEANING, RoomStatus.MAINTENANCE}),
    RoomStatus.CLEANING: frozenset({RoomStatus.VACANT, RoomStatus.DIRTY, RoomStatus.MAINTENANCE}),
    RoomStatus.MAINTENANCE: frozenset({RoomStatus.VACANT}),
}


@dataclass
class TransitionResult:
    """状态转换校验结果"""
    allowed: bool
    reason: str
    valid_alternatives: List[RoomStatus] = field(default_factory=list)


def validate_transition(current: RoomStatus, target: RoomStatus) -> TransitionResult:
    """校验 current → target 是否为合法转换"""
    reachable = TRANSITIONS.get(current, frozenset())
    alternatives = sorted(reachable, key=lambda s: s.value)
    if target in reachable:
        return TransitionResult(True, f"{current.value} → {target.value}", alternatives)
    return TransitionResult(
        False,
        f"不允许从 {current.value} 转换到 {target.value}",
        alternatives,
    )


def can_check_in(status: RoomStatus) -> bool:
    return status in CHECK_IN_ALLOWED


def ensure_check_in_allowed(room: Room) -> None:
    """入住守卫：房间必须是 VACANT 或 RESERVED"""
    if not can_check_in(room.status):
        logger.warning(f"Room {room.id} check-in rejected, status={room.status.value}")
        raise RoomNotAvailable(room.id, room.status)


def apply_transition(room: Room, target: RoomStatus, strict: bool = True) -> RoomStatus:
    """
    修改房间状态并返回旧状态

    strict 模式下非法转换抛 ValueError（守卫已在前面检查，属于内部错误）；
    非 strict 模式只记录告警，用于退房时房间被外部改过状态的情况。
    """
    old_status = room.status
    result = validate_transition(old_status, target)
    if not result.allowed:
        if strict:
            raise ValueError(result.reason)
        logger.warning(f"Room {room.id}: {result.reason}, applying anyway")
    room.status = target
    return old_status
