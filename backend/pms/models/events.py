"""
领域事件定义 (Domain Events)
入住生命周期中提交成功后发布的业务事件
"""
from enum import Enum
from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any


class EventType(str, Enum):
    """事件类型枚举"""
    ROOM_STATUS_CHANGED = "room.status_changed"
    GUEST_CHECKED_IN = "guest.checked_in"
    GUEST_CHECKED_OUT = "guest.checked_out"
    STAY_REVISED = "stay.revised"
    PAYMENT_RECEIVED = "payment.received"


@dataclass
class BaseEventData:
    """事件数据基类"""
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典（datetime → ISO 字符串，Decimal → str）"""
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, Decimal):
                result[key] = str(value)
        return result


@dataclass
class RoomStatusChangedData(BaseEventData):
    """房间状态变更事件数据"""
    room_id: int = 0
    room_number: str = ""
    old_status: str = ""
    new_status: str = ""
    changed_by: Optional[int] = None
    reason: str = ""


@dataclass
class GuestCheckedInData(BaseEventData):
    """客人入住事件数据"""
    occupancy_id: int = 0
    room_id: int = 0
    room_number: str = ""
    primary_guest_id: int = 0
    primary_guest_name: str = ""
    guest_count: int = 0
    check_in_time: Optional[datetime] = None
    expected_check_out: Optional[datetime] = None
    total_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    operator_id: Optional[int] = None


@dataclass
class GuestCheckedOutData(BaseEventData):
    """客人退房事件数据"""
    occupancy_id: int = 0
    room_id: int = 0
    room_number: str = ""
    check_out_time: Optional[datetime] = None
    nights_stayed: int = 0
    total_amount: Decimal = Decimal("0")
    paid_amount: Decimal = Decimal("0")
    operator_id: Optional[int] = None


@dataclass
class StayRevisedData(BaseEventData):
    """住宿修改事件数据"""
    occupancy_id: int = 0
    old_expected_check_out: Optional[datetime] = None
    new_expected_check_out: Optional[datetime] = None
    old_rate: Decimal = Decimal("0")
    new_rate: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    balance_amount: Decimal = Decimal("0")
    operator_id: Optional[int] = None


@dataclass
class PaymentReceivedData(BaseEventData):
    """收款事件数据"""
    payment_id: int = 0
    occupancy_id: int = 0
    amount: Decimal = Decimal("0")
    payment_method: str = ""
    balance_amount: Decimal = Decimal("0")
    operator_id: Optional[int] = None
