"""
Pydantic 模式定义
用于 API 请求/响应验证
请求模型只做格式校验，业务前置条件在服务层统一检查
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Dict, Optional, List
from pydantic import BaseModel, Field, ConfigDict
from pms.models.ontology import (
    RoomStatus, PaymentMethod, BookingSource, IdProofType
)


# ============== 客人 Schemas ==============

class GuestDescriptor(BaseModel):
    """入住时提交的客人信息；只有显式提交的字段会覆盖已有客人档案"""
    name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    alternate_phone: Optional[str] = Field(None, max_length=20)
    id_proof_type: Optional[IdProofType] = None
    other_id_proof: Optional[str] = Field(None, max_length=50)
    id_proof_number: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=50)
    state: Optional[str] = Field(None, max_length=50)
    country: Optional[str] = Field(None, max_length=50)
    nationality: Optional[str] = Field(None, max_length=50)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(None, max_length=20)
    emergency_contact: Optional[str] = Field(None, max_length=100)
    emergency_phone: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None
    is_primary: bool = False

    def identity_key(self):
        """证件类型和号码都存在时返回身份键，否则 None"""
        if self.id_proof_type and self.id_proof_number:
            return (self.id_proof_type, self.id_proof_number)
        return None

    def profile_fields(self) -> dict:
        """显式提交的档案字段（不含 is_primary，不含 null）"""
        data = self.model_dump(exclude_unset=True, exclude={"is_primary"})
        return {k: v for k, v in data.items() if v is not None}


class GuestResponse(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    id_proof_type: Optional[IdProofType] = None
    id_proof_number: Optional[str] = None
    nationality: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class OccupancyGuestResponse(GuestResponse):
    is_primary: bool = False


# ============== 入住 Schemas ==============

class InitialPayment(BaseModel):
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    transaction_id: Optional[str] = Field(None, max_length=100)


class CheckInRequest(BaseModel):
    room_id: int
    check_in_time: datetime
    expected_check_out: Optional[datetime] = None
    actual_room_rate: Decimal
    number_of_occupants: Optional[int] = None
    guests: List[GuestDescriptor] = Field(default_factory=list)
    initial_payment: Optional[InitialPayment] = None
    booking_source: Optional[BookingSource] = None
    group_booking_id: Optional[str] = Field(None, max_length=50)
    corporate_booking_id: Optional[str] = Field(None, max_length=50)


# ============== 支付 Schemas ==============

class PaymentCreate(BaseModel):
    occupancy_id: int
    amount: Decimal
    payment_method: PaymentMethod
    transaction_id: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    id: int
    occupancy_id: int
    amount: Decimal
    payment_method: PaymentMethod
    payment_date: datetime
    paid_up_to_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    received_by: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class PendingPaymentItem(BaseModel):
    occupancy_id: int
    room_id: int
    room_number: str
    primary_guest_name: Optional[str] = None
    balance_amount: Decimal
    last_paid_date: Optional[datetime] = None
    days_since_last_payment: int
    is_overdue: bool


class PendingPaymentsResponse(BaseModel):
    items: List[PendingPaymentItem]
    total_pending: Decimal
    overdue_count: int
    overdue_amount: Decimal


class PaymentHistoryItem(PaymentResponse):
    """物业级收款记录，附带房间和主客人"""
    room_id: int
    room_number: str
    primary_guest_name: Optional[str] = None


class PaymentStats(BaseModel):
    total_amount: Decimal
    total_payments: int
    by_method: Dict[str, Decimal]


class PaymentHistoryFilters(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    limit: int


class PaymentHistoryResponse(BaseModel):
    items: List[PaymentHistoryItem]
    stats: PaymentStats
    filters: PaymentHistoryFilters


# ============== 住宿 Schemas ==============

class StayRevision(BaseModel):
    expected_check_out: Optional[datetime] = None
    actual_room_rate: Optional[Decimal] = None
    number_of_occupants: Optional[int] = None


class OccupancyResponse(BaseModel):
    id: int
    room_id: int
    room_number: str
    room_status: RoomStatus
    check_in_time: datetime
    expected_check_out: Optional[datetime] = None
    actual_check_out: Optional[datetime] = None
    actual_room_rate: Decimal
    number_of_occupants: int
    total_amount: Decimal
    paid_amount: Decimal
    balance_amount: Decimal
    last_paid_date: Optional[datetime] = None
    booking_source: Optional[BookingSource] = None
    group_booking_id: Optional[str] = None
    corporate_booking_id: Optional[str] = None
    guests: List[OccupancyGuestResponse] = Field(default_factory=list)
    payments: List[PaymentResponse] = Field(default_factory=list)
    nights_stayed: int = 1
    is_paid: bool = False
    is_active: bool = True


# ============== 退房 Schemas ==============

class CheckOutRequest(BaseModel):
    occupancy_id: int


class CheckoutSummary(BaseModel):
    occupancy_id: int
    room_id: int
    room_number: str
    check_in_time: datetime
    actual_check_out: datetime
    nights_stayed: int
    total_amount: Decimal
    paid_amount: Decimal
    message: str = "退房成功，房间已标记为待清洁"
