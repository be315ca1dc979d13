"""
入住服务 - 本体操作层
把客人解析、住宿创建、首笔收款、房间状态转换组合成一个原子事务
支持事件驱动：提交成功后发布入住、房间状态变更事件
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from pms.config import settings
from pms.database import transaction_timeout
from pms.models.events import EventType, GuestCheckedInData, RoomStatusChangedData
from pms.models.ontology import (
    BookingSource, Occupancy, OccupancyGuest, Payment, PaymentMethod, Room, RoomStatus
)
from pms.models.schemas import CheckInRequest
from pms.security.context import SecurityContext
from pms.services.errors import (
    NotFound, OccupancyError, RoomNotAvailable, TransactionFailure, ValidationError
)
from pms.services.event_bus import Event, event_bus
from pms.services.guest_service import GuestService, ResolvedGuest, select_primary_index
from pms.services.occupancy_service import OccupancyService
from pms.services.price_service import (
    calculate_nights, calculate_total_amount, money, to_naive,
    validate_expected_checkout, validate_rate
)
from pms.services.room_state import apply_transition, ensure_check_in_allowed

logger = logging.getLogger(__name__)


class CheckInPlan:
    """前置校验通过后的入住参数（写入前一次性算好）"""

    def __init__(self, room: Room, check_in_time: datetime,
                 expected_check_out: Optional[datetime], rate: Decimal,
                 nights: int, total_amount: Decimal, paid_amount: Decimal):
        self.room = room
        self.check_in_time = check_in_time
        self.expected_check_out = expected_check_out
        self.rate = rate
        self.nights = nights
        self.total_amount = total_amount
        self.paid_amount = paid_amount

    @property
    def balance_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount


class CheckInService:
    """入住服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self.guest_service = GuestService(db)
        self.occupancy_service = OccupancyService(db)
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish

    def get_room(self, room_id: int, for_update: bool = False) -> Room:
        query = self.db.query(Room).filter(Room.id == room_id)
        if for_update:
            query = query.with_for_update()
        room = query.first()
        if not room:
            raise NotFound("room", room_id)
        return room

    def validate(self, data: CheckInRequest, context: SecurityContext) -> CheckInPlan:
        """
        写入前的全部前置校验，不修改任何状态

        - 至少一位客人，主客人标记合法
        - 房价 > 0，入住人数 ≥ 1
        - 预计离店晚于入住且不超过 MAX_STAY_DAYS 天
        - 房间存在、属于操作人物业、状态允许入住
        - 首笔收款按分取整后大于 0（不足一分拒绝）且不超过房费总额
        """
        select_primary_index(data.guests)
        rate = validate_rate(data.actual_room_rate)

        if data.number_of_occupants is not None and data.number_of_occupants < 1:
            raise ValidationError("number_of_occupants", "入住人数至少为 1", data.number_of_occupants)

        check_in_time = to_naive(data.check_in_time)
        expected_check_out = to_naive(data.expected_check_out)
        if expected_check_out is not None:
            validate_expected_checkout(check_in_time, expected_check_out)

        room = self.get_room(data.room_id)
        context.ensure_property(room.property_id, room_id=room.id)
        ensure_check_in_allowed(room)

        nights = calculate_nights(check_in_time, expected_check_out)
        total_amount = calculate_total_amount(rate, nights)
        paid_amount = money(data.initial_payment.amount) if data.initial_payment else Decimal("0.00")
        if data.initial_payment and data.initial_payment.amount > 0 and paid_amount <= 0:
            raise ValidationError("initial_payment.amount", "首笔收款不足一分", str(data.initial_payment.amount))
        if paid_amount > total_amount:
            raise ValidationError(
                "initial_payment.amount",
                f"首笔收款 {paid_amount} 超过房费总额 {total_amount}",
                str(paid_amount),
            )

        return CheckInPlan(room, check_in_time, expected_check_out, rate,
                           nights, total_amount, paid_amount)

    def check_in(self, data: CheckInRequest, context: SecurityContext) -> Occupancy:
        """
        办理入住
        业务规则：
        - 前置校验全部在写入之前完成
        - 客人解析、住宿、客人关联、首笔收款、房间 → OCCUPIED 在同一事务内
        - 房间行加锁并在锁内复查状态；同房间并发入住由部分唯一索引兜底
        - 任一步失败整体回滚
        """
        transaction_timeout(self.db, settings.CHECKIN_TRANSACTION_TIMEOUT_SECONDS)
        plan = self.validate(data, context)
        room_id = plan.room.id

        try:
            room = self.get_room(room_id, for_update=True)
            ensure_check_in_allowed(room)

            resolved = self.guest_service.resolve_guests(data.guests)
            primary = next(r for r in resolved if r.is_primary)

            occupancy = Occupancy(
                room_id=room.id,
                guest_id=primary.guest.id,
                check_in_time=plan.check_in_time,
                expected_check_out=plan.expected_check_out,
                actual_room_rate=plan.rate,
                number_of_occupants=data.number_of_occupants or len(resolved),
                total_amount=plan.total_amount,
                paid_amount=plan.paid_amount,
                balance_amount=plan.balance_amount,
                last_paid_date=datetime.now() if plan.paid_amount > 0 else None,
                booking_source=data.booking_source or BookingSource(settings.DEFAULT_BOOKING_SOURCE),
                group_booking_id=data.group_booking_id,
                corporate_booking_id=data.corporate_booking_id,
                checked_in_by=context.user_id,
            )
            self.db.add(occupancy)
            self.db.flush()

            self._link_guests(occupancy, resolved)

            if plan.paid_amount > 0:
                self.db.add(Payment(
                    occupancy_id=occupancy.id,
                    amount=plan.paid_amount,
                    payment_method=data.initial_payment.payment_method or PaymentMethod.CASH,
                    payment_date=datetime.now(),
                    paid_up_to_date=plan.check_in_time,
                    transaction_id=data.initial_payment.transaction_id,
                    received_by=context.user_id,
                ))

            old_status = apply_transition(room, RoomStatus.OCCUPIED)
            self.db.commit()
        except OccupancyError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            active = self.occupancy_service.get_active_by_room(room_id)
            if active is not None:
                logger.warning(f"Concurrent check-in on room {room_id} lost to occupancy {active.id}")
                raise RoomNotAvailable(room_id, RoomStatus.OCCUPIED) from e
            logger.error(f"Check-in integrity error on room {room_id}: {e}", exc_info=True)
            raise TransactionFailure("check-in") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Check-in failed on room {room_id}: {e}", exc_info=True)
            raise TransactionFailure("check-in") from e

        self.db.refresh(occupancy)
        logger.info(
            f"Occupancy {occupancy.id} checked in to room {room.room_number}: "
            f"nights={plan.nights} total={occupancy.total_amount} paid={occupancy.paid_amount}"
        )
        self._publish_checked_in(occupancy, room, old_status, len(resolved), context)
        return occupancy

    def _link_guests(self, occupancy: Occupancy, resolved: List[ResolvedGuest]) -> None:
        for r in resolved:
            self.db.add(OccupancyGuest(
                occupancy_id=occupancy.id,
                guest_id=r.guest.id,
                is_primary=r.is_primary,
            ))
        self.db.flush()

    def _publish_checked_in(self, occupancy: Occupancy, room: Room, old_status: RoomStatus,
                            guest_count: int, context: SecurityContext) -> None:
        self._publish_event(Event(
            event_type=EventType.GUEST_CHECKED_IN,
            timestamp=datetime.now(),
            data=GuestCheckedInData(
                occupancy_id=occupancy.id,
                room_id=room.id,
                room_number=room.room_number,
                primary_guest_id=occupancy.guest_id,
                primary_guest_name=occupancy.primary_guest.name,
                guest_count=guest_count,
                check_in_time=occupancy.check_in_time,
                expected_check_out=occupancy.expected_check_out,
                total_amount=occupancy.total_amount,
                paid_amount=occupancy.paid_amount,
                operator_id=context.user_id,
            ).to_dict(),
            source="checkin_service"
        ))
        self._publish_event(Event(
            event_type=EventType.ROOM_STATUS_CHANGED,
            timestamp=datetime.now(),
            data=RoomStatusChangedData(
                room_id=room.id,
                room_number=room.room_number,
                old_status=old_status.value,
                new_status=RoomStatus.OCCUPIED.value,
                changed_by=context.user_id,
                reason="入住",
            ).to_dict(),
            source="checkin_service"
        ))
