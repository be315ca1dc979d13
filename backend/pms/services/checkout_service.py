"""
退房服务 - 本体操作层
唯一的关闭住宿入口：余额未结清不允许退房
退房后房间变为 DIRTY，由客房管理接手（通过事件通知）
"""
import logging
from datetime import datetime
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pms.config import settings
from pms.database import transaction_timeout
from pms.models.events import EventType, GuestCheckedOutData, RoomStatusChangedData
from pms.models.ontology import Occupancy, RoomStatus
from pms.models.schemas import CheckOutRequest, CheckoutSummary
from pms.security.context import SecurityContext
from pms.services.errors import (
    AlreadyClosed, OccupancyError, PaymentIncomplete, TransactionFailure
)
from pms.services.event_bus import Event, event_bus
from pms.services.occupancy_service import OccupancyService
from pms.services.price_service import calculate_nights
from pms.services.room_state import apply_transition

logger = logging.getLogger(__name__)


class CheckOutService:
    """退房服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self.occupancy_service = OccupancyService(db)
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish

    def check_out(self, data: CheckOutRequest, context: SecurityContext) -> CheckoutSummary:
        """
        退房操作
        业务规则：
        1. 住宿在住，否则 AlreadyClosed（重复退房也一样）
        2. balance_amount ≤ 0，否则 PaymentIncomplete（带出未付余额）
        3. 同一事务内写入实际退房时间、房间 → DIRTY
        4. 返回实际入住晚数
        """
        occupancy_id = data.occupancy_id
        transaction_timeout(self.db, settings.TRANSACTION_TIMEOUT_SECONDS)
        try:
            occupancy = self.occupancy_service.get_active_occupancy(
                occupancy_id, context, for_update=True
            )
            self._ensure_settled(occupancy)

            now = datetime.now()
            updated = self.db.query(Occupancy).filter(
                Occupancy.id == occupancy.id,
                Occupancy.actual_check_out.is_(None),
                Occupancy.balance_amount <= 0
            ).update({Occupancy.actual_check_out: now}, synchronize_session=False)
            if updated != 1:
                self._raise_lost_guard(occupancy_id)

            room = occupancy.room
            old_room_status = apply_transition(room, RoomStatus.DIRTY, strict=False)
            self.db.commit()
        except OccupancyError as e:
            self.db.rollback()
            logger.warning(f"Checkout of occupancy {occupancy_id} rejected: {e.message}")
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Checkout of occupancy {occupancy_id} failed: {e}", exc_info=True)
            raise TransactionFailure("checkout") from e

        self.db.refresh(occupancy)
        nights_stayed = calculate_nights(occupancy.check_in_time, occupancy.actual_check_out)
        logger.info(
            f"Occupancy {occupancy.id} checked out of room {room.room_number} "
            f"after {nights_stayed} night(s)"
        )

        self._publish_checked_out(occupancy, old_room_status, nights_stayed, context)

        return CheckoutSummary(
            occupancy_id=occupancy.id,
            room_id=room.id,
            room_number=room.room_number,
            check_in_time=occupancy.check_in_time,
            actual_check_out=occupancy.actual_check_out,
            nights_stayed=nights_stayed,
            total_amount=occupancy.total_amount,
            paid_amount=occupancy.paid_amount,
        )

    def _ensure_settled(self, occupancy: Occupancy) -> None:
        if occupancy.balance_amount > 0:
            raise PaymentIncomplete(
                occupancy.id, occupancy.balance_amount,
                total_amount=occupancy.total_amount, paid_amount=occupancy.paid_amount,
            )

    def _raise_lost_guard(self, occupancy_id: int) -> None:
        """条件 UPDATE 未命中：按最新状态给出确定的错误"""
        self.db.rollback()
        current = self.occupancy_service.get_occupancy(occupancy_id)
        if not current.is_active:
            raise AlreadyClosed(occupancy_id)
        self._ensure_settled(current)
        raise TransactionFailure("checkout")

    def _publish_checked_out(self, occupancy: Occupancy, old_room_status: RoomStatus,
                             nights_stayed: int, context: SecurityContext) -> None:
        room = occupancy.room
        # 发布退房事件（客房管理据此安排清洁）
        self._publish_event(Event(
            event_type=EventType.GUEST_CHECKED_OUT,
            timestamp=datetime.now(),
            data=GuestCheckedOutData(
                occupancy_id=occupancy.id,
                room_id=room.id,
                room_number=room.room_number,
                check_out_time=occupancy.actual_check_out,
                nights_stayed=nights_stayed,
                total_amount=occupancy.total_amount,
                paid_amount=occupancy.paid_amount,
                operator_id=context.user_id,
            ).to_dict(),
            source="checkout_service"
        ))
        self._publish_event(Event(
            event_type=EventType.ROOM_STATUS_CHANGED,
            timestamp=datetime.now(),
            data=RoomStatusChangedData(
                room_id=room.id,
                room_number=room.room_number,
                old_status=old_room_status.value,
                new_status=RoomStatus.DIRTY.value,
                changed_by=context.user_id,
                reason="退房",
            ).to_dict(),
            source="checkout_service"
        ))
