"""
住宿修改服务
在住期间修改预计离店时间/房价/入住人数，并重新计算总额和余额
paid_amount 只由收款驱动，这里从不修改
"""
import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import Numeric, literal
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pms.config import settings
from pms.database import transaction_timeout
from pms.models.events import EventType, StayRevisedData
from pms.models.ontology import Occupancy
from pms.models.schemas import StayRevision
from pms.security.context import SecurityContext
from pms.services.errors import (
    AlreadyClosed, OccupancyError, TransactionFailure, ValidationError
)
from pms.services.event_bus import Event, event_bus
from pms.services.occupancy_service import OccupancyService
from pms.services.price_service import (
    calculate_nights, calculate_total_amount, to_naive,
    validate_expected_checkout, validate_rate
)

logger = logging.getLogger(__name__)


class StayService:
    """住宿修改服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self.occupancy_service = OccupancyService(db)
        self._publish_event = event_publisher or event_bus.publish

    def revise_stay(self, occupancy_id: int, data: StayRevision,
                    context: SecurityContext) -> Occupancy:
        """
        修改在住住宿
        业务规则：
        - 已退房抛 AlreadyClosed
        - 新离店时间必须晚于入住且不超过 MAX_STAY_DAYS 天；显式传 null 表示清空
        - total = rate × nights，balance = total - paid（不截断为 0，可能为负，表示应退款）
        """
        changes = data.model_dump(exclude_unset=True)
        if "actual_room_rate" in changes:
            validate_rate(changes["actual_room_rate"])
        if "number_of_occupants" in changes:
            occupants = changes["number_of_occupants"]
            if occupants is None or occupants < 1:
                raise ValidationError("number_of_occupants", "入住人数至少为 1", occupants)

        transaction_timeout(self.db, settings.TRANSACTION_TIMEOUT_SECONDS)
        try:
            occupancy = self.occupancy_service.get_active_occupancy(
                occupancy_id, context, for_update=True
            )
            old_check_out = occupancy.expected_check_out
            old_rate = occupancy.actual_room_rate

            new_check_out = old_check_out
            if "expected_check_out" in changes:
                new_check_out = to_naive(changes["expected_check_out"])
                if new_check_out is not None:
                    validate_expected_checkout(occupancy.check_in_time, new_check_out)

            new_rate = old_rate
            if changes.get("actual_room_rate") is not None:
                new_rate = validate_rate(changes["actual_room_rate"])

            nights = calculate_nights(occupancy.check_in_time, new_check_out)
            total = calculate_total_amount(new_rate, nights)

            values = {
                Occupancy.expected_check_out: new_check_out,
                Occupancy.actual_room_rate: new_rate,
                Occupancy.total_amount: total,
                Occupancy.balance_amount: literal(total, Numeric(10, 2)) - Occupancy.paid_amount,
            }
            if "number_of_occupants" in changes:
                values[Occupancy.number_of_occupants] = changes["number_of_occupants"]

            updated = self.db.query(Occupancy).filter(
                Occupancy.id == occupancy.id,
                Occupancy.actual_check_out.is_(None)
            ).update(values, synchronize_session=False)
            if updated != 1:
                raise AlreadyClosed(occupancy_id)
            self.db.commit()
        except OccupancyError as e:
            self.db.rollback()
            logger.warning(f"Revision of occupancy {occupancy_id} rejected: {e.message}")
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Revision of occupancy {occupancy_id} failed: {e}", exc_info=True)
            raise TransactionFailure("revise-stay") from e

        self.db.refresh(occupancy)
        if occupancy.balance_amount < 0:
            logger.warning(
                f"Occupancy {occupancy.id} total {occupancy.total_amount} is below "
                f"paid {occupancy.paid_amount}, balance {occupancy.balance_amount}"
            )
        logger.info(f"Occupancy {occupancy.id} revised: nights={nights} total={occupancy.total_amount}")

        self._publish_event(Event(
            event_type=EventType.STAY_REVISED,
            timestamp=datetime.now(),
            data=StayRevisedData(
                occupancy_id=occupancy.id,
                old_expected_check_out=old_check_out,
                new_expected_check_out=occupancy.expected_check_out,
                old_rate=old_rate,
                new_rate=occupancy.actual_room_rate,
                total_amount=occupancy.total_amount,
                balance_amount=occupancy.balance_amount,
                operator_id=context.user_id,
            ).to_dict(),
            source="stay_service"
        ))
        return occupancy
