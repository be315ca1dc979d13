"""
账单服务 - 支付流水
只追加的 Payment 记录 + 住宿上的 paid/balance 累计值
支付与退房按同一住宿串行：余额检查和写入由带条件的 UPDATE 原子完成
"""
import logging
import math
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pms.config import settings
from pms.database import transaction_timeout
from pms.models.events import EventType, PaymentReceivedData
from pms.models.ontology import Occupancy, Payment, PaymentMethod, Room
from pms.models.schemas import (
    PaymentCreate, PaymentHistoryFilters, PaymentHistoryItem, PaymentHistoryResponse,
    PaymentResponse, PaymentStats, PendingPaymentItem, PendingPaymentsResponse
)
from pms.security.context import SecurityContext
from pms.services.errors import (
    AlreadyClosed, ExceedsBalance, OccupancyError, TransactionFailure, ValidationError
)
from pms.services.event_bus import Event, event_bus
from pms.services.occupancy_service import OccupancyService
from pms.services.price_service import SECONDS_PER_DAY, money

logger = logging.getLogger(__name__)


class BillingService:
    """账单服务"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self.occupancy_service = OccupancyService(db)
        # 支持依赖注入事件发布器，便于测试
        self._publish_event = event_publisher or event_bus.publish

    def record_payment(self, data: PaymentCreate, context: SecurityContext) -> Occupancy:
        """
        记录一笔收款
        业务规则：
        - 住宿存在且在住
        - 0 < amount ≤ 当前余额，超额直接拒绝（不截断）
        - 写流水、paid += amount、balance -= amount、更新最后收款时间在同一事务
        """
        amount = money(data.amount) if data.amount is not None else None
        if amount is None or amount <= 0:
            raise ValidationError("amount", "支付金额必须大于 0", data.amount)

        transaction_timeout(self.db, settings.TRANSACTION_TIMEOUT_SECONDS)
        try:
            occupancy = self.occupancy_service.get_active_occupancy(
                data.occupancy_id, context, for_update=True
            )
            if amount > occupancy.balance_amount:
                raise ExceedsBalance(amount, occupancy.balance_amount)

            now = datetime.now()
            updated = self.db.query(Occupancy).filter(
                Occupancy.id == occupancy.id,
                Occupancy.actual_check_out.is_(None),
                Occupancy.balance_amount >= amount
            ).update({
                Occupancy.paid_amount: Occupancy.paid_amount + amount,
                Occupancy.balance_amount: Occupancy.balance_amount - amount,
                Occupancy.last_paid_date: now,
            }, synchronize_session=False)
            if updated != 1:
                self._raise_lost_guard(data.occupancy_id, amount)

            payment = Payment(
                occupancy_id=occupancy.id,
                amount=amount,
                payment_method=data.payment_method,
                payment_date=now,
                paid_up_to_date=now,
                transaction_id=data.transaction_id,
                notes=data.notes,
                received_by=context.user_id,
            )
            self.db.add(payment)
            self.db.commit()
        except OccupancyError as e:
            self.db.rollback()
            logger.warning(f"Payment on occupancy {data.occupancy_id} rejected: {e.message}")
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Payment on occupancy {data.occupancy_id} failed: {e}", exc_info=True)
            raise TransactionFailure("record-payment") from e

        self.db.refresh(occupancy)
        self.db.refresh(payment)
        logger.info(
            f"Payment {payment.id} of {amount} recorded on occupancy {occupancy.id}, "
            f"balance now {occupancy.balance_amount}"
        )
        self._publish_event(Event(
            event_type=EventType.PAYMENT_RECEIVED,
            timestamp=datetime.now(),
            data=PaymentReceivedData(
                payment_id=payment.id,
                occupancy_id=occupancy.id,
                amount=payment.amount,
                payment_method=payment.payment_method.value,
                balance_amount=occupancy.balance_amount,
                operator_id=context.user_id,
            ).to_dict(),
            source="billing_service"
        ))
        return occupancy

    def _raise_lost_guard(self, occupancy_id: int, amount: Decimal) -> None:
        """条件 UPDATE 未命中：其他请求抢先退房或收款，按最新状态给出确定的错误"""
        self.db.rollback()
        current = self.occupancy_service.get_occupancy(occupancy_id)
        if not current.is_active:
            raise AlreadyClosed(occupancy_id)
        raise ExceedsBalance(amount, current.balance_amount)

    def get_payments(self, occupancy_id: int, context: SecurityContext) -> List[PaymentResponse]:
        """住宿的支付流水，最新的在前"""
        occupancy = self.occupancy_service.get_scoped_occupancy(occupancy_id, context)
        payments = self.db.query(Payment).filter(
            Payment.occupancy_id == occupancy.id
        ).order_by(Payment.id.desc()).all()
        return [PaymentResponse.model_validate(p) for p in payments]

    def get_payment_history(self, context: SecurityContext,
                            start_date: Optional[date] = None,
                            end_date: Optional[date] = None,
                            payment_method: Optional[PaymentMethod] = None,
                            limit: int = 100) -> PaymentHistoryResponse:
        """
        物业范围内的收款记录，按收款时间倒序

        start_date / end_date 按自然日过滤（含两端），可单独给出。
        统计只覆盖返回的记录。
        """
        query = self.db.query(Payment).join(
            Occupancy, Payment.occupancy_id == Occupancy.id
        ).join(
            Room, Occupancy.room_id == Room.id
        ).filter(Room.property_id.in_(list(context.property_ids)))

        if start_date:
            query = query.filter(Payment.payment_date >= datetime.combine(start_date, time.min))
        if end_date:
            query = query.filter(
                Payment.payment_date < datetime.combine(end_date + timedelta(days=1), time.min)
            )
        if payment_method:
            query = query.filter(Payment.payment_method == payment_method)

        payments = query.order_by(Payment.payment_date.desc(), Payment.id.desc()).limit(limit).all()

        items = []
        by_method: Dict[str, Decimal] = {}
        for p in payments:
            occupancy = p.occupancy
            primary = occupancy.primary_guest
            items.append(PaymentHistoryItem(
                **PaymentResponse.model_validate(p).model_dump(),
                room_id=occupancy.room_id,
                room_number=occupancy.room.room_number,
                primary_guest_name=primary.name if primary else None,
            ))
            method = p.payment_method.value
            by_method[method] = by_method.get(method, Decimal("0")) + p.amount

        logger.debug(f"Payment history for properties {sorted(context.property_ids)}: {len(items)} rows")
        return PaymentHistoryResponse(
            items=items,
            stats=PaymentStats(
                total_amount=sum((p.amount for p in payments), Decimal("0")),
                total_payments=len(items),
                by_method=by_method,
            ),
            filters=PaymentHistoryFilters(
                start_date=start_date,
                end_date=end_date,
                payment_method=payment_method,
                limit=limit,
            ),
        )

    def ledger_total(self, occupancy_id: int) -> Decimal:
        """流水合计，用于核对 paid_amount"""
        payments = self.db.query(Payment).filter(Payment.occupancy_id == occupancy_id).all()
        return sum((p.amount for p in payments), Decimal("0"))

    def get_pending_payments(self, context: SecurityContext,
                             now: Optional[datetime] = None) -> PendingPaymentsResponse:
        """
        未结清的在住记录（按余额从高到低）

        距最后一次收款（从未收款则从入住起）超过 PAYMENT_OVERDUE_DAYS 天视为逾期。
        """
        now = now or datetime.now()
        pending = [
            o for o in self.occupancy_service.get_active_occupancies(context)
            if o.balance_amount > 0
        ]
        pending.sort(key=lambda o: o.balance_amount, reverse=True)

        items = []
        for o in pending:
            reference = o.last_paid_date or o.check_in_time
            elapsed = (now - reference).total_seconds() / SECONDS_PER_DAY
            days = max(0, math.ceil(elapsed))
            items.append(PendingPaymentItem(
                occupancy_id=o.id,
                room_id=o.room_id,
                room_number=o.room.room_number,
                primary_guest_name=o.primary_guest.name if o.primary_guest else None,
                balance_amount=o.balance_amount,
                last_paid_date=o.last_paid_date,
                days_since_last_payment=days,
                is_overdue=days > settings.PAYMENT_OVERDUE_DAYS,
            ))

        overdue = [i for i in items if i.is_overdue]
        return PendingPaymentsResponse(
            items=items,
            total_pending=sum((i.balance_amount for i in items), Decimal("0")),
            overdue_count=len(overdue),
            overdue_amount=sum((i.balance_amount for i in overdue), Decimal("0")),
        )
