"""
住宿查询服务 - 本体读取层
加载住宿并做物业范围校验；组装详情视图；在住/待离店/逾期查询
写操作服务（收款、修改、退房）都通过这里取住宿
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from pms.models.ontology import Occupancy, Room
from pms.models.schemas import (
    OccupancyResponse, OccupancyGuestResponse, PaymentResponse
)
from pms.security.context import SecurityContext
from pms.services.errors import AlreadyClosed, NotFound
from pms.services.price_service import calculate_nights


def build_occupancy_detail(occupancy: Occupancy, now: Optional[datetime] = None) -> OccupancyResponse:
    """住宿详情：主客人在前，支付记录按时间倒序"""
    links = sorted(occupancy.guest_links, key=lambda link: (not link.is_primary, link.id))
    guests = [
        OccupancyGuestResponse(
            id=link.guest.id,
            name=link.guest.name,
            email=link.guest.email,
            phone=link.guest.phone,
            id_proof_type=link.guest.id_proof_type,
            id_proof_number=link.guest.id_proof_number,
            nationality=link.guest.nationality,
            is_primary=link.is_primary,
        )
        for link in links
    ]
    payments = [
        PaymentResponse.model_validate(p)
        for p in sorted(occupancy.payments, key=lambda p: p.id, reverse=True)
    ]
    end = occupancy.actual_check_out or now or datetime.now()

    return OccupancyResponse(
        id=occupancy.id,
        room_id=occupancy.room_id,
        room_number=occupancy.room.room_number,
        room_status=occupancy.room.status,
        check_in_time=occupancy.check_in_time,
        expected_check_out=occupancy.expected_check_out,
        actual_check_out=occupancy.actual_check_out,
        actual_room_rate=occupancy.actual_room_rate,
        number_of_occupants=occupancy.number_of_occupants,
        total_amount=occupancy.total_amount,
        paid_amount=occupancy.paid_amount,
        balance_amount=occupancy.balance_amount,
        last_paid_date=occupancy.last_paid_date,
        booking_source=occupancy.booking_source,
        group_booking_id=occupancy.group_booking_id,
        corporate_booking_id=occupancy.corporate_booking_id,
        guests=guests,
        payments=payments,
        nights_stayed=calculate_nights(occupancy.check_in_time, end),
        is_paid=occupancy.balance_amount <= Decimal("0"),
        is_active=occupancy.is_active,
    )


class OccupancyService:
    """住宿查询服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_occupancy(self, occupancy_id: int, for_update: bool = False) -> Occupancy:
        """按ID获取住宿，for_update 时加行锁（SQLite 下无效果，由写入守卫兜底）"""
        query = self.db.query(Occupancy).filter(Occupancy.id == occupancy_id)
        if for_update:
            query = query.with_for_update()
        occupancy = query.first()
        if not occupancy:
            raise NotFound("occupancy", occupancy_id)
        return occupancy

    def get_scoped_occupancy(self, occupancy_id: int, context: SecurityContext,
                             for_update: bool = False) -> Occupancy:
        """获取住宿并校验其房间属于操作人的物业"""
        occupancy = self.get_occupancy(occupancy_id, for_update=for_update)
        context.ensure_property(occupancy.room.property_id, occupancy_id=occupancy_id)
        return occupancy

    def get_active_occupancy(self, occupancy_id: int, context: SecurityContext,
                             for_update: bool = False) -> Occupancy:
        """获取在住的住宿，已退房抛 AlreadyClosed"""
        occupancy = self.get_scoped_occupancy(occupancy_id, context, for_update=for_update)
        if not occupancy.is_active:
            raise AlreadyClosed(occupancy_id)
        return occupancy

    def get_active_by_room(self, room_id: int) -> Optional[Occupancy]:
        return self.db.query(Occupancy).filter(
            Occupancy.room_id == room_id,
            Occupancy.actual_check_out.is_(None)
        ).first()

    def _active_in_scope(self, context: SecurityContext):
        return self.db.query(Occupancy).join(Room).filter(
            Occupancy.actual_check_out.is_(None),
            Room.property_id.in_(list(context.property_ids))
        )

    def get_active_occupancies(self, context: SecurityContext) -> List[Occupancy]:
        """操作人物业内的所有在住记录"""
        return self._active_in_scope(context).order_by(Occupancy.check_in_time).all()

    def get_upcoming_checkouts(self, context: SecurityContext, days: int = 1,
                               now: Optional[datetime] = None) -> List[Occupancy]:
        """预计在未来 days 天内离店的在住记录"""
        now = now or datetime.now()
        return self._active_in_scope(context).filter(
            Occupancy.expected_check_out.isnot(None),
            Occupancy.expected_check_out >= now,
            Occupancy.expected_check_out <= now + timedelta(days=days)
        ).order_by(Occupancy.expected_check_out).all()

    def get_overdue_stays(self, context: SecurityContext,
                          now: Optional[datetime] = None) -> List[Occupancy]:
        """已过预计离店时间仍未退房"""
        now = now or datetime.now()
        return self._active_in_scope(context).filter(
            Occupancy.expected_check_out.isnot(None),
            Occupancy.expected_check_out < now
        ).order_by(Occupancy.expected_check_out).all()

    def get_occupancy_detail(self, occupancy_id: int, context: SecurityContext) -> OccupancyResponse:
        return build_occupancy_detail(self.get_scoped_occupancy(occupancy_id, context))
