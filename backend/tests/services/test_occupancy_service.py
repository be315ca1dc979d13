"""
Tests for pms/services/occupancy_service.py
Covers: scoped lookups, detail view, active/upcoming/overdue queries
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from pms.models.ontology import IdProofType
from pms.models.schemas import CheckOutRequest, GuestDescriptor
from pms.services.checkout_service import CheckOutService
from pms.services.errors import AlreadyClosed, Forbidden, NotFound
from pms.services.occupancy_service import OccupancyService, build_occupancy_detail

CHECK_IN_TIME = datetime(2026, 3, 1, 14, 0)


@pytest.fixture
def occupancy_service(db_session):
    return OccupancyService(db_session)


class TestLookups:

    def test_not_found(self, occupancy_service):
        with pytest.raises(NotFound):
            occupancy_service.get_occupancy(99999)

    def test_scope(self, occupancy_service, checked_in, other_context):
        occupancy = checked_in()
        with pytest.raises(Forbidden):
            occupancy_service.get_scoped_occupancy(occupancy.id, other_context)

    def test_active_by_room(self, occupancy_service, checked_in, sample_room, sample_room_102):
        occupancy = checked_in()
        assert occupancy_service.get_active_by_room(sample_room.id).id == occupancy.id
        assert occupancy_service.get_active_by_room(sample_room_102.id) is None

    def test_closed_is_not_active(self, occupancy_service, checked_in, context, db_session):
        occupancy = checked_in(paid=2000)
        CheckOutService(db_session, event_publisher=lambda e: None).check_out(
            CheckOutRequest(occupancy_id=occupancy.id), context
        )
        with pytest.raises(AlreadyClosed):
            occupancy_service.get_active_occupancy(occupancy.id, context)
        assert occupancy_service.get_active_occupancies(context) == []


class TestDetail:

    def test_primary_first_and_totals(self, checked_in):
        occupancy = checked_in(paid=500, guests=[
            GuestDescriptor(name="同住人"),
            GuestDescriptor(name="主客人", is_primary=True,
                            id_proof_type=IdProofType.PASSPORT, id_proof_number="D1"),
        ])
        detail = build_occupancy_detail(occupancy, now=CHECK_IN_TIME + timedelta(hours=30))

        assert [g.name for g in detail.guests] == ["主客人", "同住人"]
        assert detail.guests[0].is_primary
        assert detail.nights_stayed == 2
        assert detail.balance_amount == Decimal("1500.00")
        assert not detail.is_paid
        assert detail.is_active


class TestTimeQueries:

    def test_upcoming_and_overdue(self, occupancy_service, checked_in, context, sample_room_102):
        soon = checked_in()
        later = checked_in(room=sample_room_102, guests=[GuestDescriptor(name="长住客")],
                           expected_check_out=CHECK_IN_TIME + timedelta(days=6))

        now = CHECK_IN_TIME + timedelta(days=1, hours=12)
        upcoming = occupancy_service.get_upcoming_checkouts(context, days=1, now=now)
        assert [o.id for o in upcoming] == [soon.id]

        overdue = occupancy_service.get_overdue_stays(context, now=CHECK_IN_TIME + timedelta(days=3))
        assert [o.id for o in overdue] == [soon.id]

        all_overdue = occupancy_service.get_overdue_stays(context, now=CHECK_IN_TIME + timedelta(days=7))
        assert [o.id for o in all_overdue] == [soon.id, later.id]

    def test_open_ended_stay_never_overdue(self, occupancy_service, checked_in, context):
        checked_in(expected_check_out=None)
        assert occupancy_service.get_overdue_stays(context, now=CHECK_IN_TIME + timedelta(days=30)) == []
