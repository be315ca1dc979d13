"""
Tests for pms/services/checkin_service.py
Covers: validation before writes, guest linking, initial payment,
room status guard, property scope, concurrent-occupancy index, rollback
"""
import pytest
from datetime import datetime, timedelta
from decimal import Decimal

from pms.models.events import EventType
from pms.models.ontology import (
    BookingSource, Guest, IdProofType, Occupancy, OccupancyGuest, Payment, PaymentMethod, RoomStatus
)
from pms.models.schemas import GuestDescriptor, InitialPayment
from pms.services.checkin_service import CheckInService
from pms.services.errors import (
    Forbidden, NotFound, RoomNotAvailable, TransactionFailure, ValidationError
)

CHECK_IN_TIME = datetime(2026, 3, 1, 14, 0)


@pytest.fixture
def checkin_service(db_session, published):
    """CheckInService with recording event publisher."""
    return CheckInService(db_session, event_publisher=published.append)


def _counts(db):
    return (
        db.query(Occupancy).count(),
        db.query(Payment).count(),
        db.query(OccupancyGuest).count(),
        db.query(Guest).count(),
    )


class TestCheckInSuccess:

    def test_two_night_stay(self, checkin_service, context, sample_room, make_checkin_request):
        occupancy = checkin_service.check_in(make_checkin_request(sample_room.id, paid=500), context)

        assert occupancy.is_active
        assert occupancy.total_amount == Decimal("2000.00")
        assert occupancy.paid_amount == Decimal("500.00")
        assert occupancy.balance_amount == Decimal("1500.00")
        assert occupancy.number_of_occupants == 1
        assert occupancy.booking_source == BookingSource.WALK_IN
        assert occupancy.checked_in_by == context.user_id
        assert occupancy.last_paid_date is not None
        assert occupancy.room.status == RoomStatus.OCCUPIED

        assert len(occupancy.payments) == 1
        payment = occupancy.payments[0]
        assert payment.amount == Decimal("500.00")
        assert payment.payment_method == PaymentMethod.CASH
        assert payment.paid_up_to_date == CHECK_IN_TIME

    def test_no_initial_payment_creates_no_payment(self, checkin_service, context, sample_room,
                                                   make_checkin_request):
        occupancy = checkin_service.check_in(make_checkin_request(sample_room.id), context)
        assert occupancy.paid_amount == Decimal("0.00")
        assert occupancy.balance_amount == Decimal("2000.00")
        assert occupancy.last_paid_date is None
        assert occupancy.payments == []

    def test_zero_initial_payment_creates_no_payment(self, checkin_service, context, sample_room,
                                                     make_checkin_request):
        occupancy = checkin_service.check_in(make_checkin_request(sample_room.id, paid=0), context)
        assert occupancy.payments == []

    def test_missing_expected_checkout_is_one_night(self, checkin_service, context, sample_room,
                                                    make_checkin_request):
        data = make_checkin_request(sample_room.id, expected_check_out=None)
        occupancy = checkin_service.check_in(data, context)
        assert occupancy.expected_check_out is None
        assert occupancy.total_amount == Decimal("1000.00")

    def test_reserved_room_accepted(self, checkin_service, context, db_session, sample_room,
                                    make_checkin_request):
        sample_room.status = RoomStatus.RESERVED
        db_session.commit()
        occupancy = checkin_service.check_in(make_checkin_request(sample_room.id), context)
        assert occupancy.room.status == RoomStatus.OCCUPIED

    def test_primary_flag_and_links(self, checkin_service, context, sample_room, make_checkin_request):
        data = make_checkin_request(sample_room.id, guests=[
            GuestDescriptor(name="同住人"),
            GuestDescriptor(name="主客人", is_primary=True,
                            id_proof_type=IdProofType.PASSPORT, id_proof_number="G1"),
        ])
        occupancy = checkin_service.check_in(data, context)

        assert occupancy.primary_guest.name == "主客人"
        primaries = [link for link in occupancy.guest_links if link.is_primary]
        assert len(primaries) == 1
        assert primaries[0].guest_id == occupancy.guest_id
        assert len(occupancy.guest_links) == 2
        assert occupancy.number_of_occupants == 2

    def test_existing_guest_reused(self, checkin_service, context, db_session, sample_room,
                                   sample_guest, make_checkin_request):
        data = make_checkin_request(sample_room.id, guests=[
            GuestDescriptor(name="张三", phone="13999999999",
                            id_proof_type=IdProofType.PASSPORT, id_proof_number="E12345678"),
        ])
        occupancy = checkin_service.check_in(data, context)
        assert occupancy.guest_id == sample_guest.id
        db_session.refresh(sample_guest)
        assert sample_guest.phone == "13999999999"
        assert db_session.query(Guest).count() == 1

    def test_explicit_fields_stored(self, checkin_service, context, sample_room, make_checkin_request):
        data = make_checkin_request(
            sample_room.id,
            number_of_occupants=3,
            booking_source=BookingSource.CORPORATE,
            corporate_booking_id="CORP-42",
            initial_payment=InitialPayment(amount=Decimal("300"), payment_method=PaymentMethod.UPI,
                                           transaction_id="UPI-1"),
        )
        occupancy = checkin_service.check_in(data, context)
        assert occupancy.number_of_occupants == 3
        assert occupancy.booking_source == BookingSource.CORPORATE
        assert occupancy.corporate_booking_id == "CORP-42"
        assert occupancy.payments[0].payment_method == PaymentMethod.UPI
        assert occupancy.payments[0].transaction_id == "UPI-1"

    def test_events_published_after_commit(self, checkin_service, context, sample_room,
                                           make_checkin_request, published):
        occupancy = checkin_service.check_in(make_checkin_request(sample_room.id), context)
        types = [e.event_type for e in published]
        assert types == [EventType.GUEST_CHECKED_IN, EventType.ROOM_STATUS_CHANGED]
        assert published[0].data["occupancy_id"] == occupancy.id
        assert published[0].data["total_amount"] == "2000.00"
        assert published[1].data["old_status"] == "VACANT"
        assert published[1].data["new_status"] == "OCCUPIED"


class TestCheckInValidation:

    def test_no_guests(self, checkin_service, context, db_session, sample_room, make_checkin_request):
        with pytest.raises(ValidationError) as exc:
            checkin_service.check_in(make_checkin_request(sample_room.id, guests=[]), context)
        assert exc.value.field == "guests"
        assert _counts(db_session) == (0, 0, 0, 0)

    def test_zero_rate(self, checkin_service, context, sample_room, make_checkin_request):
        with pytest.raises(ValidationError) as exc:
            checkin_service.check_in(
                make_checkin_request(sample_room.id, actual_room_rate=Decimal("0")), context
            )
        assert exc.value.field == "actual_room_rate"

    def test_sub_cent_rate(self, checkin_service, context, db_session, sample_room, make_checkin_request):
        with pytest.raises(ValidationError) as exc:
            checkin_service.check_in(
                make_checkin_request(sample_room.id, actual_room_rate=Decimal("0.004")), context
            )
        assert exc.value.field == "actual_room_rate"
        assert _counts(db_session) == (0, 0, 0, 0)

    def test_zero_occupants(self, checkin_service, context, sample_room, make_checkin_request):
        with pytest.raises(ValidationError) as exc:
            checkin_service.check_in(
                make_checkin_request(sample_room.id, number_of_occupants=0), context
            )
        assert exc.value.field == "number_of_occupants"

    def test_checkout_before_checkin(self, checkin_service, context, sample_room, make_checkin_request):
        data = make_checkin_request(sample_room.id,
                                    expected_check_out=CHECK_IN_TIME - timedelta(days=1))
        with pytest.raises(ValidationError) as exc:
            checkin_service.check_in(data, context)
        assert exc.value.field == "expected_check_out"

    def test_stay_longer_than_a_year(self, checkin_service, context, sample_room, make_checkin_request):
        data = make_checkin_request(sample_room.id,
                                    expected_check_out=CHECK_IN_TIME + timedelta(days=400))
        with pytest.raises(ValidationError):
            checkin_service.check_in(data, context)

    def test_initial_payment_above_total(self, checkin_service, context, db_session, sample_room,
                                         make_checkin_request):
        with pytest.raises(ValidationError) as exc:
            checkin_service.check_in(make_checkin_request(sample_room.id, paid=2500), context)
        assert exc.value.field == "initial_payment.amount"
        db_session.refresh(sample_room)
        assert sample_room.status == RoomStatus.VACANT

    def test_sub_cent_initial_payment(self, checkin_service, context, db_session, sample_room,
                                      make_checkin_request):
        with pytest.raises(ValidationError) as exc:
            checkin_service.check_in(make_checkin_request(sample_room.id, paid="0.004"), context)
        assert exc.value.field == "initial_payment.amount"
        assert _counts(db_session) == (0, 0, 0, 0)
        db_session.refresh(sample_room)
        assert sample_room.status == RoomStatus.VACANT

    def test_room_not_found(self, checkin_service, context, make_checkin_request):
        with pytest.raises(NotFound) as exc:
            checkin_service.check_in(make_checkin_request(99999), context)
        assert exc.value.entity == "room"

    def test_room_of_other_property(self, checkin_service, context, db_session, foreign_room,
                                    make_checkin_request):
        with pytest.raises(Forbidden):
            checkin_service.check_in(make_checkin_request(foreign_room.id), context)
        db_session.refresh(foreign_room)
        assert foreign_room.status == RoomStatus.VACANT

    @pytest.mark.parametrize("status", [
        RoomStatus.OCCUPIED, RoomStatus.DIRTY, RoomStatus.CLEANING, RoomStatus.MAINTENANCE
    ])
    def test_room_not_available(self, checkin_service, context, db_session, sample_room,
                                make_checkin_request, status):
        sample_room.status = status
        db_session.commit()
        with pytest.raises(RoomNotAvailable) as exc:
            checkin_service.check_in(make_checkin_request(sample_room.id), context)
        assert exc.value.current_status == status
        assert _counts(db_session) == (0, 0, 0, 0)


class TestCheckInAtomicity:

    def test_second_check_in_same_room_rejected(self, checked_in, checkin_service, context,
                                                db_session, sample_room, make_checkin_request):
        checked_in(paid=500)
        before = _counts(db_session)
        with pytest.raises(RoomNotAvailable) as exc:
            checkin_service.check_in(make_checkin_request(sample_room.id), context)
        assert exc.value.current_status == RoomStatus.OCCUPIED
        assert _counts(db_session) == before

    def test_active_occupancy_index_guards_stale_room_status(self, checked_in, checkin_service, context,
                                                             db_session, sample_room, make_checkin_request):
        """房间状态被外部改回 VACANT，唯一在住索引仍然拒绝第二条住宿"""
        first = checked_in()
        sample_room.status = RoomStatus.VACANT
        db_session.commit()

        data = make_checkin_request(sample_room.id, guests=[GuestDescriptor(name="后来者")])
        with pytest.raises(RoomNotAvailable):
            checkin_service.check_in(data, context)

        active = db_session.query(Occupancy).filter(Occupancy.actual_check_out.is_(None)).all()
        assert [o.id for o in active] == [first.id]
        assert db_session.query(Guest).filter(Guest.name == "后来者").count() == 0

    def test_storage_failure_rolls_back(self, checkin_service, context, db_session, sample_room,
                                        make_checkin_request, monkeypatch, published):
        from sqlalchemy.exc import OperationalError

        def _broken_link(occupancy, resolved):
            raise OperationalError("INSERT INTO occupancy_guests", {}, Exception("disk I/O error"))

        monkeypatch.setattr(checkin_service, "_link_guests", _broken_link)
        with pytest.raises(TransactionFailure):
            checkin_service.check_in(make_checkin_request(sample_room.id, paid=500), context)

        db_session.refresh(sample_room)
        assert sample_room.status == RoomStatus.VACANT
        assert _counts(db_session) == (0, 0, 0, 0)
        assert published == []
