from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from models.booking import Booking
from payments.midtrans import MidtransUnavailable
from payments.status_mapping import StatusMapping
from services import reconciliation
from services.bookings import create_booking, void_booking
from services.errors import BookingNotFound
from services.expiry import cancel_expired_bookings
from services.reconciliation import reconcile, apply_status_mapping

REF = "BOOK-1700000000000-abc123"


@pytest.fixture
def booking(make_booking):
    return make_booking(payment_reference=REF)


def test_settlement_confirms_booking(session, gateway, booking):
    gateway.set_status(REF, "settlement")

    result = reconcile(session, gateway, booking.id)

    assert result.success
    assert result.status_updated
    assert result.message == "Payment status retrieved and booking updated"
    assert result.mapping_dict() == {"payment_status": "paid", "booking_status": "confirmed"}
    assert result.booking["status"] == "confirmed"
    assert result.booking["payment_status"] == "paid"
    assert result.booking["payment_completed_at"] is not None
    assert result.midtrans_status["transaction_status"] == "settlement"


def test_second_reconcile_is_a_no_op(session, gateway, booking):
    gateway.set_status(REF, "settlement")
    first_at = datetime(2030, 1, 1, 12, 0)

    reconcile(session, gateway, booking.id, now=first_at)
    again = reconcile(session, gateway, booking.id, now=datetime(2030, 1, 1, 13, 0))

    assert again.success
    assert again.status_updated is False
    assert again.message == "Payment status retrieved"
    session.refresh(booking)
    assert booking.payment_completed_at == first_at


def test_payment_completed_at_is_never_moved(session, booking):
    paid_at = datetime(2030, 1, 1, 12, 0)
    booking.payment_status = "waiting_confirmation"
    booking.payment_completed_at = paid_at
    session.commit()

    apply_status_mapping(session, booking, StatusMapping("paid", "confirmed"), now=datetime(2030, 1, 2))

    assert booking.payment_completed_at == paid_at
    assert booking.payment_status == "paid"


def test_capture_under_review_waits(session, gateway, booking):
    gateway.set_status(REF, "capture", "challenge")

    result = reconcile(session, gateway, booking.id)

    assert result.booking["payment_status"] == "waiting_confirmation"
    assert result.booking["status"] == "pending"
    assert result.booking["payment_completed_at"] is None


def test_expired_payment_cancels_booking(session, gateway, booking):
    gateway.set_status(REF, "expire")

    result = reconcile(session, gateway, booking.id)

    assert result.booking["status"] == "cancelled"
    assert result.booking["payment_status"] == "cancelled"


def test_settlement_does_not_regress_checked_in_booking(session, gateway, make_booking):
    booking = make_booking(payment_reference=REF, status="checked_in", payment_status="waiting_confirmation")
    gateway.set_status(REF, "settlement")

    result = reconcile(session, gateway, booking.id)

    assert result.booking["status"] == "checked_in"
    assert result.booking["payment_status"] == "paid"
    assert result.mapping_dict() == {"payment_status": "paid", "booking_status": "checked_in"}


def test_unknown_gateway_status_changes_nothing(session, gateway, booking):
    gateway.set_status(REF, "something_new")

    result = reconcile(session, gateway, booking.id)

    assert result.success
    assert result.status_updated is False
    assert result.status_mapping is None
    assert result.message == "Payment status retrieved"
    assert result.booking["status"] == "pending"


def test_missing_payment_reference(session, gateway, make_booking):
    booking = make_booking(payment_reference=None)

    result = reconcile(session, gateway, booking.id)

    assert result.success
    assert result.message == "No payment reference found - might be manual booking"
    assert result.status_updated is False
    assert gateway.lookups == []


def test_gateway_returns_nothing(session, gateway, booking):
    result = reconcile(session, gateway, booking.id)

    assert result.success is False
    assert result.message == "Could not retrieve payment status from Midtrans"
    assert result.booking["status"] == "pending"


def test_gateway_error_is_a_soft_failure(session, gateway, booking):
    error = MidtransUnavailable("Midtrans unreachable: timed out")
    gateway.lookup_error = error

    result = reconcile(session, gateway, booking.id)

    assert result.success is False
    assert result.message.startswith("Failed to check payment status: ")
    assert result.error is error
    assert result.booking["status"] == "pending"


def test_booking_of_someone_else_is_not_found(session, gateway, booking, other_player):
    with pytest.raises(BookingNotFound):
        reconcile(session, gateway, booking.id, profile_id=other_player.id)


def test_unknown_booking_is_not_found(session, gateway):
    with pytest.raises(BookingNotFound):
        reconcile(session, gateway, 424242)


def test_write_failure_reports_previous_state(session, gateway, booking, monkeypatch):
    gateway.set_status(REF, "settlement")

    def broken(*args, **kwargs):
        raise OperationalError("UPDATE bookings", {}, Exception("database is locked"))

    monkeypatch.setattr(reconciliation, "apply_status_mapping", broken)

    result = reconcile(session, gateway, booking.id)

    assert result.success is False
    assert result.persistence_failed
    assert result.previous_booking["status"] == "pending"
    assert result.mapping_dict() == {"payment_status": "paid", "booking_status": "confirmed"}
    assert session.get(Booking, booking.id).status == "pending"


def test_concurrent_change_is_not_overwritten(session, booking):
    assert booking.status == "pending"
    # another worker cancelled the row after we read it
    session.query(Booking).filter(Booking.id == booking.id).update(
        {Booking.status: "cancelled", Booking.payment_status: "cancelled"}, synchronize_session=False
    )

    updated = apply_status_mapping(session, booking, StatusMapping("paid", "confirmed"))

    assert updated is False
    assert booking.status == "cancelled"


def test_swept_booking_stays_cancelled_after_slot_is_rebooked(session, gateway, make_booking, court, other_player):
    now = datetime(2030, 1, 10, 12, 0)
    start = now + timedelta(days=1)
    swept = make_booking(start=start, payment_reference=REF, created_at=now - timedelta(minutes=45))
    gateway.set_status(REF, "pending")

    cancel_expired_bookings(session, gateway, now=now)
    rebooked = create_booking(session, court.id, other_player.id, start, start + timedelta(hours=2), now=now)
    session.commit()

    result = reconcile(session, gateway, swept.id, now=now)

    assert result.success
    assert result.status_updated is False
    assert result.booking["status"] == "cancelled"
    assert result.booking["payment_status"] == "expired"
    active = session.query(Booking).filter(Booking.court_id == court.id, Booking.status == "pending").all()
    assert [b.id for b in active] == [rebooked.id]


def test_user_cancelled_booking_is_not_reopened(session, gateway, booking):
    void_booking(booking, reason="Changed plans")
    session.commit()
    gateway.set_status(REF, "pending")

    result = reconcile(session, gateway, booking.id)

    assert result.status_updated is False
    assert result.mapping_dict() == {"payment_status": "cancelled", "booking_status": "cancelled"}
    assert result.booking["status"] == "cancelled"
    assert result.booking["payment_status"] == "cancelled"


def test_late_settlement_is_recorded_on_cancelled_booking(session, gateway, make_booking):
    booking = make_booking(payment_reference=REF, status="cancelled", payment_status="expired")
    gateway.set_status(REF, "settlement")

    result = reconcile(session, gateway, booking.id)

    assert result.status_updated
    assert result.booking["status"] == "cancelled"
    assert result.booking["payment_status"] == "paid"
    assert result.booking["payment_completed_at"] is not None


@pytest.mark.parametrize("status", ["completed", "refunded"])
def test_closed_booking_keeps_its_status(session, gateway, make_booking, status):
    booking = make_booking(payment_reference=REF, status=status, payment_status="paid")
    gateway.set_status(REF, "pending")

    result = reconcile(session, gateway, booking.id)

    assert result.status_updated is False
    assert result.booking["status"] == status
    assert result.booking["payment_status"] == "paid"


def test_pending_gateway_status_does_not_regress_confirmed_booking(session, gateway, make_booking):
    booking = make_booking(payment_reference=REF, status="confirmed", payment_status="paid")
    gateway.set_status(REF, "pending")

    result = reconcile(session, gateway, booking.id)

    assert result.status_updated is False
    assert result.booking["status"] == "confirmed"
    assert result.booking["payment_status"] == "paid"
