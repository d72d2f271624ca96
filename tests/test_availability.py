from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from models.court import Court
from services import availability
from services.availability import overlaps, is_available, list_booked_intervals
from services.errors import InvalidInterval, CourtUnavailable, AvailabilityCheckFailed

T0 = datetime(2030, 5, 1, 10, 0)


def h(n):
    return T0 + timedelta(hours=n)


def test_overlap_is_half_open():
    assert overlaps(h(0), h(1), h(0), h(1))
    assert overlaps(h(0), h(2), h(1), h(3))
    assert overlaps(h(1), h(2), h(0), h(3))
    assert not overlaps(h(0), h(1), h(1), h(2))
    assert not overlaps(h(1), h(2), h(0), h(1))


def test_free_court_is_available(session, court):
    assert is_available(session, court.id, h(0), h(2)) is True


def test_back_to_back_bookings_are_allowed(session, court, make_booking):
    make_booking(start=h(0), hours=1, status="confirmed", payment_status="paid")
    assert is_available(session, court.id, h(1), h(2)) is True


def test_overlapping_active_booking_blocks(session, court, make_booking):
    make_booking(start=h(0), hours=2)
    assert is_available(session, court.id, h(1), h(3)) is False


@pytest.mark.parametrize("status", ["cancelled", "completed", "refunded"])
def test_inactive_booking_statuses_do_not_block(session, court, make_booking, status):
    make_booking(start=h(0), hours=2, status=status)
    assert is_available(session, court.id, h(0), h(2)) is True


def test_other_court_does_not_block(session, court, partner, make_booking):
    other = Court(name="Lapangan B", price_per_hour=100000, owner_user_id=partner.id)
    session.add(other)
    session.commit()
    make_booking(start=h(0), hours=2, court_id=other.id)
    assert is_available(session, court.id, h(0), h(2)) is True


@pytest.mark.parametrize("end", [h(0), h(-1)])
def test_empty_or_reversed_interval_is_rejected(session, court, end):
    with pytest.raises(InvalidInterval):
        is_available(session, court.id, h(0), end)


def test_missing_court(session):
    with pytest.raises(CourtUnavailable) as exc:
        is_available(session, 9999, h(0), h(1))
    assert exc.value.message == "Court not found"


def test_inactive_court(session, court):
    court.is_active = False
    session.commit()
    with pytest.raises(CourtUnavailable) as exc:
        is_available(session, court.id, h(0), h(1))
    assert exc.value.message == "Court is not available for booking"


def test_read_failure_is_never_reported_as_available(session, court, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(session, "query", broken)
    with pytest.raises(AvailabilityCheckFailed):
        availability.find_conflicts(session, court.id, h(0), h(1))


def test_list_booked_intervals_orders_by_start(session, court, make_booking):
    make_booking(start=h(5), hours=1)
    make_booking(start=h(1), hours=1, status="confirmed")
    make_booking(start=h(3), hours=1, status="cancelled")

    rows = list_booked_intervals(session, court.id, h(0), h(24))
    assert [r["start_time"] for r in rows] == [h(1).isoformat(), h(5).isoformat()]
