from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from models.booking import Booking
from services import bookings as booking_service
from services.bookings import create_booking, duration_hours, booking_horizon
from services.errors import InvalidInterval, CourtUnavailable, SlotConflict, PersistenceFailure

NOW = datetime(2030, 1, 10, 8, 0)


def at(hours, minutes=0):
    return NOW + timedelta(hours=hours, minutes=minutes)


@pytest.mark.parametrize("minutes, expected", [
    (60, 1),
    (90, 2),
    (89, 1),
    (120, 2),
    (29, 0),
    (30, 1),
])
def test_duration_rounds_half_up(minutes, expected):
    assert duration_hours(NOW, NOW + timedelta(minutes=minutes)) == expected


def test_booking_horizon_ends_at_end_of_day():
    assert booking_horizon(datetime(2030, 1, 31, 9, 30), 1) == datetime(2030, 2, 28, 23, 59, 59, 999999)


def test_create_prices_whole_hours(session, court, player):
    booking = create_booking(session, court.id, player.id, at(24), at(26), now=NOW)
    session.commit()

    assert booking.id is not None
    assert booking.price_total == 300000
    assert booking.status == "pending"
    assert booking.payment_status == "pending"
    assert booking.payment_completed_at is None


def test_half_hour_rounds_up_in_price(session, court, player):
    booking = create_booking(session, court.id, player.id, at(24), at(25, 30), now=NOW)
    assert booking.price_total == 300000


def test_notes_are_trimmed(session, court, player):
    booking = create_booking(session, court.id, player.id, at(24), at(25), notes="  bring bibs ", now=NOW)
    assert booking.notes == "bring bibs"


def test_start_in_the_past_is_rejected(session, court, player):
    with pytest.raises(InvalidInterval) as exc:
        create_booking(session, court.id, player.id, at(0, -1), at(1), now=NOW)
    assert exc.value.message == "Start time must be in the future"


def test_start_equal_to_now_is_rejected(session, court, player):
    with pytest.raises(InvalidInterval):
        create_booking(session, court.id, player.id, NOW, at(1), now=NOW)


def test_end_not_after_start_is_rejected(session, court, player):
    with pytest.raises(InvalidInterval) as exc:
        create_booking(session, court.id, player.id, at(24), at(24), now=NOW)
    assert exc.value.message == "End time must be after start time"


def test_booking_beyond_horizon_is_rejected(session, court, player):
    start = datetime(2030, 4, 11, 10, 0)
    with pytest.raises(InvalidInterval):
        create_booking(session, court.id, player.id, start, start + timedelta(hours=1),
                       now=NOW, max_months_ahead=3)


def test_last_day_of_horizon_is_allowed(session, court, player):
    start = datetime(2030, 4, 10, 21, 0)
    booking = create_booking(session, court.id, player.id, start, start + timedelta(hours=2),
                             now=NOW, max_months_ahead=3)
    assert booking.id is not None


def test_inactive_court_is_rejected(session, court, player):
    court.is_active = False
    session.commit()
    with pytest.raises(CourtUnavailable):
        create_booking(session, court.id, player.id, at(24), at(25), now=NOW)


def test_overlap_is_rejected_and_nothing_is_inserted(session, court, player, other_player):
    create_booking(session, court.id, player.id, at(24), at(26), now=NOW)
    session.commit()

    with pytest.raises(SlotConflict):
        create_booking(session, court.id, other_player.id, at(25), at(27), now=NOW)
    assert session.query(Booking).count() == 1


def test_adjacent_slot_is_accepted(session, court, player, other_player):
    create_booking(session, court.id, player.id, at(24), at(26), now=NOW)
    session.commit()
    booking = create_booking(session, court.id, other_player.id, at(26), at(27), now=NOW)
    assert booking.id is not None


def test_cancelled_booking_frees_its_slot(session, court, player, other_player):
    first = create_booking(session, court.id, player.id, at(24), at(26), now=NOW)
    booking_service.void_booking(first, now=NOW)
    session.commit()

    second = create_booking(session, court.id, other_player.id, at(24), at(26), now=NOW)
    assert second.id != first.id


class _Orig(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


def _failing_flush(orig):
    def flush(*args, **kwargs):
        raise IntegrityError("INSERT INTO bookings", {}, orig)
    return flush


def test_exclusion_violation_maps_to_conflict(session, court, player, monkeypatch):
    monkeypatch.setattr(session, "flush", _failing_flush(_Orig("conflicting key value", pgcode="23P01")))
    with pytest.raises(SlotConflict):
        create_booking(session, court.id, player.id, at(24), at(25), now=NOW)


def test_other_integrity_error_is_a_persistence_failure(session, court, player, monkeypatch):
    monkeypatch.setattr(session, "flush", _failing_flush(_Orig("NOT NULL constraint failed")))
    with pytest.raises(PersistenceFailure):
        create_booking(session, court.id, player.id, at(24), at(25), now=NOW)


def test_payment_reference_format():
    ref = booking_service.generate_payment_reference()
    prefix, millis, suffix = ref.split("-")
    assert prefix == "BOOK"
    assert millis.isdigit()
    assert len(suffix) == 6
