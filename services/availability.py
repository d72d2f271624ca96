from sqlalchemy.exc import SQLAlchemyError

from models.booking import Booking, ACTIVE_BOOKING_STATUSES
from models.court import Court
from services.errors import InvalidInterval, CourtUnavailable, AvailabilityCheckFailed


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    # half-open intervals: [10:00, 11:00) and [11:00, 12:00) do not overlap
    return a_start < b_end and a_end > b_start


def get_bookable_court(session, court_id, lock: bool = False) -> Court:
    try:
        q = session.query(Court).filter(Court.id == court_id)
        if lock:
            # serializes concurrent bookings of one court (no-op on SQLite)
            q = q.with_for_update()
        court = q.first()
    except SQLAlchemyError as exc:
        raise AvailabilityCheckFailed() from exc

    if court is None:
        raise CourtUnavailable("Court not found")
    if not court.is_active:
        raise CourtUnavailable("Court is not available for booking")
    return court


def find_conflicts(session, court_id, start, end, exclude_booking_id=None):
    """Active bookings of the court that overlap [start, end)."""
    try:
        q = session.query(Booking).filter(
            Booking.court_id == court_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.start_time < end,
            Booking.end_time > start,
        )
        if exclude_booking_id is not None:
            q = q.filter(Booking.id != exclude_booking_id)
        rows = q.order_by(Booking.start_time.asc()).all()
    except SQLAlchemyError as exc:
        raise AvailabilityCheckFailed() from exc

    # the SQL filter already applies the rule; keep the check explicit
    return [b for b in rows if overlaps(start, end, b.start_time, b.end_time)]


def is_available(session, court_id, start, end) -> bool:
    """
    True when [start, end) can be booked on the court.

    Raises InvalidInterval for end <= start, CourtUnavailable for a missing
    or inactive court and AvailabilityCheckFailed when the store cannot be
    read. A read failure is never reported as "available".
    """
    if end <= start:
        raise InvalidInterval("End time must be after start time")

    get_bookable_court(session, court_id)
    return not find_conflicts(session, court_id, start, end)


def list_booked_intervals(session, court_id, window_start, window_end):
    try:
        rows = (
            session.query(Booking)
            .filter(
                Booking.court_id == court_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                Booking.end_time >= window_start,
                Booking.start_time <= window_end,
            )
            .order_by(Booking.start_time.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise AvailabilityCheckFailed() from exc

    return [
        {
            "id": b.id,
            "start_time": b.start_time.isoformat(),
            "end_time": b.end_time.isoformat(),
            "status": b.status,
            "payment_status": b.payment_status,
        }
        for b in rows
    ]
