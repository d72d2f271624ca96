import math
import secrets
import time
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.booking import (
    Booking,
    PENDING,
    CONFIRMED,
    CHECKED_IN,
    COMPLETED,
    CANCELLED,
    REFUNDED,
    PAYMENT_PENDING,
    PAYMENT_PAID,
    PAYMENT_CANCELLED,
)
from services.availability import get_bookable_court, find_conflicts
from services.errors import (
    InvalidInterval,
    SlotConflict,
    PersistenceFailure,
    BookingNotFound,
    InvalidTransition,
)

NOT_CANCELLABLE = (CHECKED_IN, COMPLETED, CANCELLED, REFUNDED)

OVERLAP_CONSTRAINT = "ex_bookings_court_no_overlap"
PG_EXCLUSION_VIOLATION = "23P01"


def _is_overlap_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == PG_EXCLUSION_VIOLATION:
        return True
    return OVERLAP_CONSTRAINT in str(orig)


def duration_hours(start, end) -> int:
    # whole hours, half-up (1h30 -> 2h, 1h29 -> 1h)
    return int(math.floor((end - start).total_seconds() / 3600 + 0.5))


def booking_horizon(now, months_ahead: int) -> datetime:
    """Last bookable instant: end of the day `months_ahead` months from now."""
    limit = now + relativedelta(months=months_ahead)
    return limit.replace(hour=23, minute=59, second=59, microsecond=999999)


def generate_payment_reference() -> str:
    return f"BOOK-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def create_booking(session, court_id, profile_id, start, end, notes=None,
                   now=None, max_months_ahead=None, payment_reference=None) -> Booking:
    """
    Validates and inserts a pending booking. The caller owns the commit.

    Order of checks: start in the future, end after start, inside the
    booking horizon, court bookable, interval free.
    """
    now = now or datetime.utcnow()

    if start <= now:
        raise InvalidInterval("Start time must be in the future")
    if end <= start:
        raise InvalidInterval("End time must be after start time")
    if max_months_ahead is not None and end > booking_horizon(now, max_months_ahead):
        raise InvalidInterval(f"Bookings can only be made up to {max_months_ahead} months ahead")

    court = get_bookable_court(session, court_id, lock=True)

    if find_conflicts(session, court_id, start, end):
        raise SlotConflict()

    booking = Booking(
        court_id=court.id,
        profile_id=profile_id,
        start_time=start,
        end_time=end,
        price_total=duration_hours(start, end) * int(court.price_per_hour or 0),
        notes=(notes or "").strip() or None,
        status=PENDING,
        payment_status=PAYMENT_PENDING,
        payment_reference=payment_reference,
    )
    session.add(booking)
    try:
        session.flush()
    except IntegrityError as exc:
        session.rollback()
        # exclusion constraint on (court_id, time range) fired: a concurrent insert won
        if _is_overlap_violation(exc):
            raise SlotConflict() from exc
        raise PersistenceFailure() from exc
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceFailure() from exc

    return booking


def get_booking(session, booking_id, profile_id=None) -> Booking:
    q = session.query(Booking).filter(Booking.id == booking_id)
    if profile_id is not None:
        q = q.filter(Booking.profile_id == profile_id)
    booking = q.first()
    if booking is None:
        raise BookingNotFound()
    return booking


def list_bookings(session, profile_id=None, statuses=None, court_ids=None,
                  payment_status=None, upcoming=False, now=None, limit=50, offset=0):
    q = session.query(Booking)
    if profile_id is not None:
        q = q.filter(Booking.profile_id == profile_id)
    if statuses:
        q = q.filter(Booking.status.in_(statuses))
    if court_ids is not None:
        q = q.filter(Booking.court_id.in_(court_ids))
    if payment_status:
        q = q.filter(Booking.payment_status == payment_status)
    if upcoming:
        q = q.filter(Booking.start_time >= (now or datetime.utcnow()))
        q = q.order_by(Booking.start_time.asc())
    else:
        q = q.order_by(Booking.start_time.desc())

    total = q.count()
    rows = q.offset(max(offset, 0)).limit(max(1, min(limit, 200))).all()
    return rows, total


def attach_payment(booking: Booking, token, redirect_url, expires_at) -> Booking:
    booking.payment_token = token
    booking.payment_redirect_url = redirect_url
    booking.payment_expires_at = expires_at
    return booking


def void_booking(booking: Booking, now=None, reason=None) -> Booking:
    now = now or datetime.utcnow()
    booking.status = CANCELLED
    booking.payment_status = PAYMENT_CANCELLED
    booking.cancelled_at = now
    booking.cancel_reason = reason
    booking.updated_at = now
    return booking


def cancel_booking(booking: Booking, reason=None, now=None, cutoff_hours=None) -> Booking:
    """User cancellation. cutoff_hours=None skips the notice window (venue side)."""
    now = now or datetime.utcnow()

    if booking.status in NOT_CANCELLABLE:
        raise InvalidTransition(f"Cannot cancel booking with status: {booking.status}")

    if cutoff_hours is not None and booking.start_time - now < timedelta(hours=cutoff_hours):
        raise InvalidTransition(
            f"Bookings can only be cancelled at least {cutoff_hours} hours before the start time"
        )

    return void_booking(booking, now=now, reason=reason)


def update_booking_status(booking: Booking, status: str, now=None, check_in_window_hours=1) -> Booking:
    """Explicit lifecycle moves: confirm, check in, complete."""
    now = now or datetime.utcnow()

    if status == CONFIRMED:
        if booking.status != PENDING:
            raise InvalidTransition("Only pending bookings can be confirmed")
        if booking.payment_status != PAYMENT_PAID:
            raise InvalidTransition("Booking must be paid before confirmation")

    elif status == CHECKED_IN:
        if booking.status != CONFIRMED:
            raise InvalidTransition("Only confirmed bookings can be checked in")
        if now < booking.start_time - timedelta(hours=check_in_window_hours):
            raise InvalidTransition(
                f"You can only check in within {check_in_window_hours} hour(s) of the start time"
            )
        if now > booking.end_time:
            raise InvalidTransition("Cannot check in after the booking end time")
        booking.checked_in_at = now

    elif status == COMPLETED:
        if booking.status not in (CONFIRMED, CHECKED_IN):
            raise InvalidTransition("Only confirmed or checked-in bookings can be completed")
        booking.completed_at = now

    else:
        raise InvalidTransition(f"Unsupported status: {status}")

    booking.status = status
    booking.updated_at = now
    return booking
