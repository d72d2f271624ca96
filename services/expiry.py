import logging
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from models.booking import (
    Booking,
    PENDING,
    CANCELLED,
    PAYMENT_PENDING,
    PAYMENT_PAID,
    PAYMENT_WAITING_CONFIRMATION,
    PAYMENT_EXPIRED,
)
from payments.midtrans import MidtransError
from payments.status_mapping import map_status
from services.reconciliation import apply_status_mapping

logger = logging.getLogger(__name__)


def find_stale_pending(session, cutoff):
    return (
        session.query(Booking)
        .filter(
            Booking.status == PENDING,
            Booking.payment_status == PAYMENT_PENDING,
            Booking.created_at < cutoff,
        )
        .order_by(Booking.created_at.asc())
        .all()
    )


def _lookup(gateway, booking):
    if not booking.payment_reference:
        return None
    try:
        return gateway.get_transaction_status(booking.payment_reference)
    except MidtransError as exc:
        logger.warning("Error checking Midtrans status for booking %s: %s", booking.id, exc)
        return None


def expire_booking(session, booking, now) -> bool:
    matched = (
        session.query(Booking)
        .filter(
            Booking.id == booking.id,
            Booking.status == PENDING,
            Booking.payment_status == PAYMENT_PENDING,
        )
        .update(
            {
                Booking.status: CANCELLED,
                Booking.payment_status: PAYMENT_EXPIRED,
                Booking.cancelled_at: now,
                Booking.cancel_reason: "Payment window expired",
                Booking.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    session.commit()
    return bool(matched)


def cancel_expired_bookings(session, gateway, now=None, older_than_minutes=30) -> dict:
    """
    Sweep pending/pending bookings older than the payment timeout.

    Before giving up on a booking the gateway is asked once more: a payment
    that actually settled confirms the booking, one still under fraud review
    is left alone, anything else releases the slot with payment_status
    "expired".
    """
    now = now or datetime.utcnow()
    cutoff = now - timedelta(minutes=older_than_minutes)
    stats = {"processed": 0, "updated": 0, "skipped": 0, "failed": 0}

    for booking in find_stale_pending(session, cutoff):
        stats["processed"] += 1
        gateway_status = _lookup(gateway, booking)
        mapping = map_status(gateway_status.transaction_status, gateway_status.fraud_status) if gateway_status else None

        try:
            if mapping is not None and mapping.payment_status == PAYMENT_PAID:
                changed = apply_status_mapping(session, booking, mapping, now=now)
                logger.info("Booking %s was actually paid; confirmed", booking.id)
            elif mapping is not None and mapping.payment_status == PAYMENT_WAITING_CONFIRMATION:
                stats["skipped"] += 1
                continue
            else:
                changed = expire_booking(session, booking, now)
                logger.info("Booking %s payment window expired; cancelled", booking.id)
        except SQLAlchemyError as exc:
            session.rollback()
            stats["failed"] += 1
            logger.error("Failed to update expired booking %s: %s", booking.id, exc)
            continue

        if changed:
            stats["updated"] += 1
        else:
            stats["skipped"] += 1

    logger.info(
        "Expired bookings cleanup completed. processed=%d updated=%d skipped=%d failed=%d",
        stats["processed"], stats["updated"], stats["skipped"], stats["failed"],
    )
    return stats
