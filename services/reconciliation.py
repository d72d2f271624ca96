import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models.booking import (
    Booking,
    PENDING,
    CONFIRMED,
    CHECKED_IN,
    CANCELLED,
    TERMINAL_BOOKING_STATUSES,
    PAYMENT_PENDING,
    PAYMENT_WAITING_CONFIRMATION,
    PAYMENT_PAID,
    PAYMENT_CANCELLED,
)
from payments.midtrans import MidtransError
from payments.status_mapping import StatusMapping, map_status
from services.bookings import get_booking

logger = logging.getLogger(__name__)

NO_REFERENCE_MESSAGE = "No payment reference found - might be manual booking"
NO_STATUS_MESSAGE = "Could not retrieve payment status from Midtrans"


class ReconciliationResult:
    """Outcome of one reconcile() call; ``booking`` is a serialized snapshot."""

    def __init__(self, booking, success=True, message="", midtrans_status=None,
                 status_mapping=None, status_updated=False, error=None,
                 persistence_failed=False, previous_booking=None):
        self.booking = booking
        self.success = success
        self.message = message
        self.midtrans_status = midtrans_status
        self.status_mapping = status_mapping
        self.status_updated = status_updated
        self.error = error
        self.persistence_failed = persistence_failed
        self.previous_booking = previous_booking

    def mapping_dict(self):
        if self.status_mapping is None:
            return None
        return self.status_mapping._asdict()

    def to_dict(self):
        return {
            "success": self.success,
            "message": self.message,
            "midtrans_status": self.midtrans_status,
            "status_mapping": self.mapping_dict(),
            "booking": self.booking,
            "status_updated": self.status_updated,
        }


def effective_mapping(booking: Booking, mapping: StatusMapping) -> StatusMapping:
    """
    Clamp a gateway mapping so the booking lifecycle only moves forward.

    A completed, cancelled or refunded booking keeps its status; only a final
    payment outcome (paid or cancelled) is still recorded on it, so a late
    settlement shows up for a refund. An active booking is never moved back
    to an earlier status, and a paid payment never drops to pending.
    """
    payment_status, booking_status = mapping

    if booking.status in TERMINAL_BOOKING_STATUSES:
        booking_status = booking.status
        if payment_status not in (PAYMENT_PAID, PAYMENT_CANCELLED):
            payment_status = booking.payment_status
    elif booking.status == CHECKED_IN and booking_status != CANCELLED:
        booking_status = CHECKED_IN
    elif booking.status == CONFIRMED and booking_status == PENDING:
        booking_status = CONFIRMED

    if booking.payment_status == PAYMENT_PAID and payment_status in (PAYMENT_PENDING, PAYMENT_WAITING_CONFIRMATION):
        payment_status = PAYMENT_PAID

    return StatusMapping(payment_status, booking_status)


def apply_status_mapping(session, booking: Booking, mapping: StatusMapping, now=None) -> bool:
    """
    Writes the mapped (payment_status, status) pair when it differs from the
    stored one. Returns True when this call changed the row.

    The UPDATE is conditional on the pair read earlier, so two concurrent
    reconciliations of one booking produce at most one write.
    payment_completed_at is only filled when empty. SQLAlchemyError
    propagates to the caller.
    """
    now = now or datetime.utcnow()
    target = effective_mapping(booking, mapping)

    if booking.payment_status == target.payment_status and booking.status == target.booking_status:
        return False

    values = {
        Booking.payment_status: target.payment_status,
        Booking.status: target.booking_status,
        Booking.updated_at: now,
    }
    if target.payment_status == PAYMENT_PAID:
        values[Booking.payment_completed_at] = func.coalesce(Booking.payment_completed_at, now)

    matched = (
        session.query(Booking)
        .filter(
            Booking.id == booking.id,
            Booking.status == booking.status,
            Booking.payment_status == booking.payment_status,
        )
        .update(values, synchronize_session=False)
    )
    session.commit()
    session.refresh(booking)

    if matched:
        logger.info(
            "Booking %s payment status updated to %s/%s",
            booking.id, target.payment_status, target.booking_status,
        )
    else:
        logger.info("Booking %s changed concurrently; reconciliation skipped", booking.id)
    if matched and target.payment_status == PAYMENT_PAID and target.booking_status == CANCELLED:
        logger.warning("Booking %s was paid after it was cancelled; refund required", booking.id)
    return bool(matched)


def apply_gateway_status(session, booking: Booking, gateway_status, now=None):
    """Map a GatewayStatus and persist it. Returns (mapping | None, updated)."""
    if gateway_status is None:
        return None, False
    mapping = map_status(gateway_status.transaction_status, gateway_status.fraud_status)
    if mapping is None:
        logger.warning("Unknown Midtrans transaction status %r for booking %s",
                       gateway_status.transaction_status, booking.id)
        return None, False
    return effective_mapping(booking, mapping), apply_status_mapping(session, booking, mapping, now=now)


def reconcile(session, gateway, booking_id, profile_id=None, now=None) -> ReconciliationResult:
    """
    Bring a booking's payment state in line with Midtrans.

    profile_id scopes the lookup to the owner (user endpoint); None is the
    unscoped admin variant. Raises BookingNotFound; every gateway failure is
    returned as a soft result so callers still get the stored booking.
    """
    booking = get_booking(session, booking_id, profile_id=profile_id)

    if not (booking.payment_reference or "").strip():
        return ReconciliationResult(booking.to_dict(), message=NO_REFERENCE_MESSAGE)

    try:
        gateway_status = gateway.get_transaction_status(booking.payment_reference)
    except MidtransError as exc:
        logger.warning("Error checking Midtrans status for booking %s: %s", booking.id, exc)
        return ReconciliationResult(
            booking.to_dict(),
            success=False,
            message=f"Failed to check payment status: {exc}",
            error=exc,
        )

    if gateway_status is None:
        logger.warning("Could not retrieve Midtrans status for %s", booking.payment_reference)
        return ReconciliationResult(booking.to_dict(), success=False, message=NO_STATUS_MESSAGE)

    mapping = map_status(gateway_status.transaction_status, gateway_status.fraud_status)
    if mapping is None:
        return ReconciliationResult(
            booking.to_dict(),
            message="Payment status retrieved",
            midtrans_status=gateway_status.raw,
        )

    previous = booking.to_dict()
    target = effective_mapping(booking, mapping)
    try:
        updated = apply_status_mapping(session, booking, mapping, now=now)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Failed to update booking %s status: %s", previous["id"], exc)
        return ReconciliationResult(
            previous,
            success=False,
            message="Failed to update booking status",
            midtrans_status=gateway_status.raw,
            status_mapping=target,
            error=exc,
            persistence_failed=True,
            previous_booking=previous,
        )

    return ReconciliationResult(
        booking.to_dict(),
        message="Payment status retrieved and booking updated" if updated else "Payment status retrieved",
        midtrans_status=gateway_status.raw,
        status_mapping=target,
        status_updated=updated,
        previous_booking=previous,
    )
