from flask import Blueprint, request, jsonify, g

from models import db
from models.booking import BOOKING_STATUSES, CONFIRMED, COMPLETED, CANCELLED
from payments.status_mapping import normalize_payment_status
from security.rbac import require_roles, managed_court_ids, VENUE_PARTNER
from services import bookings as booking_service
from services.errors import BookingError, BookingNotFound
from utils.audit import log_event

venue_bp = Blueprint("venue", __name__, url_prefix="/venue")

VENUE_STATUS_CHANGES = (CONFIRMED, COMPLETED, CANCELLED)


def _get_managed_booking(booking_id: int):
    booking = booking_service.get_booking(db.session, booking_id)
    court_ids = managed_court_ids()
    if court_ids is not None and booking.court_id not in court_ids:
        raise BookingNotFound()
    return booking


@venue_bp.get("/bookings")
@require_roles(VENUE_PARTNER)
def venue_bookings():
    statuses = [s for s in request.args.getlist("status") if s in BOOKING_STATUSES]

    payment_status = None
    raw_payment_status = request.args.get("payment_status")
    if raw_payment_status:
        # older screens still send processing/completed/failed/unpaid
        payment_status = normalize_payment_status(raw_payment_status)
        if payment_status is None:
            return jsonify(error="Invalid payment_status"), 400

    court_ids = managed_court_ids()
    court_id = request.args.get("court_id", type=int)
    if court_id:
        if court_ids is not None and court_id not in court_ids:
            return jsonify(error="Court not found"), 404
        court_ids = [court_id]

    rows, total = booking_service.list_bookings(
        db.session,
        statuses=statuses or None,
        court_ids=court_ids,
        payment_status=payment_status,
        limit=request.args.get("limit", type=int) or 50,
        offset=request.args.get("offset", type=int) or 0,
    )
    return jsonify(bookings=[b.to_dict() for b in rows], total=total), 200


@venue_bp.put("/bookings/<int:booking_id>/status")
@require_roles(VENUE_PARTNER)
def venue_update_status(booking_id: int):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if status not in VENUE_STATUS_CHANGES:
        return jsonify(error="Invalid status", allowed_statuses=list(VENUE_STATUS_CHANGES)), 400

    booking = _get_managed_booking(booking_id)
    try:
        if status == CANCELLED:
            reason = (data.get("reason") or "").strip()[:120] or "Cancelled by venue"
            booking_service.cancel_booking(booking, reason=reason)
        else:
            booking_service.update_booking_status(booking, status)
    except BookingError as e:
        return jsonify(error="Cannot update booking status", message=e.message, code=e.code), e.status_code
    db.session.commit()

    log_event("VENUE_BOOKING_STATUS_UPDATE", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"status": status})
    return jsonify(success=True, booking=booking.to_dict()), 200
