from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.booking import BOOKING_STATUSES, CONFIRMED, CHECKED_IN
from services import bookings as booking_service
from services import reviews as review_service
from services.errors import BookingError
from security.rbac import login_required
from utils.audit import log_event
from utils.datetimes import parse_iso

booking_bp = Blueprint("booking", __name__)

# statuses a player may request for their own booking
USER_STATUS_CHANGES = (CONFIRMED, CHECKED_IN)


def read_booking_request(data):
    """Pull court id, interval and notes out of a JSON body (snake or camel case)."""
    court_id = data.get("court_id", data.get("courtId"))
    start = parse_iso(data.get("start_time", data.get("startTime")))
    end = parse_iso(data.get("end_time", data.get("endTime")))
    notes = data.get("notes")
    if not isinstance(notes, str):
        notes = None
    return court_id, start, end, notes


# ---------- PLAYERS: create booking ----------
@booking_bp.post("/bookings")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    court_id, start, end, notes = read_booking_request(data)

    if not court_id:
        return jsonify(error="court_id required", code="invalid_request"), 400
    if not start or not end:
        return jsonify(error="start_time and end_time must be ISO timestamps", code="invalid_interval"), 400

    try:
        booking = booking_service.create_booking(
            db.session,
            court_id,
            g.user.id,
            start,
            end,
            notes=notes,
            max_months_ahead=current_app.config.get("BOOKING_MAX_MONTHS_AHEAD"),
        )
        db.session.commit()
    except BookingError as e:
        db.session.rollback()
        log_event("BOOKING_FAIL", user_id=g.user.id, entity="court", entity_id=court_id,
                  metadata={"code": e.code, "reason": e.message})
        return jsonify(e.to_dict()), e.status_code

    log_event("BOOKING_CREATE", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"court_id": booking.court_id, "price_total": booking.price_total})
    return jsonify(booking.to_dict()), 201


# ---------- PLAYERS: view my bookings ----------
@booking_bp.get("/bookings/me")
@login_required
def my_bookings():
    statuses = [s for s in request.args.getlist("status") if s in BOOKING_STATUSES]
    limit = request.args.get("limit", type=int) or 10
    offset = request.args.get("offset", type=int) or 0
    upcoming = (request.args.get("upcoming") or "").lower() in ("1", "true", "yes")
    court_id = request.args.get("court_id", type=int)

    rows, total = booking_service.list_bookings(
        db.session,
        profile_id=g.user.id,
        statuses=statuses or None,
        court_ids=[court_id] if court_id else None,
        upcoming=upcoming,
        limit=limit,
        offset=offset,
    )
    return jsonify(bookings=[b.to_dict() for b in rows], total=total), 200


@booking_bp.get("/bookings/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking = booking_service.get_booking(db.session, booking_id, profile_id=g.user.id)
    out = booking.to_dict()
    out["court"] = {
        "id": booking.court.id,
        "name": booking.court.name,
        "location": booking.court.location,
        "sport": booking.court.sport,
        "price_per_hour": booking.court.price_per_hour,
    }
    return jsonify(out), 200


# ---------- PLAYERS: cancel booking (policy window) ----------
@booking_bp.post("/bookings/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()[:120] or None

    booking = booking_service.get_booking(db.session, booking_id, profile_id=g.user.id)
    try:
        booking_service.cancel_booking(
            booking,
            reason=reason,
            cutoff_hours=current_app.config.get("CANCEL_CUTOFF_HOURS", 2),
        )
    except BookingError as e:
        return jsonify(error="Cannot cancel booking", message=e.message, code=e.code), e.status_code
    db.session.commit()

    log_event("BOOKING_CANCEL", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"reason": reason})
    return jsonify(
        success=True,
        message="Booking cancelled successfully",
        data={
            "booking_id": booking.id,
            "status": booking.status,
            "payment_status": booking.payment_status,
            "refund_info": "Refund policy applies according to payment provider terms",
        },
    ), 200


# ---------- PLAYERS: confirm / check in ----------
@booking_bp.put("/bookings/<int:booking_id>/status")
@login_required
def update_status(booking_id: int):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if status not in USER_STATUS_CHANGES:
        return jsonify(error="Invalid status", allowed_statuses=list(USER_STATUS_CHANGES)), 400

    booking = booking_service.get_booking(db.session, booking_id, profile_id=g.user.id)
    try:
        booking_service.update_booking_status(
            booking,
            status,
            check_in_window_hours=current_app.config.get("CHECK_IN_WINDOW_HOURS", 1),
        )
    except BookingError as e:
        return jsonify(error="Cannot update booking status", message=e.message, code=e.code), e.status_code
    db.session.commit()

    log_event("BOOKING_STATUS_UPDATE", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"status": status})
    return jsonify(
        success=True,
        message=f"Booking {status} successfully",
        data={
            "booking_id": booking.id,
            "status": booking.status,
            "checked_in_at": booking.checked_in_at.isoformat() if booking.checked_in_at else None,
        },
    ), 200


# ---------- PLAYERS: review a finished booking ----------
@booking_bp.post("/bookings/<int:booking_id>/review")
@login_required
def review_booking(booking_id: int):
    data = request.get_json(silent=True) or {}

    booking = booking_service.get_booking(db.session, booking_id, profile_id=g.user.id)
    try:
        review = review_service.submit_review(db.session, booking, data.get("rating"), data.get("comment"))
    except BookingError as e:
        db.session.rollback()
        return jsonify(error="Cannot submit review", message=e.message, code=e.code), e.status_code
    db.session.commit()

    log_event("BOOKING_REVIEW", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"review_id": review.id, "rating": review.rating})
    return jsonify(data={
        "review_id": review.id,
        "rating": review.rating,
        "comment": review.comment,
    }), 200
