from datetime import datetime, timedelta

from flask import Blueprint, request, jsonify, current_app, g

from models import db
from payments.midtrans import get_midtrans_client, MidtransTransactionError
from routes.booking import read_booking_request
from security.rbac import login_required
from services import bookings as booking_service
from services.errors import BookingError
from services.reconciliation import reconcile
from utils.audit import log_event

payments_bp = Blueprint("payments", __name__)


def _customer_for(user):
    return {"first_name": user.display_name, "email": user.email, "phone": user.phone_number}


# ---------- PLAYERS: book + open Midtrans Snap checkout ----------
@payments_bp.post("/bookings/start")
@login_required
def start_booking_payment():
    data = request.get_json(silent=True) or {}
    court_id, start, end, notes = read_booking_request(data)

    if not court_id:
        return jsonify(error="court_id required", code="invalid_request"), 400
    if not start or not end:
        return jsonify(error="Invalid booking schedule", code="invalid_interval"), 400

    reference = booking_service.generate_payment_reference()
    try:
        booking = booking_service.create_booking(
            db.session,
            court_id,
            g.user.id,
            start,
            end,
            notes=notes,
            max_months_ahead=current_app.config.get("BOOKING_MAX_MONTHS_AHEAD"),
            payment_reference=reference,
        )
        db.session.commit()
    except BookingError as e:
        db.session.rollback()
        log_event("BOOKING_FAIL", user_id=g.user.id, entity="court", entity_id=court_id,
                  metadata={"code": e.code, "reason": e.message})
        return jsonify(e.to_dict()), e.status_code

    base_url = current_app.config.get("APP_BASE_URL", "").rstrip("/")
    try:
        tx = get_midtrans_client().create_transaction(
            order_id=reference,
            amount=booking.price_total,
            court_name=booking.court.name,
            customer=_customer_for(g.user),
            finish_url=f"{base_url}/dashboard/user/bookings/{booking.id}",
        )
    except MidtransTransactionError as e:
        booking_service.void_booking(booking, reason="Payment initiation failed")
        db.session.commit()
        log_event("PAYMENT_START_FAIL", user_id=g.user.id, entity="booking", entity_id=booking.id,
                  metadata={"status": e.status, "detail": e.detail})
        return jsonify(error=e.message, booking_id=booking.id), e.status

    expires_at = datetime.utcnow() + timedelta(hours=current_app.config.get("PAYMENT_EXPIRY_HOURS", 3))
    booking_service.attach_payment(booking, tx.token, tx.redirect_url, expires_at)
    db.session.commit()

    log_event("PAYMENT_SESSION_CREATED", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"payment_reference": reference})
    return jsonify(data={
        "booking_id": booking.id,
        "price_total": booking.price_total,
        "payment": {
            "token": tx.token,
            "redirect_url": tx.redirect_url,
            "expires_at": expires_at.isoformat(),
        },
    }), 201


# ---------- PLAYERS: poll Midtrans and sync the booking ----------
@payments_bp.get("/bookings/<int:booking_id>/payment-status")
@login_required
def payment_status(booking_id: int):
    result = reconcile(db.session, get_midtrans_client(), booking_id, profile_id=g.user.id)

    if result.persistence_failed:
        return jsonify(
            error="Failed to update booking status",
            midtrans_status=result.midtrans_status,
            status_mapping=result.mapping_dict(),
            current_booking=result.previous_booking,
        ), 500

    if result.status_updated:
        log_event("PAYMENT_STATUS_UPDATED", user_id=g.user.id, entity="booking", entity_id=booking_id,
                  metadata={"status_mapping": result.mapping_dict(), "source": "poll"})

    return jsonify(result.to_dict()), 200
