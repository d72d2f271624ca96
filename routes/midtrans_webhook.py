import logging

from flask import Blueprint, request, jsonify
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.booking import Booking
from payments.midtrans import GatewayStatus, get_midtrans_client
from services.reconciliation import apply_gateway_status
from utils.audit import log_event

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__, url_prefix="/payments/midtrans")

SIGNATURE_HEADER = "X-Callback-Signature"


def _ack(message=None):
    # Midtrans retries anything but 2xx; unknown orders are acknowledged too
    body = {"status": "ok"}
    if message:
        body["message"] = message
    return jsonify(body), 200


@webhook_bp.post("/webhook")
def midtrans_webhook():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify(error="Invalid JSON payload"), 400

    gateway = get_midtrans_client()
    if not gateway.server_key:
        logger.error("MIDTRANS_SERVER_KEY is not configured")
        return jsonify(error="Server configuration error"), 500

    if not gateway.verify_notification_signature(payload, request.headers.get(SIGNATURE_HEADER)):
        logger.warning("Midtrans notification signature mismatch order_id=%s", payload.get("order_id"))
        return jsonify(error="Invalid signature"), 401

    order_id = payload.get("order_id")
    if not order_id:
        return jsonify(error="Missing order_id"), 400

    booking = Booking.query.filter_by(payment_reference=order_id).first()
    if not booking:
        logger.error("Booking not found for order_id=%s", order_id)
        return _ack()

    status = GatewayStatus(
        order_id=order_id,
        transaction_status=payload.get("transaction_status"),
        fraud_status=payload.get("fraud_status"),
        payment_type=payload.get("payment_type"),
        status_message=payload.get("status_message"),
        raw=payload,
    )
    booking_id = booking.id
    previous = (booking.status, booking.payment_status)

    try:
        mapping, updated = apply_gateway_status(db.session, booking, status)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to update booking %s from Midtrans notification", booking_id)
        return _ack()

    if mapping is None:
        return _ack()

    if updated:
        log_event("PAYMENT_STATUS_UPDATED", entity="booking", entity_id=booking_id, metadata={
            "source": "webhook",
            "payment_reference": order_id,
            "old_status": previous[0],
            "old_payment_status": previous[1],
            "new_status": booking.status,
            "new_payment_status": booking.payment_status,
        })
        return _ack("Booking updated successfully")

    return _ack()
