from datetime import datetime

from flask import Blueprint, jsonify, g, current_app

from models import db
from models.audit_log import AuditLog
from payments.midtrans import get_midtrans_client
from security.rbac import require_roles, ADMIN
from services.expiry import cancel_expired_bookings
from services.reconciliation import reconcile
from utils.audit import log_event

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")
debug_bp = Blueprint("debug", __name__, url_prefix="/debug")


def _describe_error(exc):
    if exc is None:
        return None
    return {"type": type(exc).__name__, "message": str(exc), "repr": repr(exc)}


@admin_bp.post("/jobs/cancel-expired-bookings")
@require_roles(ADMIN)
def run_cancel_expired_bookings():
    stats = cancel_expired_bookings(
        db.session,
        get_midtrans_client(),
        older_than_minutes=current_app.config.get("PENDING_PAYMENT_TIMEOUT_MINUTES", 30),
    )
    log_event("JOB_CANCEL_EXPIRED_BOOKINGS", user_id=g.user.id, metadata=stats)
    return jsonify(
        success=True,
        message="Expired bookings cleanup completed",
        run_time=datetime.utcnow().isoformat(),
        **stats,
    ), 200


# ---------- ADMIN: unscoped payment reconciliation with diagnostics ----------
@debug_bp.get("/bookings/<int:booking_id>/payment-status")
@require_roles(ADMIN)
def debug_payment_status(booking_id: int):
    checked_at = datetime.utcnow()
    result = reconcile(db.session, get_midtrans_client(), booking_id)

    body = result.to_dict()
    body["debug"] = {
        "checked_at": checked_at.isoformat(),
        "previous_booking": result.previous_booking,
        "persistence_failed": result.persistence_failed,
        "error": _describe_error(result.error),
        "audit_trail": [e.to_dict() for e in AuditLog.trail("booking", booking_id)],
    }

    if result.status_updated:
        log_event("PAYMENT_STATUS_UPDATED", user_id=g.user.id, entity="booking", entity_id=booking_id,
                  metadata={"status_mapping": result.mapping_dict(), "source": "debug"})

    return jsonify(body), 500 if result.persistence_failed else 200
