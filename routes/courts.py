from datetime import datetime

from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.court import Court
from security.rbac import require_roles, can_manage_court, VENUE_PARTNER
from services.availability import list_booked_intervals
from services.bookings import booking_horizon
from services.errors import BookingError
from services.reviews import list_court_reviews
from utils.audit import log_event

court_bp = Blueprint("court", __name__, url_prefix="/courts")


def court_to_dict(c: Court):
    return {
        "id": c.id,
        "name": c.name,
        "location": c.location,
        "sport": c.sport,
        "price_per_hour": c.price_per_hour,
        "is_active": c.is_active,
        "owner_user_id": c.owner_user_id,
        "created_at": c.created_at.isoformat(),
    }


@court_bp.post("")
@require_roles(VENUE_PARTNER)
def create_court():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    location = (data.get("location") or "").strip() or None
    sport = (data.get("sport") or "").strip().lower() or None

    if not name:
        return jsonify(error="Court name required"), 400
    try:
        price_per_hour = int(data.get("price_per_hour"))
    except (TypeError, ValueError):
        return jsonify(error="price_per_hour must be a whole number"), 400
    if price_per_hour <= 0:
        return jsonify(error="price_per_hour must be positive"), 400

    court = Court(
        name=name,
        location=location,
        sport=sport,
        price_per_hour=price_per_hour,
        owner_user_id=g.user.id,
    )
    db.session.add(court)
    db.session.commit()

    log_event("COURT_CREATE", user_id=g.user.id, entity="court", entity_id=court.id)
    return jsonify(court_to_dict(court)), 201


@court_bp.get("")
def list_courts():
    sport = (request.args.get("sport") or "").strip().lower()
    name_query = (request.args.get("name") or "").strip()

    q = Court.query.filter(Court.is_active.is_(True))
    if sport:
        q = q.filter(Court.sport == sport)
    if name_query:
        q = q.filter(Court.name.ilike(f"%{name_query}%"))

    rows = q.order_by(Court.created_at.desc()).limit(200).all()
    return jsonify([court_to_dict(c) for c in rows]), 200


@court_bp.get("/<int:court_id>")
def get_court(court_id: int):
    court = db.session.get(Court, court_id)
    if not court:
        return jsonify(error="Court not found"), 404
    return jsonify(court_to_dict(court)), 200


@court_bp.post("/<int:court_id>/deactivate")
@require_roles(VENUE_PARTNER)
def deactivate_court(court_id: int):
    court = db.session.get(Court, court_id)
    if not court or not can_manage_court(court):
        return jsonify(error="Court not found"), 404

    court.is_active = False
    db.session.commit()

    log_event("COURT_DEACTIVATE", user_id=g.user.id, entity="court", entity_id=court_id)
    return jsonify(message="Court deactivated"), 200


@court_bp.get("/<int:court_id>/availability")
def court_availability(court_id: int):
    """Booked intervals from now until the end of the booking horizon."""
    court = db.session.get(Court, court_id)
    if not court:
        return jsonify(error="Court not found"), 404

    now = datetime.utcnow()
    horizon = booking_horizon(now, current_app.config.get("BOOKING_MAX_MONTHS_AHEAD", 3))
    try:
        intervals = list_booked_intervals(db.session, court_id, now, horizon)
    except BookingError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify(data=intervals, court_id=court_id, until=horizon.isoformat()), 200


@court_bp.get("/<int:court_id>/reviews")
def court_reviews(court_id: int):
    court = db.session.get(Court, court_id)
    if not court:
        return jsonify(error="Court not found"), 404

    limit = min(request.args.get("limit", type=int) or 20, 100)
    offset = request.args.get("offset", type=int) or 0
    rows, total = list_court_reviews(db.session, court_id, limit=limit, offset=offset)
    average = round(sum(r.rating for r in rows) / len(rows), 2) if rows else None
    return jsonify(reviews=[r.to_dict() for r in rows], total=total, average_rating=average), 200
