from functools import wraps
from flask import g, jsonify

from models import db
from models.court import Court
from models.user import Role

USER = "USER"
VENUE_PARTNER = "VENUE_PARTNER"
ADMIN = "ADMIN"

DEFAULT_ROLES = [USER, VENUE_PARTNER, ADMIN]

UNAUTHORIZED = "Unauthorized - Please login first"


def seed_roles():
    existing = {r.name for r in Role.query.all()}
    missing = [name for name in DEFAULT_ROLES if name not in existing]
    for name in missing:
        db.session.add(Role(name=name))
    if missing:
        db.session.commit()


def has_role(role_name: str) -> bool:
    user = getattr(g, "user", None)
    return bool(user) and user.has_role(role_name)


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error=UNAUTHORIZED), 401
        return fn(*args, **kwargs)
    return wrapper


def require_roles(*role_names: str):
    """
    Usage: @require_roles(VENUE_PARTNER)
    ADMIN passes every role check.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error=UNAUTHORIZED), 401
            if not (user.has_role(ADMIN) or any(user.has_role(r) for r in role_names)):
                return jsonify(error="Forbidden"), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator


# ---- court ownership ----

def managed_court_ids():
    """Courts the current partner operates; None means every court (ADMIN)."""
    if has_role(ADMIN):
        return None
    rows = db.session.query(Court.id).filter(Court.owner_user_id == g.user.id).all()
    return [court_id for (court_id,) in rows]


def can_manage_court(court: Court) -> bool:
    user = getattr(g, "user", None)
    return user is not None and (user.has_role(ADMIN) or court.owner_user_id == user.id)
