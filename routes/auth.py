from flask import Blueprint, request, jsonify, g

from models import db
from models.user import User, Role
from security.password import hash_password, verify_password, password_problem
from security.rbac import login_required, USER
from security.session import open_session, close_session
from utils.audit import log_event


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def _clean(value, max_len):
    if value is None:
        return None
    if not isinstance(value, str) or len(value.strip()) > max_len:
        raise ValueError
    return value.strip() or None


# ---------- PLAYERS: sign up ----------
@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400
    problem = password_problem(password)
    if problem:
        return jsonify(error=problem), 400
    try:
        full_name = _clean(data.get("full_name"), 120)
        phone_number = _clean(data.get("phone_number"), 30)
    except ValueError:
        return jsonify(error="Invalid profile fields"), 400

    if User.query.filter_by(email=email).first():
        log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
        return jsonify(error="Email already registered"), 409

    user = User(
        email=email,
        password_hash=hash_password(password),
        full_name=full_name,
        phone_number=phone_number,
    )
    player_role = Role.query.filter_by(name=USER).first()
    if player_role:
        user.roles.append(player_role)
    db.session.add(user)
    db.session.commit()

    log_event("REGISTER_SUCCESS", user_id=user.id)
    return jsonify(message="Registered successfully", id=user.id), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password, user.password_hash):
        log_event("LOGIN_FAIL", user_id=user.id if user else None, metadata={"email": email})
        return jsonify(error="Invalid credentials"), 401

    resp = open_session(user, jsonify(message="Login OK", user=user.to_dict()))
    log_event("LOGIN_SUCCESS", user_id=user.id)
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(g.user.to_dict()), 200


@auth_bp.post("/logout")
@login_required
def logout():
    user_id = g.user.id
    resp = close_session(jsonify(message="Logged out"))
    log_event("LOGOUT", user_id=user_id)
    return resp, 200
