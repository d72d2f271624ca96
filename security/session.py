"""Cookie-backed login sessions.

The cookie holds a random token; the database keeps only its SHA-256, with an
absolute expiry and an idle timeout. ``load_current_user`` runs before every
request and leaves the logged-in profile on ``g.user`` (or None).
"""
import hashlib
import secrets
from datetime import datetime, timedelta

from flask import request, current_app, g

from models import db
from models.session import AuthSession
from security.csrf import issue_csrf_token

# last_seen_at is written at most this often
TOUCH_INTERVAL_SECONDS = 60


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _client_ip():
    return request.headers.get("X-Forwarded-For", request.remote_addr)


def _cookie_name() -> str:
    return current_app.config.get("AUTH_COOKIE_NAME", "courtease_session")


def open_session(user, resp):
    """Persist a new session for `user` and set the auth and CSRF cookies on `resp`."""
    raw_token = secrets.token_urlsafe(32)
    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60)

    db.session.add(AuthSession(
        user_id=user.id,
        token_hash=_hash_token(raw_token),
        expires_at=datetime.utcnow() + timedelta(seconds=lifetime),
        ip=_client_ip(),
        user_agent=(request.headers.get("User-Agent") or "")[:255],
    ))
    db.session.commit()

    resp.set_cookie(
        _cookie_name(),
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=lifetime,
        path="/",
    )
    return issue_csrf_token(resp)


def current_session():
    raw_token = request.cookies.get(_cookie_name())
    if not raw_token:
        return None

    sess = AuthSession.query.filter_by(token_hash=_hash_token(raw_token), revoked=False).first()
    now = datetime.utcnow()
    if not sess or not sess.is_live(now, current_app.config.get("IDLE_TIMEOUT_SECONDS", 1200)):
        return None

    if sess.last_seen_at is None or (now - sess.last_seen_at).total_seconds() >= TOUCH_INTERVAL_SECONDS:
        sess.last_seen_at = now
        db.session.commit()
    return sess


def close_session(resp):
    """Revoke the request's session (if any) and clear the cookie."""
    raw_token = request.cookies.get(_cookie_name())
    if raw_token:
        sess = AuthSession.query.filter_by(token_hash=_hash_token(raw_token)).first()
        if sess and not sess.revoked:
            sess.revoked = True
            db.session.commit()
    resp.delete_cookie(_cookie_name(), path="/")
    return resp


def load_current_user():
    sess = current_session()
    g.session = sess
    g.user = sess.user if sess else None
