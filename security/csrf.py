import hmac
import secrets
from flask import request, jsonify, current_app, g

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def issue_csrf_token(resp):
    resp.set_cookie(
        CSRF_COOKIE,
        secrets.token_urlsafe(32),
        httponly=False,  # the frontend echoes it back in X-CSRF-Token
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    return resp


def csrf_token_matches() -> bool:
    cookie_token = request.cookies.get(CSRF_COOKIE)
    header_token = request.headers.get(CSRF_HEADER)
    return bool(cookie_token and header_token and hmac.compare_digest(cookie_token, header_token))


def init_csrf(app, exempt_paths):
    """
    Double-submit check for state-changing requests made with a login cookie.
    Anonymous requests and `exempt_paths` (login, register, gateway
    callbacks) are not checked.
    """
    exempt = frozenset(exempt_paths)

    @app.before_request
    def _csrf_protect():
        if request.method not in UNSAFE_METHODS or request.path in exempt:
            return None
        if getattr(g, "user", None) is None:
            return None
        if not csrf_token_matches():
            return jsonify(error="CSRF validation failed"), 403
        return None
