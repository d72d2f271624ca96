import logging

import click
from flask import Flask, jsonify
from flask_migrate import Migrate
from sqlalchemy import inspect

from config import Config
from models import db
from models.user import User, Role
from routes import (
    health_bp,
    auth_bp,
    court_bp,
    booking_bp,
    payments_bp,
    webhook_bp,
    venue_bp,
    admin_bp,
    debug_bp,
)
from payments.midtrans import get_midtrans_client
from security.csrf import init_csrf
from security.rbac import seed_roles, DEFAULT_ROLES
from security.session import load_current_user
from services.errors import BookingError
from services.expiry import cancel_expired_bookings
from utils.audit import log_event

CSRF_EXEMPT_PATHS = {
    "/auth/login",
    "/auth/register",
    "/health",
    "/payments/midtrans/webhook",
}


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(court_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhook_bp)
    app.register_blueprint(venue_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(debug_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        # seed default roles once the schema exists (idempotent)
        if inspect(db.engine).has_table("roles"):
            seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    init_csrf(app, CSRF_EXEMPT_PATHS)

    @app.errorhandler(BookingError)
    def _booking_error(err):
        return jsonify(err.to_dict()), err.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("grant-role")
    @click.argument("email")
    @click.argument("role", type=click.Choice(DEFAULT_ROLES, case_sensitive=False))
    def grant_role(email, role):
        """Give a user a role, e.g. VENUE_PARTNER or ADMIN (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        role_name = role.upper()
        role_row = Role.query.filter_by(name=role_name).first()
        if not role_row:
            role_row = Role(name=role_name)
            db.session.add(role_row)
            db.session.commit()

        if role_row not in user.roles:
            user.roles.append(role_row)
            db.session.commit()

        click.echo(f"{user.email} granted {role_name}")

    @app.cli.command("cancel-expired-bookings")
    @click.option("--older-than", "older_than", type=int, default=None,
                  help="Minutes a pending payment may stay open (default: PENDING_PAYMENT_TIMEOUT_MINUTES).")
    def cancel_expired_bookings_command(older_than):
        """Cancel bookings whose payment never arrived (run from cron)."""
        minutes = older_than or app.config.get("PENDING_PAYMENT_TIMEOUT_MINUTES", 30)
        stats = cancel_expired_bookings(db.session, get_midtrans_client(), older_than_minutes=minutes)
        log_event("JOB_CANCEL_EXPIRED_BOOKINGS", metadata=stats)
        click.echo(
            f"processed={stats['processed']} updated={stats['updated']} "
            f"skipped={stats['skipped']} failed={stats['failed']}"
        )

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
