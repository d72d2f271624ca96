import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite file for local runs; PostgreSQL in production (DATABASE_URL)
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "courtease.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # schema is managed by Flask-Migrate; tests switch this on
    AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "false").lower() == "true"

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "courtease_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)

    # Booking policy
    CANCEL_CUTOFF_HOURS = _int_env("CANCEL_CUTOFF_HOURS", 2)
    CHECK_IN_WINDOW_HOURS = _int_env("CHECK_IN_WINDOW_HOURS", 1)
    BOOKING_MAX_MONTHS_AHEAD = _int_env("BOOKING_MAX_MONTHS_AHEAD", 3)

    # Payment windows
    PAYMENT_EXPIRY_HOURS = _int_env("PAYMENT_EXPIRY_HOURS", 3)
    PENDING_PAYMENT_TIMEOUT_MINUTES = _int_env("PENDING_PAYMENT_TIMEOUT_MINUTES", 30)

    # Midtrans (sandbox by default)
    MIDTRANS_SERVER_KEY = os.getenv("MIDTRANS_SERVER_KEY")
    MIDTRANS_API_BASE_URL = os.getenv("MIDTRANS_API_BASE_URL", "https://api.sandbox.midtrans.com")
    MIDTRANS_SNAP_BASE_URL = os.getenv(
        "MIDTRANS_SNAP_BASE_URL",
        os.getenv("MIDTRANS_BASE_URL", "https://app.sandbox.midtrans.com")
    )
    MIDTRANS_TIMEOUT_SECONDS = float(os.getenv("MIDTRANS_TIMEOUT_SECONDS", "5"))
    MIDTRANS_MAX_RETRIES = _int_env("MIDTRANS_MAX_RETRIES", 2)

    # Where Midtrans sends the user after Snap checkout
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False
