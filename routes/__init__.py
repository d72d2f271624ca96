from .health import health_bp
from .auth import auth_bp
from .courts import court_bp
from .booking import booking_bp
from .payments import payments_bp
from .midtrans_webhook import webhook_bp
from .venue import venue_bp
from .admin import admin_bp, debug_bp
