from datetime import datetime, timedelta

import pytest
import requests

from app import create_app
from config import Config
from models import db
from models.booking import Booking
from models.court import Court
from models.user import User, Role
from payments.midtrans import GatewayStatus, MidtransClient, SnapTransaction
from security.password import hash_password

PASSWORD = "correct-horse-battery"


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    AUTO_CREATE_TABLES = True
    BCRYPT_ROUNDS = 4
    MIDTRANS_SERVER_KEY = "test-key"
    MIDTRANS_API_BASE_URL = "https://api.midtrans.test"
    MIDTRANS_SNAP_BASE_URL = "https://app.midtrans.test"
    LOG_LEVEL = "WARNING"


class FakeGateway(MidtransClient):
    """Midtrans stand-in: canned status lookups, recorded Snap calls."""

    def __init__(self):
        super().__init__(
            server_key=TestConfig.MIDTRANS_SERVER_KEY,
            api_base_url=TestConfig.MIDTRANS_API_BASE_URL,
            snap_base_url=TestConfig.MIDTRANS_SNAP_BASE_URL,
            session=requests.Session(),
        )
        self.statuses = {}
        self.lookup_error = None
        self.create_error = None
        self.lookups = []
        self.created = []

    def set_status(self, order_id, transaction_status, fraud_status=None):
        self.statuses[order_id] = (transaction_status, fraud_status)

    def get_transaction_status(self, order_id):
        self.lookups.append(order_id)
        if self.lookup_error is not None:
            raise self.lookup_error
        if order_id not in self.statuses:
            return None
        transaction_status, fraud_status = self.statuses[order_id]
        raw = {
            "order_id": order_id,
            "transaction_status": transaction_status,
            "fraud_status": fraud_status,
            "status_code": "200",
        }
        return GatewayStatus(order_id, transaction_status, fraud_status, "bank_transfer", None, raw)

    def create_transaction(self, order_id, amount, court_name=None, customer=None, items=None, finish_url=None):
        if self.create_error is not None:
            raise self.create_error
        self.created.append({"order_id": order_id, "amount": amount, "customer": customer})
        return SnapTransaction(token=f"snap-{order_id}", redirect_url=f"https://app.midtrans.test/v2/{order_id}")


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def gateway(app):
    fake = FakeGateway()
    app.extensions["midtrans"] = fake
    return fake


def _make_user(email, *role_names):
    user = User(email=email, password_hash=hash_password(PASSWORD), full_name=email.split("@")[0])
    for name in role_names:
        user.roles.append(Role.query.filter_by(name=name).one())
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def player(app):
    return _make_user("player@example.com", "USER")


@pytest.fixture
def other_player(app):
    return _make_user("other@example.com", "USER")


@pytest.fixture
def partner(app):
    return _make_user("venue@example.com", "USER", "VENUE_PARTNER")


@pytest.fixture
def admin(app):
    return _make_user("admin@example.com", "ADMIN")


@pytest.fixture
def court(app, partner):
    row = Court(name="Lapangan A", location="Bandung", sport="futsal",
                price_per_hour=150000, owner_user_id=partner.id)
    db.session.add(row)
    db.session.commit()
    return row


@pytest.fixture
def make_booking(app, player, court):
    """Insert a booking row directly, bypassing creation checks."""

    def _make(start=None, hours=2, status="pending", payment_status="pending",
              payment_reference=None, profile_id=None, court_id=None, created_at=None):
        start = start or datetime.utcnow().replace(microsecond=0) + timedelta(days=1)
        booking = Booking(
            court_id=court_id or court.id,
            profile_id=profile_id or player.id,
            start_time=start,
            end_time=start + timedelta(hours=hours),
            status=status,
            payment_status=payment_status,
            payment_reference=payment_reference,
            price_total=hours * 150000,
        )
        if created_at is not None:
            booking.created_at = created_at
        db.session.add(booking)
        db.session.commit()
        return booking

    return _make


@pytest.fixture
def login(client):
    """Log a user in and return headers carrying the CSRF token."""

    def _login(user):
        resp = client.post("/auth/login", json={"email": user.email, "password": PASSWORD})
        assert resp.status_code == 200
        return {"X-CSRF-Token": client.get_cookie("csrf_token").value}

    return _login
