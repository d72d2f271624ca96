from datetime import datetime
from models.db import db

# lifecycle status values
PENDING = "pending"
CONFIRMED = "confirmed"
CHECKED_IN = "checked_in"
COMPLETED = "completed"
CANCELLED = "cancelled"
REFUNDED = "refunded"

BOOKING_STATUSES = (PENDING, CONFIRMED, CHECKED_IN, COMPLETED, CANCELLED, REFUNDED)

# bookings in these states hold their court interval
ACTIVE_BOOKING_STATUSES = (PENDING, CONFIRMED, CHECKED_IN)

# closed bookings; payment updates never reopen them
TERMINAL_BOOKING_STATUSES = (COMPLETED, CANCELLED, REFUNDED)

# payment_status values
PAYMENT_PENDING = "pending"
PAYMENT_WAITING_CONFIRMATION = "waiting_confirmation"
PAYMENT_PAID = "paid"
PAYMENT_EXPIRED = "expired"
PAYMENT_CANCELLED = "cancelled"

PAYMENT_STATUSES = (
    PAYMENT_PENDING,
    PAYMENT_WAITING_CONFIRMATION,
    PAYMENT_PAID,
    PAYMENT_EXPIRED,
    PAYMENT_CANCELLED,
)


def _iso(value):
    return value.isoformat() if value else None


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False, index=True)
    profile_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=PENDING)
    payment_status = db.Column(db.String(30), nullable=False, default=PAYMENT_PENDING)

    # Midtrans order id
    payment_reference = db.Column(db.String(64), nullable=True, unique=True, index=True)
    payment_token = db.Column(db.String(255), nullable=True)
    payment_redirect_url = db.Column(db.String(512), nullable=True)
    payment_expires_at = db.Column(db.DateTime, nullable=True)
    payment_completed_at = db.Column(db.DateTime, nullable=True)

    price_total = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    checked_in_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)
    review_submitted_at = db.Column(db.DateTime, nullable=True)

    court = db.relationship("Court")

    __table_args__ = (
        db.CheckConstraint("end_time > start_time", name="ck_bookings_end_after_start"),
        db.Index("ix_bookings_court_interval", "court_id", "start_time", "end_time"),
        # PostgreSQL additionally carries an exclusion constraint over
        # (court_id, tsrange) for active statuses, see migrations.
    )

    def to_dict(self):
        return {
            "id": self.id,
            "court_id": self.court_id,
            "profile_id": self.profile_id,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_reference": self.payment_reference,
            "payment_token": self.payment_token,
            "payment_redirect_url": self.payment_redirect_url,
            "payment_expires_at": _iso(self.payment_expires_at),
            "payment_completed_at": _iso(self.payment_completed_at),
            "price_total": self.price_total,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "checked_in_at": _iso(self.checked_in_at),
            "completed_at": _iso(self.completed_at),
            "cancelled_at": _iso(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
            "review_submitted_at": _iso(self.review_submitted_at),
        }
