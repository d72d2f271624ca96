from datetime import datetime
from models.db import db


class CourtReview(db.Model):
    __tablename__ = "court_reviews"

    id = db.Column(db.Integer, primary_key=True)

    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False, index=True)
    profile_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # one review per booking; resubmitting edits it
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, unique=True)

    rating = db.Column(db.Float, nullable=False)  # 1..5 in half steps
    comment = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_court_reviews_rating_range"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "court_id": self.court_id,
            "profile_id": self.profile_id,
            "booking_id": self.booking_id,
            "rating": self.rating,
            "comment": self.comment,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
