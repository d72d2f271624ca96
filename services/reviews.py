import math
from datetime import datetime

from models.booking import Booking, COMPLETED
from models.review import CourtReview
from services.errors import InvalidReview

RATING_MIN = 1
RATING_MAX = 5


def normalize_rating(value) -> float:
    """Parse a rating (number or numeric string) and round it to the nearest half star."""
    if isinstance(value, bool):
        value = None
    try:
        rating = float(value)
    except (TypeError, ValueError):
        rating = math.nan
    if not math.isfinite(rating) or rating < RATING_MIN or rating > RATING_MAX:
        raise InvalidReview(f"Rating must be between {RATING_MIN} and {RATING_MAX} stars")
    return math.floor(rating * 2 + 0.5) / 2


def submit_review(session, booking: Booking, rating, comment=None, now=None) -> CourtReview:
    """
    Creates or edits the review attached to a finished booking and stamps
    booking.review_submitted_at. The caller owns the commit.
    """
    now = now or datetime.utcnow()
    rating = normalize_rating(rating)
    comment = comment.strip() if isinstance(comment, str) else ""

    if booking.status != COMPLETED and booking.completed_at is None:
        raise InvalidReview("Reviews can only be submitted after the session has finished")

    review = session.query(CourtReview).filter(CourtReview.booking_id == booking.id).first()
    if review is None:
        review = CourtReview(
            court_id=booking.court_id,
            profile_id=booking.profile_id,
            booking_id=booking.id,
            created_at=now,
        )
        session.add(review)

    review.rating = rating
    review.comment = comment or None
    review.updated_at = now
    booking.review_submitted_at = now
    session.flush()
    return review


def list_court_reviews(session, court_id, limit=20, offset=0):
    q = session.query(CourtReview).filter(CourtReview.court_id == court_id)
    total = q.count()
    rows = q.order_by(CourtReview.created_at.desc()).limit(limit).offset(offset).all()
    return rows, total
