from datetime import datetime

import pytest

from models import db
from models.audit_log import AuditLog
from models.booking import Booking
from models.review import CourtReview
from services.errors import InvalidReview
from services.reviews import normalize_rating, submit_review

NOW = datetime(2030, 1, 10, 12, 0)


@pytest.mark.parametrize("raw, expected", [
    (4, 4.0),
    ("3.5", 3.5),
    (4.26, 4.5),
    (4.2, 4.0),
    (1, 1.0),
    (5, 5.0),
])
def test_rating_is_rounded_to_half_stars(raw, expected):
    assert normalize_rating(raw) == expected


@pytest.mark.parametrize("raw", [0, 5.5, -1, "abc", None, float("nan"), float("inf"), True])
def test_rating_out_of_range_is_rejected(raw):
    with pytest.raises(InvalidReview):
        normalize_rating(raw)


def test_review_of_completed_booking(session, make_booking):
    booking = make_booking(status="completed", payment_status="paid")

    review = submit_review(session, booking, 4.5, "  Great pitch, good lights  ", now=NOW)
    session.commit()

    assert review.court_id == booking.court_id
    assert review.profile_id == booking.profile_id
    assert review.rating == 4.5
    assert review.comment == "Great pitch, good lights"
    assert booking.review_submitted_at == NOW


def test_booking_with_completed_at_can_be_reviewed(session, make_booking):
    booking = make_booking(status="checked_in", payment_status="paid")
    booking.completed_at = NOW
    session.commit()

    review = submit_review(session, booking, 3, "   ", now=NOW)

    assert review.comment is None


@pytest.mark.parametrize("status", ["pending", "confirmed", "checked_in", "cancelled"])
def test_unfinished_booking_cannot_be_reviewed(session, make_booking, status):
    booking = make_booking(status=status)

    with pytest.raises(InvalidReview):
        submit_review(session, booking, 5, now=NOW)

    assert session.query(CourtReview).count() == 0


def test_resubmitting_edits_the_same_review(session, make_booking):
    booking = make_booking(status="completed", payment_status="paid")
    first = submit_review(session, booking, 2, "meh", now=NOW)
    session.commit()

    second = submit_review(session, booking, 4, None, now=datetime(2030, 1, 11))
    session.commit()

    assert second.id == first.id
    assert session.query(CourtReview).count() == 1
    assert second.rating == 4.0
    assert second.comment is None
    assert booking.review_submitted_at == datetime(2030, 1, 11)


def test_review_route(client, login, player, make_booking):
    booking = make_booking(status="completed", payment_status="paid")
    headers = login(player)

    resp = client.post(f"/bookings/{booking.id}/review", headers=headers,
                       json={"rating": "4.8", "comment": " Friendly staff "})

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["rating"] == 5.0
    assert data["comment"] == "Friendly staff"
    assert data["review_id"]
    db.session.expire_all()
    assert db.session.get(Booking, booking.id).review_submitted_at is not None
    assert AuditLog.query.filter_by(action="BOOKING_REVIEW").count() == 1


def test_review_route_rejects_bad_rating(client, login, player, make_booking):
    booking = make_booking(status="completed", payment_status="paid")
    headers = login(player)

    resp = client.post(f"/bookings/{booking.id}/review", headers=headers, json={"comment": "no stars"})

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "invalid_review"


def test_review_route_rejects_unfinished_booking(client, login, player, make_booking):
    booking = make_booking(status="confirmed", payment_status="paid")
    headers = login(player)

    resp = client.post(f"/bookings/{booking.id}/review", headers=headers, json={"rating": 5})

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Cannot submit review"
    db.session.expire_all()
    assert db.session.get(Booking, booking.id).review_submitted_at is None


def test_review_route_hides_foreign_booking(client, login, other_player, make_booking):
    booking = make_booking(status="completed", payment_status="paid")
    headers = login(other_player)

    resp = client.post(f"/bookings/{booking.id}/review", headers=headers, json={"rating": 5})

    assert resp.status_code == 404
    assert CourtReview.query.count() == 0


def test_review_route_requires_login(client, make_booking):
    booking = make_booking(status="completed", payment_status="paid")
    resp = client.post(f"/bookings/{booking.id}/review", json={"rating": 5})
    assert resp.status_code == 401


def test_court_reviews_listing(client, login, player, court, make_booking):
    headers = login(player)
    for rating in (4, 5):
        booking = make_booking(status="completed", payment_status="paid")
        client.post(f"/bookings/{booking.id}/review", headers=headers, json={"rating": rating})

    resp = client.get(f"/courts/{court.id}/reviews")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["total"] == 2
    assert body["average_rating"] == 4.5
    assert {r["rating"] for r in body["reviews"]} == {4.0, 5.0}
