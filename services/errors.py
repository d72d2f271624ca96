class BookingError(Exception):
    """Base for booking failures that map onto an HTTP response."""
    status_code = 400
    code = "booking_error"
    default_message = "Booking request failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.message, "code": self.code}


class InvalidInterval(BookingError):
    status_code = 400
    code = "invalid_interval"
    default_message = "Invalid booking time"


class CourtUnavailable(BookingError):
    status_code = 404
    code = "court_unavailable"
    default_message = "Court not found"


class SlotConflict(BookingError):
    status_code = 409
    code = "slot_conflict"
    default_message = "Court is already booked for this time slot"


class AvailabilityCheckFailed(BookingError):
    status_code = 503
    code = "availability_check_failed"
    default_message = "Failed to check court availability"


class PersistenceFailure(BookingError):
    status_code = 500
    code = "persistence_failure"
    default_message = "Failed to save booking"


class BookingNotFound(BookingError):
    status_code = 404
    code = "not_found"
    default_message = "Booking not found or access denied"


class InvalidTransition(BookingError):
    status_code = 400
    code = "invalid_transition"
    default_message = "Booking status change not allowed"


class InvalidReview(BookingError):
    status_code = 400
    code = "invalid_review"
    default_message = "Review not allowed"
