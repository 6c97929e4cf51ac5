"""
Rejections raised by the booking engine.

Every rejection carries a machine-readable reason and a kind; the API layer
maps the kind to an HTTP status in one place (see ``main.py``).
"""

from enum import Enum


class RejectionReason(str, Enum):
    PAST_DATE = "PAST_DATE"
    BARBER_NOT_FOUND = "BARBER_NOT_FOUND"
    SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    OUTSIDE_WORKING_HOURS = "OUTSIDE_WORKING_HOURS"
    SLOT_TAKEN = "SLOT_TAKEN"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    LEAD_TIME_VIOLATION = "LEAD_TIME_VIOLATION"
    NOT_ALLOWED = "NOT_ALLOWED"
    INVALID_DURATION = "INVALID_DURATION"
    INVALID_SLOT_SIZE = "INVALID_SLOT_SIZE"
    INVALID_WORKING_HOURS = "INVALID_WORKING_HOURS"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    INVALID_LIMIT = "INVALID_LIMIT"


class BookingRejected(Exception):
    """Base class for every rejected engine operation."""

    kind = "Rejected"
    status_code = 400

    def __init__(self, reason: RejectionReason, message: str = ""):
        self.reason = reason
        self.message = message or reason.value.replace("_", " ").capitalize()
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "reason": self.reason.value, "kind": self.kind}


class NotFound(BookingRejected):
    """Barber, service or booking is missing."""

    kind = "NotFound"
    status_code = 404


class OutOfWindow(BookingRejected):
    """Requested time is in the past or outside working hours."""

    kind = "OutOfWindow"
    status_code = 422


class Conflict(BookingRejected):
    """Slot already taken, or the booking is in the wrong state."""

    kind = "Conflict"
    status_code = 409


class Forbidden(BookingRejected):
    """Role or lead-time rule forbids the operation."""

    kind = "Forbidden"
    status_code = 403


class InvalidInput(BookingRejected):
    kind = "InvalidInput"
    status_code = 422


class SlotConflict(Exception):
    """Storage-level unique violation: another active booking has the same start."""
