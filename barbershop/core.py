"""
Interval arithmetic and slot generation for barber schedules.

Pure functions only: no database access and no clock reads. Everything here
works at minute granularity on naive local datetimes.
"""

from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from .errors import InvalidInput, RejectionReason
from .models import ACTIVE_STATUSES
from .schemas import Slot, WorkingHoursTemplate


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """True if [a_start, a_end) overlaps [b_start, b_end)."""
    return a_start < b_end and b_start < a_end


def booking_end(booking) -> datetime:
    return booking.starts_at + timedelta(minutes=booking.duration_minutes)


def is_active(booking) -> bool:
    return booking.status in ACTIVE_STATUSES


def find_overlap(start: datetime, end: datetime, bookings: Iterable) -> Optional[object]:
    """Return the first active booking overlapping [start, end), if any."""
    for booking in bookings:
        if not is_active(booking):
            continue
        if overlaps(start, end, booking.starts_at, booking_end(booking)):
            return booking
    return None


def fits_window(working_hours: WorkingHoursTemplate, start: datetime, end: datetime) -> bool:
    """True if [start, end) lies fully inside the working window of start's day."""
    window = working_hours.window(start.date())
    if window is None:
        return False
    work_start, work_end = window
    return work_start <= start and end <= work_end


def compute_available_slots(
    working_hours: WorkingHoursTemplate,
    day: date,
    bookings: Iterable,
    slot_minutes: int = 60,
    duration_minutes: Optional[int] = None,
) -> List[Slot]:
    """
    Free slots of ``day`` in ascending order.

    Candidates start every ``slot_minutes`` from the opening time. A
    candidate spans ``slot_minutes``, or ``duration_minutes`` when a longer
    service is being booked, and is kept only if that whole span ends
    before closing time and overlaps no active booking. A trailing
    partial slot is dropped.
    """
    if slot_minutes <= 0:
        raise InvalidInput(RejectionReason.INVALID_SLOT_SIZE, "slot_minutes must be a positive integer")
    if duration_minutes is not None and duration_minutes <= 0:
        raise InvalidInput(RejectionReason.INVALID_DURATION, "duration_minutes must be a positive integer")

    window = working_hours.window(day)
    if window is None:
        return []
    work_start, work_end = window

    step = timedelta(minutes=slot_minutes)
    span = timedelta(minutes=max(slot_minutes, duration_minutes or slot_minutes))
    active = [b for b in bookings if is_active(b)]

    slots: List[Slot] = []
    current = work_start
    while current + span <= work_end:
        if find_overlap(current, current + span, active) is None:
            slots.append(Slot(start=current, end=current + span))
        current += step
    return slots
