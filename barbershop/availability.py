# barbershop/availability.py

from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlmodel import Session

from . import repository
from .config import DEFAULT_SLOT_MINUTES
from .core import compute_available_slots, find_overlap, fits_window
from .errors import NotFound, RejectionReason
from .schemas import Slot


def get_availability(
    session: Session,
    barber_id: int,
    day: date,
    slot_minutes: Optional[int] = None,
    service_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Slot]:
    """
    Free slots for a barber on ``day``.

    Reads a plain snapshot of the bookings (no lock): the result is advice,
    the booking guard re-checks on create. With ``now``, slots that have
    already started are left out.
    """
    barber = repository.get_active_barber(session, barber_id)
    if barber is None:
        raise NotFound(RejectionReason.BARBER_NOT_FOUND, "Barber not found")

    duration_minutes = None
    if service_id is not None:
        service = repository.get_active_service(session, service_id)
        if service is None:
            raise NotFound(RejectionReason.SERVICE_NOT_FOUND, "Service not found")
        duration_minutes = service.duration_minutes

    slots = compute_available_slots(
        repository.parse_working_hours(barber.working_hours),
        day,
        repository.list_active_bookings(session, barber_id, day),
        slot_minutes=DEFAULT_SLOT_MINUTES if slot_minutes is None else slot_minutes,
        duration_minutes=duration_minutes,
    )
    if now is not None:
        slots = [s for s in slots if s.start > now]
    return slots


def check_availability(
    session: Session,
    barber_id: int,
    service_id: int,
    starts_at: datetime,
    now: datetime,
) -> Optional[RejectionReason]:
    """
    Dry run of the booking guard: the reason a booking would be rejected
    right now, or None if it would go through. Takes no lock.
    """
    if starts_at <= now:
        return RejectionReason.PAST_DATE
    service = repository.get_active_service(session, service_id)
    if service is None:
        return RejectionReason.SERVICE_NOT_FOUND
    barber = repository.get_active_barber(session, barber_id)
    if barber is None:
        return RejectionReason.BARBER_NOT_FOUND

    ends_at = starts_at + timedelta(minutes=service.duration_minutes)
    if not fits_window(repository.parse_working_hours(barber.working_hours), starts_at, ends_at):
        return RejectionReason.OUTSIDE_WORKING_HOURS
    bookings = repository.list_active_bookings(session, barber_id, starts_at.date())
    if find_overlap(starts_at, ends_at, bookings) is not None:
        return RejectionReason.SLOT_TAKEN
    return None
