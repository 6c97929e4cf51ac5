"""
Booking conflict guard and appointment lifecycle.

Create and reschedule run their check-then-write under the per-barber lock
taken by ``repository.lock_barber``, inside a single transaction. If the
partial unique index still reports a clash, the whole check-then-write is
retried; only then does the caller get ``SLOT_TAKEN``.

All lead-time and past-date rules compare against the ``now`` passed in by
the caller. Nothing here reads the clock.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlmodel import Session

from . import repository
from .config import BOOKING_CONFLICT_RETRIES, CANCELLATION_LEAD_MINUTES, MODIFICATION_LEAD_MINUTES
from .core import find_overlap, fits_window
from .errors import (
    BookingRejected,
    Conflict,
    Forbidden,
    InvalidInput,
    NotFound,
    OutOfWindow,
    RejectionReason,
    SlotConflict,
)
from .models import ACTIVE_STATUSES, Booking
from .reminders import ReminderQueue

logger = logging.getLogger(__name__)

TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}


def _check_slot(
    session: Session,
    barber_id: int,
    starts_at: datetime,
    duration_minutes: int,
    exclude_id: Optional[int] = None,
) -> None:
    # Lock first: everything read below must be what we commit against.
    if not repository.lock_barber(session, barber_id):
        raise NotFound(RejectionReason.BARBER_NOT_FOUND, "Barber not found")
    barber = repository.get_active_barber(session, barber_id)
    if barber is None:
        raise NotFound(RejectionReason.BARBER_NOT_FOUND, "Barber not found")

    ends_at = starts_at + timedelta(minutes=duration_minutes)
    working_hours = repository.parse_working_hours(barber.working_hours)
    if not fits_window(working_hours, starts_at, ends_at):
        raise OutOfWindow(
            RejectionReason.OUTSIDE_WORKING_HOURS, "Appointment must be within the barber's working hours"
        )

    existing = repository.list_active_bookings(session, barber_id, starts_at.date(), exclude_id=exclude_id)
    if find_overlap(starts_at, ends_at, existing) is not None:
        raise Conflict(RejectionReason.SLOT_TAKEN, "Appointment overlaps an existing appointment")


def _guarded_write(
    session: Session,
    barber_id: int,
    starts_at: datetime,
    duration_minutes: int,
    now: datetime,
    write: Callable[[], Booking],
    exclude_id: Optional[int] = None,
) -> Booking:
    if duration_minutes <= 0:
        raise InvalidInput(RejectionReason.INVALID_DURATION, "duration_minutes must be a positive integer")
    if starts_at <= now:
        raise OutOfWindow(RejectionReason.PAST_DATE, "Cannot book an appointment in the past")

    attempts = 1 + max(BOOKING_CONFLICT_RETRIES, 0)
    for attempt in range(1, attempts + 1):
        try:
            _check_slot(session, barber_id, starts_at, duration_minutes, exclude_id=exclude_id)
            booking = write()
            session.commit()
        except SlotConflict:
            # save_booking already rolled back, the lock is released
            logger.warning(
                f"Lost booking race for barber {barber_id} at {starts_at:%Y-%m-%d %H:%M} "
                f"(attempt {attempt}/{attempts})"
            )
            continue
        except BookingRejected as e:
            session.rollback()
            logger.warning(f"Booking rejected for barber {barber_id} at {starts_at:%Y-%m-%d %H:%M}: {e.reason.value}")
            raise
        session.refresh(booking)
        return booking

    raise Conflict(RejectionReason.SLOT_TAKEN, "Appointment already exists for that start time")


def try_create_booking(
    session: Session,
    barber_id: int,
    client_id: int,
    service_id: int,
    starts_at: datetime,
    duration_minutes: int,
    now: datetime,
    notes: Optional[str] = None,
) -> Booking:
    """
    Insert a pending booking if the slot is free, else raise a rejection.

    Checks, in order: PAST_DATE, BARBER_NOT_FOUND, OUTSIDE_WORKING_HOURS,
    SLOT_TAKEN.
    """

    def write() -> Booking:
        return repository.insert_booking(
            session,
            Booking(
                barber_id=barber_id,
                client_id=client_id,
                service_id=service_id,
                starts_at=starts_at,
                duration_minutes=duration_minutes,
                notes=notes,
            ),
        )

    return _guarded_write(session, barber_id, starts_at, duration_minutes, now, write)


def create_booking(
    session: Session,
    barber_id: int,
    client_id: int,
    service_id: int,
    starts_at: datetime,
    now: datetime,
    notes: Optional[str] = None,
    reminders: Optional[ReminderQueue] = None,
) -> Booking:
    if starts_at <= now:
        raise OutOfWindow(RejectionReason.PAST_DATE, "Cannot book an appointment in the past")

    service = repository.get_active_service(session, service_id)
    if service is None:
        raise NotFound(RejectionReason.SERVICE_NOT_FOUND, "Service not found")

    booking = try_create_booking(
        session,
        barber_id=barber_id,
        client_id=client_id,
        service_id=service.id,
        starts_at=starts_at,
        duration_minutes=service.duration_minutes,
        now=now,
        notes=notes,
    )
    logger.info(f"Booking {booking.id} created: barber {barber_id}, client {client_id}, {starts_at:%Y-%m-%d %H:%M}")
    if reminders is not None:
        reminders.schedule(booking, now=now)
    return booking


def get_booking(session: Session, booking_id: int) -> Booking:
    booking = session.get(Booking, booking_id)
    if booking is None:
        raise NotFound(RejectionReason.BOOKING_NOT_FOUND, "Appointment not found")
    return booking


def authorize(session: Session, booking: Booking, actor: dict) -> str:
    """Return the actor's role if they may act on ``booking``."""
    role = actor["role"]
    if role == "admin":
        return role
    if role == "client" and booking.client_id == actor["id"]:
        return role
    if role == "barber":
        barber = repository.get_barber_by_user(session, actor["id"])
        if barber is not None and barber.id == booking.barber_id:
            return role
    raise Forbidden(RejectionReason.NOT_ALLOWED, "You do not have permission to act on this appointment")


def _ahead_of(booking: Booking, now: datetime, minutes: int) -> bool:
    return booking.starts_at - now > timedelta(minutes=minutes)


def _reload_locked(session: Session, booking: Booking) -> None:
    """Take the booking's barber lock and re-read the booking under it."""
    repository.lock_barber(session, booking.barber_id)
    session.refresh(booking)


def _check_transition(booking: Booking, new_status: str, role: str, now: datetime) -> None:
    if role == "client" and new_status != "cancelled":
        raise Forbidden(RejectionReason.NOT_ALLOWED, "Clients can only cancel appointments")

    if new_status not in TRANSITIONS.get(booking.status, set()):
        raise Conflict(
            RejectionReason.INVALID_TRANSITION,
            f"Cannot move appointment from {booking.status} to {new_status}",
        )

    if role == "client" and not _ahead_of(booking, now, CANCELLATION_LEAD_MINUTES):
        raise Forbidden(
            RejectionReason.LEAD_TIME_VIOLATION,
            f"Appointments can only be cancelled more than {CANCELLATION_LEAD_MINUTES} minutes in advance",
        )


def _check_modifiable(booking: Booking, role: str, now: datetime) -> None:
    if booking.status not in ACTIVE_STATUSES:
        raise Conflict(RejectionReason.INVALID_TRANSITION, "Only pending or confirmed appointments can be modified")

    if role == "client" and not _ahead_of(booking, now, MODIFICATION_LEAD_MINUTES):
        raise Forbidden(
            RejectionReason.LEAD_TIME_VIOLATION,
            f"Appointments can only be modified more than {MODIFICATION_LEAD_MINUTES} minutes in advance",
        )


def update_booking_status(
    session: Session,
    booking_id: int,
    new_status: str,
    actor: dict,
    now: datetime,
    reminders: Optional[ReminderQueue] = None,
) -> Booking:
    """
    Move a booking along its lifecycle.

    The transition is decided on the booking as re-read under the barber
    lock, so a concurrent cancel or reschedule is never overwritten and a
    terminal state stays terminal.
    """
    booking = get_booking(session, booking_id)
    role = authorize(session, booking, actor)
    # cheap rejection before taking the lock
    _check_transition(booking, new_status, role, now)

    try:
        _reload_locked(session, booking)
        _check_transition(booking, new_status, role, now)
    except BookingRejected as e:
        session.rollback()
        logger.warning(f"Status change on booking {booking_id} rejected: {e.reason.value}")
        raise

    previous = booking.status
    repository.update_booking_status(session, booking, new_status)
    session.commit()
    session.refresh(booking)

    if reminders is not None and new_status not in ACTIVE_STATUSES:
        reminders.discard(booking.id)

    logger.info(f"Booking {booking.id}: {previous} -> {new_status} by {role} {actor['id']}")
    return booking


def cancel_booking(
    session: Session,
    booking_id: int,
    actor: dict,
    now: datetime,
    reminders: Optional[ReminderQueue] = None,
) -> Booking:
    return update_booking_status(session, booking_id, "cancelled", actor, now, reminders=reminders)


def update_booking(
    session: Session,
    booking_id: int,
    actor: dict,
    now: datetime,
    starts_at: Optional[datetime] = None,
    notes: Optional[str] = None,
    reminders: Optional[ReminderQueue] = None,
) -> Booking:
    """Reschedule a booking and/or change its notes."""
    booking = get_booking(session, booking_id)
    role = authorize(session, booking, actor)
    _check_modifiable(booking, role, now)

    if starts_at is None or starts_at == booking.starts_at:
        if notes is None:
            return booking
        try:
            _reload_locked(session, booking)
            _check_modifiable(booking, role, now)
        except BookingRejected:
            session.rollback()
            raise
        booking.notes = notes
        booking.updated_at = datetime.utcnow()
        session.add(booking)
        session.commit()
        session.refresh(booking)
        return booking

    if role == "barber":
        raise Forbidden(RejectionReason.NOT_ALLOWED, "Barbers can only update appointment status and notes")

    barber_id = booking.barber_id
    duration_minutes = booking.duration_minutes

    def write() -> Booking:
        # runs under the barber lock; the booking may have moved on since it was read
        session.refresh(booking)
        _check_modifiable(booking, role, now)
        booking.starts_at = starts_at
        if notes is not None:
            booking.notes = notes
        booking.updated_at = datetime.utcnow()
        return repository.save_booking(session, booking)

    booking = _guarded_write(
        session, barber_id, starts_at, duration_minutes, now, write, exclude_id=booking_id
    )
    logger.info(f"Booking {booking.id} rescheduled to {starts_at:%Y-%m-%d %H:%M} by {role} {actor['id']}")
    if reminders is not None:
        reminders.schedule(booking, now=now)
    return booking
