# barbershop/repository.py
#
# Storage primitives the booking engine consumes. Callers own the
# transaction: nothing here commits.

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .errors import SlotConflict
from .models import ACTIVE_STATUSES, Barber, Booking, Service, User
from .schemas import WorkingHoursTemplate

logger = logging.getLogger(__name__)


def get_active_barber(session: Session, barber_id: int) -> Optional[Barber]:
    """Barber profile if it exists, is available and its user is active."""
    row = session.exec(
        select(Barber, User)
        .where(Barber.id == barber_id)
        .where(Barber.user_id == User.id)
        .execution_options(populate_existing=True)
    ).first()
    if row is None:
        return None
    barber, user = row
    if not barber.is_available or not user.is_active:
        return None
    return barber


def get_barber_by_user(session: Session, user_id: int) -> Optional[Barber]:
    return session.exec(select(Barber).where(Barber.user_id == user_id)).first()


def get_active_service(session: Session, service_id: int) -> Optional[Service]:
    service = session.get(Service, service_id)
    if service is None or not service.is_active:
        return None
    return service


def parse_working_hours(raw: Optional[dict]) -> WorkingHoursTemplate:
    try:
        return WorkingHoursTemplate.model_validate(raw or {})
    except ValidationError as e:
        # a corrupt template closes the barber rather than failing every request
        logger.error(f"Stored working hours are invalid, treating barber as closed: {e}")
        return WorkingHoursTemplate()


def get_working_hours(session: Session, barber_id: int) -> Optional[WorkingHoursTemplate]:
    barber = session.get(Barber, barber_id)
    if barber is None:
        return None
    return parse_working_hours(barber.working_hours)


def list_active_bookings(
    session: Session,
    barber_id: int,
    day: date,
    exclude_id: Optional[int] = None,
) -> List[Booking]:
    """Active bookings of a barber that touch ``day``, ordered by start."""
    day_start = datetime.combine(day, datetime.min.time())
    day_end = day_start + timedelta(days=1)

    # Starting the previous day catches bookings that run past midnight.
    stmt = (
        select(Booking)
        .where(Booking.barber_id == barber_id)
        .where(Booking.status.in_(ACTIVE_STATUSES))
        .where(Booking.starts_at >= day_start - timedelta(days=1))
        .where(Booking.starts_at < day_end)
        .order_by(Booking.starts_at)
    )
    if exclude_id is not None:
        stmt = stmt.where(Booking.id != exclude_id)

    return [
        b for b in session.exec(stmt).all()
        if b.starts_at + timedelta(minutes=b.duration_minutes) > day_start
    ]


def lock_barber(session: Session, barber_id: int) -> bool:
    """
    Take the per-barber write lock for the rest of the transaction.

    Bumping ``lock_version`` makes PostgreSQL hold the barber row lock and
    SQLite hold its database write lock until commit or rollback, so a
    second writer for the same barber waits here. Returns False if the
    barber row does not exist.
    """
    result = session.exec(
        update(Barber)
        .where(Barber.id == barber_id)
        .values(lock_version=Barber.lock_version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


def save_booking(session: Session, booking: Booking) -> Booking:
    """Flush a new or modified booking, mapping a unique violation to SlotConflict."""
    session.add(booking)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise SlotConflict(str(e.orig)) from e
    return booking


def insert_booking(session: Session, draft: Booking) -> Booking:
    draft.status = "pending"
    return save_booking(session, draft)


def update_booking_status(session: Session, booking: Booking, status: str) -> Booking:
    booking.status = status
    booking.updated_at = datetime.utcnow()
    session.add(booking)
    return booking
