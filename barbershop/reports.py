"""
Read-only views over bookings: upcoming lists, date ranges and counts.

Every query takes optional ``client_id`` / ``barber_id`` filters; the
routers fill them in from the caller's role.
"""

from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from .errors import InvalidInput, RejectionReason
from .models import ACTIVE_STATUSES, Booking, Service

STATUSES = ("pending", "confirmed", "completed", "cancelled")


def _scoped(stmt, client_id: Optional[int], barber_id: Optional[int]):
    if client_id is not None:
        stmt = stmt.where(Booking.client_id == client_id)
    if barber_id is not None:
        stmt = stmt.where(Booking.barber_id == barber_id)
    return stmt


def _date_bounds(stmt, start_date: Optional[date], end_date: Optional[date]):
    """Restrict to bookings starting on start_date..end_date, both inclusive."""
    if start_date is not None and end_date is not None and end_date < start_date:
        raise InvalidInput(RejectionReason.INVALID_DATE_RANGE, "end_date must not be before start_date")
    if start_date is not None:
        stmt = stmt.where(Booking.starts_at >= datetime.combine(start_date, datetime.min.time()))
    if end_date is not None:
        stmt = stmt.where(Booking.starts_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time()))
    return stmt


def upcoming_bookings(
    session: Session,
    now: datetime,
    client_id: Optional[int] = None,
    barber_id: Optional[int] = None,
    limit: int = 10,
) -> List[Booking]:
    """Active bookings starting at or after ``now``, soonest first."""
    if limit <= 0:
        raise InvalidInput(RejectionReason.INVALID_LIMIT, "limit must be a positive integer")
    stmt = (
        select(Booking)
        .where(Booking.status.in_(ACTIVE_STATUSES))
        .where(Booking.starts_at >= now)
    )
    stmt = _scoped(stmt, client_id, barber_id)
    return session.exec(stmt.order_by(Booking.starts_at, Booking.id).limit(limit)).all()


def bookings_in_range(
    session: Session,
    start_date: date,
    end_date: date,
    client_id: Optional[int] = None,
    barber_id: Optional[int] = None,
    status: Optional[str] = None,
) -> List[Booking]:
    stmt = _date_bounds(select(Booking), start_date, end_date)
    stmt = _scoped(stmt, client_id, barber_id)
    if status is not None:
        stmt = stmt.where(Booking.status == status)
    return session.exec(stmt.order_by(Booking.starts_at, Booking.id)).all()


def _status_counts(
    session: Session,
    client_id: Optional[int] = None,
    barber_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> dict:
    stmt = select(Booking.status, func.count(Booking.id)).group_by(Booking.status)
    stmt = _scoped(_date_bounds(stmt, start_date, end_date), client_id, barber_id)
    counts = dict.fromkeys(STATUSES, 0)
    for status, count in session.exec(stmt).all():
        counts[status] = count
    return counts


def booking_stats(
    session: Session,
    now: datetime,
    client_id: Optional[int] = None,
    barber_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> dict:
    """
    Booking counts per status, plus ``total`` and ``upcoming``.

    ``upcoming`` counts active bookings that have not started yet.
    """
    counts = _status_counts(session, client_id, barber_id, start_date, end_date)

    upcoming_stmt = (
        select(func.count(Booking.id))
        .where(Booking.status.in_(ACTIVE_STATUSES))
        .where(Booking.starts_at >= now)
    )
    upcoming_stmt = _scoped(_date_bounds(upcoming_stmt, start_date, end_date), client_id, barber_id)

    return {
        "total": sum(counts.values()),
        **counts,
        "upcoming": session.exec(upcoming_stmt).one(),
    }


def barber_stats(session: Session, barber_id: int) -> dict:
    """Lifetime totals for one barber; revenue is the price of completed services."""
    counts = _status_counts(session, barber_id=barber_id)
    revenue = session.exec(
        select(func.coalesce(func.sum(Service.price), 0))
        .where(Booking.service_id == Service.id)
        .where(Booking.barber_id == barber_id)
        .where(Booking.status == "completed")
    ).one()
    return {
        "barber_id": barber_id,
        "total": sum(counts.values()),
        "completed": counts["completed"],
        "cancelled": counts["cancelled"],
        "total_revenue": float(revenue),
    }
