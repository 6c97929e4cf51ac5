# barbershop/routers/appointments_routes.py

from datetime import datetime, timedelta, date
from typing import Optional, List

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from barbershop.db import get_session
from barbershop.models import Booking
from barbershop.schemas import (
    AvailabilityCheck,
    BookingCreate,
    BookingPublic,
    BookingStats,
    BookingStatus,
    BookingUpdate,
    StatusUpdate,
)
from barbershop.auth import get_current_user
from barbershop.deps import get_now, require_role
from barbershop.availability import check_availability
from barbershop.reminders import ReminderQueue, get_reminder_queue
from barbershop.repository import get_barber_by_user
from barbershop import booking, reports


router = APIRouter(
    prefix="/appointments",
    tags=["appointments"],
)


def _scope(session: Session, current_user: dict) -> dict:
    """Clients see their own bookings, barbers their agenda, admins everything."""
    if current_user["role"] == "client":
        return {"client_id": current_user["id"], "barber_id": None}
    if current_user["role"] == "barber":
        barber = get_barber_by_user(session, current_user["id"])
        if barber is None:
            raise HTTPException(status_code=404, detail="Barber profile not found")
        return {"client_id": None, "barber_id": barber.id}
    return {"client_id": None, "barber_id": None}


@router.post("", response_model=BookingPublic, status_code=201)
def create_appointment(
    appt: BookingCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    now: datetime = Depends(get_now),
    reminders: ReminderQueue = Depends(get_reminder_queue),
):
    require_role(current_user, "client")  # only clients book

    return booking.create_booking(
        session,
        barber_id=appt.barber_id,
        client_id=current_user["id"],
        service_id=appt.service_id,
        starts_at=appt.starts_at,
        now=now,
        notes=appt.notes,
        reminders=reminders,
    )


@router.get("", response_model=List[BookingPublic])
def list_appointments(
    status: Optional[BookingStatus] = None,
    on_date: Optional[date] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    stmt = select(Booking)
    scope = _scope(session, current_user)
    if scope["client_id"] is not None:
        stmt = stmt.where(Booking.client_id == scope["client_id"])
    if scope["barber_id"] is not None:
        stmt = stmt.where(Booking.barber_id == scope["barber_id"])

    if on_date is not None:
        day_start_dt = datetime.combine(on_date, datetime.min.time())
        day_end_dt = day_start_dt + timedelta(days=1)
        stmt = stmt.where(Booking.starts_at >= day_start_dt).where(Booking.starts_at < day_end_dt)

    if status is not None:
        stmt = stmt.where(Booking.status == status.value)

    return session.exec(stmt.order_by(Booking.starts_at)).all()


@router.get("/upcoming", response_model=List[BookingPublic])
def upcoming_appointments(
    limit: int = 10,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    return reports.upcoming_bookings(session, now, limit=limit, **_scope(session, current_user))


@router.get("/date-range", response_model=List[BookingPublic])
def appointments_in_range(
    start_date: date,
    end_date: date,
    status: Optional[BookingStatus] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    return reports.bookings_in_range(
        session,
        start_date,
        end_date,
        status=status.value if status is not None else None,
        **_scope(session, current_user),
    )


@router.get("/stats", response_model=BookingStats)
def appointment_stats(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    return reports.booking_stats(
        session, now, start_date=start_date, end_date=end_date, **_scope(session, current_user)
    )


@router.get("/check-availability", response_model=AvailabilityCheck)
def check_appointment_availability(
    barber_id: int,
    service_id: int,
    starts_at: datetime,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    reason = check_availability(session, barber_id, service_id, starts_at, now)
    return {
        "barber_id": barber_id,
        "service_id": service_id,
        "starts_at": starts_at,
        "available": reason is None,
        "reason": reason.value if reason is not None else None,
    }


@router.get("/{appt_id}", response_model=BookingPublic)
def get_appointment(
    appt_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    target = booking.get_booking(session, appt_id)
    booking.authorize(session, target, current_user)
    return target


@router.patch("/{appt_id}", response_model=BookingPublic)
def update_appointment(
    appt_id: int,
    changes: BookingUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    now: datetime = Depends(get_now),
    reminders: ReminderQueue = Depends(get_reminder_queue),
):
    return booking.update_booking(
        session,
        appt_id,
        current_user,
        now,
        starts_at=changes.starts_at,
        notes=changes.notes,
        reminders=reminders,
    )


@router.patch("/{appt_id}/cancel", response_model=BookingPublic)
def cancel_appointment(
    appt_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    now: datetime = Depends(get_now),
    reminders: ReminderQueue = Depends(get_reminder_queue),
):
    return booking.cancel_booking(session, appt_id, current_user, now, reminders=reminders)


@router.patch("/{appt_id}/confirm", response_model=BookingPublic)
def confirm_appointment(
    appt_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    now: datetime = Depends(get_now),
    reminders: ReminderQueue = Depends(get_reminder_queue),
):
    require_role(current_user, "barber", "admin")
    return booking.update_booking_status(session, appt_id, "confirmed", current_user, now, reminders=reminders)


@router.patch("/{appt_id}/complete", response_model=BookingPublic)
def complete_appointment(
    appt_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    now: datetime = Depends(get_now),
    reminders: ReminderQueue = Depends(get_reminder_queue),
):
    require_role(current_user, "barber", "admin")
    return booking.update_booking_status(session, appt_id, "completed", current_user, now, reminders=reminders)


@router.patch("/{appt_id}/status", response_model=BookingPublic)
def set_appointment_status(
    appt_id: int,
    payload: StatusUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    now: datetime = Depends(get_now),
    reminders: ReminderQueue = Depends(get_reminder_queue),
):
    return booking.update_booking_status(
        session, appt_id, payload.status.value, current_user, now, reminders=reminders
    )
