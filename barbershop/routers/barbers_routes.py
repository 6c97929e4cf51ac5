# barbershop/routers/barbers_routes.py

import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from barbershop.db import get_session
from barbershop.models import Barber, User
from barbershop.schemas import (
    AvailabilityResponse,
    BarberAvailableUpdate,
    BarberDashboard,
    BarberProfileUpdate,
    BarberPublic,
    BarberStats,
    WorkingHoursTemplate,
)
from barbershop.auth import get_current_user
from barbershop.deps import get_now, require_role
from barbershop.availability import get_availability
from barbershop import reports
from barbershop.config import DEFAULT_SLOT_MINUTES
from barbershop.errors import OutOfWindow, RejectionReason
from barbershop.repository import get_barber_by_user, get_working_hours, parse_working_hours

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/barbers",
    tags=["barbers"],
)


def _to_public(barber: Barber, user: User) -> dict:
    return {
        "id": barber.id,
        "user_id": user.id,
        "name": user.name,
        "email": user.email,
        "bio": barber.bio,
        "working_hours": parse_working_hours(barber.working_hours),
        "is_available": barber.is_available,
    }


def _get_barber_or_404(session: Session, barber_id: int) -> Barber:
    barber = session.get(Barber, barber_id)
    if barber is None:
        raise HTTPException(status_code=404, detail="Barber Not Found")
    return barber


def _my_barber(session: Session, current_user: dict) -> Barber:
    require_role(current_user, "barber")
    barber = get_barber_by_user(session, current_user["id"])
    if barber is None:
        raise HTTPException(status_code=404, detail="Barber profile not found")
    return barber


def _save_working_hours(session: Session, barber: Barber, hours: WorkingHoursTemplate) -> WorkingHoursTemplate:
    barber.working_hours = hours.model_dump(mode="json")
    session.add(barber)
    session.commit()
    session.refresh(barber)
    logger.info(f"Working hours updated for barber {barber.id}")
    return parse_working_hours(barber.working_hours)


@router.get("", response_model=List[BarberPublic])
def list_barbers(
    available_only: bool = True,
    session: Session = Depends(get_session),
):
    stmt = (
        select(Barber, User)
        .where(Barber.user_id == User.id)
        .where(User.is_active == True)  # noqa: E712
        .order_by(Barber.id)
    )
    if available_only:
        stmt = stmt.where(Barber.is_available == True)  # noqa: E712

    return [_to_public(barber, user) for barber, user in session.exec(stmt).all()]


@router.get("/me/working-hours", response_model=WorkingHoursTemplate)
def get_my_working_hours(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    barber = _my_barber(session, current_user)
    return get_working_hours(session, barber.id)


@router.put("/me/working-hours", response_model=WorkingHoursTemplate)
def set_my_working_hours(
    hours: WorkingHoursTemplate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    barber = _my_barber(session, current_user)
    return _save_working_hours(session, barber, hours)


@router.patch("/me/profile", response_model=BarberPublic)
def update_my_profile(
    changes: BarberProfileUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    barber = _my_barber(session, current_user)
    user = session.get(User, barber.user_id)

    data = changes.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in data:
        user.name = data["name"]
        session.add(user)
    if "bio" in data:
        barber.bio = data["bio"]
        session.add(barber)

    session.commit()
    session.refresh(barber)
    session.refresh(user)
    logger.info(f"Barber {barber.id} updated own profile")
    return _to_public(barber, user)


@router.get("/me/dashboard", response_model=BarberDashboard)
def my_dashboard(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    barber = _my_barber(session, current_user)
    return {
        "barber": _to_public(barber, session.get(User, barber.user_id)),
        "stats": reports.barber_stats(session, barber.id),
        "upcoming": reports.upcoming_bookings(session, now, barber_id=barber.id, limit=5),
    }


@router.get("/{barber_id}", response_model=BarberPublic)
def get_barber(
    barber_id: int,
    session: Session = Depends(get_session),
):
    barber = _get_barber_or_404(session, barber_id)
    return _to_public(barber, session.get(User, barber.user_id))


@router.get("/{barber_id}/stats", response_model=BarberStats)
def get_barber_stats(
    barber_id: int,
    session: Session = Depends(get_session),
):
    _get_barber_or_404(session, barber_id)
    return reports.barber_stats(session, barber_id)


@router.put("/{barber_id}/working-hours", response_model=WorkingHoursTemplate)
def set_working_hours(
    barber_id: int,
    hours: WorkingHoursTemplate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "admin")
    barber = _get_barber_or_404(session, barber_id)
    return _save_working_hours(session, barber, hours)


@router.patch("/{barber_id}/availability-flag", response_model=BarberPublic)
def set_barber_available(
    barber_id: int,
    payload: BarberAvailableUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "barber", "admin")
    barber = _get_barber_or_404(session, barber_id)
    if current_user["role"] == "barber" and barber.user_id != current_user["id"]:
        raise HTTPException(status_code=403, detail="Forbidden")

    barber.is_available = payload.is_available
    session.add(barber)
    session.commit()
    session.refresh(barber)
    return _to_public(barber, session.get(User, barber.user_id))


@router.get("/{barber_id}/availability", response_model=AvailabilityResponse)
def barber_availability(
    barber_id: int,
    date: date,
    slot_minutes: Optional[int] = None,
    service_id: Optional[int] = None,
    session: Session = Depends(get_session),
    now: datetime = Depends(get_now),
):
    if date < now.date():
        raise OutOfWindow(RejectionReason.PAST_DATE, "Cannot list availability for a past date")

    slot_minutes = slot_minutes if slot_minutes is not None else DEFAULT_SLOT_MINUTES
    slots = get_availability(
        session, barber_id, date, slot_minutes=slot_minutes, service_id=service_id, now=now
    )

    return {"barber_id": barber_id, "date": date, "slot_minutes": slot_minutes, "slots": slots}
