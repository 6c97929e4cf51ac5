# barbershop/routers/services_routes.py

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from barbershop.db import get_session
from barbershop.models import Service
from barbershop.schemas import ServiceCreate, ServicePublic, ServiceUpdate
from barbershop.auth import get_current_user
from barbershop.deps import require_role

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/services",
    tags=["services"],
)


def _get_service_or_404(session: Session, service_id: int) -> Service:
    service = session.get(Service, service_id)
    if service is None or not service.is_active:
        raise HTTPException(status_code=404, detail="Service not found")
    return service


@router.get("", response_model=List[ServicePublic])
def list_services(session: Session = Depends(get_session)):
    return session.exec(
        select(Service).where(Service.is_active == True).order_by(Service.name)  # noqa: E712
    ).all()


@router.get("/{service_id}", response_model=ServicePublic)
def get_service(service_id: int, session: Session = Depends(get_session)):
    return _get_service_or_404(session, service_id)


@router.post("", response_model=ServicePublic, status_code=201)
def create_service(
    service: ServiceCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "admin")

    db_service = Service(**service.model_dump())
    session.add(db_service)
    session.commit()
    session.refresh(db_service)
    logger.info(f"Service {db_service.id} ({db_service.name}) created")
    return db_service


@router.patch("/{service_id}", response_model=ServicePublic)
def update_service(
    service_id: int,
    changes: ServiceUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "admin")

    # inactive services can be re-enabled here, so no 404 on is_active
    db_service = session.get(Service, service_id)
    if db_service is None:
        raise HTTPException(status_code=404, detail="Service not found")

    for field, value in changes.model_dump(exclude_unset=True).items():
        setattr(db_service, field, value)

    session.add(db_service)
    session.commit()
    session.refresh(db_service)
    return db_service


@router.delete("/{service_id}", status_code=204)
def delete_service(
    service_id: int,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "admin")

    # soft delete: existing bookings keep their service reference
    db_service = _get_service_or_404(session, service_id)
    db_service.is_active = False
    session.add(db_service)
    session.commit()
    logger.info(f"Service {service_id} deactivated")
