# barbershop/routers/users_routes.py

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from barbershop.db import get_session
from barbershop.models import Barber, User
from barbershop.schemas import UserActiveUpdate, UserCreate, UserPublic, UserRole
from barbershop.auth import get_current_user, hash_password
from barbershop.deps import require_role

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["users"],
)


def create_user_record(session: Session, user: UserCreate) -> User:
    """Insert a user; barbers also get an empty (closed every day) profile."""
    existing = session.exec(
        select(User).where(User.email == user.email)
    ).first()
    if existing is not None:
        raise HTTPException(status_code=409, detail="Email already registered")

    db_user = User(
        email=user.email,
        name=user.name,
        password_hash=hash_password(user.password),
        role=user.role.value,
    )
    session.add(db_user)
    session.flush()  # fills db_user.id

    if db_user.role == UserRole.barber.value:
        session.add(Barber(user_id=db_user.id, working_hours={}))

    session.commit()
    session.refresh(db_user)
    logger.info(f"User {db_user.id} registered as {db_user.role}")
    return db_user


@router.get("/me", response_model=UserPublic)
def me(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    return session.get(User, current_user["id"])


@router.post("/users", status_code=201, response_model=UserPublic)
def create_user(
    user: UserCreate,
    session: Session = Depends(get_session),
):
    if user.role == UserRole.admin:
        raise HTTPException(status_code=403, detail="Admin accounts can only be created by an admin")
    return create_user_record(session, user)


@router.post("/admin/users", status_code=201, response_model=UserPublic)
def admin_create_user(
    user: UserCreate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "admin")
    return create_user_record(session, user)


@router.get("/users", response_model=List[UserPublic])
def list_users(
    role: Optional[UserRole] = None,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "admin")

    stmt = select(User)
    if role is not None:
        stmt = stmt.where(User.role == role.value)
    return session.exec(stmt.order_by(User.id)).all()


@router.patch("/users/{user_id}/active", response_model=UserPublic)
def set_user_active(
    user_id: int,
    payload: UserActiveUpdate,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    require_role(current_user, "admin")

    db_user = session.get(User, user_id)
    if db_user is None:
        raise HTTPException(status_code=404, detail="User not found")

    db_user.is_active = payload.is_active
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    logger.info(f"User {user_id} active={payload.is_active} by admin {current_user['id']}")
    return db_user
