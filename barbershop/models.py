# barbershop/models.py

from typing import Optional
from datetime import datetime

from sqlalchemy import Index, text
from sqlalchemy.types import JSON
from sqlmodel import SQLModel, Field, Column

ACTIVE_STATUSES = ("pending", "confirmed")


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str = ""
    password_hash: str
    role: str  # client, barber or admin
    is_active: bool = True


class Barber(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True, unique=True)
    bio: Optional[str] = None
    # {"mon": {"start": "09:00", "end": "18:00"}, "sun": null, ...}
    working_hours: dict = Field(default_factory=dict, sa_column=Column(JSON))
    is_available: bool = True
    # bumped at the start of every booking write to serialize them per barber
    lock_version: int = 0


class Service(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    duration_minutes: int
    price: float = 0
    is_active: bool = True


class Booking(SQLModel, table=True):
    __table_args__ = (
        # Two active bookings can never share a start; cancelled and
        # completed rows stay out of the index so the slot can be rebooked.
        Index(
            "uq_active_barber_start",
            "barber_id",
            "starts_at",
            unique=True,
            sqlite_where=text("status IN ('pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    barber_id: int = Field(foreign_key="barber.id", index=True)
    client_id: int = Field(foreign_key="user.id", index=True)
    service_id: int = Field(foreign_key="service.id")

    starts_at: datetime = Field(index=True)
    duration_minutes: int
    status: str = Field(default="pending", index=True)
    notes: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
