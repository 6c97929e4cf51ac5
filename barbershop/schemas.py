# barbershop/schemas.py

from pydantic import BaseModel, Field, model_validator
from enum import Enum
from datetime import datetime, date, time
from typing import List, Optional

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


class DayHours(BaseModel):
    start: time
    end: time

    @model_validator(mode="after")
    def validate_order(self) -> "DayHours":
        if self.end <= self.start:
            raise ValueError("end must be later than start")
        return self


class WorkingHoursTemplate(BaseModel):
    """Weekly template; a missing or null day means closed."""

    mon: Optional[DayHours] = None
    tue: Optional[DayHours] = None
    wed: Optional[DayHours] = None
    thu: Optional[DayHours] = None
    fri: Optional[DayHours] = None
    sat: Optional[DayHours] = None
    sun: Optional[DayHours] = None

    def for_day(self, day: date) -> Optional[DayHours]:
        return getattr(self, WEEKDAYS[day.weekday()])

    def window(self, day: date) -> Optional[tuple]:
        """Working window of ``day`` as a (start, end) datetime pair, or None if closed."""
        hours = self.for_day(day)
        if hours is None:
            return None
        return datetime.combine(day, hours.start), datetime.combine(day, hours.end)


class Slot(BaseModel):
    start: datetime
    end: datetime


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserRole(str, Enum):
    client = "client"
    barber = "barber"
    admin = "admin"


class BookingStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"


class UserPublic(BaseModel):
    id: int
    email: str
    name: str
    role: UserRole
    is_active: bool = True


class UserCreate(BaseModel):
    email: str
    name: str = ""
    password: str = Field(min_length=8, max_length=72)
    role: UserRole = UserRole.client


class UserActiveUpdate(BaseModel):
    is_active: bool


class BarberPublic(BaseModel):
    id: int
    user_id: int
    name: str
    email: str
    bio: Optional[str] = None
    working_hours: WorkingHoursTemplate
    is_available: bool


class BarberAvailableUpdate(BaseModel):
    is_available: bool


class ServiceCreate(BaseModel):
    name: str
    description: Optional[str] = None
    duration_minutes: int = Field(gt=0)
    price: float = Field(default=0, ge=0)


class ServiceUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    price: Optional[float] = Field(default=None, ge=0)
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def no_null_required_fields(self) -> "ServiceUpdate":
        # only description may be cleared; the rest are NOT NULL columns
        for field in ("name", "duration_minutes", "price", "is_active"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class ServicePublic(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    duration_minutes: int
    price: float
    is_active: bool


class BookingCreate(BaseModel):
    barber_id: int
    service_id: int
    starts_at: datetime
    notes: Optional[str] = None


class BookingUpdate(BaseModel):
    starts_at: Optional[datetime] = None
    notes: Optional[str] = None


class StatusUpdate(BaseModel):
    status: BookingStatus


class BookingPublic(BaseModel):
    id: int
    barber_id: int
    client_id: int
    service_id: int
    starts_at: datetime
    duration_minutes: int
    status: BookingStatus
    notes: Optional[str] = None


class AvailabilityResponse(BaseModel):
    barber_id: int
    date: date
    slot_minutes: int
    slots: List[Slot]


class AvailabilityCheck(BaseModel):
    barber_id: int
    service_id: int
    starts_at: datetime
    available: bool
    reason: Optional[str] = None


class BookingStats(BaseModel):
    total: int
    pending: int
    confirmed: int
    completed: int
    cancelled: int
    upcoming: int


class BarberStats(BaseModel):
    barber_id: int
    total: int
    completed: int
    cancelled: int
    total_revenue: float


class BarberProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    bio: Optional[str] = None


class BarberDashboard(BaseModel):
    barber: BarberPublic
    stats: BarberStats
    upcoming: List[BookingPublic]
