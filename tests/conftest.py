"""
Shared fixtures: an in-memory database, seeded users/barbers/services and
a FastAPI test client with the session, clock and reminder queue swapped.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")

from datetime import date, datetime  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session  # noqa: E402

from barbershop.auth import token_for  # noqa: E402
from barbershop.db import create_db_and_tables, get_session, make_engine  # noqa: E402
from barbershop.deps import get_now  # noqa: E402
from barbershop.main import app  # noqa: E402
from barbershop.models import Barber, Service, User  # noqa: E402
from barbershop.reminders import ReminderQueue, get_reminder_queue  # noqa: E402

# 2030-01-07 is a Monday
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
SUNDAY = date(2030, 1, 13)
NOW = datetime(2030, 1, 7, 8, 0)

WORKING_HOURS = {
    "mon": {"start": "09:00", "end": "12:00"},
    "tue": {"start": "09:00", "end": "18:00"},
    "wed": {"start": "09:00", "end": "18:00"},
    "thu": {"start": "09:00", "end": "18:00"},
    "fri": {"start": "09:00", "end": "18:00"},
    "sat": {"start": "10:00", "end": "14:00"},
    "sun": None,
}


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


def add_user(session: Session, email: str, role: str, **fields) -> User:
    user = User(email=email, name=email.split("@")[0], password_hash="not-a-hash", role=role, **fields)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def add_barber(session: Session, email: str, working_hours=None, **fields) -> Barber:
    user = add_user(session, email, "barber")
    barber = Barber(
        user_id=user.id,
        working_hours=WORKING_HOURS if working_hours is None else working_hours,
        **fields,
    )
    session.add(barber)
    session.commit()
    session.refresh(barber)
    return barber


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def engine():
    engine = make_engine("sqlite://", poolclass=StaticPool)
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client_user(session):
    return add_user(session, "carla@example.com", "client")


@pytest.fixture
def other_client(session):
    return add_user(session, "otto@example.com", "client")


@pytest.fixture
def admin(session):
    return add_user(session, "root@example.com", "admin")


@pytest.fixture
def barber(session):
    return add_barber(session, "bruno@example.com")


@pytest.fixture
def other_barber(session):
    return add_barber(session, "bianca@example.com")


@pytest.fixture
def barber_user(session, barber):
    return session.get(User, barber.user_id)


@pytest.fixture
def haircut(session):
    service = Service(name="Haircut", duration_minutes=60, price=40)
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@pytest.fixture
def beard_trim(session):
    service = Service(name="Beard trim", duration_minutes=30, price=20)
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@pytest.fixture
def reminders():
    return ReminderQueue(lead_hours=24)


@pytest.fixture
def clock():
    """Mutable 'now' for the API; tests move it with clock['now'] = ..."""
    return {"now": NOW}


@pytest.fixture
def api(engine, clock, reminders):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_now] = lambda: clock["now"]
    app.dependency_overrides[get_reminder_queue] = lambda: reminders

    yield TestClient(app)

    app.dependency_overrides.clear()
