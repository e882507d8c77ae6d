"""
Pytest configuration and shared fixtures for the salon booking tests.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from salonbook import models  # noqa: F401
from salonbook.auth import create_access_token, hash_password
from salonbook.booking import reserve_appointment
from salonbook.db import get_session
from salonbook.main import app
from salonbook.models import Salon, Service, User
from salonbook.realtime import ChangeFeed, get_feed

# 2030-01-07 is a Monday; "now" for unit tests is the Friday before
MONDAY = date(2030, 1, 7)
SATURDAY = date(2030, 1, 12)
SUNDAY = date(2030, 1, 13)
NOW = datetime(2030, 1, 4, 9, 0)

WEEKDAY_HOURS = {
    "closed": False,
    "open": "09:00",
    "close": "18:00",
    "lunchBreak": {"enabled": True, "start": "12:00", "end": "13:00"},
}

OPENING_HOURS = {
    "monday": WEEKDAY_HOURS,
    "tuesday": WEEKDAY_HOURS,
    "wednesday": WEEKDAY_HOURS,
    "thursday": WEEKDAY_HOURS,
    "friday": WEEKDAY_HOURS,
    "saturday": {"closed": False, "open": "09:00", "close": "13:00"},
    "sunday": {"closed": True},
}


@pytest.fixture
def engine():
    """In-memory database shared by the test session and the app."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def client(engine, feed):
    def override_get_session():
        with Session(engine, expire_on_commit=False) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_feed] = lambda: feed

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def salon(session):
    salon = Salon(name="Studio Bela", timezone="America/Sao_Paulo", opening_hours=OPENING_HOURS)
    session.add(salon)
    session.commit()
    session.refresh(salon)
    return salon


@pytest.fixture
def haircut(session, salon):
    service = Service(salon_id=salon.id, name="Corte", price=Decimal("50.00"), duration_minutes=60)
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@pytest.fixture
def beard(session, salon):
    service = Service(salon_id=salon.id, name="Barba", price=Decimal("25.00"), duration_minutes=20)
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@pytest.fixture
def eyebrow(session, salon):
    service = Service(salon_id=salon.id, name="Sobrancelha", price=Decimal("15.00"), duration_minutes=10)
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@pytest.fixture
def admin(session, salon):
    user = User(
        email="admin@studiobela.com",
        password_hash=hash_password("secret123"),
        role="admin",
        salon_id=salon.id,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def admin_headers(admin):
    token = create_access_token({"sub": admin.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client_user(session):
    user = User(email="maria@example.com", password_hash=hash_password("secret123"), role="client")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def client_headers(client_user):
    token = create_access_token({"sub": client_user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def book(session, salon, haircut):
    """Book the haircut on MONDAY; keyword arguments override the defaults."""

    def _book(at_time="10:00", **overrides):
        params = {
            "salon_id": salon.id,
            "service_id": haircut.id,
            "on_date": MONDAY,
            "at_time": at_time,
            "client_name": "Maria Silva",
            "client_phone": "(11) 91234-5678",
            "now": NOW,
        }
        params.update(overrides)
        return reserve_appointment(session, **params)

    return _book
