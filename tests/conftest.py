"""
Pytest fixtures for the payment schedule tests.
"""

import os

# in-memory database for every test run
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from tailfire.infra.db import SessionLocal, engine
from tailfire.infra.models import ActivityPricingORM, Base
from tailfire.services.jwt_service import create_access_token
from tailfire.services.schedule_types import (
    DaysBeforeDeparture,
    DaysFromBooking,
    Percentage,
    ScheduleTemplate,
    ScheduleType,
    TemplateItem,
)

AGENCY = "agency-1"
OTHER_AGENCY = "agency-2"
USER = "user-1"

# bookings in these tests are all made after this day
TODAY = date(2024, 12, 1)

STANDARD_3_PAY_ITEMS = [
    {"sequence_order": 0, "payment_name": "Deposit", "percentage": Decimal("25"), "days_from_booking": 0},
    {"sequence_order": 1, "payment_name": "Second Payment", "percentage": Decimal("25"), "days_before_departure": 90},
    {"sequence_order": 2, "payment_name": "Final Balance", "percentage": Decimal("50"), "days_before_departure": 45},
]


@pytest.fixture(autouse=True)
def tables():
    """Fresh schema for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def pricing(db):
    """Activity pricing of 6000.00 CAD owned by AGENCY."""
    p = ActivityPricingORM(
        agency_id=AGENCY,
        activity_name="Mediterranean Cruise",
        total_price_cents=600000,
        currency="CAD",
    )
    db.add(p)
    db.commit()
    return p


@pytest.fixture
def standard_template():
    """The 25/25/50 domain template, not persisted."""
    return ScheduleTemplate(
        id=1,
        name="Standard 3-pay",
        version=1,
        schedule_type=ScheduleType.INSTALLMENTS,
        items=(
            TemplateItem(0, "Deposit", Percentage(Decimal("25")), DaysFromBooking(0)),
            TemplateItem(1, "Second Payment", Percentage(Decimal("25")), DaysBeforeDeparture(90)),
            TemplateItem(2, "Final Balance", Percentage(Decimal("50")), DaysBeforeDeparture(45)),
        ),
    )


@pytest.fixture
def client():
    from tailfire.main import app

    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _headers(role: str, agency_id: str = AGENCY) -> dict:
    token = create_access_token(sub=USER, agency_id=agency_id, role=role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    return _headers("agent")


@pytest.fixture
def admin_headers():
    return _headers("admin")


@pytest.fixture
def other_agency_headers():
    return _headers("agent", agency_id=OTHER_AGENCY)
