"""
Shared fixtures: in-memory SQLite database, API client, factories.
"""

import pytest
from datetime import datetime
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from facility_booking.database import Base, get_db
from facility_booking.main import app
from facility_booking.models import (
    Facility,
    BlackoutDate,
    FacilityRequest,
    RequestStatus,
    EventCategory,
    PaymentStatus,
)
from facility_booking.utils.rate_limiter import limiter


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    """API client bound to the in-memory database."""
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_facility(db):
    def _make(**overrides):
        data = {
            "name": "Covered Court",
            "facility_type": "COURT",
            "capacity": 200,
            "hourly_rate": Decimal("500.00"),
            "is_active": True,
        }
        data.update(overrides)
        facility = Facility(**data)
        db.add(facility)
        db.commit()
        db.refresh(facility)
        return facility
    return _make


@pytest.fixture
def make_request(db):
    """Insert a request directly, bypassing the workflow."""
    counter = {"n": 0}

    def _make(facility, start: datetime, end: datetime, status=RequestStatus.APPROVED, **overrides):
        counter["n"] += 1
        data = {
            "request_number": f"FR-2000-{counter['n']:04d}",
            "facility_id": facility.id,
            "applicant_name": "Barangay Youth Council",
            "contact_person": "Ana Reyes",
            "contact_number": "09171234567",
            "activity_type": "Sports",
            "estimated_participants": 50,
            "event_category": EventCategory.PRIVATE.value,
            "schedule_start": start,
            "schedule_end": end,
            "status": RequestStatus(status).value,
            "payment_status": PaymentStatus.PENDING.value,
            "total_amount": Decimal("0"),
        }
        data.update(overrides)
        request = FacilityRequest(**data)
        db.add(request)
        db.commit()
        db.refresh(request)
        return request
    return _make


@pytest.fixture
def make_blackout(db):
    def _make(facility, start_date, end_date, reason="Maintenance"):
        blackout = BlackoutDate(
            facility_id=facility.id,
            start_date=start_date,
            end_date=end_date,
            reason=reason,
        )
        db.add(blackout)
        db.commit()
        db.refresh(blackout)
        return blackout
    return _make