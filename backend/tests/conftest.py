# backend/tests/conftest.py
"""
Pytest configuration for the Treatbook backend.

Every test gets its own in-memory SQLite database; services commit for real
and the database disappears with the engine.
"""

import os

# Set testing mode BEFORE any treatbook imports
os.environ["is_testing"] = "true"
os.environ["PAYMENT_GATEWAY"] = "mock"
os.environ.pop("REDIS_URL", None)

from datetime import date, time
from decimal import Decimal
from typing import Callable, Optional

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session, sessionmaker

from treatbook.api.dependencies import get_payment_gateway
from treatbook.database import Base, build_engine, get_db
from treatbook.main import app
import treatbook.models  # noqa: F401
from treatbook.models.treatment import Treatment
from treatbook.models.user import User
from treatbook.repositories.user_repository import UserRepository
from treatbook.schemas.appointment import BookingCreateRequest
from treatbook.services.credit_ledger import CreditLedger
from treatbook.services.gateway import MockPaymentGateway
from treatbook.services.reconciliation_service import ReconciliationService

BOOKING_DATE = date(2030, 1, 15)


@pytest.fixture
def engine():
    test_engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(test_engine)
    yield test_engine
    Base.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest.fixture
def service(db, gateway) -> ReconciliationService:
    return ReconciliationService(db, gateway=gateway)


@pytest.fixture
def create_user(db) -> Callable[..., User]:
    """Create a user, seeding any starting credit through the ledger."""
    counter = {"n": 0}

    def _create(name: str = "Test Patient", phone: Optional[str] = None, credit: str = "0") -> User:
        counter["n"] += 1
        repo = UserRepository(db)
        user = repo.create(
            name=name,
            phone=phone or f"+2782000{counter['n']:04d}",
            image="",
            credit_balance=Decimal("0.00"),
        )
        if Decimal(credit) > 0:
            CreditLedger(db, user_repository=repo).credit(
                user, Decimal(credit), appointment_id=None, description="Opening credit"
            )
        db.commit()
        return user

    return _create


@pytest.fixture
def test_user(create_user) -> User:
    return create_user()


@pytest.fixture
def test_treatment(db) -> Treatment:
    treatment = Treatment(name="Deep Tissue Massage", speciality="Massage", image="", available=True)
    db.add(treatment)
    db.commit()
    return treatment


@pytest.fixture
def booking_request(test_treatment) -> Callable[..., BookingCreateRequest]:
    """Build a booking request with sensible defaults for the given user."""

    def _build(user: User, **overrides) -> BookingCreateRequest:
        data = {
            "user_id": user.id,
            "treatment_id": test_treatment.id,
            "practitioner": "Dr Smith",
            "slot_date": BOOKING_DATE,
            "slot_time": time(10, 0),
            "duration_minutes": 30,
            "amount": Decimal("200.00"),
            "payment_type": "full",
            "use_credit": True,
        }
        data.update(overrides)
        return BookingCreateRequest(**data)

    return _build


@pytest.fixture
def client(session_factory, gateway):
    """TestClient wired to the per-test database and the mock gateway."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
