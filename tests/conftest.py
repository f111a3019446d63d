"""
Test configuration and fixtures.

Provides:
- Fresh database per test (in-memory SQLite unless TEST_DATABASE_URL is set)
- Workplace, patient and pharmacist identity fixtures
- HTTPX AsyncClient with gateway identity headers
"""
import os
import uuid
from typing import AsyncGenerator, Generator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Point the app at a throwaway database before it is imported
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL or "sqlite://"

from mtr_api.main import app
from mtr_api.core.deps import ADMIN_HEADER, USER_ID_HEADER, WORKPLACE_ID_HEADER, get_db
from mtr_api.db.base import Base
from mtr_api.db.enums import MTRPriority, ReviewType
from mtr_api.db.models import Patient, Workplace
from mtr_api.schemas.mtr import MTRSessionCreate
from mtr_api.services import mtr_service


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def engine():
    """Schema created from the models for each test, dropped afterwards."""
    if TEST_DATABASE_URL:
        test_engine = create_engine(TEST_DATABASE_URL)
    else:
        test_engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    Base.metadata.create_all(test_engine)
    yield test_engine
    Base.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    """
    Database session for one test.

    Services commit and roll back on their own, so fixtures commit the rows
    they create instead of relying on an outer transaction.
    """
    TestSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestSession()
    yield session
    session.close()


@pytest.fixture(scope="function")
def workplace(db: Session) -> Workplace:
    """Create a test workplace."""
    workplace = Workplace(id=uuid.uuid4(), name="Test Pharmacy")
    db.add(workplace)
    db.commit()
    return workplace


@pytest.fixture(scope="function")
def patient(db: Session, workplace: Workplace) -> Patient:
    """Create a patient in the test workplace."""
    patient = Patient(
        id=uuid.uuid4(),
        workplace_id=workplace.id,
        mrn=f"MRN-{uuid.uuid4().hex[:6]}",
        full_name="Test Patient",
    )
    db.add(patient)
    db.commit()
    return patient


@pytest.fixture(scope="function")
def make_patient(db: Session, workplace: Workplace):
    """Factory for additional patients in the test workplace."""
    def _make(name: str = "Another Patient") -> Patient:
        patient = Patient(id=uuid.uuid4(), workplace_id=workplace.id, full_name=name)
        db.add(patient)
        db.commit()
        return patient

    return _make


@pytest.fixture(scope="function")
def pharmacist_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture(scope="function")
def make_session(db: Session, workplace: Workplace, pharmacist_id: uuid.UUID):
    """Factory for in-progress sessions for consenting patients."""
    def _make(patient: Patient, **fields):
        fields.setdefault("priority", MTRPriority.ROUTINE)
        fields.setdefault("review_type", ReviewType.INITIAL)
        return mtr_service.create_session(
            db=db,
            workplace_id=workplace.id,
            pharmacist_id=pharmacist_id,
            data=MTRSessionCreate(
                patient_id=patient.id,
                patient_consent=True,
                confidentiality_agreed=True,
                **fields,
            ),
        )

    return _make


@pytest.fixture(scope="function")
def mtr_session(make_session, patient: Patient):
    """An in-progress session for the test patient."""
    return make_session(patient)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def request_headers(workplace: Workplace, pharmacist_id: uuid.UUID) -> dict[str, str]:
    """Identity headers as set by the gateway."""
    return {
        USER_ID_HEADER: str(pharmacist_id),
        WORKPLACE_ID_HEADER: str(workplace.id),
        ADMIN_HEADER: "false",
    }


@pytest.fixture(scope="function")
async def client(db: Session, request_headers: dict[str, str]) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient bound to the test database with pharmacist identity headers."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=request_headers,
    ) as c:
        yield c

    app.dependency_overrides.clear()
