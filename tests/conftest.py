"""Pytest fixtures for testing"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from loan_ledger.api.dependencies import get_clock
from loan_ledger.api.main import create_app
from loan_ledger.domain.models import (
    Borrower,
    BorrowerStatus,
    DurationUnit,
    InterestType,
    Loan,
    LoanDuration,
    LoanStatus,
)
from loan_ledger.infrastructure.database.models import Base
from loan_ledger.infrastructure.database.repositories import EntityStore
from loan_ledger.infrastructure.database.session import get_db
from loan_ledger.services.accounting import LoanAccountingService
from loan_ledger.utils.date_utils import FixedClock


# Test database
TEST_DATABASE_URL = "sqlite:///./test_loan_ledger.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def loan_factory():
    """Build in-memory Loan snapshots for pure domain tests"""

    def build(**overrides) -> Loan:
        fields = dict(
            id="loan-1",
            borrower_id="borrower-1",
            borrower_name="Jane Banda",
            principal=Decimal("1000.00"),
            interest_rate=Decimal("10"),
            interest_type=InterestType.SIMPLE,
            duration=LoanDuration(1, DurationUnit.MONTHS),
            start_date=date(2024, 3, 1),
            due_date=date(2024, 4, 1),
            status=LoanStatus.ACTIVE,
            installment_amount=Decimal("1100.00"),
            total_interest=Decimal("100.00"),
            total_amount=Decimal("1100.00"),
            outstanding_amount=Decimal("1100.00"),
            paid_amount=Decimal("0.00"),
            disbursement_date=NOW,
            created_at=NOW,
            updated_at=NOW,
        )
        fields.update(overrides)
        return Loan(**fields)

    return build


@pytest.fixture
def borrower_factory():
    def build(**overrides) -> Borrower:
        fields = dict(
            id="borrower-1",
            name="Jane Banda",
            phone="+260977000111",
            address="Plot 12, Cairo Road, Lusaka",
            email=None,
            joining_date=date(2024, 1, 10),
            status=BorrowerStatus.ACTIVE,
            total_loans=0,
            total_outstanding=Decimal("0.00"),
            created_at=NOW,
            updated_at=NOW,
        )
        fields.update(overrides)
        return Borrower(**fields)

    return build


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Factory for extra sessions on the test database, e.g. a concurrent writer"""
    return TestingSessionLocal


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def store(db: Session) -> EntityStore:
    return EntityStore(db)


@pytest.fixture
def service(store: EntityStore, clock: FixedClock) -> LoanAccountingService:
    return LoanAccountingService(store, clock)


@pytest.fixture
def funded_service(service: LoanAccountingService) -> LoanAccountingService:
    """Service whose shared balance starts with 10,000.00 of lending capital"""
    service.set_available_balance(Decimal("10000.00"), "Opening capital")
    return service


@pytest.fixture
def borrower(service: LoanAccountingService):
    return service.create_borrower(
        name="Jane Banda",
        phone="+260977000111",
        address="Plot 12, Cairo Road, Lusaka",
        email="jane@example.com",
        joining_date=date(2024, 1, 10),
    )


@pytest.fixture
def monthly_loan(funded_service: LoanAccountingService, borrower):
    """1000.00 at 10% simple over 1 month → total 1100.00"""
    return funded_service.create_loan(
        borrower_id=borrower.id,
        principal=Decimal("1000.00"),
        interest_rate=Decimal("10"),
        interest_type=InterestType.SIMPLE,
        duration=LoanDuration(1, DurationUnit.MONTHS),
        start_date=date(2024, 3, 1),
    )


@pytest.fixture
def client(db: Session, clock: FixedClock) -> TestClient:
    """Create FastAPI test client with test database and a fixed clock"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    return TestClient(app)
