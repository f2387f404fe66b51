"""Pytest fixtures for testing"""

import os

# Settings are read at import time; keep the module-level engine off PostgreSQL
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUDIT_WEBHOOK_URL", "")

import uuid
import pytest
from datetime import date, datetime, timezone
from typing import Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from performup_ledger.api.main import create_app
from performup_ledger.domain.models import (
    AccountType,
    CounterpartyKind,
    CounterpartyRef,
    Currency,
    PaymentStatus,
    ScheduleStatus,
)
from performup_ledger.infrastructure.database.models import Base, MoneyAccount, ObligationSchedule, Payment
from performup_ledger.infrastructure.database.repositories import CounterpartyRepository
from performup_ledger.infrastructure.database.session import get_db

FIXED_NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)
TODAY = FIXED_NOW.date()

STUDENT = CounterpartyRef(CounterpartyKind.STUDENT, "student-1")
MENTOR = CounterpartyRef(CounterpartyKind.MENTOR, "mentor-1")


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so several sessions can share one database"""
    test_engine = create_engine(f"sqlite:///{tmp_path / 'ledger.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    """Create test database and session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app, headers={"X-Actor-Id": "admin-1"})


@pytest.fixture
def counterparties(db: Session):
    """Directory entries for the default student and mentor"""
    repo = CounterpartyRepository(db)
    repo.upsert(STUDENT, display_name="Student One")
    repo.upsert(MENTOR, display_name="Mentor One")
    db.commit()
    return STUDENT, MENTOR


@pytest.fixture
def make_account(db: Session):
    """Factory for money accounts"""

    def _make(currency: Currency = Currency.EUR, name: str | None = None, is_active: bool = True) -> MoneyAccount:
        account = MoneyAccount(
            owner_id="org",
            account_name=name or f"{currency.value} account {uuid.uuid4().hex[:6]}",
            bank_name="Test Bank",
            currency=currency,
            account_type=AccountType.BANK,
            is_active=is_active,
        )
        db.add(account)
        db.commit()
        return account

    return _make


@pytest.fixture
def make_schedule(db: Session):
    """Factory for obligation schedules (defaults: 1000 EUR cents for the default student, due in 10 days)"""

    def _make(
        amount: int = 1000,
        due_date: date = date(2025, 3, 25),
        currency: Currency = Currency.EUR,
        counterparty: CounterpartyRef = STUDENT,
        paid_amount: int = 0,
        status: ScheduleStatus = ScheduleStatus.PENDING,
        contractual_currency: Currency | None = None,
        quote_id: uuid.UUID | None = None,
    ) -> ObligationSchedule:
        schedule = ObligationSchedule(
            quote_id=quote_id,
            amount=amount,
            currency=currency,
            contractual_currency=contractual_currency or currency,
            due_date=due_date,
            paid_amount=paid_amount,
            status=status,
            **counterparty.as_columns(),
        )
        db.add(schedule)
        db.commit()
        return schedule

    return _make


@pytest.fixture
def make_payment(db: Session):
    """Factory for payments stored directly (bypassing the settlement workflow)"""

    def _make(
        amount: int = 1000,
        currency: Currency = Currency.EUR,
        bank_account_id: uuid.UUID | None = None,
        counterparty: CounterpartyRef | None = STUDENT,
        status: PaymentStatus = PaymentStatus.VALIDATED,
        payment_date: date = TODAY,
    ) -> Payment:
        payment = Payment(
            amount=amount,
            currency=currency,
            payment_date=payment_date,
            bank_account_id=bank_account_id,
            status=status,
            **(counterparty.as_columns() if counterparty else {}),
        )
        db.add(payment)
        db.commit()
        return payment

    return _make
