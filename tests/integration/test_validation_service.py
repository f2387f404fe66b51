"""Integration tests for pre-commit business-rule validation"""

import uuid
import pytest
from datetime import date
from performup_ledger.domain.exceptions import CurrencyMismatchError, InactiveAccountError, NotFoundError
from performup_ledger.domain.models import (
    AlertLevel,
    AllocationInput,
    CounterpartyKind,
    CounterpartyRef,
    Currency,
    PaymentInput,
    PaymentStatus,
)
from performup_ledger.infrastructure.database.repositories import CounterpartyRepository
from performup_ledger.services.validation import ValidationService
from tests.conftest import MENTOR, STUDENT, TODAY


@pytest.fixture
def validation(db):
    return ValidationService(db)


def codes(report):
    return [a.code for a in report.alerts]


def test_validate_payment_clean(validation, counterparties, make_account):
    """Test a well-formed payment produces no alerts"""
    account = make_account()
    data = PaymentInput(
        amount=1000, currency=Currency.EUR, payment_date=TODAY, counterparty=STUDENT, bank_account_id=account.id
    )

    report = validation.validate_payment(data)

    assert report.alerts == []
    assert not report.blocking


def test_validate_payment_missing_data_warns_when_not_settling(validation):
    """Test missing counterparty and bank account are warnings for a pending payment"""
    data = PaymentInput(amount=1000, currency=Currency.EUR, payment_date=TODAY)

    report = validation.validate_payment(data)

    assert codes(report) == ["MISSING_COUNTERPARTY", "MISSING_BANK_ACCOUNT"]
    assert not report.blocking


def test_validate_payment_missing_data_blocks_when_settling(validation):
    """Test missing counterparty and bank account block auto validation"""
    data = PaymentInput(amount=1000, currency=Currency.EUR, payment_date=TODAY, auto_validate=True)

    report = validation.validate_payment(data)

    assert {a.level for a in report.alerts} == {AlertLevel.ERROR}
    assert report.blocking


def test_validate_payment_unknown_counterparty(validation, make_account):
    """Test a counterparty absent from the directory"""
    account = make_account()
    data = PaymentInput(
        amount=1000, currency=Currency.EUR, payment_date=TODAY, counterparty=STUDENT, bank_account_id=account.id
    )

    assert codes(validation.validate_payment(data)) == ["COUNTERPARTY_NOT_FOUND"]


def test_validate_payment_inactive_counterparty(validation, db, make_account):
    """Test a deactivated directory entry"""
    CounterpartyRepository(db).upsert(STUDENT, is_active=False)
    account = make_account()
    data = PaymentInput(
        amount=1000, currency=Currency.EUR, payment_date=TODAY, counterparty=STUDENT, bank_account_id=account.id
    )

    assert codes(validation.validate_payment(data)) == ["COUNTERPARTY_INACTIVE"]


def test_validate_payment_multiple_counterparties(validation, counterparties):
    """Test a payment naming a student and a mentor"""
    data = PaymentInput(
        amount=1000,
        currency=Currency.EUR,
        payment_date=TODAY,
        counterparty=STUDENT,
        extra_counterparties=[MENTOR],
    )

    report = validation.validate_payment(data)

    assert "MULTIPLE_COUNTERPARTIES" in codes(report)
    assert report.blocking


def test_validate_payment_account_checks(validation, counterparties, make_account):
    """Test an inactive account in another currency raises both errors"""
    account = make_account(currency=Currency.MAD, is_active=False)
    data = PaymentInput(
        amount=1000, currency=Currency.EUR, payment_date=TODAY, counterparty=STUDENT, bank_account_id=account.id
    )

    assert codes(validation.validate_payment(data)) == ["ACCOUNT_INACTIVE", "ACCOUNT_CURRENCY_MISMATCH"]


def test_validate_payment_allocations_exceed(validation, counterparties, make_account):
    """Test explicit allocations larger than the payment"""
    account = make_account()
    data = PaymentInput(
        amount=1000,
        currency=Currency.EUR,
        payment_date=TODAY,
        counterparty=STUDENT,
        bank_account_id=account.id,
        allocations=[AllocationInput(uuid.uuid4(), 700), AllocationInput(uuid.uuid4(), 400)],
    )

    assert codes(validation.validate_payment(data)) == ["ALLOCATION_EXCEEDS_PAYMENT"]


def test_validate_payment_large_amount_is_warning(validation, counterparties, make_account):
    """Test a large payment is flagged but not blocked"""
    account = make_account()
    data = PaymentInput(
        amount=2_000_000, currency=Currency.EUR, payment_date=TODAY, counterparty=STUDENT, bank_account_id=account.id
    )

    report = validation.validate_payment(data)

    assert codes(report) == ["LARGE_AMOUNT"]
    assert not report.blocking


def test_detect_duplicate_payment(validation, counterparties, make_account, make_payment):
    """Test a close amount on the next day is a potential duplicate"""
    account = make_account()
    earlier = make_payment(amount=10000, bank_account_id=account.id, payment_date=date(2025, 3, 14))
    data = PaymentInput(
        amount=10400, currency=Currency.EUR, payment_date=TODAY, counterparty=STUDENT, bank_account_id=account.id
    )

    report = validation.validate_payment(data)

    assert codes(report) == ["POTENTIAL_DUPLICATE"]
    assert report.alerts[0].data["duplicate_id"] == str(earlier.id)
    assert not report.blocking


@pytest.mark.parametrize(
    "amount,payment_date,counterparty,status",
    [
        (11000, date(2025, 3, 15), STUDENT, PaymentStatus.VALIDATED),
        (10000, date(2025, 3, 10), STUDENT, PaymentStatus.VALIDATED),
        (10000, date(2025, 3, 15), CounterpartyRef(CounterpartyKind.STUDENT, "student-2"), PaymentStatus.VALIDATED),
        (10000, date(2025, 3, 15), STUDENT, PaymentStatus.REJECTED),
    ],
)
def test_detect_duplicate_payment_no_match(validation, make_payment, amount, payment_date, counterparty, status):
    """Test amount, date window, counterparty and rejected status all rule out a duplicate"""
    make_payment(amount=amount, payment_date=payment_date, counterparty=counterparty, status=status)

    assert validation.detect_duplicate_payment(STUDENT, 10000, TODAY) is None


def test_validate_transfer(validation, make_account):
    """Test transfer checks on both accounts"""
    source = make_account(currency=Currency.EUR)
    destination = make_account(currency=Currency.MAD)

    report = validation.validate_transfer(source.id, destination.id, 1000, Currency.EUR)

    assert codes(report) == ["ACCOUNT_CURRENCY_MISMATCH"]


def test_validate_transfer_large(validation, make_account):
    """Test a large transfer is a warning"""
    source = make_account()
    destination = make_account()

    report = validation.validate_transfer(source.id, destination.id, 5_000_000, Currency.EUR)

    assert codes(report) == ["LARGE_TRANSFER"]
    assert not report.blocking


def test_validate_expense(validation, make_account):
    """Test expense checks on the paying account plus expense-specific alerts"""
    account = make_account()

    clean = validation.validate_expense(account.id, 1000, Currency.EUR, supplier="Office Depot")
    assert clean.alerts == []

    report = validation.validate_expense(account.id, 750_000, Currency.EUR)
    assert codes(report) == ["LARGE_EXPENSE", "NO_SUPPLIER"]
    assert not report.blocking


def test_validate_expense_inactive_account(validation, make_account):
    """Test an expense from a deactivated account is blocked"""
    account = make_account(is_active=False)

    report = validation.validate_expense(account.id, 1000, Currency.EUR, supplier="Office Depot")

    assert [a.code for a in report.errors] == ["ACCOUNT_INACTIVE"]


def test_validate_staff_payment(validation, counterparties, make_account):
    """Test mission payouts only raise informational alerts for a known mentor"""
    account = make_account()

    report = validation.validate_staff_payment(account.id, MENTOR, 300_000, Currency.EUR)

    assert codes(report) == ["LARGE_MISSION", "NO_HOURS"]
    assert {a.level for a in report.alerts} == {AlertLevel.INFO}
    assert not report.blocking
    assert validation.validate_staff_payment(account.id, MENTOR, 1000, Currency.EUR, hours_worked=4).alerts == []


def test_validate_staff_payment_unknown_professor(validation, make_account):
    """Test a professor missing from the directory blocks the payout"""
    account = make_account()
    professor = CounterpartyRef(CounterpartyKind.PROFESSOR, "prof-404")

    report = validation.validate_staff_payment(account.id, professor, 1000, Currency.EUR, hours_worked=2)

    assert codes(report) == ["COUNTERPARTY_NOT_FOUND"]
    assert report.blocking


def test_ensure_account_usable(validation, make_account):
    """Test the raising form of the account checks"""
    active = make_account()
    inactive = make_account(is_active=False)

    assert validation.ensure_account_usable(active.id, Currency.EUR).id == active.id
    with pytest.raises(InactiveAccountError):
        validation.ensure_account_usable(inactive.id, Currency.EUR)
    with pytest.raises(CurrencyMismatchError):
        validation.ensure_account_usable(active.id, Currency.USD)
    with pytest.raises(NotFoundError):
        validation.ensure_account_usable(uuid.uuid4(), Currency.EUR)
