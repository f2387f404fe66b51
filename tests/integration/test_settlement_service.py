"""Integration tests for the payment settlement workflow"""

import uuid
import pytest
from datetime import date
from unittest.mock import patch
from performup_ledger.domain.exceptions import (
    AllocationExceedsScheduleError,
    NotFoundError,
    OperationAbortedError,
    PaymentStateError,
    ValidationAlertError,
)
from performup_ledger.domain.models import (
    AllocationInput,
    Currency,
    PaymentInput,
    PaymentStatus,
    ScheduleStatus,
    TransactionType,
)
from performup_ledger.infrastructure.database.models import LedgerTransaction, Payment, PaymentAllocation
from performup_ledger.infrastructure.database.session import unit_of_work
from performup_ledger.services.journal import JournalService
from performup_ledger.services.settlement import SettlementService
from tests.conftest import STUDENT, TODAY, fixed_clock


@pytest.fixture
def settlement(db):
    return SettlementService(db, clock=fixed_clock)


@pytest.fixture
def bank(make_account):
    return make_account(currency=Currency.EUR, name="Main EUR")


def payment_input(bank, amount=1000, **overrides):
    fields = dict(
        amount=amount,
        currency=Currency.EUR,
        payment_date=TODAY,
        counterparty=STUDENT,
        bank_account_id=bank.id,
    )
    fields.update(overrides)
    return PaymentInput(**fields)


def test_record_payment_pending_by_default(settlement, db, counterparties, bank):
    """Test a payment without auto_validate waits for validation"""
    result = settlement.record_payment(payment_input(bank), actor_id="cashier-1")
    db.commit()

    assert result.payment.status == PaymentStatus.PENDING_VALIDATION
    assert result.payment.received_by == "cashier-1"
    assert result.transaction is None
    assert db.query(LedgerTransaction).count() == 0


def test_record_payment_auto_validate_settles(settlement, db, counterparties, bank, make_schedule):
    """Test auto_validate allocates by suggestion and journals the receipt"""
    overdue = make_schedule(amount=500, due_date=date(2025, 3, 1))
    upcoming = make_schedule(amount=1000, due_date=date(2025, 4, 1))

    result = settlement.record_payment(payment_input(bank, amount=800, auto_validate=True), actor_id="cashier-1")
    db.commit()

    assert result.payment.status == PaymentStatus.VALIDATED
    assert result.payment.validated_by == "cashier-1"
    assert {a.schedule_id: a.amount for a in result.allocations} == {overdue.id: 500, upcoming.id: 300}
    assert result.transaction.type == TransactionType.STUDENT_PAYMENT
    assert result.transaction.destination_account_id == bank.id
    assert result.transaction.payment_id == result.payment.id
    assert result.transaction.schedule_id is None

    db.refresh(overdue)
    db.refresh(upcoming)
    assert overdue.status == ScheduleStatus.PAID
    assert upcoming.status == ScheduleStatus.PARTIAL
    assert JournalService(db).compute_balance(bank.id) == 800


def test_record_payment_single_schedule_is_linked(settlement, db, counterparties, bank, make_schedule):
    """Test the journal row carries the schedule when exactly one was paid"""
    schedule = make_schedule(amount=1000)

    result = settlement.record_payment(payment_input(bank, auto_validate=True), actor_id="cashier-1")

    assert result.transaction.schedule_id == schedule.id


def test_record_payment_explicit_allocations(settlement, db, counterparties, bank, make_schedule):
    """Test caller allocations are used instead of suggestions"""
    first = make_schedule(amount=1000, due_date=date(2025, 3, 1))
    second = make_schedule(amount=1000, due_date=date(2025, 4, 1))

    result = settlement.record_payment(
        payment_input(bank, auto_validate=True, allocations=[AllocationInput(second.id, 1000)]),
        actor_id="cashier-1",
    )

    assert [a.schedule_id for a in result.allocations] == [second.id]
    db.refresh(first)
    assert first.paid_amount == 0


def test_record_payment_without_allocation(settlement, db, counterparties, bank, make_schedule):
    """Test auto_allocate=False validates and journals but allocates nothing"""
    make_schedule(amount=1000)

    result = settlement.record_payment(
        payment_input(bank, auto_validate=True, auto_allocate=False), actor_id="cashier-1"
    )

    assert result.allocations == []
    assert result.transaction is not None


def test_record_payment_blocking_alerts(settlement, db, bank):
    """Test ERROR alerts stop the payment before anything is stored"""
    with pytest.raises(ValidationAlertError) as exc_info:
        settlement.record_payment(payment_input(bank, amount=0, currency="GBP"), actor_id="cashier-1")

    codes = {a.code for a in exc_info.value.alerts}
    assert {"INVALID_AMOUNT", "UNSUPPORTED_CURRENCY", "COUNTERPARTY_NOT_FOUND"} <= codes
    assert db.query(Payment).count() == 0


def test_record_payment_settling_requires_bank_account(settlement, db, counterparties):
    """Test auto_validate without a bank account is blocked"""
    data = PaymentInput(
        amount=1000, currency=Currency.EUR, payment_date=TODAY, counterparty=STUDENT, auto_validate=True
    )
    with pytest.raises(ValidationAlertError) as exc_info:
        settlement.record_payment(data, actor_id="cashier-1")

    assert [a.code for a in exc_info.value.alerts if a.is_blocking] == ["MISSING_BANK_ACCOUNT"]


def test_record_payment_overfill_rolls_back_everything(settlement, db, counterparties, bank, make_schedule):
    """Test a schedule overfill discovered mid-settlement leaves no rows behind"""
    schedule = make_schedule(amount=500)

    with pytest.raises(AllocationExceedsScheduleError):
        settlement.record_payment(
            payment_input(bank, auto_validate=True, allocations=[AllocationInput(schedule.id, 800)]),
            actor_id="cashier-1",
        )
    db.rollback()

    assert db.query(Payment).count() == 0
    assert db.query(PaymentAllocation).count() == 0
    assert db.query(LedgerTransaction).count() == 0
    db.refresh(schedule)
    assert schedule.paid_amount == 0


def test_record_payment_journal_failure_rolls_back_allocations(
    settlement, db, counterparties, bank, make_schedule
):
    """Test a failing journal write undoes the payment and its allocations"""
    schedule = make_schedule(amount=1000)

    with patch.object(
        JournalService,
        "record_payment_transaction",
        side_effect=OperationAbortedError("Journal entry could not be stored"),
    ):
        with pytest.raises(OperationAbortedError):
            settlement.record_payment(payment_input(bank, auto_validate=True), actor_id="cashier-1")
    db.rollback()

    assert db.query(Payment).count() == 0
    assert db.query(PaymentAllocation).count() == 0
    db.refresh(schedule)
    assert schedule.paid_amount == 0
    assert schedule.status == ScheduleStatus.PENDING


def test_validate_pending_payment(settlement, db, counterparties, bank, make_schedule):
    """Test a pending payment is settled on validation"""
    schedule = make_schedule(amount=1000)
    pending = settlement.record_payment(payment_input(bank), actor_id="cashier-1").payment
    db.commit()

    result = settlement.validate_pending_payment(pending.id, actor_id="manager-1")
    db.commit()

    assert result.payment.status == PaymentStatus.VALIDATED
    assert result.payment.validated_by == "manager-1"
    assert result.transaction.amount == 1000
    db.refresh(schedule)
    assert schedule.status == ScheduleStatus.PAID


def test_validate_pending_payment_needs_bank_account(settlement, db, counterparties):
    """Test a pending payment without a bank account cannot be validated"""
    data = PaymentInput(amount=1000, currency=Currency.EUR, payment_date=TODAY, counterparty=STUDENT)
    pending = settlement.record_payment(data, actor_id="cashier-1").payment
    db.commit()

    with pytest.raises(ValidationAlertError):
        settlement.validate_pending_payment(pending.id, actor_id="manager-1")


def test_validate_pending_payment_wrong_state(settlement, make_payment, bank):
    """Test an already validated payment cannot be validated again"""
    payment = make_payment(bank_account_id=bank.id, status=PaymentStatus.VALIDATED)

    with pytest.raises(PaymentStateError):
        settlement.validate_pending_payment(payment.id, actor_id="manager-1")


def test_validate_pending_payment_unknown(settlement):
    """Test validating a missing payment"""
    with pytest.raises(NotFoundError):
        settlement.validate_pending_payment(uuid.uuid4(), actor_id="manager-1")


def test_reject_payment(settlement, db, counterparties, bank):
    """Test a rejected payment records who rejected it and why"""
    pending = settlement.record_payment(payment_input(bank), actor_id="cashier-1").payment
    db.commit()

    rejected = settlement.reject_payment(pending.id, actor_id="manager-1", reason="bounced")
    db.commit()

    assert rejected.status == PaymentStatus.REJECTED
    assert rejected.rejected_reason == "bounced"
    assert rejected.validated_by == "manager-1"
    with pytest.raises(PaymentStateError):
        settlement.reject_payment(pending.id, actor_id="manager-1", reason="again")


def test_unit_of_work_commits_settlement(session_factory, counterparties, bank, make_schedule):
    """Test a settlement inside unit_of_work is committed as one transaction"""
    schedule = make_schedule(amount=1000)

    with unit_of_work(session_factory) as session:
        SettlementService(session, clock=fixed_clock).record_payment(
            payment_input(bank, auto_validate=True), actor_id="cashier-1"
        )

    check = session_factory()
    try:
        assert check.query(Payment).count() == 1
        assert check.query(LedgerTransaction).count() == 1
        assert check.get(type(schedule), schedule.id).status == ScheduleStatus.PAID
    finally:
        check.close()


def test_unit_of_work_rolls_back_on_domain_error(session_factory, counterparties, bank, make_schedule):
    """Test a failed settlement inside unit_of_work leaves nothing behind"""
    schedule = make_schedule(amount=500)

    with pytest.raises(AllocationExceedsScheduleError):
        with unit_of_work(session_factory) as session:
            SettlementService(session, clock=fixed_clock).record_payment(
                payment_input(bank, auto_validate=True, allocations=[AllocationInput(schedule.id, 800)]),
                actor_id="cashier-1",
            )

    check = session_factory()
    try:
        assert check.query(Payment).count() == 0
    finally:
        check.close()
