"""Integration tests for installment plans and schedule lifecycle"""

import uuid
import pytest
from datetime import date
from performup_ledger.domain.exceptions import (
    InvalidAmountError,
    NotFoundError,
    PlanAlreadyExistsError,
    ScheduleTotalMismatchError,
    UnsupportedCurrencyError,
)
from performup_ledger.domain.models import (
    AllocationInput,
    Currency,
    Installment,
    QuotePlanInput,
    ScheduleStatus,
)
from performup_ledger.infrastructure.database.models import ObligationSchedule
from performup_ledger.services.allocation import AllocationService
from performup_ledger.services.schedules import ScheduleService
from tests.conftest import STUDENT, fixed_clock


@pytest.fixture
def planner(db):
    return ScheduleService(db, clock=fixed_clock)


def plan(installments, total, contractual=Currency.EUR, payment_currency=None, quote_id=None):
    return QuotePlanInput(
        quote_id=quote_id or uuid.uuid4(),
        counterparty=STUDENT,
        quote_total_cents=total,
        contractual_currency=contractual,
        installments=installments,
        payment_currency=payment_currency,
    )


def test_create_installment_plan(planner, db):
    """Test one schedule per installment with derived status"""
    installments = [
        Installment(due_date=date(2025, 3, 1), amount_cents=30000),
        Installment(due_date=date(2025, 4, 1), amount_cents=30000),
        Installment(due_date=date(2025, 5, 1), amount_cents=30003),
    ]

    created = planner.create_installment_plan(plan(installments, 90003))
    db.commit()

    assert [s.amount for s in created] == [30000, 30000, 30003]
    assert [s.status for s in created] == [ScheduleStatus.OVERDUE, ScheduleStatus.PENDING, ScheduleStatus.PENDING]
    assert all(s.student_id == STUDENT.id for s in created)
    assert all(s.currency == Currency.EUR and s.contractual_currency == Currency.EUR for s in created)


def test_create_installment_plan_payment_currency(planner):
    """Test schedules expect the payment currency while keeping the contractual one"""
    installments = [Installment(due_date=date(2025, 4, 1), amount_cents=50000)]

    created = planner.create_installment_plan(plan(installments, 50000, payment_currency=Currency.MAD))

    assert created[0].currency == Currency.MAD
    assert created[0].contractual_currency == Currency.EUR


def test_create_installment_plan_per_installment_currency(planner):
    """Test an installment currency overrides the plan's payment currency"""
    installments = [
        Installment(due_date=date(2025, 4, 1), amount_cents=500, currency=Currency.USD),
        Installment(due_date=date(2025, 5, 1), amount_cents=500),
    ]

    created = planner.create_installment_plan(plan(installments, 1000, payment_currency=Currency.MAD))

    assert [s.currency for s in created] == [Currency.USD, Currency.MAD]


def test_create_installment_plan_total_mismatch(planner, db):
    """Test a plan that does not sum to the quote total writes nothing"""
    installments = [Installment(due_date=date(2025, 4, 1), amount_cents=999)]

    with pytest.raises(ScheduleTotalMismatchError):
        planner.create_installment_plan(plan(installments, 1000))
    assert db.query(ObligationSchedule).count() == 0


def test_create_installment_plan_rejects_bad_input(planner):
    """Test empty plans, bad amounts and unknown currencies"""
    with pytest.raises(InvalidAmountError):
        planner.create_installment_plan(plan([], 1000))
    with pytest.raises(InvalidAmountError):
        planner.create_installment_plan(plan([Installment(due_date=date(2025, 4, 1), amount_cents=0)], 0))
    with pytest.raises(UnsupportedCurrencyError):
        planner.create_installment_plan(
            plan([Installment(due_date=date(2025, 4, 1), amount_cents=1000)], 1000, contractual="GBP")
        )


def test_create_installment_plan_once_per_quote(planner, db):
    """Test a quote cannot get a second plan"""
    quote_id = uuid.uuid4()
    installments = [Installment(due_date=date(2025, 4, 1), amount_cents=1000)]
    planner.create_installment_plan(plan(installments, 1000, quote_id=quote_id))
    db.commit()

    with pytest.raises(PlanAlreadyExistsError):
        planner.create_installment_plan(plan(installments, 1000, quote_id=quote_id))


def test_generate_even_installments(planner):
    """Test an even split defaults its first due date to the clock's date"""
    installments = planner.generate_even_installments(90002, 3, interval_days=30)

    assert [i.amount_cents for i in installments] == [30000, 30000, 30002]
    assert installments[0].due_date == date(2025, 3, 15)
    assert installments[2].due_date == date(2025, 5, 14)


def test_remove_schedule_without_allocations_deletes(planner, db, make_schedule):
    """Test an unpaid schedule is deleted"""
    schedule = make_schedule()

    removal = planner.remove_schedule(schedule.id)
    db.commit()

    assert removal.deleted and not removal.cancelled
    assert db.get(ObligationSchedule, removal.schedule_id) is None


def test_remove_schedule_with_allocations_cancels(planner, db, make_schedule, make_payment, make_account):
    """Test a schedule with allocations is cancelled and keeps them"""
    account = make_account()
    schedule = make_schedule(amount=1000)
    payment = make_payment(amount=400, bank_account_id=account.id)
    AllocationService(db, clock=fixed_clock).allocate_payment(payment.id, [AllocationInput(schedule.id, 400)])
    db.commit()

    removal = planner.remove_schedule(schedule.id)
    db.commit()

    assert removal.cancelled and not removal.deleted
    db.refresh(schedule)
    assert schedule.is_cancelled
    assert schedule.paid_amount == 400


def test_get_schedule_unknown(planner):
    """Test fetching a missing schedule"""
    with pytest.raises(NotFoundError):
        planner.get_schedule(uuid.uuid4())


def test_list_schedules_by_quote(planner, make_schedule):
    """Test listing filters by quote, ordered by due date"""
    quote_id = uuid.uuid4()
    later = make_schedule(due_date=date(2025, 5, 1), quote_id=quote_id)
    earlier = make_schedule(due_date=date(2025, 4, 1), quote_id=quote_id)
    make_schedule(quote_id=uuid.uuid4())

    assert [s.id for s in planner.list_schedules(quote_id=quote_id)] == [earlier.id, later.id]
