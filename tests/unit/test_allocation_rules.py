"""Unit tests for allocation ranking, greedy fill and capacity checks"""

import uuid
import pytest
from datetime import date, datetime
from performup_ledger.domain.allocation import (
    ScheduleSnapshot,
    check_amounts,
    check_payment_capacity,
    check_schedule_capacity,
    greedy_fill,
    rank_candidates,
    totals_by_schedule,
)
from performup_ledger.domain.exceptions import (
    AllocationExceedsPaymentError,
    AllocationExceedsScheduleError,
    InvalidAmountError,
)
from performup_ledger.domain.models import AllocationInput, ScheduleStatus


def snapshot(status, due, amount=1000, paid=0, created=None):
    return ScheduleSnapshot(
        id=uuid.uuid4(),
        due_date=due,
        amount=amount,
        paid_amount=paid,
        status=status,
        created_at=created,
    )


def test_rank_candidates_priority_then_due_date():
    """Test OVERDUE first, then PARTIAL, then PENDING, earliest due date within a tier"""
    pending_late = snapshot(ScheduleStatus.PENDING, date(2025, 5, 1))
    pending_early = snapshot(ScheduleStatus.PENDING, date(2025, 4, 1))
    partial = snapshot(ScheduleStatus.PARTIAL, date(2025, 6, 1), paid=100)
    overdue = snapshot(ScheduleStatus.OVERDUE, date(2025, 3, 1))

    ranked = rank_candidates([pending_late, partial, pending_early, overdue])

    assert [s.id for s in ranked] == [overdue.id, partial.id, pending_early.id, pending_late.id]


def test_rank_candidates_excludes_paid():
    """Test PAID schedules are never candidates"""
    paid = snapshot(ScheduleStatus.PAID, date(2025, 3, 1), paid=1000)
    assert rank_candidates([paid]) == []


def test_rank_candidates_creation_order_breaks_ties():
    """Test same status and due date fall back to creation time"""
    first = snapshot(ScheduleStatus.PENDING, date(2025, 4, 1), created=datetime(2025, 1, 1))
    second = snapshot(ScheduleStatus.PENDING, date(2025, 4, 1), created=datetime(2025, 1, 2))
    assert [s.id for s in rank_candidates([second, first])] == [first.id, second.id]


def test_greedy_fill_overdue_first():
    """Test 800 over A(OVERDUE, 500) and B(PENDING, 1000) suggests A=500, B=300"""
    a = snapshot(ScheduleStatus.OVERDUE, date(2025, 1, 1), amount=500)
    b = snapshot(ScheduleStatus.PENDING, date(2025, 2, 1), amount=1000)

    suggestions = greedy_fill(800, rank_candidates([b, a]))

    assert [(s.schedule_id, s.suggested_allocation) for s in suggestions] == [(a.id, 500), (b.id, 300)]
    assert suggestions[0].priority == 1
    assert suggestions[1].priority == 3


def test_greedy_fill_uses_schedule_remaining():
    """Test a partially paid schedule only absorbs what is left"""
    partial = snapshot(ScheduleStatus.PARTIAL, date(2025, 4, 1), amount=1000, paid=700)
    suggestions = greedy_fill(5000, [partial])

    assert suggestions[0].suggested_allocation == 300
    assert suggestions[0].schedule_remaining_amount == 300


def test_greedy_fill_never_exceeds_remaining_amount():
    """Test the suggestions sum to at most the unallocated payment amount"""
    ranked = [snapshot(ScheduleStatus.PENDING, date(2025, 4, d)) for d in range(1, 6)]
    suggestions = greedy_fill(2500, ranked)

    assert sum(s.suggested_allocation for s in suggestions) == 2500
    assert [s.suggested_allocation for s in suggestions] == [1000, 1000, 500]


def test_greedy_fill_nothing_to_allocate():
    """Test an exhausted payment gets no suggestions"""
    assert greedy_fill(0, [snapshot(ScheduleStatus.PENDING, date(2025, 4, 1))]) == []


def test_totals_by_schedule_sums_duplicates():
    """Test two entries for the same schedule are added together"""
    sid = uuid.uuid4()
    other = uuid.uuid4()
    totals = totals_by_schedule(
        [AllocationInput(sid, 600), AllocationInput(other, 100), AllocationInput(sid, 600)]
    )
    assert totals == {sid: 1200, other: 100}


@pytest.mark.parametrize("amount", [0, -5, 1.5, True])
def test_check_amounts_rejects_non_positive_integers(amount):
    """Test zero, negative, fractional and boolean amounts"""
    with pytest.raises(InvalidAmountError):
        check_amounts([AllocationInput(uuid.uuid4(), amount)])


def test_check_payment_capacity():
    """Test allocations may reach but not exceed the payment amount"""
    check_payment_capacity(1000, 400, 600)
    with pytest.raises(AllocationExceedsPaymentError):
        check_payment_capacity(1000, 400, 601)


def test_check_schedule_capacity():
    """Test allocations may reach but not exceed the schedule amount"""
    sid = uuid.uuid4()
    check_schedule_capacity(sid, 1000, 0, 1000)
    with pytest.raises(AllocationExceedsScheduleError) as exc_info:
        check_schedule_capacity(sid, 1000, 0, 1200)
    assert exc_info.value.data["schedule_id"] == str(sid)
