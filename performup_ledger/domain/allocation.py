"""Payment allocation rules - ranking, greedy fill and capacity checks (no I/O)"""

import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from performup_ledger.domain.exceptions import (
    AllocationExceedsPaymentError,
    AllocationExceedsScheduleError,
    InvalidAmountError,
)
from performup_ledger.domain.models import (
    OPEN_SCHEDULE_STATUSES,
    AllocationInput,
    AllocationSuggestion,
    ScheduleStatus,
)
from performup_ledger.domain.schedules import priority_for
from performup_ledger.utils.money import is_minor_units


@dataclass
class ScheduleSnapshot:
    """Point-in-time view of a schedule used for ranking"""

    id: uuid.UUID
    due_date: date
    amount: int
    paid_amount: int
    status: ScheduleStatus
    created_at: Optional[datetime] = None

    @property
    def remaining(self) -> int:
        return self.amount - self.paid_amount


def rank_candidates(snapshots: Iterable[ScheduleSnapshot]) -> List[ScheduleSnapshot]:
    """
    Order open schedules for allocation.

    OVERDUE first, then PARTIAL, then PENDING; earliest due date first within a tier.
    Creation time breaks remaining ties so the order is deterministic.
    """
    open_ones = [s for s in snapshots if s.status in OPEN_SCHEDULE_STATUSES]
    return sorted(
        open_ones,
        key=lambda s: (
            priority_for(s.status),
            s.due_date,
            s.created_at or datetime.min,
            str(s.id),
        ),
    )


def greedy_fill(remaining_amount: int, ranked: List[ScheduleSnapshot]) -> List[AllocationSuggestion]:
    """
    Walk ranked schedules and suggest min(still_to_allocate, schedule_remaining) for each.

    Never suggests more than a schedule's remaining amount, and the suggestions
    never sum above remaining_amount.
    """
    suggestions: List[AllocationSuggestion] = []
    to_allocate = remaining_amount

    for snap in ranked:
        if to_allocate <= 0:
            break

        schedule_remaining = snap.remaining
        if schedule_remaining <= 0:
            continue

        suggested = min(to_allocate, schedule_remaining)
        suggestions.append(
            AllocationSuggestion(
                schedule_id=snap.id,
                schedule_due_date=snap.due_date,
                schedule_amount=snap.amount,
                schedule_paid_amount=snap.paid_amount,
                schedule_remaining_amount=schedule_remaining,
                suggested_allocation=suggested,
                priority=priority_for(snap.status),
                schedule_status=snap.status,
            )
        )
        to_allocate -= suggested

    return suggestions


def totals_by_schedule(allocations: Iterable[AllocationInput]) -> Dict[uuid.UUID, int]:
    """Sum requested amounts per schedule, preserving first-seen order"""
    totals: Dict[uuid.UUID, int] = OrderedDict()
    for alloc in allocations:
        totals[alloc.schedule_id] = totals.get(alloc.schedule_id, 0) + alloc.amount
    return totals


def check_amounts(allocations: Iterable[AllocationInput]) -> None:
    for alloc in allocations:
        if not is_minor_units(alloc.amount) or alloc.amount <= 0:
            raise InvalidAmountError(
                f"Allocation amount must be a positive integer (got: {alloc.amount!r})",
                schedule_id=str(alloc.schedule_id),
            )


def check_payment_capacity(payment_amount: int, already_allocated: int, requested: int) -> None:
    if already_allocated + requested > payment_amount:
        raise AllocationExceedsPaymentError(
            f"Total allocations ({already_allocated + requested}) exceed payment amount ({payment_amount})",
            payment_amount=payment_amount,
            already_allocated=already_allocated,
            requested=requested,
        )


def check_schedule_capacity(schedule_id: uuid.UUID, schedule_amount: int, already_paid: int, requested: int) -> None:
    if already_paid + requested > schedule_amount:
        raise AllocationExceedsScheduleError(
            f"Allocation amount ({requested}) exceeds schedule remaining amount ({schedule_amount - already_paid})",
            schedule_id=str(schedule_id),
            schedule_amount=schedule_amount,
            already_paid=already_paid,
            requested=requested,
        )
