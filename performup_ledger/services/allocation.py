"""Payment allocation engine - suggests and applies splits of a payment across schedules"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from performup_ledger.domain import allocation as engine
from performup_ledger.domain.exceptions import (
    NotFoundError,
    OperationAbortedError,
    PaymentStateError,
    ScheduleCancelledError,
)
from performup_ledger.domain.models import (
    AllocationFilters,
    AllocationInput,
    AllocationStats,
    AllocationSuggestion,
    Currency,
    PaymentStatus,
    ScheduleStatus,
)
from performup_ledger.domain.schedules import derive_status, next_paid_date
from performup_ledger.infrastructure.database.models import ObligationSchedule, Payment, PaymentAllocation
from performup_ledger.infrastructure.database.repositories import (
    AllocationRepository,
    PaymentRepository,
    ScheduleRepository,
)
from performup_ledger.utils.date_utils import Clock, utcnow
from performup_ledger.utils.money import assert_same_currency


@dataclass
class AllocationResult:
    allocations: List[PaymentAllocation] = field(default_factory=list)
    schedules: List[ObligationSchedule] = field(default_factory=list)

    @property
    def total_allocated(self) -> int:
        return sum(a.amount for a in self.allocations)


class AllocationService:
    """Allocates validated payments to obligation schedules"""

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.payments = PaymentRepository(db)
        self.schedules = ScheduleRepository(db)
        self.allocations = AllocationRepository(db)

    def suggest_allocation(
        self,
        payment_id: uuid.UUID,
        filters: Optional[AllocationFilters] = None,
    ) -> List[AllocationSuggestion]:
        """
        Suggest how the unallocated part of a payment should be split.

        Candidates are open schedules in the payment's currency (and of the payment's
        counterparty when it has one), ranked OVERDUE -> PARTIAL -> PENDING, then by due date.
        Read-only; nothing is written.
        """
        payment = self._get_payment(payment_id)
        remaining = payment.amount - self.allocations.total_for_payment(payment.id)
        if remaining <= 0:
            return []

        filters = filters or AllocationFilters()
        currency = Currency(payment.currency)
        if filters.currency is not None and Currency(filters.currency) != currency:
            return []

        counterparty = payment.counterparty
        if counterparty is not None and filters.counterparty is not None and filters.counterparty != counterparty:
            return []
        counterparty = counterparty or filters.counterparty

        now = self.clock()
        snapshots = [
            engine.ScheduleSnapshot(
                id=s.id,
                due_date=s.due_date,
                amount=s.amount,
                paid_amount=s.paid_amount,
                status=derive_status(s.paid_amount, s.amount, s.due_date, now),
                created_at=s.created_at,
            )
            for s in self.schedules.list_unpaid(currency=currency, counterparty=counterparty)
        ]
        return engine.greedy_fill(remaining, engine.rank_candidates(snapshots))

    def allocate_payment(self, payment_id: uuid.UUID, allocations: Sequence[AllocationInput]) -> AllocationResult:
        """
        Apply allocations atomically.

        Every check runs before any row is written:
        payment validated, positive integer amounts, payment capacity,
        schedules exist / not cancelled / same currency, schedule capacity.

        Raises:
            NotFoundError, PaymentStateError, InvalidAmountError,
            AllocationExceedsPaymentError, ScheduleCancelledError, CurrencyMismatchError,
            AllocationExceedsScheduleError, OperationAbortedError
        """
        payment = self._get_payment(payment_id)
        if payment.status != PaymentStatus.VALIDATED:
            raise PaymentStateError(
                f"Payment {payment_id} must be VALIDATED before allocation (status: {payment.status.value})",
                payment_id=str(payment_id),
                status=payment.status.value,
            )
        engine.check_amounts(allocations)
        if not allocations:
            return AllocationResult()

        try:
            # Lock the payment, then schedules in a stable order, and re-read sums under the locks
            payment = self.payments.get_payment_for_update(payment_id)
            requested = sum(a.amount for a in allocations)
            engine.check_payment_capacity(payment.amount, self.allocations.total_for_payment(payment.id), requested)

            totals = engine.totals_by_schedule(allocations)
            locked = {}
            for schedule_id in sorted(totals, key=str):
                schedule = self.schedules.get_schedule_for_update(schedule_id)
                if schedule is None:
                    raise NotFoundError("Schedule", schedule_id)
                if schedule.is_cancelled:
                    raise ScheduleCancelledError(
                        f"Schedule {schedule_id} is cancelled", schedule_id=str(schedule_id)
                    )
                assert_same_currency(schedule.currency, payment.currency, f"Payment {payment.id} -> schedule {schedule_id}")
                locked[schedule_id] = schedule

            for schedule_id, amount in totals.items():
                engine.check_schedule_capacity(
                    schedule_id,
                    locked[schedule_id].amount,
                    self.allocations.total_for_schedule(schedule_id),
                    amount,
                )

            created = [
                self.allocations.create_allocation(
                    payment_id=payment.id,
                    schedule_id=a.schedule_id,
                    amount=a.amount,
                    currency=Currency(payment.currency),
                )
                for a in allocations
            ]
            self.db.flush()

            updated = [self.update_schedule_status(schedule_id) for schedule_id in totals]
        except SQLAlchemyError as e:
            logging.warning(
                f"Allocation aborted for payment {payment_id}: {e.__class__.__name__}",
                extra={"payment_id": str(payment_id)},
            )
            raise OperationAbortedError(
                "Allocation aborted by a concurrent update; nothing was written", payment_id=str(payment_id)
            ) from e

        return AllocationResult(allocations=created, schedules=updated)

    def update_schedule_status(self, schedule_id: uuid.UUID) -> ObligationSchedule:
        """Recompute paid amount, status, paid date and observed currency from allocations (idempotent)"""
        self.db.flush()
        schedule = self.schedules.get_schedule(schedule_id)
        if schedule is None:
            raise NotFoundError("Schedule", schedule_id)

        paid = self.allocations.total_for_schedule(schedule_id)
        currencies = self.allocations.currencies_for_schedule(schedule_id)
        contractual = Currency(schedule.contractual_currency)
        observed = next((c for c in currencies if c != contractual), None)

        self._apply_status(schedule, paid, self.clock())
        if schedule.observed_settlement_currency != observed:
            schedule.observed_settlement_currency = observed
        self.db.flush()
        return schedule

    def get_remaining_amount(self, schedule_id: uuid.UUID) -> int:
        schedule = self.schedules.get_schedule(schedule_id)
        if schedule is None:
            raise NotFoundError("Schedule", schedule_id)
        return schedule.amount - self.allocations.total_for_schedule(schedule_id)

    def get_allocation_stats(self, payment_id: uuid.UUID) -> AllocationStats:
        payment = self._get_payment(payment_id)
        rows = self.allocations.list_for_payment(payment.id)
        total = sum(r.amount for r in rows)

        touched = {r.schedule_id: r.schedule for r in rows}.values()
        fully_paid = sum(1 for s in touched if s.paid_amount >= s.amount)
        partially_paid = sum(1 for s in touched if 0 < s.paid_amount < s.amount)

        return AllocationStats(
            total_allocated=total,
            remaining_amount=payment.amount - total,
            schedules_fully_paid=fully_paid,
            schedules_partially_paid=partially_paid,
        )

    def refresh_overdue(self, now: Optional[datetime] = None) -> List[ObligationSchedule]:
        """Re-derive stored statuses of open schedules; returns the ones that changed"""
        now = now or self.clock()
        changed = []
        for schedule in self.schedules.list_unpaid():
            previous = schedule.status
            self._apply_status(schedule, schedule.paid_amount, now)
            if schedule.status != previous:
                changed.append(schedule)
        self.db.flush()
        if changed:
            logging.info("Schedule statuses refreshed", extra={"schedules_changed": len(changed)})
        return changed

    def _apply_status(self, schedule: ObligationSchedule, paid: int, now: datetime) -> None:
        previous_status = ScheduleStatus(schedule.status) if schedule.status else None
        status = derive_status(paid, schedule.amount, schedule.due_date, now)
        paid_date = next_paid_date(status, previous_status, schedule.paid_date, now)

        if schedule.paid_amount != paid:
            schedule.paid_amount = paid
        if previous_status != status:
            schedule.status = status
        if schedule.paid_date != paid_date:
            schedule.paid_date = paid_date

    def _get_payment(self, payment_id: uuid.UUID) -> Payment:
        payment = self.payments.get_payment(payment_id)
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        return payment
