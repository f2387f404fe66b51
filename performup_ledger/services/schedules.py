"""Schedule planner - turns a validated quote into dated obligation schedules"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from performup_ledger.domain.exceptions import NotFoundError, PlanAlreadyExistsError
from performup_ledger.domain.installments import generate_installment_plan, validate_installment_plan
from performup_ledger.domain.models import Currency, CounterpartyRef, Installment, QuotePlanInput
from performup_ledger.domain.schedules import derive_status
from performup_ledger.infrastructure.database.models import ObligationSchedule
from performup_ledger.infrastructure.database.repositories import AllocationRepository, ScheduleRepository
from performup_ledger.utils.date_utils import Clock, utcnow
from performup_ledger.utils.money import require_currency


@dataclass
class ScheduleRemoval:
    schedule_id: uuid.UUID
    deleted: bool
    cancelled: bool


class ScheduleService:
    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.schedules = ScheduleRepository(db)
        self.allocations = AllocationRepository(db)

    def create_installment_plan(self, plan: QuotePlanInput) -> List[ObligationSchedule]:
        """
        Create one schedule per installment of a quote.

        Installment amounts are in the quote's contractual currency; the schedule
        currency is the currency the payment is expected in.

        Raises:
            PlanAlreadyExistsError: quote already has schedules
            InvalidAmountError / UnsupportedCurrencyError / ScheduleTotalMismatchError
        """
        contractual = require_currency(plan.contractual_currency)
        payment_currency = require_currency(plan.payment_currency) if plan.payment_currency else None
        validate_installment_plan(plan.installments, plan.quote_total_cents)

        if self.schedules.quote_has_schedules(plan.quote_id):
            raise PlanAlreadyExistsError(
                f"Quote {plan.quote_id} already has an installment plan", quote_id=str(plan.quote_id)
            )

        now = self.clock()
        created = []
        for installment in plan.installments:
            created.append(
                self.schedules.create_schedule(
                    quote_id=plan.quote_id,
                    amount=installment.amount_cents,
                    currency=Currency(installment.currency or payment_currency or contractual),
                    contractual_currency=contractual,
                    due_date=installment.due_date,
                    paid_amount=0,
                    status=derive_status(0, installment.amount_cents, installment.due_date, now),
                    **plan.counterparty.as_columns(),
                )
            )

        logging.info(
            "Installment plan created",
            extra={"quote_id": str(plan.quote_id), "installments": len(created), "total": plan.quote_total_cents},
        )
        return created

    def generate_even_installments(
        self,
        total_cents: int,
        count: int,
        first_due_date: Optional[date] = None,
        interval_days: int = 30,
        currency: Optional[Currency] = None,
    ) -> List[Installment]:
        return generate_installment_plan(
            total_cents,
            num_installments=count,
            interval_days=interval_days,
            start_date=first_due_date or self.clock().date(),
            currency=currency,
        )

    def remove_schedule(self, schedule_id: uuid.UUID) -> ScheduleRemoval:
        """Delete a schedule nobody paid against; cancel it otherwise so allocations stay intact"""
        schedule = self.get_schedule(schedule_id)

        if self.allocations.schedule_has_allocations(schedule_id):
            if not schedule.is_cancelled:
                schedule.cancelled_at = self.clock()
                self.db.flush()
            logging.info("Schedule cancelled", extra={"schedule_id": str(schedule_id)})
            return ScheduleRemoval(schedule_id=schedule_id, deleted=False, cancelled=True)

        self.schedules.delete_schedule(schedule)
        logging.info("Schedule deleted", extra={"schedule_id": str(schedule_id)})
        return ScheduleRemoval(schedule_id=schedule_id, deleted=True, cancelled=False)

    def get_schedule(self, schedule_id: uuid.UUID) -> ObligationSchedule:
        schedule = self.schedules.get_schedule(schedule_id)
        if schedule is None:
            raise NotFoundError("Schedule", schedule_id)
        return schedule

    def list_schedules(
        self,
        counterparty: Optional[CounterpartyRef] = None,
        quote_id: Optional[uuid.UUID] = None,
    ) -> List[ObligationSchedule]:
        return self.schedules.list_schedules(counterparty=counterparty, quote_id=quote_id)
