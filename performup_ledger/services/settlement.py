"""Settlement workflow - record a payment, validate it, allocate it and journal it in one unit"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from performup_ledger.domain import alerts as rules
from performup_ledger.domain.exceptions import (
    NotFoundError,
    OperationAbortedError,
    PaymentStateError,
    ValidationAlertError,
)
from performup_ledger.domain.models import Alert, AllocationInput, Currency, PaymentInput, PaymentStatus
from performup_ledger.infrastructure.database.models import (
    LedgerTransaction,
    ObligationSchedule,
    Payment,
    PaymentAllocation,
)
from performup_ledger.infrastructure.database.repositories import AccountRepository, PaymentRepository
from performup_ledger.services.allocation import AllocationService
from performup_ledger.services.journal import JournalService
from performup_ledger.services.validation import ValidationService
from performup_ledger.utils.date_utils import Clock, utcnow


@dataclass
class SettlementResult:
    payment: Payment
    alerts: List[Alert] = field(default_factory=list)
    allocations: List[PaymentAllocation] = field(default_factory=list)
    schedules: List[ObligationSchedule] = field(default_factory=list)
    transaction: Optional[LedgerTransaction] = None


class SettlementService:
    """
    Orchestrates payment recording and settlement.

    Uses the caller's Session for every step and never commits, so the caller's
    transaction either keeps all of {payment, allocations, schedule updates, journal row}
    or none of them.
    """

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.payments = PaymentRepository(db)
        self.accounts = AccountRepository(db)
        self.validation = ValidationService(db)
        self.allocation = AllocationService(db, clock)
        self.journal = JournalService(db, clock)

    def record_payment(self, data: PaymentInput, actor_id: str) -> SettlementResult:
        """
        Validate and store a payment; settle it right away when auto_validate is set.

        Raises:
            ValidationAlertError: at least one ERROR alert (nothing is written)
        """
        report = self.validation.validate_payment(data)
        if report.blocking:
            raise ValidationAlertError(report.alerts)

        try:
            counterparty_columns = data.counterparty.as_columns() if data.counterparty else {}
            payment = self.payments.create_payment(
                amount=data.amount,
                currency=Currency(data.currency),
                payment_date=data.payment_date,
                bank_account_id=data.bank_account_id,
                received_by=actor_id,
                notes=data.notes,
                status=PaymentStatus.PENDING_VALIDATION,
                **counterparty_columns,
            )
        except SQLAlchemyError as e:
            raise OperationAbortedError(f"Payment could not be stored: {e.__class__.__name__}") from e

        result = SettlementResult(payment=payment, alerts=report.alerts)
        if data.auto_validate:
            self._settle(result, actor_id, data.allocations, data.auto_allocate)
        return result

    def validate_pending_payment(
        self,
        payment_id: uuid.UUID,
        actor_id: str,
        allocations: Optional[Sequence[AllocationInput]] = None,
        auto_allocate: bool = True,
    ) -> SettlementResult:
        """Settle a payment that was recorded without auto_validate"""
        payment = self._get_pending(payment_id)

        account = self.accounts.get_account(payment.bank_account_id) if payment.bank_account_id else None
        alerts = rules.account_alerts(payment.bank_account_id, account, payment.currency, require_account=True)
        if payment.counterparty is None:
            alerts += rules.missing_counterparty_alerts(settling=True)
        if any(a.is_blocking for a in alerts):
            raise ValidationAlertError(alerts)

        result = SettlementResult(payment=payment, alerts=alerts)
        self._settle(result, actor_id, allocations, auto_allocate)
        return result

    def reject_payment(self, payment_id: uuid.UUID, actor_id: str, reason: str) -> Payment:
        payment = self._get_pending(payment_id)
        payment.status = PaymentStatus.REJECTED
        payment.rejected_reason = reason
        payment.validated_by = actor_id
        payment.validated_at = self.clock()
        self.db.flush()
        logging.info("Payment rejected", extra={"payment_id": str(payment_id), "actor_id": actor_id})
        return payment

    def _settle(
        self,
        result: SettlementResult,
        actor_id: str,
        allocations: Optional[Sequence[AllocationInput]],
        auto_allocate: bool,
    ) -> None:
        payment = result.payment
        try:
            payment.status = PaymentStatus.VALIDATED
            payment.validated_by = actor_id
            payment.validated_at = self.clock()
            self.db.flush()
        except SQLAlchemyError as e:
            raise OperationAbortedError(f"Payment could not be validated: {e.__class__.__name__}") from e

        if not allocations and auto_allocate:
            allocations = [s.to_input() for s in self.allocation.suggest_allocation(payment.id)]

        if allocations:
            applied = self.allocation.allocate_payment(payment.id, allocations)
            result.allocations = applied.allocations
            result.schedules = applied.schedules

        single_schedule = result.schedules[0].id if len(result.schedules) == 1 else None
        try:
            result.transaction = self.journal.record_payment_transaction(payment, actor_id, schedule_id=single_schedule)
        except SQLAlchemyError as e:
            raise OperationAbortedError(f"Journal entry could not be stored: {e.__class__.__name__}") from e

    def _get_pending(self, payment_id: uuid.UUID) -> Payment:
        payment = self.payments.get_payment_for_update(payment_id)
        if payment is None:
            raise NotFoundError("Payment", payment_id)
        if payment.status != PaymentStatus.PENDING_VALIDATION:
            raise PaymentStateError(
                f"Payment {payment_id} is {payment.status.value}, expected PENDING_VALIDATION",
                payment_id=str(payment_id),
                status=payment.status.value,
            )
        return payment
