"""Data access layer for ledger entities"""

import uuid
from datetime import date
from typing import List, Optional, Tuple
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from performup_ledger.infrastructure.database.models import (
    Counterparty,
    LedgerTransaction,
    MoneyAccount,
    ObligationSchedule,
    Payment,
    PaymentAllocation,
)
from performup_ledger.domain.models import (
    CounterpartyKind,
    CounterpartyRef,
    Currency,
    PaymentStatus,
    TransactionFilters,
)


def _counterparty_filter(model, counterparty: Optional[CounterpartyRef]) -> list:
    if counterparty is None:
        return []
    column = {
        CounterpartyKind.STUDENT: model.student_id,
        CounterpartyKind.MENTOR: model.mentor_id,
        CounterpartyKind.PROFESSOR: model.professor_id,
    }[counterparty.kind]
    return [column == counterparty.id]


class CounterpartyRepository:
    """Repository for the people-directory mirror"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, ref: CounterpartyRef) -> Optional[Counterparty]:
        return self.db.get(Counterparty, (ref.kind, ref.id))

    def upsert(self, ref: CounterpartyRef, display_name: str = "", is_active: bool = True) -> Counterparty:
        entry = self.get(ref)
        if entry is None:
            entry = Counterparty(kind=ref.kind, id=ref.id)
            self.db.add(entry)
        entry.display_name = display_name
        entry.is_active = is_active
        self.db.flush()
        return entry


class AccountRepository:
    """Repository for money accounts"""

    def __init__(self, db: Session):
        self.db = db

    def create_account(self, **fields) -> MoneyAccount:
        account = MoneyAccount(**fields)
        self.db.add(account)
        self.db.flush()  # Get ID without committing
        return account

    def get_account(self, account_id: uuid.UUID) -> Optional[MoneyAccount]:
        return self.db.get(MoneyAccount, account_id)

    def list_accounts(self, include_inactive: bool = False) -> List[MoneyAccount]:
        query = self.db.query(MoneyAccount)
        if not include_inactive:
            query = query.filter(MoneyAccount.is_active.is_(True))
        return query.order_by(MoneyAccount.currency, MoneyAccount.account_name).all()

    def has_journal_history(self, account_id: uuid.UUID) -> bool:
        return self.db.query(
            self.db.query(LedgerTransaction)
            .filter(
                or_(
                    LedgerTransaction.source_account_id == account_id,
                    LedgerTransaction.destination_account_id == account_id,
                )
            )
            .exists()
        ).scalar()

    def is_referenced_by_payment(self, account_id: uuid.UUID) -> bool:
        return self.db.query(
            self.db.query(Payment).filter(Payment.bank_account_id == account_id).exists()
        ).scalar()

    def delete_account(self, account: MoneyAccount) -> None:
        self.db.delete(account)
        self.db.flush()


class JournalRepository:
    """Append-only access to the transaction journal"""

    def __init__(self, db: Session):
        self.db = db

    def append(self, transaction: LedgerTransaction) -> LedgerTransaction:
        self.db.add(transaction)
        self.db.flush()
        return transaction

    def get_transaction(self, transaction_id: uuid.UUID) -> Optional[LedgerTransaction]:
        return self.db.get(LedgerTransaction, transaction_id)

    def last_number_with_prefix(self, prefix: str) -> Optional[str]:
        return (
            self.db.query(LedgerTransaction.transaction_number)
            .filter(LedgerTransaction.transaction_number.startswith(prefix))
            .order_by(LedgerTransaction.transaction_number.desc())
            .limit(1)
            .scalar()
        )

    def inflow_total(self, account_id: uuid.UUID) -> int:
        return (
            self.db.query(func.coalesce(func.sum(LedgerTransaction.amount), 0))
            .filter(LedgerTransaction.destination_account_id == account_id)
            .scalar()
        )

    def outflow_total(self, account_id: uuid.UUID) -> int:
        return (
            self.db.query(func.coalesce(func.sum(LedgerTransaction.amount), 0))
            .filter(LedgerTransaction.source_account_id == account_id)
            .scalar()
        )

    def find_reversal(self, transaction_id: uuid.UUID) -> Optional[LedgerTransaction]:
        return (
            self.db.query(LedgerTransaction)
            .filter(LedgerTransaction.reversal_of_id == transaction_id)
            .first()
        )

    def _filtered(self, filters: TransactionFilters):
        query = self.db.query(LedgerTransaction)

        if filters.start_date:
            query = query.filter(LedgerTransaction.date >= filters.start_date)
        if filters.end_date:
            query = query.filter(LedgerTransaction.date <= filters.end_date)
        if filters.currency:
            query = query.filter(LedgerTransaction.currency == filters.currency)
        if filters.type:
            query = query.filter(LedgerTransaction.type == filters.type)
        if filters.account_id:
            query = query.filter(
                or_(
                    LedgerTransaction.source_account_id == filters.account_id,
                    LedgerTransaction.destination_account_id == filters.account_id,
                )
            )
        query = query.filter(*_counterparty_filter(LedgerTransaction, filters.counterparty))
        return query

    def search(self, filters: TransactionFilters) -> Tuple[List[LedgerTransaction], int]:
        """Filtered page of transactions, newest first, plus the unpaged total"""
        query = self._filtered(filters)
        total = query.count()
        items = (
            query.order_by(LedgerTransaction.date.desc(), LedgerTransaction.transaction_number.desc())
            .offset(filters.offset)
            .limit(filters.limit)
            .all()
        )
        return items, total

    def search_all(self, filters: TransactionFilters) -> List[LedgerTransaction]:
        """Every matching transaction, oldest first, ignoring paging"""
        return (
            self._filtered(filters)
            .order_by(LedgerTransaction.date.asc(), LedgerTransaction.transaction_number.asc())
            .all()
        )


class ScheduleRepository:
    """Repository for obligation schedules"""

    def __init__(self, db: Session):
        self.db = db

    def create_schedule(self, **fields) -> ObligationSchedule:
        schedule = ObligationSchedule(**fields)
        self.db.add(schedule)
        self.db.flush()
        return schedule

    def get_schedule(self, schedule_id: uuid.UUID) -> Optional[ObligationSchedule]:
        return self.db.get(ObligationSchedule, schedule_id)

    def get_schedule_for_update(self, schedule_id: uuid.UUID) -> Optional[ObligationSchedule]:
        """Lock the row and reload it so the caller sees the committed state"""
        return (
            self.db.query(ObligationSchedule)
            .filter(ObligationSchedule.id == schedule_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def list_schedules(
        self,
        counterparty: Optional[CounterpartyRef] = None,
        quote_id: Optional[uuid.UUID] = None,
    ) -> List[ObligationSchedule]:
        query = self.db.query(ObligationSchedule).filter(*_counterparty_filter(ObligationSchedule, counterparty))
        if quote_id:
            query = query.filter(ObligationSchedule.quote_id == quote_id)
        return query.order_by(ObligationSchedule.due_date.asc()).all()

    def list_unpaid(
        self,
        currency: Optional[Currency] = None,
        counterparty: Optional[CounterpartyRef] = None,
    ) -> List[ObligationSchedule]:
        """Non-cancelled schedules with something left to pay"""
        query = (
            self.db.query(ObligationSchedule)
            .filter(ObligationSchedule.cancelled_at.is_(None))
            .filter(ObligationSchedule.paid_amount < ObligationSchedule.amount)
            .filter(*_counterparty_filter(ObligationSchedule, counterparty))
        )
        if currency:
            query = query.filter(ObligationSchedule.currency == currency)
        return query.order_by(ObligationSchedule.due_date.asc()).all()

    def quote_has_schedules(self, quote_id: uuid.UUID) -> bool:
        return self.db.query(
            self.db.query(ObligationSchedule).filter(ObligationSchedule.quote_id == quote_id).exists()
        ).scalar()

    def delete_schedule(self, schedule: ObligationSchedule) -> None:
        self.db.delete(schedule)
        self.db.flush()


class PaymentRepository:
    """Repository for payments"""

    def __init__(self, db: Session):
        self.db = db

    def create_payment(self, **fields) -> Payment:
        payment = Payment(**fields)
        self.db.add(payment)
        self.db.flush()
        return payment

    def get_payment(self, payment_id: uuid.UUID) -> Optional[Payment]:
        return self.db.get(Payment, payment_id)

    def get_payment_for_update(self, payment_id: uuid.UUID) -> Optional[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.id == payment_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def find_similar(
        self,
        counterparty: Optional[CounterpartyRef],
        amount_min: int,
        amount_max: int,
        date_min: date,
        date_max: date,
    ) -> Optional[Payment]:
        """Most recent non-rejected payment with a close amount and date"""
        return (
            self.db.query(Payment)
            .filter(Payment.amount.between(amount_min, amount_max))
            .filter(Payment.payment_date.between(date_min, date_max))
            .filter(Payment.status != PaymentStatus.REJECTED)
            .filter(*_counterparty_filter(Payment, counterparty))
            .order_by(Payment.created_at.desc())
            .first()
        )


class AllocationRepository:
    """Repository for payment allocations (insert-only)"""

    def __init__(self, db: Session):
        self.db = db

    def create_allocation(
        self,
        payment_id: uuid.UUID,
        schedule_id: uuid.UUID,
        amount: int,
        currency: Currency,
    ) -> PaymentAllocation:
        allocation = PaymentAllocation(
            payment_id=payment_id,
            schedule_id=schedule_id,
            amount=amount,
            currency=currency,
        )
        self.db.add(allocation)
        return allocation

    def total_for_payment(self, payment_id: uuid.UUID) -> int:
        return (
            self.db.query(func.coalesce(func.sum(PaymentAllocation.amount), 0))
            .filter(PaymentAllocation.payment_id == payment_id)
            .scalar()
        )

    def total_for_schedule(self, schedule_id: uuid.UUID) -> int:
        return (
            self.db.query(func.coalesce(func.sum(PaymentAllocation.amount), 0))
            .filter(PaymentAllocation.schedule_id == schedule_id)
            .scalar()
        )

    def currencies_for_schedule(self, schedule_id: uuid.UUID) -> List[Currency]:
        rows = (
            self.db.query(PaymentAllocation.currency)
            .filter(PaymentAllocation.schedule_id == schedule_id)
            .distinct()
            .all()
        )
        return [Currency(r[0]) for r in rows]

    def schedule_has_allocations(self, schedule_id: uuid.UUID) -> bool:
        return self.db.query(
            self.db.query(PaymentAllocation).filter(PaymentAllocation.schedule_id == schedule_id).exists()
        ).scalar()

    def list_for_payment(self, payment_id: uuid.UUID) -> List[PaymentAllocation]:
        return (
            self.db.query(PaymentAllocation)
            .filter(PaymentAllocation.payment_id == payment_id)
            .order_by(PaymentAllocation.created_at.asc())
            .all()
        )
