"""Transaction journal - the append-only record every balance is derived from.

There is no update or delete here. A wrong entry is corrected by
reverse_transaction, which appends the equal and opposite movement.
"""

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from performup_ledger.config import settings
from performup_ledger.domain.exceptions import CurrencyMismatchError, InvalidTransactionError, NotFoundError
from performup_ledger.domain.models import (
    CounterpartyKind,
    CounterpartyRef,
    Currency,
    TransactionFilters,
    TransactionInput,
    TransactionType,
)
from performup_ledger.infrastructure.database.models import LedgerTransaction, Payment
from performup_ledger.infrastructure.database.repositories import AccountRepository, JournalRepository
from performup_ledger.services.validation import ValidationService
from performup_ledger.utils.date_utils import Clock, utcnow
from performup_ledger.utils.money import format_amount, is_minor_units, require_currency, require_positive_amount

TRANSACTION_NUMBER_PREFIX = "TXN"


@dataclass
class TransactionPage:
    items: List[LedgerTransaction]
    total: int
    has_more: bool


class JournalService:
    """Records money movements and derives balances from them"""

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.journal = JournalRepository(db)
        self.accounts = AccountRepository(db)
        self.validation = ValidationService(db)

    def next_transaction_number(self) -> str:
        """TXN-YYYY-NNNNN, sequential within the current year"""
        prefix = f"{TRANSACTION_NUMBER_PREFIX}-{self.clock().year}-"
        last = self.journal.last_number_with_prefix(prefix)
        next_number = int(last[len(prefix):]) + 1 if last else 1
        return f"{prefix}{next_number:05d}"

    def record_transaction(self, data: TransactionInput, require_active: bool = True) -> LedgerTransaction:
        """
        Append exactly one journal row.

        Raises:
            InvalidAmountError: amount (or fx fees) not a positive integer
            UnsupportedCurrencyError: unknown currency
            InvalidTransactionError: no account, or source == destination
            NotFoundError / InactiveAccountError / CurrencyMismatchError: account checks
        """
        amount = require_positive_amount(data.amount)
        currency = require_currency(data.currency)

        if data.source_account_id is None and data.destination_account_id is None:
            raise InvalidTransactionError("A transaction needs a source or a destination account")
        if data.source_account_id is not None and data.source_account_id == data.destination_account_id:
            raise InvalidTransactionError("Source and destination accounts must differ")
        if data.fx_fees is not None and (not is_minor_units(data.fx_fees) or data.fx_fees < 0):
            raise InvalidTransactionError(f"FX fees must be a non-negative integer (got: {data.fx_fees!r})")

        for account_id in (data.source_account_id, data.destination_account_id):
            if account_id is None:
                continue
            if require_active:
                self.validation.ensure_account_usable(account_id, currency)
            else:
                self._ensure_account_currency(account_id, currency)

        counterparty_columns = data.counterparty.as_columns() if data.counterparty else {}
        transaction = LedgerTransaction(
            transaction_number=self.next_transaction_number(),
            date=data.date,
            type=TransactionType(data.type),
            amount=amount,
            currency=currency,
            source_account_id=data.source_account_id,
            destination_account_id=data.destination_account_id,
            payment_id=data.payment_id,
            schedule_id=data.schedule_id,
            mission_id=data.mission_id,
            distribution_id=data.distribution_id,
            expense_id=data.expense_id,
            linked_transaction_id=data.linked_transaction_id,
            reversal_of_id=data.reversal_of_id,
            exchange_rate=data.exchange_rate,
            fx_fees=data.fx_fees,
            description=data.description or "",
            notes=data.notes,
            created_by=data.created_by,
            **counterparty_columns,
        )
        return self.journal.append(transaction)

    def compute_balance(self, account_id: uuid.UUID) -> int:
        """sum(inflows) - sum(outflows) over the full journal; never cached"""
        if self.accounts.get_account(account_id) is None:
            raise NotFoundError("Account", account_id)
        return self.journal.inflow_total(account_id) - self.journal.outflow_total(account_id)

    def totals_by_currency(self) -> Dict[Currency, int]:
        """Sum of active account balances, one bucket per currency"""
        totals = {currency: 0 for currency in Currency}
        for account in self.accounts.list_accounts(include_inactive=False):
            totals[Currency(account.currency)] += self.compute_balance(account.id)
        return totals

    def record_payment_transaction(
        self,
        payment: Payment,
        created_by: str,
        schedule_id: Optional[uuid.UUID] = None,
    ) -> LedgerTransaction:
        """
        Journal a validated payment.

        Student payments are money received (destination = bank account);
        mentor and professor payments are money paid out (source = bank account).
        """
        if payment.bank_account_id is None:
            raise InvalidTransactionError("Payment must have a receiving bank account")
        counterparty = payment.counterparty
        if counterparty is None:
            raise InvalidTransactionError("Payment has no counterparty and cannot be journaled as a settlement")

        inbound = counterparty.kind == CounterpartyKind.STUDENT
        shown = format_amount(payment.amount, payment.currency)
        return self.record_transaction(
            TransactionInput(
                date=payment.payment_date,
                type=TransactionType.STUDENT_PAYMENT if inbound else TransactionType.STAFF_PAYMENT,
                amount=payment.amount,
                currency=payment.currency,
                created_by=created_by,
                destination_account_id=payment.bank_account_id if inbound else None,
                source_account_id=None if inbound else payment.bank_account_id,
                payment_id=payment.id,
                schedule_id=schedule_id,
                counterparty=counterparty,
                description=f"Payment received - {shown}" if inbound else f"Payment sent - {shown}",
                notes=payment.notes,
            )
        )

    def record_staff_payment(
        self,
        mission_id: str,
        counterparty: CounterpartyRef,
        amount: int,
        currency: Currency,
        source_account_id: uuid.UUID,
        created_by: str,
        description: str = "",
        on_date: Optional[date] = None,
        hours_worked: Optional[Decimal] = None,
    ) -> LedgerTransaction:
        """Pay a mentor or professor for a validated mission"""
        if counterparty is None or counterparty.kind == CounterpartyKind.STUDENT:
            raise InvalidTransactionError("Staff payments go to mentors or professors")
        return self.record_transaction(
            TransactionInput(
                date=on_date or self.clock().date(),
                type=TransactionType.STAFF_PAYMENT,
                amount=amount,
                currency=currency,
                created_by=created_by,
                source_account_id=source_account_id,
                mission_id=mission_id,
                counterparty=counterparty,
                description=description or f"Mission {mission_id}",
                notes=f"Hours worked: {hours_worked}" if hours_worked else None,
            )
        )

    def record_expense(
        self,
        source_account_id: uuid.UUID,
        amount: int,
        currency: Currency,
        created_by: str,
        category: str = "",
        expense_id: Optional[str] = None,
        supplier: Optional[str] = None,
        description: str = "",
        student_id: Optional[str] = None,
        on_date: Optional[date] = None,
    ) -> LedgerTransaction:
        return self.record_transaction(
            TransactionInput(
                date=on_date or self.clock().date(),
                type=TransactionType.EXPENSE,
                amount=amount,
                currency=currency,
                created_by=created_by,
                source_account_id=source_account_id,
                expense_id=expense_id,
                counterparty=CounterpartyRef.from_ids(student_id=student_id),
                description=description or f"Expense - {category}".rstrip(" -"),
                notes=f"Supplier: {supplier}" if supplier else None,
            )
        )

    def record_distribution(
        self,
        source_account_id: uuid.UUID,
        amount: int,
        currency: Currency,
        created_by: str,
        distribution_id: Optional[str] = None,
        on_date: Optional[date] = None,
    ) -> LedgerTransaction:
        amount = require_positive_amount(amount)
        currency = require_currency(currency)
        return self.record_transaction(
            TransactionInput(
                date=on_date or self.clock().date(),
                type=TransactionType.DISTRIBUTION,
                amount=amount,
                currency=currency,
                created_by=created_by,
                source_account_id=source_account_id,
                distribution_id=distribution_id,
                description=f"Distribution {format_amount(amount, currency)}",
            )
        )

    def record_transfer(
        self,
        source_account_id: uuid.UUID,
        destination_account_id: uuid.UUID,
        amount: int,
        currency: Currency,
        created_by: str,
        notes: Optional[str] = None,
        on_date: Optional[date] = None,
    ) -> LedgerTransaction:
        """Same-currency move between two active accounts"""
        amount = require_positive_amount(amount)
        currency = require_currency(currency)
        return self.record_transaction(
            TransactionInput(
                date=on_date or self.clock().date(),
                type=TransactionType.TRANSFER,
                amount=amount,
                currency=currency,
                created_by=created_by,
                source_account_id=source_account_id,
                destination_account_id=destination_account_id,
                description=f"Transfer {format_amount(amount, currency)}",
                notes=notes,
            )
        )

    def record_fx_exchange(
        self,
        source_account_id: uuid.UUID,
        destination_account_id: uuid.UUID,
        source_amount: int,
        source_currency: Currency,
        destination_amount: int,
        destination_currency: Currency,
        exchange_rate: Decimal,
        created_by: str,
        fx_fees: Optional[int] = None,
        notes: Optional[str] = None,
        on_date: Optional[date] = None,
    ) -> Tuple[LedgerTransaction, LedgerTransaction]:
        """
        Record both legs of a currency exchange.

        The rate is stored for information only; both amounts come from the caller
        and nothing is converted here.
        """
        source_currency = require_currency(source_currency)
        destination_currency = require_currency(destination_currency)
        if source_currency == destination_currency:
            raise InvalidTransactionError("FX exchange requires different currencies; record a transfer instead")
        rate = Decimal(str(exchange_rate))
        if rate <= 0:
            raise InvalidTransactionError(f"Exchange rate must be positive (got: {exchange_rate})")

        on_date = on_date or self.clock().date()
        description = f"Exchange {source_currency.value} -> {destination_currency.value}"

        outgoing = self.record_transaction(
            TransactionInput(
                date=on_date,
                type=TransactionType.FX_EXCHANGE,
                amount=source_amount,
                currency=source_currency,
                created_by=created_by,
                source_account_id=source_account_id,
                exchange_rate=rate,
                fx_fees=fx_fees,
                description=description,
                notes=notes,
            )
        )
        incoming = self.record_transaction(
            TransactionInput(
                date=on_date,
                type=TransactionType.FX_EXCHANGE,
                amount=destination_amount,
                currency=destination_currency,
                created_by=created_by,
                destination_account_id=destination_account_id,
                linked_transaction_id=outgoing.id,
                exchange_rate=rate,
                description=description,
                notes=notes,
            )
        )
        return outgoing, incoming

    def reverse_transaction(self, transaction_id: uuid.UUID, created_by: str, reason: str = "") -> LedgerTransaction:
        """Append the equal and opposite entry; each transaction can be reversed once"""
        original = self.journal.get_transaction(transaction_id)
        if original is None:
            raise NotFoundError("Transaction", transaction_id)
        if original.reversal_of_id is not None:
            raise InvalidTransactionError(f"{original.transaction_number} is itself a reversal")
        if self.journal.find_reversal(original.id) is not None:
            raise InvalidTransactionError(f"{original.transaction_number} has already been reversed")

        return self.record_transaction(
            TransactionInput(
                date=self.clock().date(),
                type=original.type,
                amount=original.amount,
                currency=original.currency,
                created_by=created_by,
                source_account_id=original.destination_account_id,
                destination_account_id=original.source_account_id,
                payment_id=original.payment_id,
                schedule_id=original.schedule_id,
                mission_id=original.mission_id,
                distribution_id=original.distribution_id,
                expense_id=original.expense_id,
                counterparty=CounterpartyRef.from_ids(original.student_id, original.mentor_id, original.professor_id),
                reversal_of_id=original.id,
                description=f"Reversal of {original.transaction_number}",
                notes=reason or None,
            ),
            require_active=False,
        )

    def get_transaction(self, transaction_id: uuid.UUID) -> LedgerTransaction:
        transaction = self.journal.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    def list_transactions(self, filters: TransactionFilters) -> TransactionPage:
        filters.limit = max(1, min(filters.limit, settings.journal_page_max))
        filters.offset = max(0, filters.offset)
        items, total = self.journal.search(filters)
        return TransactionPage(items=items, total=total, has_more=filters.offset + len(items) < total)

    def _ensure_account_currency(self, account_id: uuid.UUID, currency: Currency) -> None:
        account = self.accounts.get_account(account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        if Currency(account.currency) != currency:
            raise CurrencyMismatchError(
                f'Account "{account.account_name}" currency ({Currency(account.currency).value}) '
                f"does not match transaction currency ({currency.value})",
                account_id=str(account_id),
            )
