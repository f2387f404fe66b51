"""Validation service - business-rule checks run before money moves.

Read-only: every method looks things up and reports, nothing is written.
"""

import uuid
from typing import Optional

from sqlalchemy.orm import Session

from performup_ledger.config import settings
from performup_ledger.domain import alerts as rules
from performup_ledger.domain.exceptions import CurrencyMismatchError, InactiveAccountError, NotFoundError
from performup_ledger.domain.models import Currency, CounterpartyRef, PaymentInput, ValidationReport
from performup_ledger.infrastructure.database.models import MoneyAccount, Payment
from performup_ledger.infrastructure.database.repositories import (
    AccountRepository,
    CounterpartyRepository,
    PaymentRepository,
)
from performup_ledger.utils.date_utils import date_window
from performup_ledger.utils.money import is_minor_units


class ValidationService:
    """Pre-commit checks for payments, transfers and account usage"""

    def __init__(self, db: Session):
        self.accounts = AccountRepository(db)
        self.counterparties = CounterpartyRepository(db)
        self.payments = PaymentRepository(db)

    def validate_payment(self, data: PaymentInput) -> ValidationReport:
        """
        Run every payment rule and collect alerts.

        ERROR alerts block the payment; WARNING alerts are informational.
        Settling (auto_validate) additionally requires a bank account and a counterparty,
        because the journal entry needs both.
        """
        report = ValidationReport()
        report.alerts += rules.amount_alerts(data.amount)
        report.alerts += rules.currency_alerts(data.currency)

        directory_entry = self.counterparties.get(data.counterparty) if data.counterparty else None
        report.alerts += rules.counterparty_alerts(data.counterparty, data.extra_counterparties, directory_entry)
        if data.counterparty is None and not data.extra_counterparties:
            report.alerts += rules.missing_counterparty_alerts(data.auto_validate)

        account = self.accounts.get_account(data.bank_account_id) if data.bank_account_id else None
        report.alerts += rules.account_alerts(data.bank_account_id, account, data.currency, data.auto_validate)

        report.alerts += rules.allocation_alerts(data.amount, data.allocations)
        report.alerts += rules.large_amount_alert(data.amount, data.currency, settings.large_payment_threshold_cents)

        if is_minor_units(data.amount) and data.amount > 0 and data.payment_date:
            duplicate = self.detect_duplicate_payment(data.counterparty, data.amount, data.payment_date)
            report.alerts += rules.duplicate_alert(duplicate)

        return report

    def validate_transfer(
        self,
        source_account_id: uuid.UUID,
        destination_account_id: uuid.UUID,
        amount: int,
        currency: Currency,
    ) -> ValidationReport:
        report = ValidationReport()
        report.alerts += rules.amount_alerts(amount)
        report.alerts += rules.currency_alerts(currency)
        for account_id in (source_account_id, destination_account_id):
            account = self.accounts.get_account(account_id)
            report.alerts += rules.account_alerts(account_id, account, currency, require_account=True)
        report.alerts += rules.large_amount_alert(
            amount, currency, settings.large_transfer_threshold_cents, code="LARGE_TRANSFER"
        )
        return report

    def validate_expense(
        self,
        source_account_id: uuid.UUID,
        amount: int,
        currency: Currency,
        supplier: Optional[str] = None,
    ) -> ValidationReport:
        report = ValidationReport()
        report.alerts += self._outflow_alerts(source_account_id, amount, currency)
        report.alerts += rules.expense_alerts(amount, currency, supplier, settings.large_expense_threshold_cents)
        return report

    def validate_staff_payment(
        self,
        source_account_id: uuid.UUID,
        counterparty: Optional[CounterpartyRef],
        amount: int,
        currency: Currency,
        hours_worked=None,
    ) -> ValidationReport:
        """Mission payout checks; the mentor or professor must be known to the directory"""
        report = ValidationReport()
        report.alerts += self._outflow_alerts(source_account_id, amount, currency)
        if counterparty is not None:
            report.alerts += rules.counterparty_alerts(counterparty, [], self.counterparties.get(counterparty))
        report.alerts += rules.mission_alerts(amount, currency, hours_worked, settings.large_mission_threshold_cents)
        return report

    def _outflow_alerts(self, source_account_id: uuid.UUID, amount: int, currency: Currency):
        alerts = rules.amount_alerts(amount) + rules.currency_alerts(currency)
        account = self.accounts.get_account(source_account_id)
        alerts += rules.account_alerts(source_account_id, account, currency, require_account=True)
        return alerts

    def detect_duplicate_payment(
        self,
        counterparty: Optional[CounterpartyRef],
        amount: int,
        payment_date,
    ) -> Optional[Payment]:
        """
        Find a likely duplicate: same counterparty, amount within the configured
        tolerance, payment date within the configured window.
        """
        amount_min, amount_max = rules.duplicate_amount_bounds(amount, settings.duplicate_amount_tolerance_pct)
        date_min, date_max = date_window(payment_date, settings.duplicate_window_days)
        return self.payments.find_similar(counterparty, amount_min, amount_max, date_min, date_max)

    def ensure_account_usable(self, account_id: uuid.UUID, currency: Currency) -> MoneyAccount:
        """
        Raises:
            NotFoundError: account does not exist
            InactiveAccountError: account is deactivated
            CurrencyMismatchError: account holds another currency
        """
        account = self.accounts.get_account(account_id)
        if account is None:
            raise NotFoundError("Account", account_id)
        if not account.is_active:
            raise InactiveAccountError(f'Account "{account.account_name}" is inactive', account_id=str(account_id))
        if Currency(account.currency) != Currency(currency):
            raise CurrencyMismatchError(
                f'Account "{account.account_name}" currency ({Currency(account.currency).value}) '
                f"does not match expected currency ({Currency(currency).value})",
                account_id=str(account_id),
            )
        return account
