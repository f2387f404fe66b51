"""Business-rule alerts for payments, transfers, expenses and staff payments.

Each rule takes facts that were already looked up and returns a list of alerts,
so the rules stay pure and the validation service owns all reads.
"""

from typing import Any, List, Optional, Sequence

from performup_ledger.domain.models import (
    Alert,
    AlertLevel,
    AllocationInput,
    Currency,
    CounterpartyRef,
)
from performup_ledger.utils.money import format_amount, is_minor_units


def _error(code: str, message: str, **data: Any) -> Alert:
    return Alert(level=AlertLevel.ERROR, code=code, message=message, data=data)


def _warning(code: str, message: str, **data: Any) -> Alert:
    return Alert(level=AlertLevel.WARNING, code=code, message=message, data=data)


def _info(code: str, message: str, **data: Any) -> Alert:
    return Alert(level=AlertLevel.INFO, code=code, message=message, data=data)


def amount_alerts(amount: object) -> List[Alert]:
    if not is_minor_units(amount) or amount <= 0:
        return [_error("INVALID_AMOUNT", f"Amount must be a positive integer in minor units (got: {amount!r})")]
    return []


def currency_alerts(currency: object) -> List[Alert]:
    try:
        Currency(currency)
    except ValueError:
        supported = ", ".join(c.value for c in Currency)
        return [_error("UNSUPPORTED_CURRENCY", f'Currency "{currency}" is not supported ({supported})')]
    return []


def counterparty_alerts(
    counterparty: Optional[CounterpartyRef],
    extra: Sequence[CounterpartyRef],
    directory_entry: Optional[Any],
) -> List[Alert]:
    """directory_entry is the looked-up counterparty row (None when missing)"""
    if extra:
        return [
            _error(
                "MULTIPLE_COUNTERPARTIES",
                "A payment belongs to exactly one student, mentor or professor",
                counterparties=[f"{c.kind.value}:{c.id}" for c in [counterparty, *extra] if c],
            )
        ]
    if counterparty is None:
        return []
    if directory_entry is None:
        return [
            _error(
                "COUNTERPARTY_NOT_FOUND",
                f"{counterparty.kind.value.title()} {counterparty.id} not found",
                kind=counterparty.kind.value,
                id=counterparty.id,
            )
        ]
    if not directory_entry.is_active:
        return [
            _error(
                "COUNTERPARTY_INACTIVE",
                f"{counterparty.kind.value.title()} {counterparty.id} is inactive",
                kind=counterparty.kind.value,
                id=counterparty.id,
            )
        ]
    return []


def missing_counterparty_alerts(settling: bool) -> List[Alert]:
    message = "Payment has no student, mentor or professor and cannot be journaled as a settlement"
    if settling:
        return [_error("MISSING_COUNTERPARTY", message)]
    return [_warning("MISSING_COUNTERPARTY", message)]


def account_alerts(
    account_id: Optional[Any],
    account: Optional[Any],
    currency: object,
    require_account: bool,
) -> List[Alert]:
    """account is the looked-up MoneyAccount row (None when missing or not supplied)"""
    if account_id is None:
        message = "Payment must have a receiving bank account to be validated"
        if require_account:
            return [_error("MISSING_BANK_ACCOUNT", message)]
        return [_warning("MISSING_BANK_ACCOUNT", message)]

    if account is None:
        return [_error("ACCOUNT_NOT_FOUND", f"Account {account_id} not found", account_id=str(account_id))]

    alerts = []
    if not account.is_active:
        alerts.append(
            _error("ACCOUNT_INACTIVE", f'Account "{account.account_name}" is inactive', account_id=str(account_id))
        )
    if account.currency != currency:
        alerts.append(
            _error(
                "ACCOUNT_CURRENCY_MISMATCH",
                f'Account "{account.account_name}" currency ({Currency(account.currency).value}) '
                f"does not match expected currency ({getattr(currency, 'value', currency)})",
                account_id=str(account_id),
            )
        )
    return alerts


def allocation_alerts(amount: object, allocations: Optional[Sequence[AllocationInput]]) -> List[Alert]:
    if not allocations or not is_minor_units(amount):
        return []
    if any(not is_minor_units(a.amount) or a.amount <= 0 for a in allocations):
        return [_error("INVALID_AMOUNT", "Allocation amounts must be positive integers")]
    total = sum(a.amount for a in allocations)
    if total > amount:
        return [
            _error(
                "ALLOCATION_EXCEEDS_PAYMENT",
                f"Total allocations ({total}) exceed payment amount ({amount})",
                total_allocations=total,
                amount=amount,
            )
        ]
    return []


def large_amount_alert(
    amount: object,
    currency: object,
    threshold: int,
    code: str = "LARGE_AMOUNT",
    level: AlertLevel = AlertLevel.WARNING,
) -> List[Alert]:
    if is_minor_units(amount) and amount > threshold:
        try:
            shown = format_amount(amount, Currency(currency))
        except ValueError:
            shown = str(amount)
        currency = getattr(currency, "value", currency)
        return [Alert(level, code, f"Large amount: {shown}", {"amount": amount, "currency": str(currency)})]
    return []


def expense_alerts(amount: object, currency: object, supplier: Optional[str], threshold: int) -> List[Alert]:
    alerts = large_amount_alert(amount, currency, threshold, code="LARGE_EXPENSE")
    if not supplier:
        alerts.append(_info("NO_SUPPLIER", "Expense has no supplier specified"))
    return alerts


def mission_alerts(amount: object, currency: object, hours_worked: Optional[Any], threshold: int) -> List[Alert]:
    """hours_worked of None or zero counts as not reported"""
    alerts = large_amount_alert(amount, currency, threshold, code="LARGE_MISSION", level=AlertLevel.INFO)
    if not hours_worked:
        alerts.append(_info("NO_HOURS", "Mission has no hours worked specified"))
    return alerts


def duplicate_amount_bounds(amount: int, tolerance_pct: int) -> tuple[int, int]:
    """Integer [floor(amount*(1-p)), ceil(amount*(1+p))] bounds"""
    low = (amount * (100 - tolerance_pct)) // 100
    high = -((-amount * (100 + tolerance_pct)) // 100)
    return low, high


def duplicate_alert(duplicate: Optional[Any]) -> List[Alert]:
    """duplicate is the most recent similar Payment row, if any"""
    if duplicate is None:
        return []
    return [
        _warning(
            "POTENTIAL_DUPLICATE",
            "Potential duplicate payment detected (similar amount and date)",
            duplicate_id=str(duplicate.id),
            duplicate_amount=duplicate.amount,
            duplicate_date=duplicate.payment_date.isoformat(),
        )
    ]
