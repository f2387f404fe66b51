"""Minor-unit money helpers. Amounts are always ints."""

from typing import Union

from performup_ledger.domain.exceptions import (
    CurrencyMismatchError,
    InvalidAmountError,
    UnsupportedCurrencyError,
)
from performup_ledger.domain.models import Currency


def is_minor_units(value: object) -> bool:
    """True for a plain int (bool excluded)"""
    return isinstance(value, int) and not isinstance(value, bool)


def require_positive_amount(amount: object, field_name: str = "amount") -> int:
    if not is_minor_units(amount) or amount <= 0:
        raise InvalidAmountError(f"{field_name} must be a positive integer in minor units (got: {amount!r})")
    return amount


def require_currency(value: Union[str, Currency]) -> Currency:
    try:
        return Currency(value)
    except ValueError:
        supported = ", ".join(c.value for c in Currency)
        raise UnsupportedCurrencyError(
            f'Currency "{value}" is not supported. Supported currencies: {supported}'
        ) from None


def assert_same_currency(expected: Currency, actual: Currency, context: str) -> None:
    if Currency(expected) != Currency(actual):
        raise CurrencyMismatchError(
            f"{context}: currency {Currency(actual).value} does not match {Currency(expected).value}",
            expected=Currency(expected).value,
            actual=Currency(actual).value,
        )


def format_major(amount_cents: int) -> str:
    """12345 -> '123.45'"""
    sign = "-" if amount_cents < 0 else ""
    major, minor = divmod(abs(amount_cents), 100)
    return f"{sign}{major}.{minor:02d}"


def format_amount(amount_cents: int, currency: Currency) -> str:
    """12345, EUR -> '123.45 EUR'"""
    return f"{format_major(amount_cents)} {Currency(currency).value}"
