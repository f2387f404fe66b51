"""Installment plan generation and validation for quote schedules"""

from datetime import date, timedelta
from typing import List

from performup_ledger.domain.exceptions import InvalidAmountError, ScheduleTotalMismatchError
from performup_ledger.domain.models import Currency, Installment
from performup_ledger.utils.money import is_minor_units, require_currency


def generate_installment_plan(
    amount_cents: int,
    num_installments: int = 4,
    interval_days: int = 30,
    start_date: date | None = None,
    currency: Currency | None = None,
) -> List[Installment]:
    """
    Split a quote total into equal installments.

    Requirements:
    - num_installments equal installments, interval_days apart
    - Last installment absorbs rounding remainder so the plan sums exactly to the total

    Args:
        amount_cents: Total amount to split into installments
        num_installments: Number of payments (default 4)
        interval_days: Days between payments (default 30)
        start_date: First due date (default: today + interval_days)
        currency: Expected settlement currency for every installment

    Returns:
        List of Installment objects with due dates and amounts

    Example:
        900.02 EUR over 3 -> [300.00, 300.00, 300.02]
    """
    if amount_cents <= 0 or num_installments <= 0:
        return []

    if start_date is None:
        start_date = date.today() + timedelta(days=interval_days)

    base_amount = amount_cents // num_installments
    remainder = amount_cents % num_installments

    installments = []
    for i in range(num_installments):
        due_date = start_date + timedelta(days=i * interval_days)

        # Last installment absorbs remainder to ensure exact total
        amount = base_amount + (remainder if i == num_installments - 1 else 0)

        installments.append(Installment(due_date=due_date, amount_cents=amount, currency=currency))

    return installments


def validate_installment_plan(installments: List[Installment], quote_total_cents: int) -> None:
    """
    Check a submitted plan before any schedule is written.

    Raises:
        InvalidAmountError: empty plan, or an installment amount that is not a positive integer
        UnsupportedCurrencyError: installment currency outside the supported set
        ScheduleTotalMismatchError: amounts do not sum exactly to the quote total
    """
    if not installments:
        raise InvalidAmountError("At least one installment is required")

    for inst in installments:
        if not is_minor_units(inst.amount_cents) or inst.amount_cents <= 0:
            raise InvalidAmountError(
                f"Each installment must have a positive integer amount (got: {inst.amount_cents!r})"
            )
        if inst.due_date is None:
            raise InvalidAmountError("Each installment must have a due date")
        if inst.currency is not None:
            require_currency(inst.currency)

    total = sum(inst.amount_cents for inst in installments)
    if total != quote_total_cents:
        raise ScheduleTotalMismatchError(
            f"Installments total ({total}) does not match quote total ({quote_total_cents})",
            installments_total=total,
            quote_total=quote_total_cents,
        )
