"""Obligation schedule status - a pure function of paid amount, target, due date and now"""

from datetime import date, datetime
from typing import Optional

from performup_ledger.domain.models import ScheduleStatus

STATUS_PRIORITY = {
    ScheduleStatus.OVERDUE: 1,
    ScheduleStatus.PARTIAL: 2,
    ScheduleStatus.PENDING: 3,
}


def derive_status(paid_amount: int, amount: int, due_date: date, now: datetime) -> ScheduleStatus:
    """
    Compute a schedule's status.

    - PAID: paid_amount >= amount
    - OVERDUE: not fully paid and the due date is before today
    - PARTIAL: 0 < paid_amount < amount, not past due
    - PENDING: nothing paid, not past due

    Depends only on its four inputs.
    """
    if paid_amount >= amount:
        return ScheduleStatus.PAID
    if now.date() > due_date:
        return ScheduleStatus.OVERDUE
    if paid_amount > 0:
        return ScheduleStatus.PARTIAL
    return ScheduleStatus.PENDING


def next_paid_date(
    new_status: ScheduleStatus,
    previous_status: Optional[ScheduleStatus],
    previous_paid_date: Optional[datetime],
    now: datetime,
) -> Optional[datetime]:
    """paid_date is stamped on the transition into PAID, kept while PAID, cleared otherwise"""
    if new_status != ScheduleStatus.PAID:
        return None
    if previous_status == ScheduleStatus.PAID and previous_paid_date is not None:
        return previous_paid_date
    return now


def priority_for(status: ScheduleStatus) -> int:
    return STATUS_PRIORITY.get(status, len(STATUS_PRIORITY) + 1)
