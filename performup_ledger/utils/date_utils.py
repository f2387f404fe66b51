"""Date manipulation utilities"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware current time; the default clock for services"""
    return datetime.now(timezone.utc)


def date_window(center: date, days: int) -> tuple[date, date]:
    """Inclusive [center - days, center + days] range"""
    return center - timedelta(days=days), center + timedelta(days=days)
