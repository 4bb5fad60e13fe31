from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from .entities import InspectionFrequency

SECONDS_PER_DAY = 86400

FREQUENCY_DAYS = {
    InspectionFrequency.DAILY: 1,
    InspectionFrequency.WEEKLY: 7,
    # fixed-width month
    InspectionFrequency.MONTHLY: 30,
}


def compute_next_due(from_time: datetime, frequency: InspectionFrequency) -> datetime:
    days = FREQUENCY_DAYS[InspectionFrequency(frequency)]
    return from_time.replace(microsecond=0) + timedelta(days=days)


def is_due(now: datetime, next_due: Optional[datetime]) -> bool:
    if next_due is None:
        return True
    return now >= next_due


def days_until(now: datetime, next_due: Optional[datetime]) -> int:
    if next_due is None:
        return 0
    seconds = int(next_due.timestamp()) - int(now.timestamp())
    # truncate toward zero, overdue machines report negative days
    if seconds >= 0:
        return seconds // SECONDS_PER_DAY
    return -((-seconds) // SECONDS_PER_DAY)
