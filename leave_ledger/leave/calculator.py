"""Working-day calculator — chargeable days for a leave span.

Pure functions only: the caller supplies the region's holiday snapshot, so
a preview and the later submission agree as long as the calendar is unchanged.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import AbstractSet, Iterator

from leave_ledger.common.constants import HALF_DAY, DayType
from leave_ledger.common.exceptions import InvalidRange

WEEKEND_DAYS = frozenset({5, 6})  # Saturday, Sunday


def iter_dates(start_date: date, end_date: date) -> Iterator[date]:
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def is_working_day(day: date, holidays: AbstractSet[date]) -> bool:
    return day.weekday() not in WEEKEND_DAYS and day not in holidays


def classify_days(
    start_date: date,
    end_date: date,
    holidays: AbstractSet[date],
    start_day_type: DayType = DayType.FULL,
    end_day_type: DayType = DayType.FULL,
) -> dict[str, str]:
    """Per-date breakdown for previews: ``{"2025-11-18": "FULL", ...}``."""
    if end_date < start_date:
        raise InvalidRange(start_date, end_date)

    details: dict[str, str] = {}
    for day in iter_dates(start_date, end_date):
        if day.weekday() in WEEKEND_DAYS:
            details[day.isoformat()] = "WEEKEND"
        elif day in holidays:
            details[day.isoformat()] = "HOLIDAY"
        elif day == start_date and start_day_type != DayType.FULL:
            details[day.isoformat()] = start_day_type.value
        elif day == end_date and end_day_type != DayType.FULL:
            details[day.isoformat()] = end_day_type.value
        else:
            details[day.isoformat()] = DayType.FULL.value
    return details


def compute_chargeable_days(
    start_date: date,
    end_date: date,
    holidays: AbstractSet[date],
    start_day_type: DayType = DayType.FULL,
    end_day_type: DayType = DayType.FULL,
) -> Decimal:
    """Count chargeable days in the inclusive span.

    Weekends and *holidays* count 0, working days count 1, and a half-day
    flag on the start or end date makes that date count 0.5. A single-day
    span with either flag set is exactly 0.5; whether that day is a working
    day is for the caller to validate.

    Raises:
        InvalidRange: if ``end_date < start_date``.
    """
    if end_date < start_date:
        raise InvalidRange(start_date, end_date)

    if start_date == end_date and (
        start_day_type != DayType.FULL or end_day_type != DayType.FULL
    ):
        return HALF_DAY

    total = Decimal("0")
    for day in iter_dates(start_date, end_date):
        if not is_working_day(day, holidays):
            continue
        if day == start_date and start_day_type != DayType.FULL:
            total += HALF_DAY
        elif day == end_date and end_day_type != DayType.FULL:
            total += HALF_DAY
        else:
            total += Decimal("1")
    return total
