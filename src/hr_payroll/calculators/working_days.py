"""Calendar helpers for monthly payroll periods."""

from __future__ import annotations

import calendar
from datetime import date, timedelta

# weekday() values counted as working days for each work-week length
_WORKING_WEEKDAYS: dict[int, frozenset[int]] = {
    5: frozenset(range(0, 5)),  # Monday to Friday
    6: frozenset(range(0, 6)),  # Monday to Saturday
    7: frozenset(range(0, 7)),
}

DEFAULT_WORK_WEEK_DAYS = 5


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return the first and last day of a calendar month."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be between 1 and 12, got {month}")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def count_working_days(
    start: date,
    end: date,
    work_week_days: int | None = DEFAULT_WORK_WEEK_DAYS,
) -> int:
    """Count working days between start and end, both inclusive.

    A falsy work_week_days falls back to the 5-day week.
    """
    weekdays = _WORKING_WEEKDAYS.get(work_week_days or DEFAULT_WORK_WEEK_DAYS)
    if weekdays is None:
        raise ValueError(f"Unsupported work week length: {work_week_days}")

    days = 0
    current = start
    while current <= end:
        if current.weekday() in weekdays:
            days += 1
        current += timedelta(days=1)
    return days
