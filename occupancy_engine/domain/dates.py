# occupancy_engine/domain/dates.py
from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def as_date(v: Any) -> Optional[date]:
    if v is None:
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    try:
        return date.fromisoformat(str(v))
    except ValueError:
        return None


def add_months(d: date, months: int) -> date:
    """
    Calendar-month arithmetic.

    The day of month is kept and clipped to the target month's last day,
    so Jan 31 + 1 month is Feb 28 (Feb 29 in leap years).
    """
    total = d.year * 12 + (d.month - 1) + int(months)
    y, m = divmod(total, 12)
    m += 1
    last_day = calendar.monthrange(y, m)[1]
    return date(y, m, min(d.day, last_day))


def month_end(d: date) -> date:
    return date(d.year, d.month, calendar.monthrange(d.year, d.month)[1])


def overlaps(existing_start: date, existing_end: Optional[date], start: date, end: date) -> bool:
    """
    Half-open overlap rule, left-closed / right-open.

    An existing record overlaps the query [start, end) iff
    existing_start < end and (existing_end is open or existing_end > start).
    A record ending exactly on `start` does not conflict.
    """
    if existing_start >= end:
        return False
    return existing_end is None or existing_end > start


def days_between(a: date, b: date) -> int:
    """b - a in whole days (negative when b is before a)."""
    return b.toordinal() - a.toordinal()


def plus_days(d: date, days: int) -> date:
    return d + timedelta(days=int(days))
