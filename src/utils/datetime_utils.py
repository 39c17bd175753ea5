"""
Date and time helpers built on python-dateutil.

All arithmetic happens on naive datetimes in the local timezone: aware values
are converted with ``astimezone()`` and then stripped, plain dates become local
midnight. This keeps "start of today" and whole-day differences consistent for
values coming from forms (``2026-03-01``), ISO timestamps and ``date`` objects.
"""

import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from dateutil import parser as dateutil_parser
from dateutil.relativedelta import relativedelta

SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400


def to_naive_local(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def parse_date_value(value: Any) -> Optional[datetime]:
    """
    Parse a date-like value into a naive local datetime.

    Accepts ``datetime`` and ``date`` instances, epoch milliseconds and any
    string python-dateutil understands. Returns ``None`` when the value does
    not describe a valid calendar date.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return to_naive_local(value)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
        return to_naive_local(parsed)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = dateutil_parser.parse(text)
        except (ValueError, OverflowError):
            return None
        return to_naive_local(parsed)

    return None


def now_local() -> datetime:
    """Current time as a naive local datetime."""
    return datetime.now()


def start_of_day(moment: datetime) -> datetime:
    return to_naive_local(moment).replace(hour=0, minute=0, second=0, microsecond=0)


def days_until(target: Any, now: datetime) -> Optional[int]:
    """
    Whole days from ``now`` until ``target``, rounded down.

    Negative once the target has passed; ``None`` when ``target`` is not a date.
    """
    target_dt = parse_date_value(target)
    if target_dt is None:
        return None
    delta = target_dt - to_naive_local(now)
    return math.floor(delta.total_seconds() / SECONDS_PER_DAY)


def hours_since(earlier: Any, now: datetime) -> Optional[float]:
    """Hours elapsed between ``earlier`` and ``now``; ``None`` for unparseable input."""
    earlier_dt = parse_date_value(earlier)
    if earlier_dt is None:
        return None
    return (to_naive_local(now) - earlier_dt).total_seconds() / SECONDS_PER_HOUR


def add_years(moment: datetime, years: int) -> datetime:
    """Calendar-aware year offset (Feb 29 clamps to Feb 28)."""
    return moment + relativedelta(years=years)


def add_days(moment: datetime, days: int) -> datetime:
    return moment + timedelta(days=days)


def date_token(moment: datetime) -> str:
    """``YYYYMMDD`` for identifiers."""
    return to_naive_local(moment).strftime('%Y%m%d')


__all__ = [
    'to_naive_local',
    'parse_date_value',
    'now_local',
    'start_of_day',
    'days_until',
    'hours_since',
    'add_years',
    'add_days',
    'date_token',
]
