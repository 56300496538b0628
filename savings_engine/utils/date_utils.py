"""Date manipulation utilities"""

from datetime import date, datetime, timezone
from dateutil.relativedelta import relativedelta


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_date(value: date | datetime) -> date:
    """Collapse a datetime to its calendar date (dates pass through)"""
    if isinstance(value, datetime):
        return value.date()
    return value


def add_months(from_date: date, months: int) -> date:
    """Calendar month arithmetic, clamping to the last day of short months"""
    return from_date + relativedelta(months=months)


def months_between(start: date | datetime, end: date | datetime) -> int:
    """Calendar months from start to end, ignoring the day of month (Jan 31 -> Feb 1 is 1)"""
    start, end = as_date(start), as_date(end)
    return (end.year - start.year) * 12 + (end.month - start.month)


def days_between(start: date | datetime, end: date | datetime) -> int:
    return (as_date(end) - as_date(start)).days


def weeks_between(start: date | datetime, end: date | datetime) -> int:
    """Whole weeks elapsed from start to end"""
    return days_between(start, end) // 7


def same_week(a: date | datetime, b: date | datetime) -> bool:
    """True when both dates fall in the same ISO week"""
    return as_date(a).isocalendar()[:2] == as_date(b).isocalendar()[:2]


def same_month(a: date | datetime, b: date | datetime) -> bool:
    a, b = as_date(a), as_date(b)
    return (a.year, a.month) == (b.year, b.month)
