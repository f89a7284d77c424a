"""Date manipulation utilities"""

import calendar
from datetime import date, timedelta
from typing import List, Optional, Tuple


def generate_date_range(start: date, end: date) -> List[date]:
    """Generate list of dates from start to end (inclusive)"""
    days = (end - start).days + 1
    return [start + timedelta(days=i) for i in range(days)]


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(from_date: date, months: int, anchor_day: Optional[int] = None) -> date:
    """
    Move a date by whole calendar months.

    The day of month (``anchor_day`` or the date's own day) is clamped to the
    target month's length: anchor 31 in a 30-day month becomes the 30th.
    """
    month_index = from_date.month - 1 + months
    year = from_date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(anchor_day or from_date.day, days_in_month(year, month))
    return date(year, month, day)


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def week_bounds(d: date) -> Tuple[date, date]:
    """Monday-anchored 7-day window containing ``d``"""
    start = d - timedelta(days=d.weekday())
    return start, start + timedelta(days=6)


def month_bounds(d: date) -> Tuple[date, date]:
    return date(d.year, d.month, 1), date(d.year, d.month, days_in_month(d.year, d.month))


def year_bounds(d: date) -> Tuple[date, date]:
    return date(d.year, 1, 1), date(d.year, 12, 31)
