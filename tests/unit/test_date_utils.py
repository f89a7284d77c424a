"""Unit tests for date helpers"""

from datetime import date
from spend_sentinel.utils.date_utils import (
    add_months,
    generate_date_range,
    month_bounds,
    month_key,
    week_bounds,
    year_bounds,
)


def test_generate_date_range_inclusive():
    days = generate_date_range(date(2026, 10, 30), date(2026, 11, 2))
    assert days == [date(2026, 10, 30), date(2026, 10, 31), date(2026, 11, 1), date(2026, 11, 2)]


def test_generate_date_range_empty_when_reversed():
    assert generate_date_range(date(2026, 10, 2), date(2026, 10, 1)) == []


def test_add_months_leap_year_clamp():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)


def test_add_months_crosses_year():
    assert add_months(date(2026, 11, 15), 3) == date(2027, 2, 15)
    assert add_months(date(2026, 12, 31), 12) == date(2027, 12, 31)


def test_week_bounds_monday_anchored():
    # 2026-10-18 is a Sunday
    assert week_bounds(date(2026, 10, 18)) == (date(2026, 10, 12), date(2026, 10, 18))
    assert week_bounds(date(2026, 10, 12)) == (date(2026, 10, 12), date(2026, 10, 18))


def test_month_and_year_bounds():
    assert month_bounds(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))
    assert year_bounds(date(2026, 6, 1)) == (date(2026, 1, 1), date(2026, 12, 31))


def test_month_key():
    assert month_key(date(2026, 3, 9)) == "2026-03"
