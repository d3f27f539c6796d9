"""Tests for the 15th-to-15th period boundary calculator.

Coverage:
  1. The 14th belongs to the period ending that month; the 15th opens the next
  2. Year rollover in both directions (December/January)
  3. period_after chains periods without gaps
  4. Names follow the end month
"""

from datetime import date, timedelta

import pytest

from monthly_updates.services import period_calendar
from monthly_updates.services.period_calendar import PeriodBounds


def test_day_before_cycle_day_belongs_to_period_ending_this_month():
    bounds = period_calendar.period_for_date(date(2025, 8, 14))

    assert bounds == PeriodBounds(date(2025, 7, 15), date(2025, 8, 15), "August 2025")


def test_cycle_day_opens_new_period():
    bounds = period_calendar.period_for_date(date(2025, 8, 15))

    assert bounds == PeriodBounds(date(2025, 8, 15), date(2025, 9, 15), "September 2025")


@pytest.mark.parametrize(
    "on, start, end, name",
    [
        (date(2025, 1, 3), date(2024, 12, 15), date(2025, 1, 15), "January 2025"),
        (date(2025, 12, 15), date(2025, 12, 15), date(2026, 1, 15), "January 2026"),
        (date(2025, 12, 31), date(2025, 12, 15), date(2026, 1, 15), "January 2026"),
        (date(2024, 2, 29), date(2024, 2, 15), date(2024, 3, 15), "March 2024"),
    ],
)
def test_period_for_date_across_year_and_month_ends(on, start, end, name):
    bounds = period_calendar.period_for_date(on)

    assert (bounds.start, bounds.end, bounds.name) == (start, end, name)
    assert bounds.start <= on < bounds.end


def test_period_after_starts_where_previous_ended():
    first = period_calendar.period_for_date(date(2025, 11, 20))
    second = period_calendar.period_after(first.end)
    third = period_calendar.period_after(second.end)

    assert second.start == first.end
    assert third.start == second.end
    assert [p.name for p in (first, second, third)] == [
        "December 2025", "January 2026", "February 2026",
    ]


def test_every_day_of_a_year_falls_in_exactly_one_period():
    day = date(2025, 1, 1)
    while day.year == 2025:
        bounds = period_calendar.period_for_date(day)
        assert bounds.start <= day < bounds.end
        assert bounds.start.day == bounds.end.day == period_calendar.CYCLE_DAY
        day += timedelta(days=1)


def test_bounds_to_dict_uses_iso_dates():
    bounds = period_calendar.period_for_date(date(2025, 8, 14))

    assert bounds.to_dict() == {
        "startDate": "2025-07-15",
        "endDate": "2025-08-15",
        "name": "August 2025",
    }
