"""
Reporting period boundaries.

Periods run from the 15th of one month to the 15th of the next, half-open:
``[start, end)``. A period is named after the month of its end date, so
``[2025-07-15, 2025-08-15)`` is "August 2025".

Pure functions, no database access.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

CYCLE_DAY = 15

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


@dataclass(frozen=True)
class PeriodBounds:
    start: date
    end: date
    name: str

    def to_dict(self) -> dict:
        return {
            "startDate": self.start.isoformat(),
            "endDate": self.end.isoformat(),
            "name": self.name,
        }


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def period_name(end: date) -> str:
    """``"{Month} {Year}"`` of the end boundary."""
    return f"{MONTH_NAMES[end.month - 1]} {end.year}"


def period_for_date(on: date) -> PeriodBounds:
    """Bounds of the period containing ``on``.

    The 15th itself opens a new period.
    """
    if on.day >= CYCLE_DAY:
        start = date(on.year, on.month, CYCLE_DAY)
        end = date(*_shift_month(on.year, on.month, 1), CYCLE_DAY)
    else:
        start = date(*_shift_month(on.year, on.month, -1), CYCLE_DAY)
        end = date(on.year, on.month, CYCLE_DAY)
    return PeriodBounds(start=start, end=end, name=period_name(end))


def period_after(end: date) -> PeriodBounds:
    """Bounds of the period that follows a period ending on ``end``."""
    start = end
    next_end = date(*_shift_month(start.year, start.month, 1), CYCLE_DAY)
    return PeriodBounds(start=start, end=next_end, name=period_name(next_end))
