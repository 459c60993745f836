"""Unlock policy: which trip days are in range, unlocked, and clickable in the calendar."""

from __future__ import annotations

import calendar
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from dateutil import parser as date_parser

from .clock import ReferenceClock

DisplayedMonth = Tuple[int, int]

# Calendar grid starts on Sunday.
_MONTH_CALENDAR = calendar.Calendar(firstweekday=calendar.SUNDAY)


def coerce_day(value: Any) -> Optional[date]:
    """Return a calendar day for date/datetime/ISO-string input, otherwise None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date_parser.isoparse(text).date()
        except (ValueError, OverflowError):
            return None
    return None


def is_in_range(day: Any, trip_start: Any, trip_end: Any) -> bool:
    candidate = coerce_day(day)
    start = coerce_day(trip_start)
    end = coerce_day(trip_end)
    if candidate is None or start is None or end is None:
        return False
    return start <= candidate <= end


class UnlockPolicy:
    """Fails closed: invalid input is never in range, unlocked, or clickable."""

    def __init__(self, clock: ReferenceClock, trip_start: date, trip_end: date):
        self.clock = clock
        self.trip_start = trip_start
        self.trip_end = trip_end

    def is_in_range(self, day: Any, trip_start: Any = None, trip_end: Any = None) -> bool:
        return is_in_range(
            day,
            self.trip_start if trip_start is None else trip_start,
            self.trip_end if trip_end is None else trip_end,
        )

    def is_unlocked(self, day: Any) -> bool:
        candidate = coerce_day(day)
        if candidate is None:
            return False
        return candidate <= self.clock.reference_day()

    def is_clickable(
        self,
        day: Any,
        trip_start: Any = None,
        trip_end: Any = None,
        displayed_month: Optional[DisplayedMonth] = None,
    ) -> bool:
        candidate = coerce_day(day)
        if candidate is None:
            return False
        if displayed_month is not None and (candidate.year, candidate.month) != tuple(displayed_month):
            return False
        return self.is_in_range(candidate, trip_start, trip_end) and self.is_unlocked(candidate)

    def month_grid(self, year: int, month: int) -> List[List[Dict[str, Any]]]:
        """Return week rows of day cells (adjacent-month filler included) with unlock flags."""
        reference_day = self.clock.reference_day()
        weeks: List[List[Dict[str, Any]]] = []
        for week in _MONTH_CALENDAR.monthdatescalendar(year, month):
            row = []
            for day in week:
                in_month = day.month == month and day.year == year
                in_range = self.is_in_range(day)
                unlocked = day <= reference_day
                row.append(
                    {
                        "date": day,
                        "in_month": in_month,
                        "in_range": in_range,
                        "unlocked": unlocked,
                        "is_reference_day": day == reference_day,
                        "clickable": in_month and in_range and unlocked,
                    }
                )
            weeks.append(row)
        return weeks
