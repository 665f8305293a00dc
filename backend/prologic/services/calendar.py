"""
Working-day calendar arithmetic.

All CPM date math goes through this module so that weekends and
holidays are skipped consistently:
- is_working_day: weekday pattern, overridden by per-date exceptions
- add_work_days: move N working days forward or backward
- calc_work_days: inclusive count of working days in a range
- calc_work_days_difference: signed distance, used for float and variance

Weekday indices follow the boundary convention 0=Sunday .. 6=Saturday.
"""

import re
from dataclasses import dataclass, field
from datetime import date, timedelta

from prologic.exceptions import InvalidCalendarError

DEFAULT_WORKING_DAYS = frozenset({1, 2, 3, 4, 5})

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class CalendarException:
    """A single date overriding the weekly pattern."""
    date: date
    working: bool = False
    description: str = ""


@dataclass
class WorkCalendar:
    """Weekly working pattern plus date exceptions."""
    working_days: frozenset[int] = DEFAULT_WORKING_DAYS
    exceptions: dict[date, CalendarException] = field(default_factory=dict)

    def __post_init__(self):
        self.working_days = frozenset(self.working_days)
        # Stepping only terminates if some weekday works
        if not self.working_days:
            raise InvalidCalendarError()

    @classmethod
    def from_dict(cls, data: dict) -> "WorkCalendar":
        """Build from the boundary shape {workingDays: [...], exceptions: {...}}."""
        working_days = data.get("workingDays", data.get("working_days", DEFAULT_WORKING_DAYS))
        exceptions = {}
        for key, value in (data.get("exceptions") or {}).items():
            day = parse_date(key)
            if isinstance(value, str):
                # Bare description strings mark holidays
                exceptions[day] = CalendarException(day, False, value)
            else:
                exceptions[day] = CalendarException(
                    day,
                    bool(value.get("working", False)),
                    value.get("description", ""),
                )
        return cls(working_days=frozenset(working_days), exceptions=exceptions)

    def is_working_day(self, d: date) -> bool:
        return is_working_day(d, self)

    def add_work_days(self, d: date, days: int) -> date:
        return add_work_days(d, days, self)

    def calc_work_days(self, start: date, end: date) -> int:
        return calc_work_days(start, end, self)


def weekday_index(d: date) -> int:
    """Weekday with Sunday as 0."""
    return (d.weekday() + 1) % 7


def is_working_day(d: date, calendar: WorkCalendar) -> bool:
    exception = calendar.exceptions.get(d)
    if exception is not None:
        return exception.working
    return weekday_index(d) in calendar.working_days


def _step_to_working_day(d: date, step: timedelta, calendar: WorkCalendar) -> date:
    while not is_working_day(d, calendar):
        d += step
    return d


def add_work_days(d: date, days: int, calendar: WorkCalendar) -> date:
    """
    Move `days` working days from `d`.

    days == 0 normalizes to the first working day on or after `d`.
    Non-working days are skipped while counting, and the result always
    lands on a working day.

    Example (Mon-Fri calendar):
        add_work_days(date(2025, 1, 3), 5, cal)   -> 2025-01-10
        add_work_days(date(2025, 1, 6), -1, cal)  -> 2025-01-03
    """
    if days == 0:
        return _step_to_working_day(d, ONE_DAY, calendar)

    step = ONE_DAY if days > 0 else -ONE_DAY
    remaining = abs(days)
    current = d
    while remaining > 0:
        current += step
        if is_working_day(current, calendar):
            remaining -= 1
    return current


def latest_working_day(d: date, calendar: WorkCalendar) -> date:
    """Last working day on or before `d`."""
    return _step_to_working_day(d, -ONE_DAY, calendar)


def calc_work_days(start: date, end: date, calendar: WorkCalendar) -> int:
    """
    Inclusive count of working days between start and end.

    Returns 0 when end < start: an invalid range, never a duration.
    """
    if end < start:
        return 0
    count = 0
    current = start
    while current <= end:
        if is_working_day(current, calendar):
            count += 1
        current += ONE_DAY
    return count


def calc_work_days_difference(start: date, end: date, calendar: WorkCalendar) -> int:
    """
    Signed working-day distance from start to end.

    Counts working days in (start, end] going forward, or in (end, start]
    going backward as a negative number. Same date -> 0.
    """
    if start == end:
        return 0
    if end > start:
        return calc_work_days(start + ONE_DAY, end, calendar)
    return -calc_work_days(end + ONE_DAY, start, calendar)


def parse_date(value) -> date:
    """Parse a strict YYYY-MM-DD string (date objects pass through)."""
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not ISO_DATE_PATTERN.match(text):
        raise ValueError(f"Invalid date format: {value!r}")
    return date.fromisoformat(text)


def format_date(d: date | None) -> str | None:
    return d.isoformat() if d else None
