"""
Working-day arithmetic: weekends, exceptions and the Sunday=0 convention.
"""

from datetime import date

import pytest

from prologic.exceptions import InvalidCalendarError
from prologic.services.calendar import (
    CalendarException,
    WorkCalendar,
    add_work_days,
    calc_work_days,
    calc_work_days_difference,
    format_date,
    is_working_day,
    latest_working_day,
    parse_date,
    weekday_index,
)

MON_FRI = WorkCalendar()


def holidays(*days: date) -> WorkCalendar:
    return WorkCalendar(exceptions={d: CalendarException(d, False, "Holiday") for d in days})


class TestWorkingDay:

    def test_weekdays_and_weekends(self):
        assert is_working_day(date(2024, 1, 1), MON_FRI)  # Monday
        assert is_working_day(date(2024, 1, 5), MON_FRI)  # Friday
        assert not is_working_day(date(2024, 1, 6), MON_FRI)  # Saturday
        assert not is_working_day(date(2024, 1, 7), MON_FRI)  # Sunday

    def test_sunday_is_index_zero(self):
        assert weekday_index(date(2024, 1, 7)) == 0
        assert weekday_index(date(2024, 1, 6)) == 6
        sundays_only = WorkCalendar(working_days=frozenset({0}))
        assert sundays_only.is_working_day(date(2024, 1, 7))
        assert not sundays_only.is_working_day(date(2024, 1, 8))

    def test_exception_overrides_weekday_both_ways(self):
        calendar = WorkCalendar(exceptions={
            date(2024, 1, 1): CalendarException(date(2024, 1, 1), False, "New Year"),
            date(2024, 1, 6): CalendarException(date(2024, 1, 6), True, "Catch-up Saturday"),
        })
        assert not calendar.is_working_day(date(2024, 1, 1))
        assert calendar.is_working_day(date(2024, 1, 6))


class TestAddWorkDays:

    def test_forward_over_weekend(self):
        # Friday + 5 working days -> next Friday
        assert add_work_days(date(2025, 1, 3), 5, MON_FRI) == date(2025, 1, 10)

    def test_backward_over_weekend(self):
        assert add_work_days(date(2025, 1, 6), -1, MON_FRI) == date(2025, 1, 3)

    def test_zero_normalizes_forward(self):
        assert add_work_days(date(2025, 1, 4), 0, MON_FRI) == date(2025, 1, 6)
        assert add_work_days(date(2025, 1, 6), 0, MON_FRI) == date(2025, 1, 6)

    def test_skips_holidays(self):
        calendar = holidays(date(2024, 1, 2))
        assert add_work_days(date(2024, 1, 1), 1, calendar) == date(2024, 1, 3)

    def test_result_is_always_a_working_day(self):
        start = date(2024, 3, 1)
        for n in range(-15, 16):
            assert MON_FRI.is_working_day(add_work_days(start, n, MON_FRI))


class TestCalcWorkDays:

    def test_inclusive_count(self):
        assert calc_work_days(date(2024, 1, 1), date(2024, 1, 5), MON_FRI) == 5
        assert calc_work_days(date(2024, 1, 1), date(2024, 1, 8), MON_FRI) == 6
        assert calc_work_days(date(2024, 1, 3), date(2024, 1, 3), MON_FRI) == 1

    def test_weekend_only_range_is_zero(self):
        assert calc_work_days(date(2024, 1, 6), date(2024, 1, 7), MON_FRI) == 0

    def test_end_before_start_is_zero(self):
        assert calc_work_days(date(2024, 1, 5), date(2024, 1, 1), MON_FRI) == 0

    def test_add_and_count_agree(self):
        start = date(2024, 1, 1)
        for duration in range(1, 20):
            end = add_work_days(start, duration - 1, MON_FRI)
            assert calc_work_days(start, end, MON_FRI) == duration


class TestDifference:

    def test_signed_difference(self):
        assert calc_work_days_difference(date(2024, 1, 3), date(2024, 1, 3), MON_FRI) == 0
        assert calc_work_days_difference(date(2024, 1, 3), date(2024, 1, 4), MON_FRI) == 1
        assert calc_work_days_difference(date(2024, 1, 5), date(2024, 1, 8), MON_FRI) == 1
        assert calc_work_days_difference(date(2024, 1, 8), date(2024, 1, 5), MON_FRI) == -1
        assert calc_work_days_difference(date(2024, 1, 1), date(2024, 1, 12), MON_FRI) == 9

    def test_latest_working_day(self):
        assert latest_working_day(date(2024, 1, 7), MON_FRI) == date(2024, 1, 5)
        assert latest_working_day(date(2024, 1, 8), MON_FRI) == date(2024, 1, 8)


class TestCalendarConstruction:

    def test_calendar_without_working_days_is_rejected(self):
        with pytest.raises(InvalidCalendarError):
            WorkCalendar(working_days=frozenset())

    def test_working_exceptions_alone_are_rejected(self):
        day = date(2024, 1, 2)
        with pytest.raises(InvalidCalendarError):
            WorkCalendar(
                working_days=frozenset(),
                exceptions={day: CalendarException(day, True, "")},
            )

    def test_working_saturday_exception_on_top_of_weekdays(self):
        day = date(2024, 1, 6)
        calendar = WorkCalendar(exceptions={day: CalendarException(day, True, "Catch-up")})
        assert calendar.is_working_day(day)
        assert add_work_days(date(2024, 1, 5), 1, calendar) == day

    def test_from_dict(self):
        calendar = WorkCalendar.from_dict({
            "workingDays": [1, 2, 3, 4],
            "exceptions": {
                "2024-01-01": "New Year",
                "2024-01-06": {"working": True, "description": "Saturday shift"},
            },
        })
        assert not calendar.is_working_day(date(2024, 1, 5))  # Friday off
        assert not calendar.is_working_day(date(2024, 1, 1))
        assert calendar.is_working_day(date(2024, 1, 6))
        assert calendar.exceptions[date(2024, 1, 1)].description == "New Year"


class TestDateStrings:

    def test_parse_strict_iso(self):
        assert parse_date("2024-02-01") == date(2024, 2, 1)
        assert parse_date(date(2024, 2, 1)) == date(2024, 2, 1)
        with pytest.raises(ValueError):
            parse_date("2024-2-1")
        with pytest.raises(ValueError):
            parse_date("02/01/2024")

    def test_format(self):
        assert format_date(date(2024, 2, 1)) == "2024-02-01"
        assert format_date(None) is None
