"""Unit tests for the calendar helpers."""

from datetime import date, datetime

import pytest

from tickler.core.dates import (
    add_days,
    clamp_month_day,
    days_between,
    days_in_month,
    nth_weekday_of_month,
    parse_date,
    parse_optional_date,
    parse_timestamp,
    to_date_str,
    week_sunday,
    weekday_index,
)
from tickler.core.errors import InvalidDateError


@pytest.mark.unit
class TestMonthArithmetic:
    def test_days_in_month_handles_leap_years(self):
        assert days_in_month(2024, 1) == 29
        assert days_in_month(2023, 1) == 28
        assert days_in_month(2024, 3) == 30

    def test_month_index_rolls_into_next_year(self):
        assert days_in_month(2024, 12) == 31
        assert clamp_month_day(2024, 13, 29) == date(2025, 2, 28)

    def test_negative_month_index_rolls_into_previous_year(self):
        assert clamp_month_day(2024, -1, 15) == date(2023, 12, 15)

    def test_clamp_month_day_clamps_to_month_end(self):
        assert clamp_month_day(2024, 3, 31) == date(2024, 4, 30)
        assert clamp_month_day(2024, 1, 31) == date(2024, 2, 29)
        assert clamp_month_day(2023, 1, 31) == date(2023, 2, 28)

    def test_clamp_month_day_keeps_valid_day(self):
        assert clamp_month_day(2024, 0, 15) == date(2024, 1, 15)


@pytest.mark.unit
class TestWeekdays:
    def test_weekday_index_starts_on_sunday(self):
        assert weekday_index(date(2024, 3, 10)) == 0
        assert weekday_index(date(2024, 3, 13)) == 3
        assert weekday_index(date(2024, 3, 16)) == 6

    def test_week_sunday(self):
        assert week_sunday(date(2024, 3, 13)) == date(2024, 3, 10)
        assert week_sunday(date(2024, 3, 10)) == date(2024, 3, 10)

    def test_first_monday(self):
        assert nth_weekday_of_month(2024, 2, 1, 1) == date(2024, 3, 4)

    def test_last_friday(self):
        assert nth_weekday_of_month(2024, 2, -1, 5) == date(2024, 3, 29)
        assert nth_weekday_of_month(2024, 3, -1, 5) == date(2024, 4, 26)

    def test_fifth_weekday_that_exists(self):
        assert nth_weekday_of_month(2024, 2, 5, 5) == date(2024, 3, 29)

    def test_missing_fifth_weekday_falls_back_to_fourth(self):
        assert nth_weekday_of_month(2024, 1, 5, 1) == date(2024, 2, 26)


@pytest.mark.unit
class TestDayArithmetic:
    def test_add_days_crosses_month(self):
        assert add_days(date(2024, 2, 28), 2) == date(2024, 3, 1)
        assert add_days(date(2024, 3, 1), -1) == date(2024, 2, 29)

    def test_days_between_is_signed(self):
        assert days_between(date(2024, 3, 1), date(2024, 3, 13)) == 12
        assert days_between(date(2024, 3, 13), date(2024, 3, 1)) == -12

    def test_to_date_str(self):
        assert to_date_str(date(2024, 1, 5)) == "2024-01-05"


@pytest.mark.unit
class TestParsing:
    def test_parse_iso_date(self):
        assert parse_date("2024-03-13") == date(2024, 3, 13)

    def test_parse_keeps_calendar_part_of_timestamp(self):
        assert parse_date("2024-03-13T23:30:00Z") == date(2024, 3, 13)
        assert parse_date(datetime(2024, 3, 13, 23, 30)) == date(2024, 3, 13)

    def test_parse_loose_forms(self):
        assert parse_date("2024-1-5") == date(2024, 1, 5)
        assert parse_date("2024/01/05") == date(2024, 1, 5)

    @pytest.mark.parametrize("value", ["garbage", "2024-02-30", "", "   ", None])
    def test_parse_rejects_invalid(self, value):
        with pytest.raises(InvalidDateError):
            parse_date(value)

    def test_invalid_date_is_a_value_error(self):
        with pytest.raises(ValueError, match="Not a date"):
            parse_date("13/13/13")

    def test_parse_optional_date(self):
        assert parse_optional_date(None) is None
        assert parse_optional_date("") is None
        assert parse_optional_date("2024-03-13") == date(2024, 3, 13)

    def test_parse_timestamp_keeps_given_offset(self):
        stamp = parse_timestamp("2024-03-13T10:00:00Z")
        assert stamp.hour == 10
        assert stamp.utcoffset() is not None

    def test_parse_timestamp_from_date(self):
        assert parse_timestamp("2024-03-13") == datetime(2024, 3, 13)
        assert parse_timestamp(date(2024, 3, 13)) == datetime(2024, 3, 13)

    def test_parse_timestamp_rejects_garbage(self):
        with pytest.raises(InvalidDateError):
            parse_timestamp("yesterday")
