"""Tests for medication schedule time helpers."""

from datetime import datetime, timezone

import pytest

from saarthi.utils.dates import (
    calculate_end_date,
    current_local_time_string,
    format_date,
    generate_reminder_times,
    is_valid_time,
    parse_duration_days,
    standardize_time_format,
    times_per_day,
)


class TestStandardizeTimeFormat:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("8:30 am", "08:30 am"),
            ("08.30PM", "08:30 pm"),
            ("9:05   a.m.", "09:05 am"),
            ("12:00 pm", "12:00 pm"),
            ("", ""),
        ],
    )
    def test_normalizes(self, raw, expected):
        assert standardize_time_format(raw) == expected

    @pytest.mark.parametrize("raw", ["8:30 am", "12:59 PM", "01.00 am"])
    def test_valid(self, raw):
        assert is_valid_time(raw)

    @pytest.mark.parametrize("raw", ["13:00 pm", "8:75 am", "morning", "0:30 am"])
    def test_invalid(self, raw):
        assert not is_valid_time(raw)


class TestReminderTimes:
    @pytest.mark.parametrize(
        "frequency, count",
        [("daily", 1), ("Twice daily", 2), ("three times a day", 3), ("5 times", 5), ("", 1)],
    )
    def test_times_per_day(self, frequency, count):
        assert times_per_day(frequency) == count

    def test_once_daily(self):
        assert generate_reminder_times("8:00 am", "daily") == ["08:00 am"]

    def test_twice_daily_spreads_twelve_hours(self):
        assert generate_reminder_times("8:00 am", "twice daily") == ["08:00 am", "08:00 pm"]

    def test_three_times_wraps_past_midnight(self):
        assert generate_reminder_times("08:00 am", "three times a day") == [
            "08:00 am",
            "04:00 pm",
            "12:00 am",
        ]

    def test_unparseable_base_time_is_kept(self):
        assert generate_reminder_times("after lunch", "twice daily") == ["after lunch"]


class TestDurations:
    START = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_days(self):
        assert calculate_end_date("7 days", self.START) == datetime(2026, 1, 8, tzinfo=timezone.utc)

    def test_integer_days(self):
        assert calculate_end_date(10, self.START) == datetime(2026, 1, 11, tzinfo=timezone.utc)

    @pytest.mark.parametrize("duration", [None, "", "ongoing", "forever"])
    def test_open_ended(self, duration):
        assert calculate_end_date(duration, self.START) is None

    def test_parse_duration_days(self):
        assert parse_duration_days("14 days") == 14
        assert parse_duration_days("ongoing") is None


class TestFormatting:
    def test_current_local_time_uses_configured_timezone(self):
        # 03:30 UTC is 09:00 in Asia/Kolkata
        now = datetime(2026, 1, 15, 3, 30, tzinfo=timezone.utc)
        assert current_local_time_string(now) == "09:00 am"

    def test_format_date(self):
        assert format_date(datetime(2025, 1, 25)) == "25 Jan 2025"
