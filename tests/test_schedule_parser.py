# ============================================================================
# SCHEDULE PARSER TESTS
# ============================================================================
# STATUS: Tests - Schedule text grammar
# PURPOSE: Verify schedule text parses into the expected occurrences
# CREATED: 18 OCT 2026
# ============================================================================
"""
Schedule Parser Tests

All tests use a fixed reference instant (Monday 2015-11-09 15:15:06)
so relative forms (TODAY, FROM NOW, default start dates) are stable.

Covers:
1. Convenience forms (Daily, Weekly, Monthly, Hourly, Weekdays)
2. Day lists, every-N-weeks/months, logical days of month
3. Date and time ranges, one-time dates, DATETIME
4. Relative times and TODAY NOW
5. Comma-separated sets
6. Literal parsing
7. Error reporting and ScheduleDefinition validation

Run with:
    pytest tests/test_schedule_parser.py -v
"""

import pytest
from datetime import date, datetime, time
from pydantic import ValidationError

from core.errors import DefinitionError, ScheduleParseError
from core.models import ScheduleDefinition
from recurrence import parse_schedule_set
from recurrence.parser import parse_date, parse_datetime, parse_time, tokenize


# ============================================================================
# FIXTURES
# ============================================================================

NOW = datetime(2015, 11, 9, 15, 15, 6)


def next_from(text: str, instant: datetime = NOW, now: datetime = NOW):
    return parse_schedule_set(text, now=now).next_from(instant)


# ============================================================================
# CONVENIENCE FORMS
# ============================================================================

class TestConvenienceForms:

    def test_daily_every_ten_seconds(self):
        assert next_from("Daily every 10 seconds") == datetime(2015, 11, 9, 15, 15, 10)

    def test_daily_defaults_to_midnight(self):
        assert next_from("Daily") == datetime(2015, 11, 10, 0, 0)

    def test_weekly_defaults_to_sunday(self):
        assert next_from("Weekly") == datetime(2015, 11, 15, 0, 0)

    def test_weekly_from_date(self):
        # 11/9/2015 is a Monday; the first Sunday on or after is 11/15
        assert next_from("Weekly from '11/9/2015'", instant=datetime(2015, 11, 1)) == \
            datetime(2015, 11, 15, 0, 0)

    def test_monthly_defaults_to_first(self):
        assert next_from("Monthly") == datetime(2015, 12, 1, 0, 0)

    def test_hourly(self):
        assert next_from("Hourly") == datetime(2015, 11, 9, 16, 0)

    def test_weekdays_at(self):
        # Today's 10:00 AM has passed; Tuesday is next
        assert next_from("Weekdays at '10:00 AM'") == datetime(2015, 11, 10, 10, 0)

    def test_keywords_are_case_insensitive(self):
        assert next_from("daily EVERY 10 Seconds") == datetime(2015, 11, 9, 15, 15, 10)


# ============================================================================
# DAY LISTS AND MONTH RULES
# ============================================================================

class TestDayAndMonthRules:

    def test_day_list(self):
        assert next_from("Every Monday, Wednesday, Friday at '12:59 PM'") == \
            datetime(2015, 11, 11, 12, 59)

    def test_every_two_weeks_on_friday(self):
        assert next_from("Every 2 weeks on Friday from '11/10/2017' at '5:30 PM'") == \
            datetime(2017, 11, 10, 17, 30)

    def test_every_two_weeks_day_list(self):
        now = datetime(2017, 11, 11, 12, 0)
        text = "Every 2 weeks on Monday, Friday from '11/8/2017' at '9:00'"
        assert next_from(text, instant=now, now=now) == datetime(2017, 11, 13, 9, 0)

    def test_every_month_on_day(self):
        assert next_from("EVERY MONTH ON DAY 5 FROM '12/1/2017' AT '05:10 AM'") == \
            datetime(2017, 12, 5, 5, 10)

    def test_monthly_on_last_day(self):
        assert next_from("Monthly on last day from '10/27/2017'") == datetime(2017, 10, 31, 0, 0)

    def test_every_three_months_on_first_friday(self):
        now = datetime(2017, 11, 1)
        text = "Every 3 months on first Friday at '6:00'"
        schedules = parse_schedule_set(text, now=now)
        assert schedules.occurrences(now, 2) == [
            datetime(2017, 11, 3, 6, 0),
            datetime(2018, 2, 2, 6, 0),
        ]

    def test_logical_weekday_rejected(self):
        with pytest.raises(ScheduleParseError):
            parse_schedule_set("Every month on first weekday at '6:00'", now=NOW)


# ============================================================================
# RANGES, DATES AND RELATIVE TIMES
# ============================================================================

class TestRanges:

    TEXT = "Every day from '11/9/2015' until '11/13/2015' every hour from '10:30 AM' until '8:30 PM'"

    def test_hour_window(self):
        assert next_from(self.TEXT) == datetime(2015, 11, 9, 15, 30)

    def test_window_ends(self):
        assert next_from(self.TEXT, instant=datetime(2015, 11, 13, 20, 31)) is None

    def test_onetime_date_uses_first_time(self):
        text = "'11/13/2015' every 2 hours from '10:30 AM' until '8:30 PM'"
        assert next_from(text) == datetime(2015, 11, 13, 10, 30)

    def test_datetime(self):
        schedules = parse_schedule_set("DATETIME '2015-11-09 16:00'", now=NOW)
        assert schedules.next_from(NOW) == datetime(2015, 11, 9, 16, 0)
        assert schedules.next_from(datetime(2015, 11, 9, 16, 0, 1)) is None

    def test_relative_times(self):
        text = "Today every second from 1 second from now until 5 seconds from now"
        schedules = parse_schedule_set(text, now=NOW)
        found = schedules.occurrences(NOW, 10)
        assert found[0] == datetime(2015, 11, 9, 15, 15, 7)
        assert found[-1] == datetime(2015, 11, 9, 15, 15, 11)
        assert len(found) == 5

    def test_today_now(self):
        schedules = parse_schedule_set("TODAY NOW", now=NOW)
        assert schedules.is_immediate
        assert len(schedules) == 0
        assert schedules.next_from(NOW) is None

    def test_today_now_in_a_set(self):
        schedules = parse_schedule_set("TODAY NOW, Daily at '2:00 AM'", now=NOW)
        assert schedules.is_immediate
        assert len(schedules) == 1
        assert schedules.next_from(NOW) == datetime(2015, 11, 10, 2, 0)

    def test_set_merges_entries(self):
        schedules = parse_schedule_set("Daily at '6:00 PM', Daily at '4:00 PM'", now=NOW)
        assert len(schedules) == 2
        assert schedules.next_from(NOW) == datetime(2015, 11, 9, 16, 0)


# ============================================================================
# LITERALS
# ============================================================================

class TestLiterals:

    def test_dates(self):
        assert parse_date("11/9/2015") == date(2015, 11, 9)
        assert parse_date("2015-11-9") == date(2015, 11, 9)

    def test_times(self):
        assert parse_time("10:30 AM") == time(10, 30)
        assert parse_time("12:59 PM") == time(12, 59)
        assert parse_time("12:00 AM") == time(0, 0)
        assert parse_time("20:30:15") == time(20, 30, 15)

    def test_datetime(self):
        assert parse_datetime("2015-11-09 16:00") == datetime(2015, 11, 9, 16, 0)
        assert parse_datetime("2015-11-09T16:00:30") == datetime(2015, 11, 9, 16, 0, 30)

    def test_bad_literals(self):
        for bad in ("13/40/2015", "2015/11/09"):
            with pytest.raises(ScheduleParseError):
                parse_date(bad)
        for bad in ("25:00", "13:00 PM", "noon"):
            with pytest.raises(ScheduleParseError):
                parse_time(bad)

    def test_tokenize_keeps_quoted_text(self):
        tokens = tokenize("Daily at '10:00 AM'")
        assert [t.kind for t in tokens] == ["WORD", "WORD", "QUOTED"]
        assert tokens[2].value == "10:00 AM"


# ============================================================================
# ERRORS
# ============================================================================

class TestErrors:

    @pytest.mark.parametrize("text", [
        "",
        "Sometimes",
        "Daily every 10 second",
        "Every 2 hours",
        "Every 0 days at '1:00'",
        "Daily at '25:00'",
        "Every day at",
        "Daily at '10:00' tomorrow",
        "DATETIME '2015-13-01 10:00'",
        "Every month on day 30 at '1:00'",
        "Every day from '11/13/2015' until '11/9/2015' at '1:00'",
    ])
    def test_invalid_text(self, text):
        with pytest.raises(ScheduleParseError):
            parse_schedule_set(text, now=NOW)

    def test_parse_error_is_definition_error(self):
        with pytest.raises(DefinitionError):
            parse_schedule_set("Sometimes", now=NOW)

    def test_message_names_position(self):
        with pytest.raises(ScheduleParseError) as exc_info:
            parse_schedule_set("Daily at '10:00' tomorrow", now=NOW)
        assert "tomorrow" in str(exc_info.value)


class TestScheduleDefinition:

    def test_valid_text_accepted(self):
        schedule = ScheduleDefinition(name="nightly", text="Weekdays at '2:00 AM'")
        assert schedule.parse(now=NOW).next_from(NOW) == datetime(2015, 11, 10, 2, 0)

    def test_invalid_text_rejected(self):
        with pytest.raises(ValidationError):
            ScheduleDefinition(name="broken", text="Sometimes")
