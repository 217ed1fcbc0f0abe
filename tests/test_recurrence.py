# ============================================================================
# RECURRENCE RULE TESTS
# ============================================================================
# STATUS: Tests - Date/time rules and schedule merging
# PURPOSE: Verify next-occurrence computation for every rule kind
# CREATED: 18 OCT 2026
# ============================================================================
"""
Recurrence Rule Tests

Covers:
1. Recurring and one-time time rules (step alignment, bounds)
2. Recurring, days-of-week, ordinal and logical day-of-month date rules
3. Schedule.next_from: same-day time vs. first time of a later date
4. ScheduleSet merging, collapsing and occurrences()
5. Rule validation errors
6. sleep_until wake / interrupt

Run with:
    pytest tests/test_recurrence.py -v
"""

import asyncio
import pytest
from datetime import date, datetime, time, timedelta

from core.errors import DefinitionError
from recurrence import (
    DateUnit,
    DaysOfWeekRule,
    LogicalDayOfMonthRule,
    NeverTimeRule,
    OnetimeDateRule,
    OnetimeTimeRule,
    OrdinalDayOfMonthRule,
    RecurringDateRule,
    RecurringTimeRule,
    Schedule,
    ScheduleSet,
    TimeUnit,
    sleep_until,
)
from recurrence.rules import FRIDAY, LAST, MONDAY, SUNDAY, add_months, daily_rule, weekly_rule


# ============================================================================
# TIME RULES
# ============================================================================

class TestRecurringTimeRule:

    def test_aligns_to_step_from_start(self):
        rule = RecurringTimeRule(TimeUnit.SECOND, 10)
        assert rule.next_time(time(15, 15, 6)) == time(15, 15, 10)

    def test_exact_step_is_included(self):
        rule = RecurringTimeRule(TimeUnit.SECOND, 10)
        assert rule.next_time(time(15, 15, 10)) == time(15, 15, 10)

    def test_before_window_returns_start(self):
        rule = RecurringTimeRule(TimeUnit.HOUR, 1, time(10, 30), time(20, 30))
        assert rule.next_time(time(8, 0)) == time(10, 30)

    def test_steps_counted_from_window_start(self):
        rule = RecurringTimeRule(TimeUnit.HOUR, 1, time(10, 30), time(20, 30))
        assert rule.next_time(time(15, 15, 6)) == time(15, 30)

    def test_after_window_is_none(self):
        rule = RecurringTimeRule(TimeUnit.HOUR, 2, time(10, 30), time(20, 30))
        assert rule.next_time(time(20, 31)) is None
        # 22:30 would be the next step, past the end
        assert rule.next_time(time(20, 30, 1)) is None

    def test_end_before_start_rejected(self):
        with pytest.raises(DefinitionError):
            RecurringTimeRule(TimeUnit.MINUTE, 5, time(12, 0), time(11, 0))

    def test_non_positive_count_rejected(self):
        with pytest.raises(DefinitionError):
            RecurringTimeRule(TimeUnit.MINUTE, 0)


class TestOnetimeTimeRules:

    def test_onetime(self):
        rule = OnetimeTimeRule(time(10, 0))
        assert rule.next_time(time(9, 59)) == time(10, 0)
        assert rule.next_time(time(10, 0)) == time(10, 0)
        assert rule.next_time(time(10, 0, 1)) is None

    def test_never(self):
        assert NeverTimeRule().next_time(time.min) is None


# ============================================================================
# DATE RULES
# ============================================================================

class TestRecurringDateRule:

    def test_every_day_until_end(self):
        rule = RecurringDateRule(DateUnit.DAY, 1, date(2015, 11, 9), date(2015, 11, 13))
        assert rule.next_date(date(2015, 11, 1)) == date(2015, 11, 9)
        assert rule.next_date(date(2015, 11, 13)) == date(2015, 11, 13)
        assert rule.next_date(date(2015, 11, 14)) is None

    def test_every_three_days(self):
        rule = RecurringDateRule(DateUnit.DAY, 3, date(2015, 11, 9))
        assert rule.next_date(date(2015, 11, 10)) == date(2015, 11, 12)
        assert rule.next_date(date(2015, 11, 12)) == date(2015, 11, 12)

    def test_every_month_clamps_day(self):
        rule = RecurringDateRule(DateUnit.MONTH, 1, date(2016, 1, 31))
        assert rule.next_date(date(2016, 2, 1)) == date(2016, 2, 29)

    def test_start_after_end_rejected(self):
        with pytest.raises(DefinitionError):
            RecurringDateRule(DateUnit.DAY, 1, date(2015, 11, 13), date(2015, 11, 9))

    def test_add_months_wraps_year(self):
        assert add_months(date(2017, 12, 5), 1) == date(2018, 1, 5)
        assert add_months(date(2017, 3, 31), -1) == date(2017, 2, 28)


class TestDaysOfWeekRule:

    def test_every_two_weeks_on_friday(self):
        # 11/10/2017 is a Friday
        rule = DaysOfWeekRule(2, {FRIDAY}, date(2017, 11, 10))
        assert rule.next_date(date(2017, 11, 10)) == date(2017, 11, 10)
        assert rule.next_date(date(2017, 11, 11)) == date(2017, 11, 24)

    def test_day_set_stays_in_active_week(self):
        # Starts on a Wednesday: the active week is Wed 11/8 .. Tue 11/14
        rule = DaysOfWeekRule(2, {MONDAY, FRIDAY}, date(2017, 11, 8))
        assert rule.next_date(date(2017, 11, 8)) == date(2017, 11, 10)
        assert rule.next_date(date(2017, 11, 11)) == date(2017, 11, 13)
        assert rule.next_date(date(2017, 11, 14)) == date(2017, 11, 24)

    def test_weekly_convenience_is_sunday(self):
        rule = weekly_rule(date(2015, 11, 9))
        assert rule.next_date(date(2015, 11, 9)) == date(2015, 11, 15)

    def test_empty_day_set_rejected(self):
        with pytest.raises(DefinitionError):
            DaysOfWeekRule(1, set(), date(2017, 11, 8))


class TestDayOfMonthRules:

    def test_ordinal_day_shifts_start(self):
        rule = OrdinalDayOfMonthRule(1, 5, date(2017, 12, 1))
        assert rule.next_date(date(2017, 12, 1)) == date(2017, 12, 5)
        assert rule.next_date(date(2017, 12, 6)) == date(2018, 1, 5)

    def test_ordinal_day_already_passed_moves_to_next_month(self):
        rule = OrdinalDayOfMonthRule(1, 5, date(2017, 12, 10))
        assert rule.next_date(date(2017, 12, 10)) == date(2018, 1, 5)

    def test_ordinal_day_out_of_range(self):
        with pytest.raises(DefinitionError):
            OrdinalDayOfMonthRule(1, 29, date(2017, 12, 1))

    def test_last_day_of_month(self):
        rule = LogicalDayOfMonthRule(1, LAST, None, date(2017, 10, 27))
        assert rule.next_date(date(2017, 10, 27)) == date(2017, 10, 31)
        assert rule.next_date(date(2017, 11, 1)) == date(2017, 11, 30)

    def test_first_friday_every_three_months(self):
        rule = LogicalDayOfMonthRule(3, 1, FRIDAY, date(2017, 11, 1))
        assert rule.next_date(date(2017, 11, 1)) == date(2017, 11, 3)
        assert rule.next_date(date(2017, 11, 4)) == date(2018, 2, 2)

    def test_last_sunday(self):
        rule = LogicalDayOfMonthRule(1, LAST, SUNDAY, date(2017, 10, 1))
        assert rule.next_date(date(2017, 10, 1)) == date(2017, 10, 29)

    def test_numbered_day_needs_ordinal_rule(self):
        with pytest.raises(DefinitionError):
            LogicalDayOfMonthRule(1, 2, None, date(2017, 10, 1))


# ============================================================================
# SCHEDULES
# ============================================================================

class TestSchedule:

    def test_same_day_uses_time_rule(self):
        schedule = Schedule(daily_rule(date(2015, 11, 9)), RecurringTimeRule(TimeUnit.SECOND, 10))
        assert schedule.next_from(datetime(2015, 11, 9, 15, 15, 6)) == datetime(2015, 11, 9, 15, 15, 10)

    def test_rolls_to_next_day_at_first_time(self):
        schedule = Schedule(daily_rule(date(2015, 11, 9)), OnetimeTimeRule(time(10, 0)))
        assert schedule.next_from(datetime(2015, 11, 9, 11, 0)) == datetime(2015, 11, 10, 10, 0)

    def test_later_date_uses_first_time_of_day(self):
        schedule = Schedule(
            OnetimeDateRule(date(2015, 11, 13)),
            RecurringTimeRule(TimeUnit.HOUR, 2, time(10, 30), time(20, 30)),
        )
        assert schedule.next_from(datetime(2015, 11, 9, 15, 15, 6)) == datetime(2015, 11, 13, 10, 30)

    def test_exhausted(self):
        schedule = Schedule(OnetimeDateRule(date(2015, 11, 9)), OnetimeTimeRule(time(16, 0)))
        assert schedule.next_from(datetime(2015, 11, 9, 16, 0)) == datetime(2015, 11, 9, 16, 0)
        assert schedule.next_from(datetime(2015, 11, 9, 16, 0, 1)) is None

    def test_never_time_rule_has_no_occurrence(self):
        schedule = Schedule(daily_rule(date(2015, 11, 9)), NeverTimeRule())
        assert schedule.next_from(datetime(2015, 11, 9)) is None


class TestScheduleSet:

    def test_earliest_wins(self):
        day = date(2015, 11, 9)
        schedules = ScheduleSet([
            Schedule(daily_rule(day), OnetimeTimeRule(time(18, 0))),
            Schedule(daily_rule(day), OnetimeTimeRule(time(16, 0))),
        ])
        assert schedules.next_from(datetime(2015, 11, 9, 15, 0)) == datetime(2015, 11, 9, 16, 0)

    def test_coinciding_occurrences_collapse(self):
        day = date(2015, 11, 9)
        schedules = ScheduleSet([
            Schedule(daily_rule(day), OnetimeTimeRule(time(16, 0))),
            Schedule(daily_rule(day), RecurringTimeRule(TimeUnit.HOUR, 1)),
        ])
        found = schedules.occurrences(datetime(2015, 11, 9, 15, 30), 3)
        assert found == [
            datetime(2015, 11, 9, 16, 0),
            datetime(2015, 11, 9, 17, 0),
            datetime(2015, 11, 9, 18, 0),
        ]

    def test_occurrences_stop_when_exhausted(self):
        schedules = ScheduleSet([
            Schedule(OnetimeDateRule(date(2015, 11, 9)), OnetimeTimeRule(time(16, 0))),
        ])
        assert schedules.occurrences(datetime(2015, 11, 9), 5) == [datetime(2015, 11, 9, 16, 0)]

    def test_empty_set(self):
        schedules = ScheduleSet(immediate=True)
        assert schedules.is_immediate
        assert len(schedules) == 0
        assert schedules.next_from(datetime(2015, 11, 9)) is None

    def test_until_next(self):
        schedules = ScheduleSet([
            Schedule(daily_rule(date(2015, 11, 9)), OnetimeTimeRule(time(16, 0))),
        ])
        assert schedules.until_next(datetime(2015, 11, 9, 15, 59, 30)) == 30.0


# ============================================================================
# SLEEPING
# ============================================================================

class TestSleepUntil:

    def test_past_instant_wakes_immediately(self):
        woke = asyncio.run(sleep_until(datetime.now() - timedelta(seconds=1)))
        assert woke is True

    def test_short_sleep_passes_wake_time(self):
        wake = datetime.now() + timedelta(milliseconds=50)

        async def scenario():
            woke = await sleep_until(wake)
            return woke, datetime.now()

        woke, after = asyncio.run(scenario())
        assert woke is True
        assert after > wake

    def test_interrupt_returns_false(self):
        async def scenario():
            interrupt = asyncio.Event()
            asyncio.get_running_loop().call_later(0.05, interrupt.set)
            return await sleep_until(datetime.now() + timedelta(hours=1), interrupt)

        assert asyncio.run(scenario()) is False
