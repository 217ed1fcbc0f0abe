# ============================================================================
# RECURRENCE MODULE
# ============================================================================
# STATUS: Core - Calendar/time recurrence engine
# PURPOSE: Compute next occurrences and sleep until them
# CREATED: 18 OCT 2026
# ============================================================================
"""
Recurrence Engine

Pure computation: rules answer "next date/time on or after", schedules
combine them, and ScheduleSet.sleep_until_next() drives the wait loop.
"""

from recurrence.rules import (
    DateUnit,
    TimeUnit,
    DateRule,
    TimeRule,
    OnetimeDateRule,
    RecurringDateRule,
    DaysOfWeekRule,
    OrdinalDayOfMonthRule,
    LogicalDayOfMonthRule,
    NeverTimeRule,
    OnetimeTimeRule,
    RecurringTimeRule,
)
from recurrence.schedule import Schedule, ScheduleSet, sleep_until
from recurrence.parser import parse_schedule_set

__all__ = [
    "DateUnit",
    "TimeUnit",
    "DateRule",
    "TimeRule",
    "OnetimeDateRule",
    "RecurringDateRule",
    "DaysOfWeekRule",
    "OrdinalDayOfMonthRule",
    "LogicalDayOfMonthRule",
    "NeverTimeRule",
    "OnetimeTimeRule",
    "RecurringTimeRule",
    "Schedule",
    "ScheduleSet",
    "sleep_until",
    "parse_schedule_set",
]
