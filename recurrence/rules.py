# ============================================================================
# RECURRENCE RULES
# ============================================================================
# STATUS: Core - Date and time-of-day rules
# PURPOSE: Answer "next date on or after d" and "next time on or after t"
# CREATED: 18 OCT 2026
# EXPORTS: DateRule, TimeRule and their concrete rules, convenience builders
# ============================================================================
"""
Recurrence Rules

A date rule yields a lazy, non-decreasing sequence of calendar dates and
answers next_date(d): the first date in its sequence on or after d, or
None once the sequence is exhausted. A time rule does the same for times
of day within a single day.

Recurring rules are anchored at a start date (or start time) and step by
`count` units. Lookup is O(1): jump to the cycle containing the query and
step at most once more, never iterate from the start.

All values are naive local dates and times.
"""

import calendar
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from core.errors import DefinitionError


# ============================================================================
# UNITS
# ============================================================================

class DateUnit(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class TimeUnit(str, Enum):
    HOUR = "hour"
    MINUTE = "minute"
    SECOND = "second"

    @property
    def seconds(self) -> int:
        return {"hour": 3600, "minute": 60, "second": 1}[self.value]


MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY = range(7)
WEEKDAYS = frozenset({MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY})

# Ordinal 0 means "last" for logical day-of-month rules
LAST = 0


def add_months(value: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def units_between(start: date, end: date, unit: DateUnit) -> int:
    """Whole units from start to end (end >= start)."""
    if unit == DateUnit.DAY:
        return (end - start).days
    if unit == DateUnit.WEEK:
        return (end - start).days // 7
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return months


def add_units(value: date, amount: int, unit: DateUnit) -> date:
    if unit == DateUnit.DAY:
        return value + timedelta(days=amount)
    if unit == DateUnit.WEEK:
        return value + timedelta(weeks=amount)
    return add_months(value, amount)


def last_day_of_month(value: date) -> date:
    return value.replace(day=calendar.monthrange(value.year, value.month)[1])


# ============================================================================
# DATE RULES
# ============================================================================

class DateRule(ABC):
    """A sequence of calendar dates."""

    @abstractmethod
    def next_date(self, earliest: date) -> Optional[date]:
        """First date in the sequence on or after `earliest`, or None."""
        pass


class OnetimeDateRule(DateRule):
    """A single fixed date."""

    def __init__(self, on: date):
        self.on = on

    def next_date(self, earliest: date) -> Optional[date]:
        return self.on if earliest <= self.on else None

    def __repr__(self) -> str:
        return f"OnetimeDateRule({self.on.isoformat()})"


class _CyclicDateRule(DateRule):
    """
    Base for rules that repeat every `count` units from `start` until `end`.

    Subclasses implement _next_in_cycle(cycle_start, earliest), which is
    given the start of the cycle containing `earliest` and returns the
    first event on or after `earliest` (possibly in a later cycle).
    """

    unit = DateUnit.DAY

    def __init__(self, count: int, start: date, end: Optional[date] = None):
        if count < 1:
            raise DefinitionError(f"Recurrence count must be positive, got {count}")
        if end is not None and end < start:
            raise DefinitionError(
                f"Start date {start.isoformat()} is later than end date {end.isoformat()}"
            )
        self.count = count
        self.start = start
        self.end = end

    def next_date(self, earliest: date) -> Optional[date]:
        if earliest < self.start:
            earliest = self.start
        if self.end is not None and earliest > self.end:
            return None

        cycles = units_between(self.start, earliest, self.unit) // self.count
        cycle_start = add_units(self.start, cycles * self.count, self.unit)
        result = self._next_in_cycle(cycle_start, earliest)

        if self.end is not None and result > self.end:
            return None
        return result

    @abstractmethod
    def _next_in_cycle(self, cycle_start: date, earliest: date) -> date:
        pass


class RecurringDateRule(_CyclicDateRule):
    """Every `count` days, weeks or months starting on `start`."""

    def __init__(
        self,
        unit: DateUnit,
        count: int,
        start: date,
        end: Optional[date] = None,
    ):
        super().__init__(count, start, end)
        self.unit = DateUnit(unit)

    def _next_in_cycle(self, cycle_start: date, earliest: date) -> date:
        if earliest > cycle_start:
            return add_units(cycle_start, self.count, self.unit)
        return cycle_start

    def __repr__(self) -> str:
        return (
            f"RecurringDateRule({self.unit.value}, {self.count}, "
            f"{self.start.isoformat()}, {self.end.isoformat() if self.end else None})"
        )


class DaysOfWeekRule(_CyclicDateRule):
    """
    Certain weekdays, every `count` weeks.

    The active week runs seven days from start + k*count weeks. Days of the
    weeks in between are not events.
    """

    unit = DateUnit.WEEK

    def __init__(
        self,
        count: int,
        days: Iterable[int],
        start: date,
        end: Optional[date] = None,
    ):
        super().__init__(count, start, end)
        self.days: FrozenSet[int] = frozenset(days)
        if not self.days:
            raise DefinitionError("At least one day of the week must be selected")
        if not self.days <= set(range(7)):
            raise DefinitionError(f"Invalid day of week in {sorted(self.days)}")

    def _next_in_cycle(self, cycle_start: date, earliest: date) -> date:
        while True:
            for offset in range(7):
                candidate = cycle_start + timedelta(days=offset)
                if candidate >= earliest and candidate.weekday() in self.days:
                    return candidate
            cycle_start += timedelta(weeks=self.count)

    def __repr__(self) -> str:
        return f"DaysOfWeekRule({self.count}, {sorted(self.days)}, {self.start.isoformat()})"


class OrdinalDayOfMonthRule(RecurringDateRule):
    """Day `day` (1..28) of every `count` months."""

    def __init__(
        self,
        count: int,
        day: int,
        start: date,
        end: Optional[date] = None,
    ):
        if not 1 <= day <= 28:
            raise DefinitionError(f"Day of month must be between 1 and 28, got {day}")
        if start.day <= day:
            first = start.replace(day=day)
        else:
            first = add_months(start.replace(day=1), 1).replace(day=day)
        if end is not None and end < first:
            raise DefinitionError("First event would occur after the end date")
        super().__init__(DateUnit.MONTH, count, first, end)
        self.day = day


class LogicalDayOfMonthRule(_CyclicDateRule):
    """
    First..fourth or last weekday of every `count` months, or the last day.

    Args:
        ordinal: 1..4, or LAST (0)
        weekday: 0..6 (Monday..Sunday), or None for "day" (last day of month)
    """

    unit = DateUnit.MONTH

    def __init__(
        self,
        count: int,
        ordinal: int,
        weekday: Optional[int],
        start: date,
        end: Optional[date] = None,
    ):
        if not 0 <= ordinal <= 4:
            raise DefinitionError(f"Instance in month must be between 0 and 4, got {ordinal}")
        if weekday is None and ordinal != LAST:
            raise DefinitionError("Use OrdinalDayOfMonthRule for a numbered day of month")
        if weekday is not None and not 0 <= weekday <= 6:
            raise DefinitionError(f"Invalid day of week: {weekday}")
        self.ordinal = ordinal
        self.weekday = weekday

        # Anchor cycles on the first of the month holding the first event
        first = self._event_in_month(start)
        if first < start:
            first = self._event_in_month(add_months(start.replace(day=1), 1))
        super().__init__(count, first.replace(day=1), end)

    def _event_in_month(self, value: date) -> date:
        if self.weekday is None:
            return last_day_of_month(value)
        if self.ordinal == LAST:
            last = last_day_of_month(value)
            return last - timedelta(days=(last.weekday() - self.weekday) % 7)
        first = value.replace(day=1)
        offset = (self.weekday - first.weekday()) % 7
        return first + timedelta(days=offset, weeks=self.ordinal - 1)

    def _next_in_cycle(self, cycle_start: date, earliest: date) -> date:
        event = self._event_in_month(cycle_start)
        if earliest > event:
            event = self._event_in_month(add_months(cycle_start, self.count))
        return event

    def __repr__(self) -> str:
        return f"LogicalDayOfMonthRule({self.count}, {self.ordinal}, {self.weekday})"


# ============================================================================
# TIME RULES
# ============================================================================

def _seconds_of(value: time) -> float:
    return value.hour * 3600 + value.minute * 60 + value.second + value.microsecond / 1e6


def _time_of(seconds: float) -> time:
    whole = int(seconds)
    micro = int(round((seconds - whole) * 1e6))
    return (datetime.min + timedelta(seconds=whole, microseconds=micro)).time()


class TimeRule(ABC):
    """A sequence of times within one day."""

    @abstractmethod
    def next_time(self, earliest: time) -> Optional[time]:
        """First time in the sequence on or after `earliest`, or None."""
        pass


class NeverTimeRule(TimeRule):
    """No time of day qualifies."""

    def next_time(self, earliest: time) -> Optional[time]:
        return None

    def __repr__(self) -> str:
        return "NeverTimeRule()"


class OnetimeTimeRule(TimeRule):
    """A single fixed time of day."""

    def __init__(self, at: time):
        self.at = at

    def next_time(self, earliest: time) -> Optional[time]:
        return self.at if earliest <= self.at else None

    def __repr__(self) -> str:
        return f"OnetimeTimeRule({self.at.isoformat()})"


class RecurringTimeRule(TimeRule):
    """Every `count` hours, minutes or seconds between `start` and `end`."""

    def __init__(
        self,
        unit: TimeUnit,
        count: int,
        start: time = time.min,
        end: time = time.max,
    ):
        if count < 1:
            raise DefinitionError(f"Recurrence count must be positive, got {count}")
        if end < start:
            raise DefinitionError(
                f"End time {end.isoformat()} is earlier than start time {start.isoformat()}"
            )
        self.unit = TimeUnit(unit)
        self.count = count
        self.start = start
        self.end = end

    def next_time(self, earliest: time) -> Optional[time]:
        if earliest <= self.start:
            return self.start
        if earliest > self.end:
            return None

        step = self.unit.seconds * self.count
        start_seconds = _seconds_of(self.start)
        elapsed = _seconds_of(earliest) - start_seconds
        result = start_seconds + (int(elapsed) // step) * step
        if result < _seconds_of(earliest):
            result += step
        if result > _seconds_of(self.end):
            return None
        return _time_of(result)

    def __repr__(self) -> str:
        return (
            f"RecurringTimeRule({self.unit.value}, {self.count}, "
            f"{self.start.isoformat()}, {self.end.isoformat()})"
        )


# ============================================================================
# CONVENIENCE RULES
# ============================================================================

def daily_rule(start: Optional[date] = None, end: Optional[date] = None) -> DateRule:
    return RecurringDateRule(DateUnit.DAY, 1, start or date.today(), end)


def weekly_rule(
    start: Optional[date] = None,
    end: Optional[date] = None,
    days: Iterable[int] = (SUNDAY,),
) -> DateRule:
    return DaysOfWeekRule(1, days, start or date.today(), end)


def monthly_rule(start: Optional[date] = None, end: Optional[date] = None) -> DateRule:
    return OrdinalDayOfMonthRule(1, 1, start or date.today(), end)


def midnight_rule() -> TimeRule:
    return OnetimeTimeRule(time.min)


def hourly_rule() -> TimeRule:
    return RecurringTimeRule(TimeUnit.HOUR, 1)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "DateUnit",
    "TimeUnit",
    "MONDAY",
    "TUESDAY",
    "WEDNESDAY",
    "THURSDAY",
    "FRIDAY",
    "SATURDAY",
    "SUNDAY",
    "WEEKDAYS",
    "LAST",
    "add_months",
    "units_between",
    "DateRule",
    "OnetimeDateRule",
    "RecurringDateRule",
    "DaysOfWeekRule",
    "OrdinalDayOfMonthRule",
    "LogicalDayOfMonthRule",
    "TimeRule",
    "NeverTimeRule",
    "OnetimeTimeRule",
    "RecurringTimeRule",
    "daily_rule",
    "weekly_rule",
    "monthly_rule",
    "midnight_rule",
    "hourly_rule",
]
