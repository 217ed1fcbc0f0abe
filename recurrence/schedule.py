# ============================================================================
# SCHEDULES
# ============================================================================
# STATUS: Core - Recurrence composition and sleep loop
# PURPOSE: Combine date and time rules; merge sets; sleep until next firing
# CREATED: 18 OCT 2026
# EXPORTS: Schedule, ScheduleSet, sleep_until
# ============================================================================
"""
Schedules

A Schedule pairs one DateRule with one TimeRule. A ScheduleSet merges any
number of schedules and is what a named schedule text parses into:

    schedules = parse_schedule_set("Daily every 10 seconds")
    schedules.next_from(datetime(2015, 11, 9, 15, 15, 6))
    # -> datetime(2015, 11, 9, 15, 15, 10)

next_from(instant) returns the first occurrence at or after the instant.
It is monotonic in its argument, and coinciding occurrences of different
schedules collapse to one instant.
"""

import asyncio
import logging
from datetime import datetime, time, timedelta
from typing import Iterable, List, Optional

from recurrence.rules import DateRule, TimeRule

logger = logging.getLogger(__name__)

# Clock resolution margin: wake strictly after the occurrence
_TICK = timedelta(milliseconds=1)


class Schedule:
    """One (date rule, time rule) pair."""

    def __init__(self, date_rule: DateRule, time_rule: TimeRule):
        self.date_rule = date_rule
        self.time_rule = time_rule

    def next_from(self, instant: datetime) -> Optional[datetime]:
        """
        First occurrence at or after `instant`.

        On the instant's own date the time must be at or after the instant's
        time; on any later date the first time of that day is used.
        """
        day = instant.date()

        at = self.time_rule.next_time(instant.time())
        if at is not None:
            on = self.date_rule.next_date(day)
            if on is None:
                return None
            if on == day:
                return datetime.combine(on, at)
            first = self.time_rule.next_time(time.min)
            return datetime.combine(on, first) if first is not None else None

        first = self.time_rule.next_time(time.min)
        if first is None or day == day.max:
            return None
        on = self.date_rule.next_date(day + timedelta(days=1))
        return datetime.combine(on, first) if on is not None else None

    def __repr__(self) -> str:
        return f"Schedule({self.date_rule!r}, {self.time_rule!r})"


class ScheduleSet:
    """
    An ordered set of schedules, merged by earliest next occurrence.

    `immediate` is set by the `TODAY NOW` entry and asks the caller to fire
    once right away, in addition to the regular occurrences.
    """

    def __init__(self, schedules: Optional[Iterable[Schedule]] = None, immediate: bool = False):
        self.schedules: List[Schedule] = list(schedules or [])
        self.immediate = immediate

    @property
    def is_immediate(self) -> bool:
        return self.immediate

    def add(self, schedule: Schedule) -> None:
        self.schedules.append(schedule)

    def next_from(self, instant: datetime) -> Optional[datetime]:
        """Earliest occurrence at or after `instant` across all schedules."""
        soonest = None
        for schedule in self.schedules:
            candidate = schedule.next_from(instant)
            if candidate is not None and (soonest is None or candidate < soonest):
                soonest = candidate
        return soonest

    def occurrences(self, start: datetime, count: int) -> List[datetime]:
        """The next `count` occurrences at or after `start` (fewer if they run out)."""
        found: List[datetime] = []
        instant = start
        while len(found) < count:
            wake = self.next_from(instant)
            if wake is None:
                break
            found.append(wake)
            instant = wake + timedelta(microseconds=1)
        return found

    def until_next(self, now: Optional[datetime] = None) -> Optional[float]:
        """Seconds until the next occurrence, or None if there is none."""
        now = now or datetime.now()
        wake = self.next_from(now)
        if wake is None:
            return None
        return (wake - now).total_seconds()

    async def sleep_until_next(self, interrupt: Optional[asyncio.Event] = None) -> bool:
        """
        Sleep until just past the next occurrence.

        Returns:
            False immediately if no occurrence remains, False if `interrupt`
            is set while sleeping, True after waking on schedule
        """
        wake = self.next_from(datetime.now())
        if wake is None:
            return False
        return await sleep_until(wake, interrupt)

    def __len__(self) -> int:
        return len(self.schedules)

    def __repr__(self) -> str:
        return f"ScheduleSet({self.schedules!r}, immediate={self.immediate})"


async def sleep_until(wake: datetime, interrupt: Optional[asyncio.Event] = None) -> bool:
    """
    Suspend until the wall clock is strictly past `wake`.

    Sleep intervals are imprecise, so this loops until the clock has
    advanced past the target; the same occurrence therefore never fires
    twice.

    Returns:
        True on waking, False if `interrupt` was set first
    """
    interrupt = interrupt or asyncio.Event()
    while True:
        now = datetime.now()
        if now > wake:
            return True
        remaining = (wake - now + _TICK).total_seconds()
        try:
            await asyncio.wait_for(interrupt.wait(), timeout=remaining)
            logger.debug(f"Sleep until {wake.isoformat()} interrupted")
            return False
        except asyncio.TimeoutError:
            continue


__all__ = ["Schedule", "ScheduleSet", "sleep_until"]
