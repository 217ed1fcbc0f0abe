# ============================================================================
# SCHEDULE LOOPS
# ============================================================================
# STATUS: Core - One recurrence loop per persisted schedule
# PURPOSE: Sleep until each schedule's next occurrence and post a tick
# CREATED: 18 OCT 2026
# ============================================================================
"""
Schedule Loops

Each persisted schedule gets its own asyncio task:

    parse text -> (fire now if TODAY NOW) -> sleep_until_next -> post tick -> ...

A tick is the pair (occurrence instant, schedule name). The loop ends when
the schedule has no further occurrence or when it is stopped; stopping
interrupts the sleep immediately.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from core.errors import ScheduleParseError
from core.logging import log_checkpoint, log_context
from recurrence import ScheduleSet, parse_schedule_set, sleep_until

logger = logging.getLogger(__name__)

TickHandler = Callable[[datetime, str], Awaitable[None]]


@dataclass
class _ScheduleLoop:
    name: str
    text: str
    stop_event: asyncio.Event
    task: Optional[asyncio.Task] = None


class ScheduleLoops:
    """Runs and revises the per-schedule recurrence loops."""

    def __init__(self, on_tick: TickHandler):
        self._on_tick = on_tick
        self._loops: Dict[str, _ScheduleLoop] = {}

    def start(self, name: str, text: str, now: Optional[datetime] = None) -> bool:
        """
        Parse a schedule and start its loop.

        A schedule that fails to parse is logged and not started.

        Returns:
            True if the loop was started
        """
        if name in self._loops and not self._loops[name].task.done():
            logger.warning(f"Schedule loop {name} already running")
            return False

        try:
            schedules = parse_schedule_set(text, now=now)
        except ScheduleParseError as e:
            logger.error(f"Schedule {name} not started, text does not parse: {e}")
            return False

        loop = _ScheduleLoop(name=name, text=text, stop_event=asyncio.Event())
        loop.task = asyncio.create_task(
            self._run(loop, schedules),
            name=f"schedule-{name}",
        )
        self._loops[name] = loop
        logger.info(f"Started schedule loop {name}: {text}")
        return True

    async def revise(self, name: str, text: str) -> bool:
        """Restart one loop with new text. Returns whether the new loop started."""
        await self.stop_schedule(name)
        return self.start(name, text)

    async def stop_schedule(self, name: str) -> bool:
        """Stop one loop. Returns False if it was not running."""
        loop = self._loops.pop(name, None)
        if loop is None:
            return False

        loop.stop_event.set()
        try:
            await loop.task
        except asyncio.CancelledError:
            pass
        logger.info(f"Stopped schedule loop {name}")
        return True

    async def stop_all(self) -> None:
        for name in list(self._loops):
            await self.stop_schedule(name)

    def running_schedules(self) -> List[str]:
        """Names of schedules whose loop is still active."""
        return sorted(name for name, loop in self._loops.items() if not loop.task.done())

    def schedule_text(self, name: str) -> Optional[str]:
        loop = self._loops.get(name)
        return loop.text if loop else None

    async def _run(self, loop: _ScheduleLoop, schedules: ScheduleSet) -> None:
        with log_context(schedule=loop.name):
            if schedules.is_immediate:
                await self._fire(loop.name, datetime.now())

            while not loop.stop_event.is_set():
                wake = schedules.next_from(datetime.now())
                if wake is None:
                    logger.info(f"Schedule {loop.name} has no further occurrence")
                    break
                if not await sleep_until(wake, loop.stop_event):
                    break
                await self._fire(loop.name, wake)

    async def _fire(self, name: str, instant: datetime) -> None:
        log_checkpoint("tick_fired", {"instant": instant.isoformat()})
        try:
            await self._on_tick(instant, name)
        except Exception as e:
            logger.exception(f"Tick handler failed for schedule {name}: {e}")


__all__ = ["ScheduleLoops", "TickHandler"]
