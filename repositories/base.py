# ============================================================================
# JOB STORE INTERFACE
# ============================================================================
# STATUS: Core - Persistence contract
# PURPOSE: Abstract storage for jobs, schedules and run records
# CREATED: 18 OCT 2026
# ============================================================================
"""
Job Store Interface

Every call is a coroutine and may raise:
- StoreUnavailableError: the backend is transiently unreachable
- NotFoundError (JobNotFoundError, ScheduleNotFoundError, RunNotFoundError):
  the requested entity does not exist

The orchestrator is the only writer.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from core.contracts import RunStatus
from core.errors import ScheduleParseError
from core.models import JobDefinition, RunFilter, RunRecord, ScheduleDefinition

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """Persistence for job definitions, schedules and run records."""

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    @abstractmethod
    async def load_enabled_jobs(self) -> List[JobDefinition]:
        """All jobs with enabled == True."""

    @abstractmethod
    async def list_jobs(self) -> List[JobDefinition]:
        """All jobs, enabled or not, ordered by name."""

    @abstractmethod
    async def load_job(self, name: str) -> JobDefinition:
        """Raises JobNotFoundError."""

    @abstractmethod
    async def save_job(self, job: JobDefinition) -> JobDefinition:
        """Insert or replace a job by name."""

    @abstractmethod
    async def delete_job(self, name: str) -> None:
        """Raises JobNotFoundError."""

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    @abstractmethod
    async def load_schedules(self) -> List[ScheduleDefinition]:
        """All schedules, ordered by name."""

    @abstractmethod
    async def load_schedule(self, name: str) -> ScheduleDefinition:
        """Raises ScheduleNotFoundError."""

    @abstractmethod
    async def save_schedule(self, schedule: ScheduleDefinition) -> ScheduleDefinition:
        """Insert or replace a schedule by name."""

    @abstractmethod
    async def delete_schedule(self, name: str) -> None:
        """
        Raises ScheduleNotFoundError.

        Jobs that name the schedule keep the reference; it simply never
        comes due.
        """

    async def load_schedules_due_at(self, instant: datetime) -> List[ScheduleDefinition]:
        """
        Schedules with an occurrence exactly at `instant`.

        A schedule whose text no longer parses is logged and treated as
        not due.
        """
        due = []
        for schedule in await self.load_schedules():
            try:
                schedules = schedule.parse(now=instant)
            except ScheduleParseError as e:
                logger.error(f"Schedule '{schedule.name}' does not parse: {e}")
                continue
            if schedules.next_from(instant) == instant:
                due.append(schedule)
        return due

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    @abstractmethod
    async def next_run_id(self) -> int:
        """Allocate a new, monotonically increasing run id."""

    @abstractmethod
    async def save_run_record(self, record: RunRecord) -> None:
        """Insert or replace a run record by run id."""

    @abstractmethod
    async def load_run_record(self, run_id: int) -> RunRecord:
        """Raises RunNotFoundError."""

    @abstractmethod
    async def list_runs(self, run_filter: Optional[RunFilter] = None) -> List[RunRecord]:
        """Run records matching the filter, ordered by run id."""

    @abstractmethod
    async def sweep_in_progress(self, status: RunStatus, message: str) -> List[RunRecord]:
        """
        Move every RUN_IN_PROGRESS record to `status`.

        Used at startup to close out runs left behind by a controller that
        stopped without shutting down.

        Returns:
            The records that were changed
        """

    async def close(self) -> None:
        """Release backend resources."""


__all__ = ["JobStore"]
