# ============================================================================
# IN-MEMORY JOB STORE
# ============================================================================
# STATUS: Core - Dict-backed persistence
# PURPOSE: Job store for development, tests and single-process deployments
# CREATED: 18 OCT 2026
# ============================================================================
"""
In-Memory Job Store

Keeps jobs, schedules and run records in dicts guarded by one
asyncio.Lock. Records are copied on the way in and out so callers never
share mutable state with the store.

Seeding from YAML:

    schedules:
      every_10s: "Daily every 10 seconds"
      nightly: "Daily at '2:00 AM'"
    jobs:
      nightly_load:
        process_id: nightly_load
        args: ["2026-10-18"]
        schedules: [nightly]

Setting `available = False` makes every call raise StoreUnavailableError,
which is how outages are simulated.
"""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from core.contracts import RunStatus
from core.errors import (
    JobNotFoundError,
    RunNotFoundError,
    ScheduleNotFoundError,
    StoreUnavailableError,
)
from core.models import JobDefinition, RunFilter, RunRecord, ScheduleDefinition
from repositories.base import JobStore

logger = logging.getLogger(__name__)


class InMemoryJobStore(JobStore):
    """Dict-backed JobStore."""

    def __init__(
        self,
        jobs: Optional[List[JobDefinition]] = None,
        schedules: Optional[List[ScheduleDefinition]] = None,
    ):
        self._jobs: Dict[str, JobDefinition] = {job.name: job for job in jobs or []}
        self._schedules: Dict[str, ScheduleDefinition] = {s.name: s for s in schedules or []}
        self._runs: Dict[int, RunRecord] = {}
        self._last_run_id = 0
        self._lock = asyncio.Lock()
        self.available = True

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "InMemoryJobStore":
        """
        Build a store seeded from a YAML file.

        `jobs` may be a mapping of name -> definition or a list of
        definitions; `schedules` is a mapping of name -> schedule text.

        Raises:
            ScheduleParseError / pydantic.ValidationError on bad content
        """
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        schedules = [
            ScheduleDefinition(name=name, text=text)
            for name, text in (data.get("schedules") or {}).items()
        ]

        raw_jobs: Any = data.get("jobs") or []
        if isinstance(raw_jobs, dict):
            raw_jobs = [{"name": name, **(spec or {})} for name, spec in raw_jobs.items()]
        jobs = [JobDefinition(**spec) for spec in raw_jobs]

        logger.info(f"Seeded store from {path}: {len(jobs)} jobs, {len(schedules)} schedules")
        return cls(jobs=jobs, schedules=schedules)

    def _check_available(self) -> None:
        if not self.available:
            raise StoreUnavailableError("In-memory store is marked unavailable")

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def load_enabled_jobs(self) -> List[JobDefinition]:
        async with self._lock:
            self._check_available()
            return [
                job.model_copy(deep=True)
                for name, job in sorted(self._jobs.items()) if job.enabled
            ]

    async def list_jobs(self) -> List[JobDefinition]:
        async with self._lock:
            self._check_available()
            return [job.model_copy(deep=True) for _, job in sorted(self._jobs.items())]

    async def load_job(self, name: str) -> JobDefinition:
        async with self._lock:
            self._check_available()
            if name not in self._jobs:
                raise JobNotFoundError(name)
            return self._jobs[name].model_copy(deep=True)

    async def save_job(self, job: JobDefinition) -> JobDefinition:
        async with self._lock:
            self._check_available()
            self._jobs[job.name] = job.model_copy(deep=True)
            return job

    async def delete_job(self, name: str) -> None:
        async with self._lock:
            self._check_available()
            if self._jobs.pop(name, None) is None:
                raise JobNotFoundError(name)

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    async def load_schedules(self) -> List[ScheduleDefinition]:
        async with self._lock:
            self._check_available()
            return [s.model_copy() for _, s in sorted(self._schedules.items())]

    async def load_schedule(self, name: str) -> ScheduleDefinition:
        async with self._lock:
            self._check_available()
            if name not in self._schedules:
                raise ScheduleNotFoundError(name)
            return self._schedules[name].model_copy()

    async def save_schedule(self, schedule: ScheduleDefinition) -> ScheduleDefinition:
        async with self._lock:
            self._check_available()
            self._schedules[schedule.name] = schedule.model_copy()
            return schedule

    async def delete_schedule(self, name: str) -> None:
        async with self._lock:
            self._check_available()
            if self._schedules.pop(name, None) is None:
                raise ScheduleNotFoundError(name)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def next_run_id(self) -> int:
        async with self._lock:
            self._check_available()
            self._last_run_id += 1
            return self._last_run_id

    async def save_run_record(self, record: RunRecord) -> None:
        async with self._lock:
            self._check_available()
            existing = self._runs.get(record.run_id)
            if existing is not None and existing.is_terminal and not record.is_terminal:
                logger.debug(f"Ignoring stale {record.status.value} save for run {record.run_id}")
                return
            self._runs[record.run_id] = record.model_copy(deep=True)
            self._last_run_id = max(self._last_run_id, record.run_id)

    async def load_run_record(self, run_id: int) -> RunRecord:
        async with self._lock:
            self._check_available()
            if run_id not in self._runs:
                raise RunNotFoundError(run_id)
            return self._runs[run_id].model_copy(deep=True)

    async def list_runs(self, run_filter: Optional[RunFilter] = None) -> List[RunRecord]:
        run_filter = run_filter or RunFilter()
        async with self._lock:
            self._check_available()
            ids = sorted(self._runs, reverse=run_filter.newest_first)
            matched = [self._runs[i] for i in ids if run_filter.matches(self._runs[i])]
            return [r.model_copy(deep=True) for r in matched[:run_filter.limit]]

    async def sweep_in_progress(self, status: RunStatus, message: str) -> List[RunRecord]:
        async with self._lock:
            self._check_available()
            swept = []
            for record in self._runs.values():
                if record.status == RunStatus.RUN_IN_PROGRESS:
                    record.status = status
                    record.message = message
                    record.ended_at = record.ended_at or datetime.now()
                    swept.append(record.model_copy(deep=True))
            return swept


__all__ = ["InMemoryJobStore"]
