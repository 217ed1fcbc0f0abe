# ============================================================================
# JOB ORCHESTRATOR
# ============================================================================
# STATUS: Core - Scheduling control loop
# PURPOSE: Tie persisted jobs to persisted schedules and record run outcomes
# CREATED: 18 OCT 2026
# ============================================================================
"""
Job Orchestrator

The control loop of the scheduler:

1. One schedule loop per persisted schedule sleeps until its next
   occurrence and posts a tick (instant, schedule name)
2. The tick consumer coalesces ticks for the same instant, reads the due
   schedules and the enabled jobs once, and submits each due job once
3. The completion consumer persists every finished run record
4. stop() cancels in-flight runs and records them as controller_shutdown

The orchestrator is the only writer of run records and job/schedule
state; management changes are read on the next tick, never mid-tick.

Runs as background tasks in the FastAPI application, or standalone.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import TYPE_CHECKING, Any, Deque, Dict, Iterable, List, Optional, Set, Tuple

from core.config import OrchestratorDefaults, get_defaults
from core.contracts import RunStatus
from core.errors import (
    DefinitionError,
    JobAlreadyRunningError,
    OrchestratorStateError,
    RunManagerError,
    StoreUnavailableError,
)
from core.logging import log_checkpoint, log_context
from core.models import JobDefinition, RunRecord, ScheduleDefinition
from orchestrator.engine import ProcessContext
from orchestrator.scheduler import ScheduleLoops

if TYPE_CHECKING:
    from repositories.base import JobStore
    from services.process_service import ProcessService
    from worker.run_manager import RunManager

logger = logging.getLogger(__name__)

SWEEP_MESSAGE = "Controller stopped before the run finished"
SHUTDOWN_MESSAGE = "Controller shut down while the run was in flight"


class JobOrchestrator:
    """
    Scheduling control loop.

    Owns the schedule loops, the tick consumer and the completion
    consumer. Must be started before use and stopped exactly once.
    """

    def __init__(
        self,
        store: "JobStore",
        run_manager: "RunManager",
        process_service: "ProcessService",
        config: Optional[OrchestratorDefaults] = None,
    ):
        self.store = store
        self.run_manager = run_manager
        self.process_service = process_service
        self.config = config or get_defaults().orchestrator

        self._loops = ScheduleLoops(self._post_tick)
        self._ticks: "asyncio.Queue[Tuple[datetime, str]]" = asyncio.Queue()
        self._handled: Deque[datetime] = deque(maxlen=self.config.tick_history)

        # State
        self._running = False
        self._stopped = False
        self._suspended = False
        self._unsaved: Optional[RunRecord] = None
        self._stop_event = asyncio.Event()

        # Background tasks
        self._tick_task: Optional[asyncio.Task] = None
        self._completion_task: Optional[asyncio.Task] = None

        # Metrics
        self._started_at: Optional[datetime] = None
        self._ticks_handled = 0
        self._ticks_skipped = 0
        self._runs_submitted = 0
        self._runs_recorded = 0
        self._parse_failures = 0
        self._swept_at_start = 0
        self._errors = 0
        self._last_tick_at: Optional[datetime] = None

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """
        Start the orchestrator.

        Sweeps runs left in progress by a previous controller, starts one
        loop per persisted schedule and the background consumers.

        Raises:
            OrchestratorStateError: If already started (or stopped)
            StoreUnavailableError: If the store cannot be read
        """
        if self._running or self._stopped:
            raise OrchestratorStateError("Orchestrator can only be started once")

        swept = await self.store.sweep_in_progress(RunStatus.CONTROLLER_SHUTDOWN, SWEEP_MESSAGE)
        self._swept_at_start = len(swept)
        if swept:
            logger.warning(
                f"Marked {len(swept)} runs left in progress as controller_shutdown: "
                f"{[r.run_id for r in swept]}"
            )

        schedules = await self.store.load_schedules()

        self._running = True
        self._started_at = datetime.now()

        for schedule in schedules:
            self._loops.start(schedule.name, schedule.text)

        self._tick_task = asyncio.create_task(self._tick_loop(), name="orchestrator-ticks")
        self._completion_task = asyncio.create_task(
            self._completion_loop(), name="orchestrator-completions"
        )

        logger.info(
            f"Orchestrator started ({len(self._loops.running_schedules())} of "
            f"{len(schedules)} schedules active)"
        )

    async def stop(self) -> None:
        """
        Stop the orchestrator.

        Stops the schedule loops, cancels every in-flight run, waits for the
        run manager's grace period and records every run that was in flight
        as controller_shutdown.

        Raises:
            OrchestratorStateError: If not running
        """
        self._require_running()
        logger.info("Stopping orchestrator")

        self._running = False
        self._stopped = True
        self._stop_event.set()

        await self._loops.stop_all()

        for task in (self._tick_task, self._completion_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        in_flight = self.run_manager.get_running()
        self.run_manager.stop_all()
        abandoned = await self.run_manager.close()

        # Drain completions that arrived during shutdown
        finished: List[RunRecord] = []
        if self._unsaved is not None:
            finished.append(self._unsaved)
            self._unsaved = None
        while True:
            record = await self.run_manager.get_completed(timeout=0)
            if record is None:
                break
            finished.append(record)

        in_flight_ids = {r.run_id for r in in_flight}
        to_save: List[RunRecord] = []
        for record in finished:
            if record.run_id in in_flight_ids:
                record.mark_controller_shutdown(
                    f"{SHUTDOWN_MESSAGE} (ended {record.status.value})"
                )
            to_save.append(record)
        for record in abandoned:
            record.mark_controller_shutdown(f"{SHUTDOWN_MESSAGE} (abandoned)")
            to_save.append(record)

        for record in to_save:
            try:
                await self.store.save_run_record(record)
                self._runs_recorded += 1
            except StoreUnavailableError as e:
                logger.error(f"Could not record run {record.run_id} at shutdown: {e}")

        logger.info(
            f"Orchestrator stopped (ticks={self._ticks_handled}, "
            f"runs_submitted={self._runs_submitted}, "
            f"shutdown_runs={len(in_flight)}, abandoned={len(abandoned)})"
        )

    def _require_running(self) -> None:
        if not self._running:
            raise OrchestratorStateError("Orchestrator is not running")

    # =========================================================================
    # TICKS
    # =========================================================================

    async def _post_tick(self, instant: datetime, schedule_name: str) -> None:
        """Called by a schedule loop when one of its occurrences arrives."""
        self._ticks.put_nowait((instant, schedule_name))

    async def _tick_loop(self) -> None:
        """Consume posted ticks, coalescing those for the same instant."""
        try:
            while self._running:
                instant, name = await self._ticks.get()
                names: Set[str] = {name}
                deferred: List[Tuple[datetime, str]] = []
                while not self._ticks.empty():
                    other_instant, other_name = self._ticks.get_nowait()
                    if other_instant == instant:
                        names.add(other_name)
                    else:
                        deferred.append((other_instant, other_name))
                for item in deferred:
                    self._ticks.put_nowait(item)

                try:
                    await self.tick(instant, names)
                except Exception as e:
                    self._errors += 1
                    logger.exception(f"Tick at {instant.isoformat()} failed: {e}")
        except asyncio.CancelledError:
            pass

    async def tick(self, instant: datetime, schedule_names: Iterable[str] = ()) -> List[RunRecord]:
        """
        Handle the recurrence firing at `instant`.

        Jobs bound to any schedule due at `instant` (or named in
        schedule_names) are submitted once each. A second tick for the same
        instant submits nothing.

        Returns:
            Records of the runs submitted (including parse_failed ones)
        """
        self._require_running()
        self._last_tick_at = datetime.now()

        if instant in self._handled:
            logger.debug(f"Tick at {instant.isoformat()} already handled")
            return []
        if self._suspended and self._unsaved is not None:
            # The completion consumer is still retrying a save
            self._ticks_skipped += 1
            logger.warning(f"Store unavailable, skipping tick at {instant.isoformat()}")
            return []

        try:
            due = {s.name for s in await self.store.load_schedules_due_at(instant)}
            jobs = await self.store.load_enabled_jobs()
        except StoreUnavailableError as e:
            self._suspend(e)
            self._ticks_skipped += 1
            return []
        self._resume()

        self._handled.append(instant)
        self._ticks_handled += 1
        due.update(schedule_names)

        submitted: List[RunRecord] = []
        seen: Set[str] = set()
        for job in jobs:
            if job.name in seen or not due.intersection(job.schedules):
                continue
            seen.add(job.name)

            if self.run_manager.is_running(job.name):
                logger.info(f"Job {job.name} still running, not submitted at {instant.isoformat()}")
                continue

            try:
                submitted.append(await self._submit_job(job))
            except RunManagerError as e:
                self._errors += 1
                logger.error(f"Run manager refused job {job.name}: {e}")
            except StoreUnavailableError as e:
                self._suspend(e)
                break

        logger.info(
            f"Tick at {instant.isoformat()}: schedules={sorted(due)}, "
            f"submitted={[r.job_name for r in submitted]}"
        )
        return submitted

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def run_job(self, name: str, args: Optional[List[Any]] = None) -> RunRecord:
        """
        Submit one run of a job now (ad hoc).

        Raises:
            JobNotFoundError: If the job does not exist
            JobAlreadyRunningError: If the job has an unfinished run
            StoreUnavailableError: If the store is down or submissions are suspended
            RunManagerError: If the run manager refuses the run
        """
        self._require_running()
        if self._suspended:
            raise StoreUnavailableError("Submissions are suspended until the store recovers")

        job = await self.store.load_job(name)
        if self.run_manager.is_running(job.name):
            raise JobAlreadyRunningError(job.name)
        return await self._submit_job(job, args)

    async def _submit_job(self, job: JobDefinition, args: Optional[List[Any]] = None) -> RunRecord:
        run_id = await self.store.next_run_id()

        with log_context(run_id=run_id, job_name=job.name, process_id=job.process_id):
            try:
                process = self.process_service.get_or_raise(job.process_id)
                properties = self.process_service.load_properties(job.properties)
            except DefinitionError as e:
                self._parse_failures += 1
                logger.error(f"Job {job.name} failed to load: {e}")
                now = datetime.now()
                record = RunRecord(
                    run_id=run_id,
                    job_name=job.name,
                    process_id=job.process_id,
                    status=RunStatus.PARSE_FAILED,
                    message=str(e)[:2000],
                    started_at=now,
                    ended_at=now,
                )
                await self.store.save_run_record(record)
                return record

            context = ProcessContext(
                variables=dict(properties),
                args=list(job.args if args is None else args),
                loader=self.process_service.get_or_raise,
            )
            record = self.run_manager.submit(run_id, process, context, job_name=job.name)
            snapshot = record.model_copy(deep=True)
            self._runs_submitted += 1

            try:
                await self.store.save_run_record(snapshot)
            except StoreUnavailableError as e:
                # The completion consumer persists the final record later
                self._suspend(e)

            return record

    # =========================================================================
    # COMPLETIONS
    # =========================================================================

    async def _completion_loop(self) -> None:
        """Persist finished runs; retry while the store is unavailable."""
        try:
            while self._running:
                record = self._unsaved
                if record is None:
                    record = await self.run_manager.get_completed()
                    self._unsaved = record

                try:
                    await self.store.save_run_record(record)
                except StoreUnavailableError as e:
                    self._suspend(e)
                    try:
                        await asyncio.wait_for(
                            self._stop_event.wait(),
                            timeout=self.config.store_retry_seconds,
                        )
                    except asyncio.TimeoutError:
                        pass
                    continue

                self._unsaved = None
                self._runs_recorded += 1
                self._resume()
                with log_context(run_id=record.run_id, job_name=record.job_name):
                    log_checkpoint("run_recorded", {"status": record.status.value})
        except asyncio.CancelledError:
            pass

    def _suspend(self, error: Exception) -> None:
        if not self._suspended:
            logger.error(f"Store unavailable, suspending submissions: {error}")
        self._suspended = True

    def _resume(self) -> None:
        if self._suspended:
            logger.info("Store available again, resuming submissions")
        self._suspended = False

    # =========================================================================
    # MANAGEMENT OPERATIONS
    # =========================================================================

    async def save_job(self, job: JobDefinition) -> JobDefinition:
        """Insert or replace a job. Takes effect on the next tick."""
        saved = await self.store.save_job(job)
        logger.info(f"Saved job {job.name}")
        return saved

    async def set_job_enabled(self, name: str, enabled: bool) -> JobDefinition:
        """
        Enable or disable a job.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = await self.store.load_job(name)
        job.enabled = enabled
        return await self.store.save_job(job)

    async def save_schedule(self, schedule: ScheduleDefinition) -> ScheduleDefinition:
        """Insert or replace a schedule and restart its loop."""
        saved = await self.store.save_schedule(schedule)
        if self._running:
            await self._loops.revise(schedule.name, schedule.text)
        return saved

    async def delete_job(self, name: str) -> None:
        """
        Delete a job. A run already in flight is left to finish.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        await self.store.delete_job(name)
        logger.info(f"Deleted job {name}")

    async def delete_schedule(self, name: str) -> None:
        """
        Delete a schedule and stop its loop.

        Raises:
            ScheduleNotFoundError: If the schedule does not exist
        """
        await self.store.delete_schedule(name)
        await self._loops.stop_schedule(name)
        logger.info(f"Deleted schedule {name}")

    def stop_run(self, run_id: int) -> bool:
        """
        Request cancellation of one run.

        Raises:
            RunNotFoundError: If run_id is not in flight
        """
        return self.run_manager.stop(run_id)

    def get_running(self) -> List[RunRecord]:
        return self.run_manager.get_running()

    def running_schedules(self) -> List[str]:
        return self._loops.running_schedules()

    # =========================================================================
    # STATUS
    # =========================================================================

    @property
    def is_running(self) -> bool:
        """Check if orchestrator is running."""
        return self._running

    @property
    def is_suspended(self) -> bool:
        """Check if submissions are suspended by a store outage."""
        return self._suspended

    @property
    def stats(self) -> Dict[str, Any]:
        """Get orchestrator statistics."""
        uptime_seconds = None
        if self._started_at:
            uptime_seconds = (datetime.now() - self._started_at).total_seconds()

        return {
            "running": self._running,
            "suspended": self._suspended,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "uptime_seconds": uptime_seconds,
            "schedules": self._loops.running_schedules(),
            "ticks_handled": self._ticks_handled,
            "ticks_skipped": self._ticks_skipped,
            "last_tick_at": self._last_tick_at.isoformat() if self._last_tick_at else None,
            "runs_submitted": self._runs_submitted,
            "runs_recorded": self._runs_recorded,
            "parse_failures": self._parse_failures,
            "swept_at_start": self._swept_at_start,
            "errors": self._errors,
            "run_manager": self.run_manager.stats,
        }


__all__ = ["JobOrchestrator", "SWEEP_MESSAGE", "SHUTDOWN_MESSAGE"]
