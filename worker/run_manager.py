# ============================================================================
# CONCURRENT RUN MANAGER
# ============================================================================
# STATUS: Core - Process run execution
# PURPOSE: Run many process instances concurrently, yield completions in order
# CREATED: 18 OCT 2026
# ============================================================================
"""
Concurrent Run Manager

Accepts process-instance execution requests, runs each as its own asyncio
task, and hands back finished RunRecords in completion order.

    manager = RunManager(max_concurrent_runs=8)
    manager.submit(41, process, ProcessContext(args=["2026-10-18"]), job_name="nightly")
    record = await manager.get_completed()   # RunRecord(run_id=41, status=run_succeeded)

Invariants:
- submit() registers the run in the in-flight table before its task can
  finish, and completions are delivered through a queue; both happen on
  the event loop thread with no await in between, so a completion is never
  observable before its registration.
- A run is removed from the in-flight table exactly once, by the
  get_completed() call that dequeues it (or by close() when abandoned).
- Nothing raised inside a run crosses this boundary: the record becomes
  run_failed with a readable message.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from core.config import get_defaults
from core.contracts import RunStatus
from core.errors import (
    DuplicateRunError,
    RunCapacityError,
    RunManagerClosedError,
    RunNotFoundError,
)
from core.logging import log_checkpoint, log_context
from core.models import ProcessDefinition, RunRecord
from orchestrator.engine import ProcessContext, TaskGraphEngine

logger = logging.getLogger(__name__)


@dataclass
class _InFlight:
    """Bookkeeping for one submitted run."""
    record: RunRecord
    engine: TaskGraphEngine
    task: Optional[asyncio.Task] = None
    finished: bool = False
    abandoned: bool = False


class RunManager:
    """
    Runs submitted process instances concurrently.

    max_concurrent_runs of 0 means unlimited.
    """

    def __init__(
        self,
        max_concurrent_runs: Optional[int] = None,
        shutdown_grace_seconds: Optional[float] = None,
    ):
        defaults = get_defaults().run_manager
        self.max_concurrent_runs = (
            max_concurrent_runs if max_concurrent_runs is not None
            else defaults.max_concurrent_runs
        )
        self.shutdown_grace_seconds = (
            shutdown_grace_seconds if shutdown_grace_seconds is not None
            else defaults.shutdown_grace_seconds
        )

        self._in_flight: Dict[int, _InFlight] = {}
        self._completed: "asyncio.Queue[int]" = asyncio.Queue()
        self._closed = False

        # Metrics
        self._submitted_count = 0
        self._completed_count = 0
        self._abandoned_count = 0

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        run_id: int,
        process: ProcessDefinition,
        context: Optional[ProcessContext] = None,
        job_name: Optional[str] = None,
    ) -> RunRecord:
        """
        Start executing a process instance and return immediately.

        Must be called from the event loop thread.

        Returns:
            The RunRecord, already RUN_IN_PROGRESS

        Raises:
            RunManagerClosedError: After close()
            DuplicateRunError: If run_id is still in flight
            RunCapacityError: If max_concurrent_runs runs are executing
            DefinitionError: If the process cannot be instantiated
        """
        if self._closed:
            raise RunManagerClosedError()
        if run_id in self._in_flight:
            raise DuplicateRunError(run_id)
        if self.max_concurrent_runs and self.active_count >= self.max_concurrent_runs:
            raise RunCapacityError(self.max_concurrent_runs)

        context = context or ProcessContext()
        context.run_id = run_id
        context.job_name = job_name

        engine = TaskGraphEngine(process, context)

        record = RunRecord(run_id=run_id, job_name=job_name, process_id=process.process_id)
        record.mark_in_progress()

        entry = _InFlight(record=record, engine=engine)
        self._in_flight[run_id] = entry
        entry.task = asyncio.create_task(self._drive(entry), name=f"run-{run_id}")
        self._submitted_count += 1

        with log_context(run_id=run_id, job_name=job_name, process_id=process.process_id):
            log_checkpoint("run_submitted", {"in_flight": len(self._in_flight)})

        return record

    async def _drive(self, entry: _InFlight) -> None:
        record = entry.record
        with log_context(run_id=record.run_id, job_name=record.job_name, process_id=record.process_id):
            try:
                result = await entry.engine.run()
                record.mark_finished(result.status, result.message, result.task_statuses)
            except asyncio.CancelledError:
                record.mark_finished(
                    RunStatus.RUN_TERMINATED,
                    "Run abandoned after shutdown grace period",
                    entry.engine.statuses(),
                )
                entry.finished = True
                raise
            except Exception as e:
                logger.exception(f"Run {record.run_id} raised: {e}")
                record.mark_finished(
                    RunStatus.RUN_FAILED,
                    f"Internal error: {type(e).__name__}: {e}",
                    entry.engine.statuses(),
                )

            entry.finished = True
            self._completed.put_nowait(record.run_id)
            log_checkpoint("run_completed", {
                "status": record.status.value,
                "duration_seconds": record.duration_seconds,
            })

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def get_completed(self, timeout: Optional[float] = None) -> Optional[RunRecord]:
        """
        Wait for the next finished run and remove it from the in-flight table.

        Each finished run is returned to exactly one caller.

        A timeout of 0 or less polls without waiting.

        Returns:
            The finished RunRecord, or None if `timeout` elapsed first
        """
        try:
            if timeout is None:
                run_id = await self._completed.get()
            elif timeout <= 0:
                run_id = self._completed.get_nowait()
            else:
                run_id = await asyncio.wait_for(self._completed.get(), timeout=timeout)
        except (asyncio.TimeoutError, asyncio.QueueEmpty):
            return None

        entry = self._in_flight.pop(run_id)
        self._completed_count += 1
        return entry.record

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def stop(self, run_id: int) -> bool:
        """
        Request cancellation of one run.

        Returns:
            True if the request was accepted, False if the run already
            finished and is waiting to be retrieved

        Raises:
            RunNotFoundError: If run_id is not in flight
        """
        entry = self._in_flight.get(run_id)
        if entry is None:
            raise RunNotFoundError(run_id)
        if entry.finished:
            return False

        logger.info(f"Stopping run {run_id}")
        entry.engine.cancel()
        return True

    def stop_all(self) -> int:
        """Request cancellation of every unfinished run. Returns how many."""
        count = 0
        for entry in self._in_flight.values():
            if not entry.finished:
                entry.engine.cancel()
                count += 1
        if count:
            logger.info(f"Requested cancellation of {count} runs")
        return count

    async def close(self, grace: Optional[float] = None) -> List[RunRecord]:
        """
        Stop accepting submissions and wait up to `grace` seconds for
        unfinished runs.

        Runs still unfinished after the grace period are abandoned: their
        tasks are cancelled, they are removed from the in-flight table and
        logged.

        Returns:
            Records of the abandoned runs
        """
        self._closed = True
        grace = self.shutdown_grace_seconds if grace is None else grace

        pending = {
            entry.task: entry for entry in self._in_flight.values()
            if not entry.finished and entry.task is not None
        }
        if not pending:
            return []

        logger.info(f"Waiting up to {grace}s for {len(pending)} runs to finish")
        _, still_running = await asyncio.wait(list(pending), timeout=grace)

        abandoned: List[RunRecord] = []
        for task in still_running:
            entry = pending[task]
            entry.abandoned = True
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)

        for task in still_running:
            entry = pending[task]
            self._in_flight.pop(entry.record.run_id, None)
            self._abandoned_count += 1
            abandoned.append(entry.record)
            logger.warning(
                f"Abandoned run {entry.record.run_id} "
                f"(job={entry.record.job_name}, process={entry.record.process_id})"
            )

        return abandoned

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def active_count(self) -> int:
        """Runs still executing."""
        return sum(1 for entry in self._in_flight.values() if not entry.finished)

    @property
    def pending_count(self) -> int:
        """Finished runs not yet retrieved."""
        return self._completed.qsize()

    def get_running(self) -> List[RunRecord]:
        """Records of runs still executing, oldest first."""
        return [
            entry.record for entry in sorted(self._in_flight.values(), key=lambda e: e.record.run_id)
            if not entry.finished
        ]

    def is_running(self, job_name: str) -> bool:
        """Whether job_name has a run still executing."""
        return any(
            entry.record.job_name == job_name and not entry.finished
            for entry in self._in_flight.values()
        )

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "closed": self._closed,
            "active": self.active_count,
            "pending_completions": self.pending_count,
            "max_concurrent_runs": self.max_concurrent_runs,
            "submitted": self._submitted_count,
            "completed": self._completed_count,
            "abandoned": self._abandoned_count,
        }


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["RunManager"]
