# ============================================================================
# RUN RECORD MODEL
# ============================================================================
# STATUS: Core model - One execution attempt of a job
# PURPOSE: Track status and timing of a submitted process run
# CREATED: 18 OCT 2026
# EXPORTS: RunRecord
# DEPENDENCIES: pydantic
# ============================================================================
"""
Run Record Model

A RunRecord represents one submission to the run manager.

The orchestrator creates a record (run_in_progress) when it submits a job,
the run manager fills in the final status when the run drains, and the
orchestrator persists it. Once terminal, a record is only ever rewritten
by the controller's own shutdown sweep.
"""

from datetime import datetime
from typing import ClassVar, Dict, List, Optional
from pydantic import BaseModel, Field, computed_field

from core.contracts import RunStatus, TaskStatus


class RunRecord(BaseModel):
    """
    One execution attempt of a job.

    Maps to: runs table

    Lifecycle:
        1. Created NOT_RUN, or PARSE_FAILED if the process failed to load
        2. RUN_IN_PROGRESS when submitted to the run manager
        3. RUN_SUCCEEDED / RUN_FAILED / RUN_TERMINATED when the run drains
        4. CONTROLLER_SHUTDOWN if the controller stopped first
    """

    __sql_table__: ClassVar[str] = "runs"
    __sql_primary_key__: ClassVar[List[str]] = ["run_id"]

    run_id: int = Field(..., ge=1)
    job_name: Optional[str] = Field(default=None, max_length=128)
    process_id: Optional[str] = Field(default=None, max_length=128)

    status: RunStatus = Field(default=RunStatus.NOT_RUN)
    message: Optional[str] = Field(
        default=None,
        max_length=2000,
        description="Human-readable failure or shutdown reason"
    )

    # Final status of each task (populated when the run drains)
    task_statuses: Dict[str, TaskStatus] = Field(default_factory=dict)

    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @computed_field
    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    @computed_field
    @property
    def duration_seconds(self) -> Optional[float]:
        if not self.started_at:
            return None
        end_time = self.ended_at or datetime.now()
        return (end_time - self.started_at).total_seconds()

    def mark_in_progress(self) -> None:
        """Mark run as submitted and executing."""
        if self.status.is_terminal():
            raise ValueError(
                f"Run {self.run_id} is already {self.status.value}"
            )
        self.status = RunStatus.RUN_IN_PROGRESS
        self.started_at = datetime.now()
        self.ended_at = None

    def mark_finished(
        self,
        status: RunStatus,
        message: Optional[str] = None,
        task_statuses: Optional[Dict[str, TaskStatus]] = None,
    ) -> None:
        """Record the terminal status of a drained run."""
        if not status.is_terminal():
            raise ValueError(f"Not a terminal run status: {status.value}")
        if self.status.is_terminal():
            raise ValueError(
                f"Run {self.run_id} is already {self.status.value}"
            )
        self.status = status
        self.message = message[:2000] if message else None
        if task_statuses is not None:
            self.task_statuses = dict(task_statuses)
        self.ended_at = datetime.now()

    def mark_controller_shutdown(self, message: str = "Controller shut down") -> None:
        """Shutdown sweep. The only transition allowed out of a terminal status."""
        self.status = RunStatus.CONTROLLER_SHUTDOWN
        self.message = message
        self.ended_at = self.ended_at or datetime.now()


__all__ = ["RunRecord"]
