# ============================================================================
# TASK STATE MODEL
# ============================================================================
# STATUS: Core model - Task runtime state
# PURPOSE: Track state of each task within one process instance
# CREATED: 18 OCT 2026
# EXPORTS: TaskState
# DEPENDENCIES: pydantic
# ============================================================================
"""
Task State Model

TaskState tracks the runtime state of a single task within a run.

Key concept:
- ProcessDefinition.TaskDefinition = TEMPLATE (what to do)
- TaskState = INSTANCE (runtime state for one run)

Only the TaskGraphEngine driving the instance mutates these records.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, computed_field

from core.contracts import TaskStatus


class TaskState(BaseModel):
    """
    Runtime state of a task within a process instance.

    Lifecycle:
        1. Created WAITING (or READY when it has no dependency)
        2. READY when its dependency holds and guard is true/absent
        3. RUNNING while its action executes
        4. SUCCEEDED/FAILED/TERMINATED from the action outcome
        5. SKIPPED if the dependency can never hold or the guard is false
    """

    task_name: str = Field(..., max_length=128)
    status: TaskStatus = Field(default=TaskStatus.WAITING)

    output: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Result data from the action"
    )
    error_message: Optional[str] = Field(
        default=None,
        max_length=2000,
        description="Failure or skip reason"
    )

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @computed_field
    @property
    def is_terminal(self) -> bool:
        """Check if task is in a terminal state."""
        return self.status.is_terminal()

    @computed_field
    @property
    def duration_seconds(self) -> Optional[float]:
        """Calculate execution duration if started."""
        if not self.started_at:
            return None
        end_time = self.completed_at or datetime.now()
        return (end_time - self.started_at).total_seconds()

    def can_transition_to(self, new_status: TaskStatus) -> bool:
        """
        Validate if a status transition is allowed.

        Valid transitions:
            WAITING -> READY, SKIPPED, TERMINATED
            READY -> RUNNING, SKIPPED, FAILED, TERMINATED
            RUNNING -> SUCCEEDED, FAILED, TERMINATED
            SUCCEEDED, FAILED, TERMINATED, SKIPPED -> (none, terminal)
        """
        allowed = {
            TaskStatus.WAITING: {TaskStatus.READY, TaskStatus.SKIPPED, TaskStatus.TERMINATED},
            TaskStatus.READY: {
                TaskStatus.RUNNING, TaskStatus.SKIPPED,
                TaskStatus.FAILED, TaskStatus.TERMINATED,
            },
            TaskStatus.RUNNING: {TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.TERMINATED},
        }
        return new_status in allowed.get(self.status, set())

    def _transition(self, new_status: TaskStatus) -> None:
        if not self.can_transition_to(new_status):
            raise ValueError(
                f"Task '{self.task_name}' cannot transition from "
                f"{self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def mark_ready(self) -> None:
        """Mark task as ready (dependency holds)."""
        self._transition(TaskStatus.READY)

    def mark_running(self) -> None:
        """Mark task as running (action dispatched)."""
        self._transition(TaskStatus.RUNNING)
        self.started_at = datetime.now()

    def mark_succeeded(self, output: Optional[Dict[str, Any]] = None) -> None:
        """Mark task as succeeded."""
        self._transition(TaskStatus.SUCCEEDED)
        self.output = output
        self.completed_at = datetime.now()

    def mark_failed(self, error_message: str, output: Optional[Dict[str, Any]] = None) -> None:
        """Mark task as failed."""
        self._transition(TaskStatus.FAILED)
        self.error_message = error_message[:2000]
        self.output = output
        self.completed_at = datetime.now()

    def mark_skipped(self, reason: Optional[str] = None) -> None:
        """Mark task as skipped (never executed)."""
        self._transition(TaskStatus.SKIPPED)
        self.error_message = reason
        self.completed_at = datetime.now()

    def mark_terminated(self) -> None:
        """Mark task as terminated (cancelled)."""
        self._transition(TaskStatus.TERMINATED)
        self.completed_at = datetime.now()


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["TaskState"]
