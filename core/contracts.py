# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# STATUS: Foundation - Core status enums
# PURPOSE: Define task, dependency and run status enums shared by all layers
# CREATED: 18 OCT 2026
# EXPORTS: TaskStatus, Outcome, RunStatus
# DEPENDENCIES: enum
# ============================================================================
"""
Base contracts for the process scheduling system.

These enums cross every boundary:
- SQL (PostgreSQL run history)
- HTTP (management API responses)
- Python (task graph engine, run manager, orchestrator)
"""

from enum import Enum


# ============================================================================
# STATUS ENUMS
# ============================================================================

class TaskStatus(str, Enum):
    """
    Task lifecycle states within one process instance.

    State transitions:
        WAITING -> READY -> RUNNING -> SUCCEEDED
                                    -> FAILED
                                    -> TERMINATED
                -> SKIPPED (dependency can never hold, or guard false)
        READY   -> SKIPPED (guard false)
                -> FAILED  (guard or template error)
        WAITING/READY -> TERMINATED (cancelled before start)
    """
    WAITING = "waiting"          # Dependency not yet satisfied
    READY = "ready"              # Dependency satisfied, eligible to start
    RUNNING = "running"          # Action executing
    SUCCEEDED = "succeeded"      # Action reported success
    FAILED = "failed"            # Action reported failure or raised
    TERMINATED = "terminated"    # Cancelled
    SKIPPED = "skipped"          # Never executed

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further transitions)."""
        return self in (
            TaskStatus.SUCCEEDED,
            TaskStatus.FAILED,
            TaskStatus.TERMINATED,
            TaskStatus.SKIPPED,
        )

    def is_completed(self) -> bool:
        """Check if this state satisfies a COMPLETES dependency term."""
        return self in (TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.SKIPPED)


class Outcome(str, Enum):
    """Terminal condition required of a predecessor by a dependency term."""
    SUCCEEDS = "succeeds"
    FAILS = "fails"
    COMPLETES = "completes"

    def is_met_by(self, status: TaskStatus) -> bool:
        """Check whether a terminal task status satisfies this outcome."""
        if self is Outcome.SUCCEEDS:
            return status == TaskStatus.SUCCEEDED
        if self is Outcome.FAILS:
            return status == TaskStatus.FAILED
        return status.is_completed()


class RunStatus(str, Enum):
    """
    Process run lifecycle states.

    State transitions:
        NOT_RUN -> RUN_IN_PROGRESS -> RUN_SUCCEEDED
                                   -> RUN_FAILED
                                   -> RUN_TERMINATED
                                   -> CONTROLLER_SHUTDOWN
        NOT_RUN -> PARSE_FAILED
    """
    NOT_RUN = "not_run"
    PARSE_FAILED = "parse_failed"
    RUN_IN_PROGRESS = "run_in_progress"
    RUN_FAILED = "run_failed"
    RUN_SUCCEEDED = "run_succeeded"
    RUN_TERMINATED = "run_terminated"
    CONTROLLER_SHUTDOWN = "controller_shutdown"

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self not in (RunStatus.NOT_RUN, RunStatus.RUN_IN_PROGRESS)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["TaskStatus", "Outcome", "RunStatus"]
