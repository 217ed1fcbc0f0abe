# ============================================================================
# ERROR TAXONOMY
# ============================================================================
# STATUS: Foundation - Exception hierarchy
# PURPOSE: Distinguish definition, guard, run-manager and store failures
# CREATED: 18 OCT 2026
# ============================================================================
"""
Error Taxonomy

Every error the system raises across a component boundary derives from
DbFlowError. The kinds matter to callers:

- DefinitionError: a process or schedule cannot be instantiated at all
- GuardEvaluationError / TemplateResolutionError: one task fails
- RunManagerError: reported synchronously to the caller of submit()
- StoreUnavailableError vs NotFoundError: transient outage vs missing entity
"""

from typing import Iterable, List, Optional


class DbFlowError(Exception):
    """Base exception for all dbflow errors."""
    pass


# ============================================================================
# DEFINITION ERRORS (load / parse time)
# ============================================================================

class DefinitionError(DbFlowError):
    """Raised when a process or schedule definition is invalid."""

    def __init__(self, message: str, errors: Optional[Iterable[str]] = None):
        self.errors: List[str] = list(errors) if errors else [message]
        super().__init__(message)


class CyclicDependencyError(DefinitionError):
    """Raised when task dependencies form a cycle."""
    pass


class ScheduleParseError(DefinitionError):
    """Raised when schedule text cannot be parsed."""
    pass


# ============================================================================
# TASK-LEVEL ERRORS (fail one task, never the process)
# ============================================================================

class GuardEvaluationError(DbFlowError):
    """Raised when a task guard expression cannot be evaluated."""
    pass


class TemplateResolutionError(DbFlowError):
    """Raised when an action parameter template cannot be resolved."""
    pass


class ActionCancelled(DbFlowError):
    """Raised inside an action that observed its cancellation token."""
    pass


class NestingDepthError(DbFlowError):
    """Raised when nested sub-processes exceed the configured depth."""

    def __init__(self, depth: int, limit: int):
        self.depth = depth
        self.limit = limit
        super().__init__(f"Nesting depth {depth} exceeds limit {limit}")


# ============================================================================
# RUN MANAGER ERRORS
# ============================================================================

class RunManagerError(DbFlowError):
    """Base exception for run manager submission errors."""
    pass


class RunManagerClosedError(RunManagerError):
    """Raised when submitting to a closed run manager."""

    def __init__(self):
        super().__init__("Run manager is closed to new submissions")


class RunCapacityError(RunManagerError):
    """Raised when the in-flight run limit is reached."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Run manager is at capacity ({limit} runs in flight)")


class DuplicateRunError(RunManagerError):
    """Raised when a run id is already in flight."""

    def __init__(self, run_id: int):
        self.run_id = run_id
        super().__init__(f"Run {run_id} is already in flight")


# ============================================================================
# STORE ERRORS
# ============================================================================

class StoreError(DbFlowError):
    """Base exception for persistence errors."""
    pass


class StoreUnavailableError(StoreError):
    """Raised when the store is transiently unreachable."""
    pass


class NotFoundError(StoreError, LookupError):
    """Raised when a requested entity does not exist."""

    def __init__(self, kind: str, key):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class JobNotFoundError(NotFoundError):
    def __init__(self, name: str):
        super().__init__("Job", name)


class ScheduleNotFoundError(NotFoundError):
    def __init__(self, name: str):
        super().__init__("Schedule", name)


class RunNotFoundError(NotFoundError):
    def __init__(self, run_id: int):
        super().__init__("Run", run_id)


# ============================================================================
# ORCHESTRATOR ERRORS
# ============================================================================

class OrchestratorStateError(DbFlowError):
    """Raised when the orchestrator is used in the wrong lifecycle state."""
    pass


class JobAlreadyRunningError(DbFlowError):
    """Raised when a job still has an unfinished run."""

    def __init__(self, job_name: str):
        self.job_name = job_name
        super().__init__(f"Job is already running: {job_name}")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "DbFlowError",
    "DefinitionError",
    "CyclicDependencyError",
    "ScheduleParseError",
    "GuardEvaluationError",
    "TemplateResolutionError",
    "ActionCancelled",
    "NestingDepthError",
    "RunManagerError",
    "RunManagerClosedError",
    "RunCapacityError",
    "DuplicateRunError",
    "StoreError",
    "StoreUnavailableError",
    "NotFoundError",
    "JobNotFoundError",
    "ScheduleNotFoundError",
    "RunNotFoundError",
    "OrchestratorStateError",
    "JobAlreadyRunningError",
]
