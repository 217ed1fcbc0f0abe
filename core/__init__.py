# ============================================================================
# CORE MODULE
# ============================================================================
# STATUS: Core module initialization
# PURPOSE: Export core contracts, errors and models
# CREATED: 18 OCT 2026
# ============================================================================

from core.contracts import Outcome, RunStatus, TaskStatus
from core.errors import DbFlowError, DefinitionError
from core.models import (
    ProcessDefinition,
    TaskDefinition,
    TaskState,
    RunRecord,
    JobDefinition,
    ScheduleDefinition,
    RunFilter,
)

__all__ = [
    # Enums
    "Outcome",
    "RunStatus",
    "TaskStatus",
    # Errors
    "DbFlowError",
    "DefinitionError",
    # Models
    "ProcessDefinition",
    "TaskDefinition",
    "TaskState",
    "RunRecord",
    "JobDefinition",
    "ScheduleDefinition",
    "RunFilter",
]
