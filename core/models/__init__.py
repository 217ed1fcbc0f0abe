# ============================================================================
# MODELS MODULE
# ============================================================================
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# CREATED: 18 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

Templates (ProcessDefinition, TaskDefinition) are loaded from YAML.
Instances (TaskState, RunRecord) are created per run.
Persisted definitions (JobDefinition, ScheduleDefinition) carry their table
name in a __sql_table__ ClassVar used by the Postgres store.
"""

from core.models.process import ProcessDefinition, TaskDefinition
from core.models.task import TaskState
from core.models.run import RunRecord
from core.models.job import JobDefinition, ScheduleDefinition, RunFilter

__all__ = [
    # Process
    "ProcessDefinition",
    "TaskDefinition",
    # Task
    "TaskState",
    # Run
    "RunRecord",
    # Job
    "JobDefinition",
    "ScheduleDefinition",
    "RunFilter",
]
