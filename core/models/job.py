# ============================================================================
# JOB AND SCHEDULE MODELS
# ============================================================================
# STATUS: Core model - Persisted job/schedule definitions
# PURPOSE: Bind processes to schedules; filter run history
# CREATED: 18 OCT 2026
# EXPORTS: JobDefinition, ScheduleDefinition, RunFilter
# DEPENDENCIES: pydantic
# ============================================================================
"""
Job and Schedule Models

A JobDefinition names a process, the arguments and properties it runs
with, and the schedules that fire it. A ScheduleDefinition is a named
schedule text such as "Daily every 10 seconds". Both are mutated only
through the orchestrator's management operations and read once per tick.
"""

from datetime import datetime
from typing import Any, ClassVar, List, Optional
from pydantic import BaseModel, Field, field_validator

from core.contracts import RunStatus


class JobDefinition(BaseModel):
    """
    Persisted job: which process to run, with what, and when.

    Maps to: jobs table
    """

    __sql_table__: ClassVar[str] = "jobs"
    __sql_primary_key__: ClassVar[List[str]] = ["name"]

    name: str = Field(..., min_length=1, max_length=128)
    process_id: str = Field(
        ...,
        max_length=256,
        description="Process id (script reference) to run"
    )
    properties: Optional[str] = Field(
        default=None,
        max_length=256,
        description="Properties file reference (YAML mapping seeded into variables)"
    )
    args: List[Any] = Field(default_factory=list)
    schedules: List[str] = Field(
        default_factory=list,
        description="Names of the schedules that fire this job"
    )
    enabled: bool = True
    description: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.now)


class ScheduleDefinition(BaseModel):
    """
    Named schedule text.

    Maps to: schedules table
    """

    __sql_table__: ClassVar[str] = "schedules"
    __sql_primary_key__: ClassVar[List[str]] = ["name"]

    name: str = Field(..., min_length=1, max_length=128)
    text: str = Field(..., min_length=1, max_length=2000)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """Reject schedule text that does not parse."""
        from core.errors import ScheduleParseError
        from recurrence.parser import parse_schedule_set
        try:
            parse_schedule_set(v)
        except ScheduleParseError as e:
            raise ValueError(str(e)) from e
        return v

    def parse(self, now: Optional[datetime] = None):
        """Parse into a ScheduleSet. Relative times resolve against `now`."""
        from recurrence.parser import parse_schedule_set
        return parse_schedule_set(self.text, now=now)


class RunFilter(BaseModel):
    """Query filter for run history."""

    job_name: Optional[str] = None
    statuses: Optional[List[RunStatus]] = None
    limit: int = Field(default=100, ge=1, le=10000)
    newest_first: bool = True

    def matches(self, record) -> bool:
        """True if a RunRecord passes this filter."""
        if self.job_name is not None and record.job_name != self.job_name:
            return False
        if self.statuses and record.status not in self.statuses:
            return False
        return True


__all__ = ["JobDefinition", "ScheduleDefinition", "RunFilter"]
