# ============================================================================
# API SCHEMAS
# ============================================================================
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for API validation
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Schemas

Request and response models for the management API. Stored entities
(JobDefinition, ScheduleDefinition, RunRecord) are returned as-is.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from core.models import JobDefinition, RunRecord, ScheduleDefinition


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class JobUpsert(BaseModel):
    """Request to insert or replace a job. The name comes from the path."""
    process_id: str = Field(..., max_length=256, description="Process id or YAML path")
    properties: Optional[str] = Field(None, max_length=256, description="Properties file")
    args: List[Any] = Field(default_factory=list)
    schedules: List[str] = Field(default_factory=list)
    enabled: bool = True
    description: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "process_id": "nightly_load",
                    "properties": "nightly.yaml",
                    "args": ["2026-10-18"],
                    "schedules": ["nightly"],
                }
            ]
        }
    }


class JobEnable(BaseModel):
    """Request to enable or disable a job."""
    enabled: bool


class RunJobRequest(BaseModel):
    """Request to run a job now. Omitted args use the job's stored args."""
    args: Optional[List[Any]] = None


class ScheduleUpsert(BaseModel):
    """Request to insert or replace a schedule."""
    text: str = Field(..., min_length=1, max_length=2000)

    model_config = {
        "json_schema_extra": {
            "examples": [{"text": "Weekdays at 02:00, Saturday at 06:00"}]
        }
    }


class ScheduleValidateRequest(BaseModel):
    """Request to parse schedule text and preview its occurrences."""
    text: str = Field(..., min_length=1, max_length=2000)
    now: Optional[datetime] = Field(None, description="Reference instant (default: now)")
    count: int = Field(default=5, ge=1, le=100)


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class JobListResponse(BaseModel):
    jobs: List[JobDefinition]
    total: int


class ScheduleListResponse(BaseModel):
    schedules: List[ScheduleDefinition]
    running: List[str] = Field(default_factory=list, description="Schedules with an active loop")
    total: int


class RunListResponse(BaseModel):
    runs: List[RunRecord]
    total: int


class StopRunResponse(BaseModel):
    run_id: int
    stop_requested: bool


class ScheduleValidateResponse(BaseModel):
    valid: bool
    immediate: bool = False
    occurrences: List[datetime] = Field(default_factory=list)
    error: Optional[str] = None


class ProcessSummary(BaseModel):
    process_id: str
    name: Optional[str] = None
    version: int
    description: Optional[str] = None
    parameters: List[str] = Field(default_factory=list)
    task_count: int


class ProcessListResponse(BaseModel):
    processes: List[ProcessSummary]
    total: int
    load_errors: Dict[str, List[str]] = Field(default_factory=dict)


class ProcessCheckResponse(BaseModel):
    process_id: str
    valid: bool
    order: List[str] = Field(default_factory=list, description="Tasks in topological order")
    errors: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)


__all__ = [
    "JobUpsert",
    "JobEnable",
    "RunJobRequest",
    "ScheduleUpsert",
    "ScheduleValidateRequest",
    "JobListResponse",
    "ScheduleListResponse",
    "RunListResponse",
    "StopRunResponse",
    "ScheduleValidateResponse",
    "ProcessSummary",
    "ProcessListResponse",
    "ProcessCheckResponse",
    "ErrorResponse",
]
