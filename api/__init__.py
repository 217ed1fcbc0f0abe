# ============================================================================
# API MODULE
# ============================================================================
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP API for job, schedule and run management
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the job scheduler.
"""

from .routes import router, set_services
from .schemas import (
    JobUpsert,
    RunJobRequest,
    ScheduleUpsert,
    ScheduleValidateRequest,
    ScheduleValidateResponse,
)

__all__ = [
    "router",
    "set_services",
    "JobUpsert",
    "RunJobRequest",
    "ScheduleUpsert",
    "ScheduleValidateRequest",
    "ScheduleValidateResponse",
]
