# ============================================================================
# API ROUTES
# ============================================================================
# STATUS: Core - FastAPI route definitions
# PURPOSE: HTTP endpoints for jobs, schedules, runs and processes
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Routes

Thin management layer over the orchestrator, the store and the process
service. Writes to jobs and schedules go through the orchestrator so that
schedule loops are revised; everything else reads the store directly.

Error mapping:
    not found                    -> 404
    already running / refused    -> 409
    invalid definition           -> 422
    store down / not started     -> 503
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from core.contracts import RunStatus
from core.errors import (
    DefinitionError,
    JobAlreadyRunningError,
    NotFoundError,
    OrchestratorStateError,
    RunManagerError,
    StoreUnavailableError,
)
from core.models import JobDefinition, RunFilter, RunRecord, ScheduleDefinition
from recurrence import parse_schedule_set
from .schemas import (
    JobEnable,
    JobListResponse,
    JobUpsert,
    ProcessCheckResponse,
    ProcessListResponse,
    ProcessSummary,
    RunJobRequest,
    RunListResponse,
    ScheduleListResponse,
    ScheduleUpsert,
    ScheduleValidateRequest,
    ScheduleValidateResponse,
    StopRunResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# These will be set by the main app at startup

_orchestrator = None
_store = None
_process_service = None


def set_services(orchestrator, store, process_service):
    """Set service instances for dependency injection."""
    global _orchestrator, _store, _process_service
    _orchestrator = orchestrator
    _store = store
    _process_service = process_service


def get_orchestrator():
    if _orchestrator is None:
        raise HTTPException(500, "Orchestrator not initialized")
    return _orchestrator


def get_store():
    if _store is None:
        raise HTTPException(500, "Store not initialized")
    return _store


def get_process_service():
    if _process_service is None:
        raise HTTPException(500, "Process service not initialized")
    return _process_service


def _http_error(e: Exception) -> HTTPException:
    """Map a domain error onto an HTTP status."""
    if isinstance(e, NotFoundError):
        return HTTPException(404, str(e))
    if isinstance(e, (JobAlreadyRunningError, RunManagerError)):
        return HTTPException(409, str(e))
    if isinstance(e, DefinitionError):
        return HTTPException(422, str(e))
    if isinstance(e, (StoreUnavailableError, OrchestratorStateError)):
        return HTTPException(503, str(e))
    return HTTPException(500, str(e))


_DOMAIN_ERRORS = (
    NotFoundError,
    JobAlreadyRunningError,
    RunManagerError,
    DefinitionError,
    StoreUnavailableError,
    OrchestratorStateError,
)


# ============================================================================
# ORCHESTRATOR STATUS
# ============================================================================

@router.get("/orchestrator/status", tags=["Orchestrator"])
async def get_orchestrator_status():
    """
    Get orchestrator status and statistics.

    Returns running/suspended state, active schedules, tick and run
    counters, and the run manager's counters.
    """
    stats = get_orchestrator().stats

    if not stats["running"]:
        status = "stopped"
    elif stats["suspended"]:
        status = "suspended"
    else:
        status = "running"

    return {
        "status": status,
        "started_at": stats["started_at"],
        "uptime_seconds": stats["uptime_seconds"],
        "schedules": stats["schedules"],
        "metrics": {
            "ticks_handled": stats["ticks_handled"],
            "ticks_skipped": stats["ticks_skipped"],
            "last_tick_at": stats["last_tick_at"],
            "runs_submitted": stats["runs_submitted"],
            "runs_recorded": stats["runs_recorded"],
            "parse_failures": stats["parse_failures"],
            "swept_at_start": stats["swept_at_start"],
            "errors": stats["errors"],
        },
        "run_manager": stats["run_manager"],
    }


# ============================================================================
# JOBS
# ============================================================================

@router.get("/jobs", response_model=JobListResponse, tags=["Jobs"])
async def list_jobs(enabled_only: bool = Query(False, description="Only enabled jobs")):
    """List stored jobs."""
    store = get_store()
    try:
        jobs = await (store.load_enabled_jobs() if enabled_only else store.list_jobs())
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)
    return JobListResponse(jobs=jobs, total=len(jobs))


@router.get("/jobs/{name}", response_model=JobDefinition, tags=["Jobs"])
async def get_job(name: str):
    """Get one job."""
    try:
        return await get_store().load_job(name)
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.put("/jobs/{name}", response_model=JobDefinition, tags=["Jobs"])
async def put_job(name: str, request: JobUpsert):
    """
    Insert or replace a job.

    The process must load and check cleanly. Takes effect on the next tick.
    """
    process_service = get_process_service()
    try:
        process_service.get_or_raise(request.process_id)
        job = JobDefinition(name=name, **request.model_dump())
        return await get_orchestrator().save_job(job)
    except ValidationError as e:
        raise HTTPException(422, str(e))
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.delete("/jobs/{name}", tags=["Jobs"])
async def delete_job(name: str):
    """Delete a job. A run already in flight is left to finish."""
    try:
        await get_orchestrator().delete_job(name)
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)
    return {"deleted": True, "name": name}


@router.put("/jobs/{name}/enabled", response_model=JobDefinition, tags=["Jobs"])
async def set_job_enabled(name: str, request: JobEnable):
    """Enable or disable a job."""
    try:
        return await get_orchestrator().set_job_enabled(name, request.enabled)
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.post("/jobs/{name}/run", response_model=RunRecord, status_code=202, tags=["Jobs"])
async def run_job(name: str, request: Optional[RunJobRequest] = None):
    """
    Submit one run of a job now.

    A job whose process fails to load is recorded as parse_failed and the
    record is returned.
    """
    args = request.args if request else None
    try:
        record = await get_orchestrator().run_job(name, args)
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)

    logger.info(f"Ad hoc run {record.run_id} of job {name}: {record.status.value}")
    return record


# ============================================================================
# RUNS
# ============================================================================

@router.get("/running", response_model=RunListResponse, tags=["Runs"])
async def list_running():
    """Runs currently in flight."""
    runs = get_orchestrator().get_running()
    return RunListResponse(runs=runs, total=len(runs))


@router.get("/runs", response_model=RunListResponse, tags=["Runs"])
async def list_runs(
    job_name: Optional[str] = Query(None, description="Filter by job"),
    status: Optional[List[RunStatus]] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=10000),
    newest_first: bool = Query(True),
):
    """List stored run records."""
    run_filter = RunFilter(
        job_name=job_name,
        statuses=status,
        limit=limit,
        newest_first=newest_first,
    )
    try:
        runs = await get_store().list_runs(run_filter)
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)
    return RunListResponse(runs=runs, total=len(runs))


@router.get("/runs/{run_id}", response_model=RunRecord, tags=["Runs"])
async def get_run(run_id: int):
    """Get one run record."""
    try:
        return await get_store().load_run_record(run_id)
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.post("/runs/{run_id}/stop", response_model=StopRunResponse, tags=["Runs"])
async def stop_run(run_id: int):
    """
    Request cancellation of an in-flight run.

    stop_requested is false when the run had already finished.
    """
    try:
        requested = get_orchestrator().stop_run(run_id)
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)
    return StopRunResponse(run_id=run_id, stop_requested=requested)


# ============================================================================
# SCHEDULES
# ============================================================================

@router.get("/schedules", response_model=ScheduleListResponse, tags=["Schedules"])
async def list_schedules():
    """List stored schedules and which of them have an active loop."""
    try:
        schedules = await get_store().load_schedules()
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)
    return ScheduleListResponse(
        schedules=schedules,
        running=get_orchestrator().running_schedules(),
        total=len(schedules),
    )


@router.get("/schedules/{name}", response_model=ScheduleDefinition, tags=["Schedules"])
async def get_schedule(name: str):
    """Get one schedule."""
    try:
        return await get_store().load_schedule(name)
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.put("/schedules/{name}", response_model=ScheduleDefinition, tags=["Schedules"])
async def put_schedule(name: str, request: ScheduleUpsert):
    """Insert or replace a schedule; its loop restarts with the new text."""
    try:
        schedule = ScheduleDefinition(name=name, text=request.text)
    except ValidationError as e:
        raise HTTPException(422, str(e))

    try:
        return await get_orchestrator().save_schedule(schedule)
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.delete("/schedules/{name}", tags=["Schedules"])
async def delete_schedule(name: str):
    """Delete a schedule and stop its loop."""
    try:
        await get_orchestrator().delete_schedule(name)
    except _DOMAIN_ERRORS as e:
        raise _http_error(e)
    return {"deleted": True, "name": name}


@router.post("/schedules/validate", response_model=ScheduleValidateResponse, tags=["Schedules"])
async def validate_schedule(request: ScheduleValidateRequest):
    """Parse schedule text and preview its next occurrences."""
    now = request.now or datetime.now()
    try:
        schedules = parse_schedule_set(request.text, now=now)
    except DefinitionError as e:
        return ScheduleValidateResponse(valid=False, error=str(e))

    return ScheduleValidateResponse(
        valid=True,
        immediate=schedules.is_immediate,
        occurrences=schedules.occurrences(now, request.count),
    )


# ============================================================================
# PROCESSES
# ============================================================================

@router.get("/processes", response_model=ProcessListResponse, tags=["Processes"])
async def list_processes():
    """List loaded process definitions and files that failed to load."""
    service = get_process_service()
    processes = service.list_all()
    summaries = [
        ProcessSummary(
            process_id=p.process_id,
            name=p.name,
            version=p.version,
            description=p.description,
            parameters=p.parameters,
            task_count=len(p.tasks),
        )
        for p in processes
    ]
    return ProcessListResponse(
        processes=summaries,
        total=len(summaries),
        load_errors=service.load_errors,
    )


@router.get("/processes/{process_id}/check", response_model=ProcessCheckResponse, tags=["Processes"])
async def check_process(process_id: str):
    """Validate a process and report its execution order or its problems."""
    service = get_process_service()
    try:
        process = service.get(process_id)
    except DefinitionError as e:
        return ProcessCheckResponse(
            process_id=process_id,
            valid=False,
            errors=e.errors or [str(e)],
        )

    if process is None:
        raise HTTPException(404, f"Process not found: {process_id}")

    try:
        order = service.check(process)
    except DefinitionError as e:
        return ProcessCheckResponse(process_id=process_id, valid=False, errors=e.errors or [str(e)])

    return ProcessCheckResponse(process_id=process_id, valid=True, order=order)


__all__ = ["router", "set_services"]
