# ============================================================================
# API ROUTE TESTS
# ============================================================================
# STATUS: Tests - Management HTTP endpoints
# PURPOSE: Verify api/routes.py endpoints and their error mapping
# CREATED: 18 OCT 2026
# ============================================================================
"""
API Route Tests

Tests the management endpoints (api/routes.py) with mocked orchestrator,
store and process service.

Covers:
1. Orchestrator status
2. Jobs: list, get, upsert, delete, enable, ad hoc run
3. Runs: running, history, single record, stop
4. Schedules: list, get, upsert, delete, validate
5. Processes: list, check
6. Error mapping (404 / 409 / 422 / 503)

Run with:
    pytest tests/test_api_routes.py -v
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.routes import router, set_services
from core.contracts import RunStatus
from core.errors import (
    DefinitionError,
    JobAlreadyRunningError,
    JobNotFoundError,
    RunCapacityError,
    RunNotFoundError,
    ScheduleNotFoundError,
    StoreUnavailableError,
)
from core.models import JobDefinition, ProcessDefinition, RunFilter, RunRecord, ScheduleDefinition


# ============================================================================
# FIXTURES
# ============================================================================

def _make_test_app(orchestrator, store, process_service):
    """Create a test FastAPI app with the management routes and mocked services."""
    app = FastAPI()
    app.include_router(router, prefix="/api/v1")
    set_services(orchestrator, store, process_service)
    return app


def _make_run(run_id=1, job_name="nightly_load", status=RunStatus.RUN_IN_PROGRESS):
    record = RunRecord(run_id=run_id, job_name=job_name, process_id="nightly_load")
    record.mark_in_progress()
    if status != RunStatus.RUN_IN_PROGRESS:
        record.mark_finished(status)
    return record


def _make_job(name="nightly_load"):
    return JobDefinition(name=name, process_id="nightly_load", schedules=["nightly"])


@pytest.fixture
def orchestrator():
    mock = MagicMock()
    mock.stats = {
        "running": True,
        "suspended": False,
        "started_at": "2026-10-18T02:00:00",
        "uptime_seconds": 12.5,
        "schedules": ["nightly"],
        "ticks_handled": 3,
        "ticks_skipped": 0,
        "last_tick_at": None,
        "runs_submitted": 4,
        "runs_recorded": 3,
        "parse_failures": 0,
        "swept_at_start": 0,
        "errors": 0,
        "run_manager": {"active": 1},
    }
    mock.save_job = AsyncMock(side_effect=lambda job: job)
    mock.set_job_enabled = AsyncMock()
    mock.run_job = AsyncMock()
    mock.save_schedule = AsyncMock(side_effect=lambda schedule: schedule)
    mock.delete_job = AsyncMock()
    mock.delete_schedule = AsyncMock()
    mock.running_schedules.return_value = ["nightly"]
    return mock


@pytest.fixture
def store():
    mock = MagicMock()
    mock.list_jobs = AsyncMock(return_value=[_make_job(), _make_job("heartbeat")])
    mock.load_enabled_jobs = AsyncMock(return_value=[_make_job()])
    mock.load_job = AsyncMock(return_value=_make_job())
    mock.list_runs = AsyncMock(return_value=[_make_run(2), _make_run(1)])
    mock.load_run_record = AsyncMock(return_value=_make_run(1, status=RunStatus.RUN_SUCCEEDED))
    mock.load_schedules = AsyncMock(return_value=[
        ScheduleDefinition(name="nightly", text="Weekdays at '2:00 AM'"),
    ])
    mock.load_schedule = AsyncMock(
        return_value=ScheduleDefinition(name="nightly", text="Weekdays at '2:00 AM'")
    )
    return mock


@pytest.fixture
def process_service():
    mock = MagicMock()
    process = ProcessDefinition(process_id="nightly_load", parameters=["day"], tasks={"a": "echo"})
    mock.get_or_raise.return_value = process
    mock.get.return_value = process
    mock.list_all.return_value = [process]
    mock.load_errors = {"/processes/bad.yaml": ["tasks: Field required"]}
    mock.check.return_value = ["a"]
    return mock


@pytest.fixture
def client(orchestrator, store, process_service):
    return TestClient(_make_test_app(orchestrator, store, process_service))


# ============================================================================
# ORCHESTRATOR STATUS
# ============================================================================

class TestStatus:

    def test_running(self, client):
        resp = client.get("/api/v1/orchestrator/status")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "running"
        assert data["metrics"]["runs_submitted"] == 4
        assert data["run_manager"] == {"active": 1}

    def test_suspended(self, client, orchestrator):
        orchestrator.stats["suspended"] = True
        assert client.get("/api/v1/orchestrator/status").json()["status"] == "suspended"


# ============================================================================
# JOBS
# ============================================================================

class TestJobs:

    def test_list(self, client, store):
        resp = client.get("/api/v1/jobs")
        assert resp.status_code == 200
        assert resp.json()["total"] == 2
        store.list_jobs.assert_awaited_once()

    def test_list_enabled_only(self, client, store):
        resp = client.get("/api/v1/jobs", params={"enabled_only": True})
        assert resp.json()["total"] == 1
        store.load_enabled_jobs.assert_awaited_once()

    def test_get_missing(self, client, store):
        store.load_job.side_effect = JobNotFoundError("nope")
        resp = client.get("/api/v1/jobs/nope")
        assert resp.status_code == 404
        assert "Job not found: nope" in resp.json()["detail"]

    def test_put(self, client, orchestrator):
        resp = client.put("/api/v1/jobs/nightly_load", json={
            "process_id": "nightly_load",
            "args": ["2026-10-18"],
            "schedules": ["nightly"],
        })
        assert resp.status_code == 200
        saved = orchestrator.save_job.call_args[0][0]
        assert saved.name == "nightly_load"
        assert saved.args == ["2026-10-18"]

    def test_put_with_unloadable_process(self, client, process_service, orchestrator):
        process_service.get_or_raise.side_effect = DefinitionError("Process not found: nope")
        resp = client.put("/api/v1/jobs/x", json={"process_id": "nope"})
        assert resp.status_code == 422
        orchestrator.save_job.assert_not_called()

    def test_delete(self, client, orchestrator):
        resp = client.delete("/api/v1/jobs/nightly_load")
        assert resp.status_code == 200
        assert resp.json() == {"deleted": True, "name": "nightly_load"}
        orchestrator.delete_job.assert_awaited_once_with("nightly_load")

    @pytest.mark.parametrize("error, status", [
        (JobNotFoundError("nope"), 404),
        (StoreUnavailableError("down"), 503),
    ])
    def test_delete_errors(self, client, orchestrator, error, status):
        orchestrator.delete_job.side_effect = error
        assert client.delete("/api/v1/jobs/nope").status_code == status

    def test_enable(self, client, orchestrator):
        orchestrator.set_job_enabled.return_value = _make_job()
        resp = client.put("/api/v1/jobs/nightly_load/enabled", json={"enabled": False})
        assert resp.status_code == 200
        orchestrator.set_job_enabled.assert_awaited_once_with("nightly_load", False)

    def test_run(self, client, orchestrator):
        orchestrator.run_job.return_value = _make_run(5)
        resp = client.post("/api/v1/jobs/nightly_load/run", json={"args": ["2026-10-19"]})
        assert resp.status_code == 202
        assert resp.json()["run_id"] == 5
        orchestrator.run_job.assert_awaited_once_with("nightly_load", ["2026-10-19"])

    def test_run_without_body_uses_stored_args(self, client, orchestrator):
        orchestrator.run_job.return_value = _make_run(6)
        resp = client.post("/api/v1/jobs/nightly_load/run")
        assert resp.status_code == 202
        orchestrator.run_job.assert_awaited_once_with("nightly_load", None)

    @pytest.mark.parametrize("error, status", [
        (JobAlreadyRunningError("nightly_load"), 409),
        (RunCapacityError(4), 409),
        (JobNotFoundError("nightly_load"), 404),
        (StoreUnavailableError("down"), 503),
    ])
    def test_run_errors(self, client, orchestrator, error, status):
        orchestrator.run_job.side_effect = error
        resp = client.post("/api/v1/jobs/nightly_load/run")
        assert resp.status_code == status


# ============================================================================
# RUNS
# ============================================================================

class TestRuns:

    def test_running(self, client, orchestrator):
        orchestrator.get_running.return_value = [_make_run(3)]
        resp = client.get("/api/v1/running")
        assert resp.status_code == 200
        assert [r["run_id"] for r in resp.json()["runs"]] == [3]

    def test_history_filter(self, client, store):
        resp = client.get("/api/v1/runs", params={
            "job_name": "nightly_load",
            "status": ["run_failed", "controller_shutdown"],
            "limit": 10,
        })
        assert resp.status_code == 200
        run_filter = store.list_runs.call_args[0][0]
        assert isinstance(run_filter, RunFilter)
        assert run_filter.job_name == "nightly_load"
        assert run_filter.statuses == [RunStatus.RUN_FAILED, RunStatus.CONTROLLER_SHUTDOWN]
        assert run_filter.limit == 10

    def test_get(self, client):
        resp = client.get("/api/v1/runs/1")
        assert resp.status_code == 200
        assert resp.json()["status"] == "run_succeeded"

    def test_get_missing(self, client, store):
        store.load_run_record.side_effect = RunNotFoundError(99)
        assert client.get("/api/v1/runs/99").status_code == 404

    def test_stop(self, client, orchestrator):
        orchestrator.stop_run.return_value = True
        resp = client.post("/api/v1/runs/4/stop")
        assert resp.status_code == 200
        assert resp.json() == {"run_id": 4, "stop_requested": True}

    def test_stop_missing_is_not_found(self, client, orchestrator):
        orchestrator.stop_run.side_effect = RunNotFoundError(4)
        assert client.post("/api/v1/runs/4/stop").status_code == 404

    def test_store_down(self, client, store):
        store.list_runs.side_effect = StoreUnavailableError("connection refused")
        assert client.get("/api/v1/runs").status_code == 503


# ============================================================================
# SCHEDULES
# ============================================================================

class TestSchedules:

    def test_list(self, client):
        resp = client.get("/api/v1/schedules")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        assert data["running"] == ["nightly"]

    def test_put(self, client, orchestrator):
        resp = client.put("/api/v1/schedules/nightly", json={"text": "Daily at '3:00 AM'"})
        assert resp.status_code == 200
        saved = orchestrator.save_schedule.call_args[0][0]
        assert saved.text == "Daily at '3:00 AM'"

    def test_put_invalid_text(self, client, orchestrator):
        resp = client.put("/api/v1/schedules/nightly", json={"text": "Sometimes"})
        assert resp.status_code == 422
        orchestrator.save_schedule.assert_not_called()

    def test_delete(self, client, orchestrator):
        resp = client.delete("/api/v1/schedules/nightly")
        assert resp.status_code == 200
        assert resp.json() == {"deleted": True, "name": "nightly"}
        orchestrator.delete_schedule.assert_awaited_once_with("nightly")

    @pytest.mark.parametrize("error, status", [
        (ScheduleNotFoundError("nope"), 404),
        (StoreUnavailableError("down"), 503),
    ])
    def test_delete_errors(self, client, orchestrator, error, status):
        orchestrator.delete_schedule.side_effect = error
        assert client.delete("/api/v1/schedules/nope").status_code == status

    def test_validate(self, client):
        resp = client.post("/api/v1/schedules/validate", json={
            "text": "Weekdays at '2:00 AM'",
            "now": "2015-11-09T15:15:06",
            "count": 3,
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["valid"] is True
        assert data["occurrences"] == [
            "2015-11-10T02:00:00",
            "2015-11-11T02:00:00",
            "2015-11-12T02:00:00",
        ]

    def test_validate_invalid(self, client):
        resp = client.post("/api/v1/schedules/validate", json={"text": "Sometimes"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["valid"] is False
        assert data["error"]


# ============================================================================
# PROCESSES
# ============================================================================

class TestProcesses:

    def test_list(self, client):
        resp = client.get("/api/v1/processes")
        assert resp.status_code == 200
        data = resp.json()
        assert data["processes"][0]["process_id"] == "nightly_load"
        assert data["processes"][0]["task_count"] == 1
        assert "/processes/bad.yaml" in data["load_errors"]

    def test_check(self, client):
        resp = client.get("/api/v1/processes/nightly_load/check")
        assert resp.json() == {
            "process_id": "nightly_load",
            "valid": True,
            "order": ["a"],
            "errors": [],
        }

    def test_check_invalid(self, client, process_service):
        process_service.check.side_effect = DefinitionError(
            "Invalid process", ["b: unknown predecessor 'c'"],
        )
        data = client.get("/api/v1/processes/nightly_load/check").json()
        assert data["valid"] is False
        assert data["errors"] == ["b: unknown predecessor 'c'"]

    def test_check_missing(self, client, process_service):
        process_service.get.return_value = None
        assert client.get("/api/v1/processes/nope/check").status_code == 404
