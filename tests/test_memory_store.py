# ============================================================================
# IN-MEMORY JOB STORE TESTS
# ============================================================================
# STATUS: Tests - Dict-backed persistence
# PURPOSE: Verify job/schedule/run storage semantics shared by every store
# CREATED: 18 OCT 2026
# ============================================================================
"""
In-Memory Job Store Tests

Covers:
1. Jobs: save/load, enabled filter, not found
2. Schedules: save/load, due-at lookup
3. Runs: id allocation, terminal records never overwritten by stale saves,
   history filters, sweep of in-progress runs
4. Seeding from YAML
5. Simulated outages

Run with:
    pytest tests/test_memory_store.py -v
"""

import asyncio
import pytest
from datetime import datetime

from core.contracts import RunStatus
from core.errors import (
    JobNotFoundError,
    RunNotFoundError,
    ScheduleNotFoundError,
    StoreUnavailableError,
)
from core.models import JobDefinition, RunFilter, RunRecord, ScheduleDefinition
from repositories.memory import InMemoryJobStore


# ============================================================================
# FIXTURES
# ============================================================================

def run(coro):
    return asyncio.run(coro)


def _record(run_id, job_name="load", status=RunStatus.RUN_SUCCEEDED):
    record = RunRecord(run_id=run_id, job_name=job_name, process_id="quick")
    record.mark_in_progress()
    if status != RunStatus.RUN_IN_PROGRESS:
        record.mark_finished(status)
    return record


@pytest.fixture
def store():
    return InMemoryJobStore(
        jobs=[
            JobDefinition(name="load", process_id="quick", schedules=["nightly"]),
            JobDefinition(name="off", process_id="quick", enabled=False),
        ],
        schedules=[
            ScheduleDefinition(name="nightly", text="Daily at '2:00 AM'"),
            ScheduleDefinition(name="often", text="Daily every 15 minutes"),
        ],
    )


# ============================================================================
# JOBS AND SCHEDULES
# ============================================================================

class TestJobs:

    def test_enabled_filter(self, store):
        assert [j.name for j in run(store.load_enabled_jobs())] == ["load"]
        assert [j.name for j in run(store.list_jobs())] == ["load", "off"]

    def test_save_replaces(self, store):
        run(store.save_job(JobDefinition(name="load", process_id="other")))
        assert run(store.load_job("load")).process_id == "other"

    def test_returned_copies_are_detached(self, store):
        job = run(store.load_job("load"))
        job.enabled = False
        assert run(store.load_job("load")).enabled is True

    def test_not_found(self, store):
        with pytest.raises(JobNotFoundError):
            run(store.load_job("nope"))

    def test_delete(self, store):
        run(store.delete_job("off"))
        assert [j.name for j in run(store.list_jobs())] == ["load"]
        with pytest.raises(JobNotFoundError):
            run(store.delete_job("off"))


class TestSchedules:

    def test_load(self, store):
        assert [s.name for s in run(store.load_schedules())] == ["nightly", "often"]
        assert run(store.load_schedule("often")).text == "Daily every 15 minutes"

    def test_not_found(self, store):
        with pytest.raises(ScheduleNotFoundError):
            run(store.load_schedule("nope"))

    def test_delete(self, store):
        run(store.delete_schedule("often"))
        assert [s.name for s in run(store.load_schedules())] == ["nightly"]
        assert run(store.load_schedules_due_at(datetime(2026, 10, 18, 2, 15))) == []
        with pytest.raises(ScheduleNotFoundError):
            run(store.delete_schedule("often"))

    def test_due_at(self, store):
        due = run(store.load_schedules_due_at(datetime(2026, 10, 18, 2, 0)))
        assert [s.name for s in due] == ["nightly", "often"]

        due = run(store.load_schedules_due_at(datetime(2026, 10, 18, 2, 15)))
        assert [s.name for s in due] == ["often"]

        assert run(store.load_schedules_due_at(datetime(2026, 10, 18, 2, 16))) == []


# ============================================================================
# RUNS
# ============================================================================

class TestRuns:

    def test_run_ids_increase(self, store):
        async def scenario():
            first = await store.next_run_id()
            await store.save_run_record(_record(10))
            return first, await store.next_run_id()

        assert run(scenario()) == (1, 11)

    def test_terminal_record_not_overwritten_by_stale_save(self, store):
        async def scenario():
            in_progress = _record(1, status=RunStatus.RUN_IN_PROGRESS)
            snapshot = in_progress.model_copy(deep=True)
            in_progress.mark_finished(RunStatus.RUN_SUCCEEDED)
            await store.save_run_record(in_progress)
            await store.save_run_record(snapshot)
            return await store.load_run_record(1)

        assert run(scenario()).status == RunStatus.RUN_SUCCEEDED

    def test_history_filters(self, store):
        async def scenario():
            await store.save_run_record(_record(1, "load"))
            await store.save_run_record(_record(2, "load", RunStatus.RUN_FAILED))
            await store.save_run_record(_record(3, "other"))
            return (
                await store.list_runs(),
                await store.list_runs(RunFilter(job_name="load", newest_first=False)),
                await store.list_runs(RunFilter(statuses=[RunStatus.RUN_FAILED])),
                await store.list_runs(RunFilter(limit=1)),
            )

        everything, load, failed, newest = run(scenario())
        assert [r.run_id for r in everything] == [3, 2, 1]
        assert [r.run_id for r in load] == [1, 2]
        assert [r.run_id for r in failed] == [2]
        assert [r.run_id for r in newest] == [3]

    def test_not_found(self, store):
        with pytest.raises(RunNotFoundError):
            run(store.load_run_record(42))

    def test_sweep_in_progress(self, store):
        async def scenario():
            await store.save_run_record(_record(1, status=RunStatus.RUN_IN_PROGRESS))
            await store.save_run_record(_record(2))
            swept = await store.sweep_in_progress(RunStatus.CONTROLLER_SHUTDOWN, "gone")
            return swept, await store.load_run_record(1), await store.load_run_record(2)

        swept, first, second = run(scenario())
        assert [r.run_id for r in swept] == [1]
        assert first.status == RunStatus.CONTROLLER_SHUTDOWN
        assert first.message == "gone"
        assert first.ended_at is not None
        assert second.status == RunStatus.RUN_SUCCEEDED


# ============================================================================
# SEEDING AND OUTAGES
# ============================================================================

class TestFromYaml:

    def test_mapping_of_jobs(self, tmp_path):
        path = tmp_path / "jobs.yaml"
        path.write_text(
            "schedules:\n"
            "  nightly: \"Weekdays at '2:00 AM'\"\n"
            "jobs:\n"
            "  nightly_load:\n"
            "    process_id: nightly_load\n"
            "    args: ['2026-10-18']\n"
            "    schedules: [nightly]\n"
            "  paused:\n"
            "    process_id: heartbeat\n"
            "    enabled: false\n"
        )
        store = InMemoryJobStore.from_yaml(path)
        jobs = run(store.list_jobs())
        assert [j.name for j in jobs] == ["nightly_load", "paused"]
        assert jobs[0].args == ["2026-10-18"]
        assert run(store.load_schedule("nightly")).text == "Weekdays at '2:00 AM'"

    def test_list_of_jobs(self, tmp_path):
        path = tmp_path / "jobs.yaml"
        path.write_text(
            "jobs:\n"
            "  - name: heartbeat\n"
            "    process_id: heartbeat\n"
        )
        store = InMemoryJobStore.from_yaml(path)
        assert run(store.load_job("heartbeat")).process_id == "heartbeat"

    def test_bad_schedule_text_rejected(self, tmp_path):
        path = tmp_path / "jobs.yaml"
        path.write_text("schedules:\n  broken: Sometimes\n")
        with pytest.raises(ValueError):
            InMemoryJobStore.from_yaml(path)


class TestUnavailable:

    def test_every_call_raises(self, store):
        store.available = False
        for call in (
            store.load_enabled_jobs(),
            store.load_schedules(),
            store.next_run_id(),
            store.save_run_record(_record(1)),
            store.list_runs(),
            store.delete_job("load"),
            store.delete_schedule("nightly"),
        ):
            with pytest.raises(StoreUnavailableError):
                run(call)

    def test_due_lookup_propagates_outage(self, store):
        store.available = False
        with pytest.raises(StoreUnavailableError):
            run(store.load_schedules_due_at(datetime(2026, 10, 18, 2, 0)))
