# ============================================================================
# POSTGRES JOB STORE
# ============================================================================
# STATUS: Core - Job, schedule and run persistence
# PURPOSE: Database access for the jobs, schedules and runs tables
# CREATED: 18 OCT 2026
# ============================================================================
"""
Postgres Job Store

JobStore backed by psycopg3 and an AsyncConnectionPool. Run ids come from
a database sequence, so they stay unique and increasing across restarts.

Connection failures (psycopg.OperationalError, pool timeouts) surface as
StoreUnavailableError; a missing row surfaces as the matching NotFoundError.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from core.contracts import RunStatus, TaskStatus
from core.errors import (
    JobNotFoundError,
    RunNotFoundError,
    ScheduleNotFoundError,
    StoreUnavailableError,
)
from core.models import JobDefinition, RunFilter, RunRecord, ScheduleDefinition
from repositories.base import JobStore
from .database import (
    SCHEMA_STATEMENTS,
    SEQUENCE_RUN_ID_NAME,
    TABLE_JOBS,
    TABLE_RUNS,
    TABLE_SCHEDULES,
)

logger = logging.getLogger(__name__)

# A stored terminal record is never replaced by a non-terminal one
_OPEN_STATUSES = [RunStatus.NOT_RUN.value, RunStatus.RUN_IN_PROGRESS.value]


class PostgresJobStore(JobStore):
    """JobStore on PostgreSQL."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    @asynccontextmanager
    async def _connection(self):
        """Pooled connection with dict rows; outages become StoreUnavailableError."""
        try:
            async with self.pool.connection() as conn:
                conn.row_factory = dict_row
                yield conn
        except (psycopg.OperationalError, PoolTimeout) as e:
            logger.error(f"Database unavailable: {e}")
            raise StoreUnavailableError(str(e)) from e

    async def ensure_schema(self) -> None:
        """Create schema, tables and the run id sequence if missing."""
        async with self._connection() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
        logger.info("Database schema ensured")

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def load_enabled_jobs(self) -> List[JobDefinition]:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE enabled ORDER BY name").format(TABLE_JOBS)
            )
            rows = await result.fetchall()
            return [self._row_to_job(row) for row in rows]

    async def list_jobs(self) -> List[JobDefinition]:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} ORDER BY name").format(TABLE_JOBS)
            )
            rows = await result.fetchall()
            return [self._row_to_job(row) for row in rows]

    async def load_job(self, name: str) -> JobDefinition:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE name = %s").format(TABLE_JOBS),
                (name,),
            )
            row = await result.fetchone()
            if row is None:
                raise JobNotFoundError(name)
            return self._row_to_job(row)

    async def save_job(self, job: JobDefinition) -> JobDefinition:
        job.updated_at = datetime.now()
        async with self._connection() as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (
                    name, process_id, properties, args, schedules,
                    enabled, description, updated_at
                ) VALUES (
                    %(name)s, %(process_id)s, %(properties)s, %(args)s,
                    %(schedules)s, %(enabled)s, %(description)s, %(updated_at)s
                )
                ON CONFLICT (name) DO UPDATE SET
                    process_id = EXCLUDED.process_id,
                    properties = EXCLUDED.properties,
                    args = EXCLUDED.args,
                    schedules = EXCLUDED.schedules,
                    enabled = EXCLUDED.enabled,
                    description = EXCLUDED.description,
                    updated_at = EXCLUDED.updated_at
                """).format(TABLE_JOBS),
                {
                    "name": job.name,
                    "process_id": job.process_id,
                    "properties": job.properties,
                    "args": Json(job.args),
                    "schedules": Json(job.schedules),
                    "enabled": job.enabled,
                    "description": job.description,
                    "updated_at": job.updated_at,
                },
            )
        logger.info(f"Saved job {job.name} (enabled={job.enabled})")
        return job

    async def delete_job(self, name: str) -> None:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("DELETE FROM {} WHERE name = %s").format(TABLE_JOBS),
                (name,),
            )
            if result.rowcount == 0:
                raise JobNotFoundError(name)
        logger.info(f"Deleted job {name}")

    def _row_to_job(self, row: Dict[str, Any]) -> JobDefinition:
        return JobDefinition(
            name=row["name"],
            process_id=row["process_id"],
            properties=row.get("properties"),
            args=row.get("args") or [],
            schedules=row.get("schedules") or [],
            enabled=row["enabled"],
            description=row.get("description"),
            updated_at=row["updated_at"],
        )

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    async def load_schedules(self) -> List[ScheduleDefinition]:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} ORDER BY name").format(TABLE_SCHEDULES)
            )
            rows = await result.fetchall()
            return [self._row_to_schedule(row) for row in rows]

    async def load_schedule(self, name: str) -> ScheduleDefinition:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE name = %s").format(TABLE_SCHEDULES),
                (name,),
            )
            row = await result.fetchone()
            if row is None:
                raise ScheduleNotFoundError(name)
            return self._row_to_schedule(row)

    async def save_schedule(self, schedule: ScheduleDefinition) -> ScheduleDefinition:
        schedule.updated_at = datetime.now()
        async with self._connection() as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (name, text, updated_at)
                VALUES (%s, %s, %s)
                ON CONFLICT (name) DO UPDATE SET
                    text = EXCLUDED.text,
                    updated_at = EXCLUDED.updated_at
                """).format(TABLE_SCHEDULES),
                (schedule.name, schedule.text, schedule.updated_at),
            )
        logger.info(f"Saved schedule {schedule.name}")
        return schedule

    async def delete_schedule(self, name: str) -> None:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("DELETE FROM {} WHERE name = %s").format(TABLE_SCHEDULES),
                (name,),
            )
            if result.rowcount == 0:
                raise ScheduleNotFoundError(name)
        logger.info(f"Deleted schedule {name}")

    def _row_to_schedule(self, row: Dict[str, Any]) -> ScheduleDefinition:
        # Stored text was validated on save; skip re-parsing here
        return ScheduleDefinition.model_construct(
            name=row["name"],
            text=row["text"],
            updated_at=row["updated_at"],
        )

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def next_run_id(self) -> int:
        async with self._connection() as conn:
            result = await conn.execute(
                "SELECT nextval(%s::regclass) AS run_id",
                (SEQUENCE_RUN_ID_NAME,),
            )
            row = await result.fetchone()
            return int(row["run_id"])

    async def save_run_record(self, record: RunRecord) -> None:
        async with self._connection() as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} AS r (
                    run_id, job_name, process_id, status, message,
                    task_statuses, started_at, ended_at
                ) VALUES (
                    %(run_id)s, %(job_name)s, %(process_id)s, %(status)s,
                    %(message)s, %(task_statuses)s, %(started_at)s, %(ended_at)s
                )
                ON CONFLICT (run_id) DO UPDATE SET
                    status = EXCLUDED.status,
                    message = EXCLUDED.message,
                    task_statuses = EXCLUDED.task_statuses,
                    started_at = EXCLUDED.started_at,
                    ended_at = EXCLUDED.ended_at
                WHERE r.status = ANY(%(open_statuses)s)
                   OR NOT (EXCLUDED.status = ANY(%(open_statuses)s))
                """).format(TABLE_RUNS),
                {
                    "run_id": record.run_id,
                    "job_name": record.job_name,
                    "process_id": record.process_id,
                    "status": record.status.value,
                    "message": record.message,
                    "task_statuses": Json({k: v.value for k, v in record.task_statuses.items()}),
                    "started_at": record.started_at,
                    "ended_at": record.ended_at,
                    "open_statuses": _OPEN_STATUSES,
                },
            )
        logger.debug(f"Saved run {record.run_id} status={record.status.value}")

    async def load_run_record(self, run_id: int) -> RunRecord:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE run_id = %s").format(TABLE_RUNS),
                (run_id,),
            )
            row = await result.fetchone()
            if row is None:
                raise RunNotFoundError(run_id)
            return self._row_to_run(row)

    async def list_runs(self, run_filter: Optional[RunFilter] = None) -> List[RunRecord]:
        run_filter = run_filter or RunFilter()

        conditions = []
        params: List[Any] = []
        if run_filter.job_name is not None:
            conditions.append(sql.SQL("job_name = %s"))
            params.append(run_filter.job_name)
        if run_filter.statuses:
            conditions.append(sql.SQL("status = ANY(%s)"))
            params.append([s.value for s in run_filter.statuses])

        where = (
            sql.SQL(" WHERE ") + sql.SQL(" AND ").join(conditions)
            if conditions else sql.SQL("")
        )
        order = sql.SQL("DESC" if run_filter.newest_first else "ASC")
        params.append(run_filter.limit)

        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("SELECT * FROM {}{} ORDER BY run_id {} LIMIT %s").format(
                    TABLE_RUNS, where, order
                ),
                params,
            )
            rows = await result.fetchall()
            return [self._row_to_run(row) for row in rows]

    async def sweep_in_progress(self, status: RunStatus, message: str) -> List[RunRecord]:
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET status = %s, message = %s, ended_at = COALESCE(ended_at, %s)
                WHERE status = %s
                RETURNING *
                """).format(TABLE_RUNS),
                (status.value, message, datetime.now(), RunStatus.RUN_IN_PROGRESS.value),
            )
            rows = await result.fetchall()
            swept = [self._row_to_run(row) for row in rows]

        if swept:
            logger.warning(f"Swept {len(swept)} in-progress runs to {status.value}")
        return swept

    def _row_to_run(self, row: Dict[str, Any]) -> RunRecord:
        return RunRecord(
            run_id=row["run_id"],
            job_name=row.get("job_name"),
            process_id=row.get("process_id"),
            status=RunStatus(row["status"]),
            message=row.get("message"),
            task_statuses={
                name: TaskStatus(value)
                for name, value in (row.get("task_statuses") or {}).items()
            },
            started_at=row.get("started_at"),
            ended_at=row.get("ended_at"),
        )

    async def close(self) -> None:
        await self.pool.close()


__all__ = ["PostgresJobStore"]
