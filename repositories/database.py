# ============================================================================
# DATABASE CONNECTION POOL
# ============================================================================
# STATUS: Core - Async PostgreSQL connection management
# PURPOSE: Provide connection pooling for psycopg3 async
# CREATED: 18 OCT 2026
# ============================================================================
"""
Database Connection Pool

Manages async PostgreSQL connections using psycopg3 and psycopg_pool.
Singleton pattern ensures one pool per application.

Connection settings come from DATABASE_URL, or from the individual
POSTGRES_* variables.

Usage:
    from repositories.database import get_pool

    pool = await get_pool()
    async with pool.connection() as conn:
        result = await conn.execute("SELECT 1")
"""

import os
import logging
from typing import Optional
from contextlib import asynccontextmanager

from psycopg import sql
from psycopg_pool import AsyncConnectionPool

from core.config import get_defaults
from core.models import JobDefinition, RunRecord, ScheduleDefinition

logger = logging.getLogger(__name__)

# Global pool instance
_pool: Optional[AsyncConnectionPool] = None


def get_connection_string() -> str:
    """
    Get database connection string from environment.

    Priority:
    1. DATABASE_URL environment variable
    2. Individual POSTGRES_* components
    """
    if url := os.environ.get("DATABASE_URL"):
        return url

    host = os.environ.get("POSTGRES_HOST", "localhost")
    port = os.environ.get("POSTGRES_PORT", "5432")
    name = os.environ.get("POSTGRES_DB", "postgres")
    user = os.environ.get("POSTGRES_USER", "postgres")
    password = os.environ.get("POSTGRES_PASSWORD", "")
    sslmode = os.environ.get("POSTGRES_SSLMODE", "prefer")

    return f"postgresql://{user}:{password}@{host}:{port}/{name}?sslmode={sslmode}"


def mask_connection_string(conninfo: str) -> str:
    """Connection string safe for logs."""
    if "@" in conninfo:
        return conninfo.split("@")[-1]
    if "password=" in conninfo:
        head, _, tail = conninfo.partition("password=")
        rest = tail.split(" ", 1)
        return head + "password=***" + (" " + rest[1] if len(rest) > 1 else "")
    return conninfo


async def init_pool(
    min_size: Optional[int] = None,
    max_size: Optional[int] = None,
    connection_string: Optional[str] = None,
) -> AsyncConnectionPool:
    """
    Initialize the global connection pool.

    Args:
        min_size: Minimum connections to maintain (default from StoreDefaults)
        max_size: Maximum connections allowed (default from StoreDefaults)
        connection_string: Override connection string (defaults to env)
    """
    global _pool

    if _pool is not None:
        logger.warning("Pool already initialized, returning existing pool")
        return _pool

    defaults = get_defaults().store
    min_size = defaults.pool_min_size if min_size is None else min_size
    max_size = defaults.pool_max_size if max_size is None else max_size
    conninfo = connection_string or get_connection_string()

    logger.info(f"Initializing connection pool: {mask_connection_string(conninfo)}")

    _pool = AsyncConnectionPool(
        conninfo=conninfo,
        min_size=min_size,
        max_size=max_size,
        open=False,  # We'll open it explicitly
    )

    await _pool.open()
    logger.info(f"Connection pool opened (min={min_size}, max={max_size})")

    return _pool


async def get_pool() -> AsyncConnectionPool:
    """Get the global connection pool, initializing if needed."""
    global _pool

    if _pool is None:
        await init_pool()

    return _pool


async def close_pool() -> None:
    """Close the global connection pool."""
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Connection pool closed")


@asynccontextmanager
async def get_connection():
    """
    Get a connection from the pool.

    Usage:
        async with get_connection() as conn:
            await conn.execute(...)
    """
    pool = await get_pool()
    async with pool.connection() as conn:
        yield conn


# ============================================================================
# SCHEMA
# ============================================================================

SCHEMA = os.environ.get("DBFLOW_SCHEMA", "dbflow")

# Table identifiers: use with sql.SQL().format() for injection-safe queries
TABLE_JOBS = sql.Identifier(SCHEMA, JobDefinition.__sql_table__)
TABLE_SCHEDULES = sql.Identifier(SCHEMA, ScheduleDefinition.__sql_table__)
TABLE_RUNS = sql.Identifier(SCHEMA, RunRecord.__sql_table__)
SEQUENCE_RUN_ID = sql.Identifier(SCHEMA, "run_id_seq")
SEQUENCE_RUN_ID_NAME = f"{SCHEMA}.run_id_seq"

SCHEMA_STATEMENTS = [
    sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(SCHEMA)),
    sql.SQL("""
    CREATE TABLE IF NOT EXISTS {} (
        name         VARCHAR(128) PRIMARY KEY,
        process_id   VARCHAR(256) NOT NULL,
        properties   VARCHAR(256),
        args         JSONB NOT NULL DEFAULT '[]'::jsonb,
        schedules    JSONB NOT NULL DEFAULT '[]'::jsonb,
        enabled      BOOLEAN NOT NULL DEFAULT TRUE,
        description  TEXT,
        updated_at   TIMESTAMP NOT NULL DEFAULT now()
    )
    """).format(TABLE_JOBS),
    sql.SQL("""
    CREATE TABLE IF NOT EXISTS {} (
        name         VARCHAR(128) PRIMARY KEY,
        text         VARCHAR(2000) NOT NULL,
        updated_at   TIMESTAMP NOT NULL DEFAULT now()
    )
    """).format(TABLE_SCHEDULES),
    sql.SQL("""
    CREATE TABLE IF NOT EXISTS {} (
        run_id        BIGINT PRIMARY KEY,
        job_name      VARCHAR(128),
        process_id    VARCHAR(128),
        status        VARCHAR(32) NOT NULL,
        message       VARCHAR(2000),
        task_statuses JSONB NOT NULL DEFAULT '{{}}'::jsonb,
        started_at    TIMESTAMP,
        ended_at      TIMESTAMP
    )
    """).format(TABLE_RUNS),
    sql.SQL("CREATE INDEX IF NOT EXISTS runs_job_name_idx ON {} (job_name, run_id)").format(TABLE_RUNS),
    sql.SQL("CREATE INDEX IF NOT EXISTS runs_status_idx ON {} (status)").format(TABLE_RUNS),
    sql.SQL("CREATE SEQUENCE IF NOT EXISTS {}").format(SEQUENCE_RUN_ID),
]


__all__ = [
    "get_connection_string",
    "mask_connection_string",
    "init_pool",
    "get_pool",
    "close_pool",
    "get_connection",
    "SCHEMA",
    "TABLE_JOBS",
    "TABLE_SCHEDULES",
    "TABLE_RUNS",
    "SEQUENCE_RUN_ID",
    "SEQUENCE_RUN_ID_NAME",
    "SCHEMA_STATEMENTS",
]
