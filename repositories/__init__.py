# ============================================================================
# REPOSITORIES
# ============================================================================
# STATUS: Core - Persistence layer
# PURPOSE: Job, schedule and run record storage
# CREATED: 18 OCT 2026
# ============================================================================
"""
Repositories Module

Provides persistence for jobs, schedules and run records behind the
JobStore interface.

- InMemoryJobStore: dict-backed, seeded from YAML
- PostgresJobStore: psycopg3 async with connection pooling

Usage:
    from repositories import PostgresJobStore, init_pool

    pool = await init_pool()
    store = PostgresJobStore(pool)
    await store.ensure_schema()
    jobs = await store.load_enabled_jobs()
"""

from .base import JobStore
from .memory import InMemoryJobStore
from .database import get_pool, init_pool, close_pool, get_connection_string
from .job_repo import PostgresJobStore

__all__ = [
    "JobStore",
    "InMemoryJobStore",
    "PostgresJobStore",
    "get_pool",
    "init_pool",
    "close_pool",
    "get_connection_string",
]
