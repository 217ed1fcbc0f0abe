# ============================================================================
# DBFLOW - MAIN APPLICATION
# ============================================================================
# STATUS: Core - FastAPI application entry point
# PURPOSE: Main application with the scheduling control loop
# CREATED: 18 OCT 2026
# ============================================================================
"""
dbflow Main Application

FastAPI application that:
1. Provides an HTTP API for jobs, schedules, runs and processes
2. Runs the job orchestrator (schedule loops + run manager) in the background
3. Manages the job store (in-memory or PostgreSQL)

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000

Environment:
    STORE_BACKEND   memory (default) or postgres
    JOBS_FILE       YAML seed for the memory store
    PROCESSES_DIR   process definition directory
    DATABASE_URL    PostgreSQL connection (or POSTGRES_* variables)
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from __version__ import __version__, BUILD_DATE
from core.config import Defaults, StoreBackend, get_defaults
from repositories import InMemoryJobStore, JobStore, PostgresJobStore, init_pool
from services import ProcessService
from worker import RunManager
from orchestrator import JobOrchestrator
from api.routes import router, set_services

# Configure logging using our structured logging system
from core.logging import configure_logging, get_logger

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__)

# Global instances
_orchestrator: JobOrchestrator = None
_store: JobStore = None


async def build_store(defaults: Defaults) -> JobStore:
    """Create the job store selected by STORE_BACKEND."""
    if defaults.store.backend == StoreBackend.POSTGRES:
        pool = await init_pool()
        store = PostgresJobStore(pool)
        await store.ensure_schema()
        logger.info("PostgreSQL job store ready")
        return store

    if defaults.store.jobs_file:
        store = InMemoryJobStore.from_yaml(defaults.store.jobs_file)
        logger.info(f"In-memory job store seeded from {defaults.store.jobs_file}")
        return store

    logger.warning("In-memory job store without JOBS_FILE: no jobs until added via the API")
    return InMemoryJobStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Initializes services on startup, cleans up on shutdown.
    """
    global _orchestrator, _store

    logger.info(f"Starting dbflow v{__version__} (Build {BUILD_DATE})")
    defaults = get_defaults()

    _store = await build_store(defaults)

    # Load process definitions
    process_service = ProcessService()
    count = process_service.load_all()
    logger.info(f"Loaded {count} processes")

    run_manager = RunManager()
    _orchestrator = JobOrchestrator(_store, run_manager, process_service, defaults.orchestrator)

    # Set services for API routes
    set_services(
        orchestrator=_orchestrator,
        store=_store,
        process_service=process_service,
    )

    await _orchestrator.start()
    logger.info("Orchestrator started")

    yield

    # Shutdown
    logger.info("Shutting down dbflow...")

    await _orchestrator.stop()
    await _store.close()

    logger.info("dbflow stopped")


# Create FastAPI app
app = FastAPI(
    title="dbflow",
    description="Scheduled database process orchestration",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api/v1")


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "dbflow",
        "version": __version__,
        "build_date": BUILD_DATE,
        "status": "running" if _orchestrator and _orchestrator.is_running else "starting",
        "docs": "/docs",
    }


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
