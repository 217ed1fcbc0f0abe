# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for engine, run manager, orchestrator, store
# CREATED: 18 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides sensible defaults for the scheduler components.
These can be overridden via environment variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Optional
from enum import Enum


class StoreBackend(str, Enum):
    """Persistence backends."""
    MEMORY = "memory"
    POSTGRES = "postgres"


@dataclass(frozen=True)
class EngineDefaults:
    """
    Defaults for the task graph engine.

    Controls nesting of sub-processes.
    """
    max_nesting_depth: int = 16

    @classmethod
    def from_env(cls) -> "EngineDefaults":
        """Create from environment variables."""
        return cls(
            max_nesting_depth=int(os.getenv("MAX_NESTING_DEPTH", 16)),
        )


@dataclass(frozen=True)
class RunManagerDefaults:
    """
    Defaults for the concurrent run manager.

    max_concurrent_runs of 0 means unlimited.
    """
    max_concurrent_runs: int = 0
    shutdown_grace_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> "RunManagerDefaults":
        """Create from environment variables."""
        return cls(
            max_concurrent_runs=int(os.getenv("MAX_CONCURRENT_RUNS", 0)),
            shutdown_grace_seconds=float(os.getenv("SHUTDOWN_GRACE_SECONDS", 10.0)),
        )


@dataclass(frozen=True)
class OrchestratorDefaults:
    """
    Defaults for the job orchestrator.

    tick_history bounds how many handled firing instants are remembered
    for de-duplication. store_retry_seconds is the pause between attempts
    to persist a finished run while the store is unavailable.
    """
    processes_dir: str = "./processes"
    properties_dir: Optional[str] = None
    tick_history: int = 256
    store_retry_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "OrchestratorDefaults":
        """Create from environment variables."""
        return cls(
            processes_dir=os.getenv("PROCESSES_DIR", "./processes"),
            properties_dir=os.getenv("PROPERTIES_DIR") or None,
            tick_history=int(os.getenv("TICK_HISTORY", 256)),
            store_retry_seconds=float(os.getenv("STORE_RETRY_SECONDS", 5.0)),
        )


@dataclass(frozen=True)
class StoreDefaults:
    """
    Defaults for persistence.

    jobs_file seeds the in-memory store with jobs and schedules.
    """
    backend: StoreBackend = StoreBackend.MEMORY
    jobs_file: Optional[str] = None
    pool_min_size: int = 2
    pool_max_size: int = 10

    @classmethod
    def from_env(cls) -> "StoreDefaults":
        """Create from environment variables."""
        return cls(
            backend=StoreBackend(os.getenv("STORE_BACKEND", StoreBackend.MEMORY.value).lower()),
            jobs_file=os.getenv("JOBS_FILE") or None,
            pool_min_size=int(os.getenv("DB_POOL_MIN_SIZE", 2)),
            pool_max_size=int(os.getenv("DB_POOL_MAX_SIZE", 10)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    engine: EngineDefaults = field(default_factory=EngineDefaults)
    run_manager: RunManagerDefaults = field(default_factory=RunManagerDefaults)
    orchestrator: OrchestratorDefaults = field(default_factory=OrchestratorDefaults)
    store: StoreDefaults = field(default_factory=StoreDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            engine=EngineDefaults.from_env(),
            run_manager=RunManagerDefaults.from_env(),
            orchestrator=OrchestratorDefaults.from_env(),
            store=StoreDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "StoreBackend",
    "EngineDefaults",
    "RunManagerDefaults",
    "OrchestratorDefaults",
    "StoreDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
