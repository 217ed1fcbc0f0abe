# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 18 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the scheduler.
"""

from core.config.defaults import (
    StoreBackend,
    EngineDefaults,
    RunManagerDefaults,
    OrchestratorDefaults,
    StoreDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

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
