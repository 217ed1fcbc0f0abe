# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# STATUS: Core - Scheduling control loop
# PURPOSE: Fire schedules, submit due jobs and record their runs
# CREATED: 18 OCT 2026
# ============================================================================
"""
Orchestrator Module

The control loop that binds jobs to schedules.

Usage:
    from orchestrator import JobOrchestrator

    orchestrator = JobOrchestrator(store, run_manager, process_service)
    await orchestrator.start()
    ...
    await orchestrator.stop()
"""

from .loop import JobOrchestrator
from .scheduler import ScheduleLoops

__all__ = ["JobOrchestrator", "ScheduleLoops"]
