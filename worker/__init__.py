# ============================================================================
# WORKER MODULE
# ============================================================================
# STATUS: Core - Run execution components
# PURPOSE: Concurrent execution of process runs
# CREATED: 18 OCT 2026
# ============================================================================
"""
Worker Module

- run_manager: executes submitted process instances concurrently and
  delivers finished RunRecords in completion order
"""

from worker.run_manager import RunManager

__all__ = [
    "RunManager",
]
