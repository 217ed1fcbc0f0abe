# ============================================================================
# SERVICES
# ============================================================================
# STATUS: Core - Business logic layer
# PURPOSE: Process definition loading and validation
# CREATED: 18 OCT 2026
# ============================================================================
"""
Services Module

Usage:
    from services import ProcessService

    service = ProcessService("./processes")
    process = service.get_or_raise("nightly_load")
"""

from .process_service import ProcessService

__all__ = [
    "ProcessService",
]
