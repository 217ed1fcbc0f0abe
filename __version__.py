# ============================================================================
# VERSION - DBFLOW
# ============================================================================
"""
Version information for dbflow.

This is the single source of truth for the application version.
Updated manually for each release.
"""
# Version format: major.minor.patch
__version__ = "0.3.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Build metadata
BUILD_DATE = "2026-10-18"
CODENAME = "dbflow"
