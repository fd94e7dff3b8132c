# modules/job_search/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience.
# Importing `sources` registers the built-in adapters.
from . import sources
from .config import ConfigError, Settings, SettingsHandle, SiteConfig
from .db import JobStore
from .engine import CycleInProgressError, CycleOrchestrator
from .models import CycleReport, Location, Posting, SourceReport, StoredPosting
from .render import format_report

__all__ = [
    "ConfigError",
    "CycleInProgressError",
    "CycleOrchestrator",
    "CycleReport",
    "JobStore",
    "Location",
    "Posting",
    "Settings",
    "SettingsHandle",
    "SiteConfig",
    "SourceReport",
    "StoredPosting",
    "format_report",
    "sources",
]
