# job_search/sources/__init__.py
from __future__ import annotations

# Importing the adapters registers them.
from . import headhunter, linkedin, remoteok, stub
from .base import Source, SourceError
from .registry import all_sources, create, get, register

__all__ = [
    "Source",
    "SourceError",
    "all_sources",
    "create",
    "get",
    "headhunter",
    "linkedin",
    "register",
    "remoteok",
    "stub",
]
