from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from ..models import Location, Posting


class SourceError(Exception):
    """Raised by a source when an upstream cannot be fetched or understood."""


@runtime_checkable
class Source(Protocol):
    """
    Capability implemented once per upstream site.

    Contract:
      - fetch(keywords, location) returns ALL candidate postings it found;
        dedupe happens in the store, not here.
      - Failures are raised (SourceError or any transport exception); the
        orchestrator records them against this source and moves on.
      - Do NOT touch the store, send notifications, or mutate global state.
    """

    name: str

    def fetch(self, keywords: Sequence[str], location: Location) -> list[Posting]: ...
