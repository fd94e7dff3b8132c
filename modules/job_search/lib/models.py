from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Location:
    """Location filter handed to every source."""

    country: str = ""
    city: str = ""
    remote: bool = False

    def describe(self) -> str:
        place = self.city or self.country or "Any"
        return f"{place} (remote OK)" if self.remote else place


@dataclass(frozen=True)
class Posting:
    """
    A single job posting as returned by a source (pre-dedupe).
    Dedupe is performed by the store on (source, external_id).
    """

    source: str  # stable site label, e.g. "remoteok"
    external_id: str  # upstream's own id, unique within source
    title: str
    company: str = ""
    url: str = ""
    description: str = ""
    location: str = ""
    tags: tuple[str, ...] = ()
    posted_at: str | None = None


@dataclass(frozen=True)
class StoredPosting:
    """
    A posting as read back from the store, with its analysis and notification state.
    """

    id: int
    source: str
    external_id: str
    title: str
    company: str
    url: str
    description: str
    location: str
    tags: tuple[str, ...]
    posted_at: str | None
    match_score: float | None
    match_reasoning: str | None
    notified: bool
    created_at: str

    @property
    def is_scored(self) -> bool:
        return self.match_score is not None


@dataclass(frozen=True)
class StoreStats:
    total: int
    analyzed: int
    notified: int


@dataclass
class SourceReport:
    """Outcome of Stage A for one configured site."""

    source: str
    fetched: int = 0
    new: int = 0
    duplicates: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CycleReport:
    """
    Ephemeral summary of one orchestrator run. Never persisted; rendered back
    to whoever triggered the cycle.
    """

    sources: list[SourceReport] = field(default_factory=list)
    analyzed: int = 0
    analysis_failed: int = 0
    quota_exhausted: bool = False
    notified: int = 0
    duration_s: float = 0.0

    @property
    def total_fetched(self) -> int:
        return sum(s.fetched for s in self.sources)

    @property
    def total_new(self) -> int:
        return sum(s.new for s in self.sources)

    @property
    def total_duplicates(self) -> int:
        return sum(s.duplicates for s in self.sources)

    @property
    def has_errors(self) -> bool:
        return self.quota_exhausted or any(not s.ok for s in self.sources)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sources": [
                {
                    "source": s.source,
                    "fetched": s.fetched,
                    "new": s.new,
                    "duplicates": s.duplicates,
                    "error": s.error,
                }
                for s in self.sources
            ],
            "total_fetched": self.total_fetched,
            "total_new": self.total_new,
            "total_duplicates": self.total_duplicates,
            "analyzed": self.analyzed,
            "analysis_failed": self.analysis_failed,
            "quota_exhausted": self.quota_exhausted,
            "notified": self.notified,
            "duration_s": round(self.duration_s, 3),
        }
