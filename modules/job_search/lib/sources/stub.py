from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ..models import Location, Posting
from .base import SourceError
from .registry import register


@register("stub")
class StubSource:
    """
    A zero-network source used for tests and dry-runs.

    Params:
      - items: list[{id, title, company?, url?, description?, location?, tags?}]
      - error: str   # if set, fetch raises SourceError(error)
      - label: str   # source label written on each posting (default "stub")

    Keyword and location filters are ignored; items are returned as given.
    """

    def __init__(self, items: list[dict[str, Any]] | None = None, error: str | None = None, label: str = "stub"):
        self.name = label
        self._items = list(items or [])
        self._error = error

    def fetch(self, keywords: Sequence[str], location: Location) -> list[Posting]:
        if self._error:
            raise SourceError(self._error)

        postings: list[Posting] = []
        for item in self._items:
            if not isinstance(item, dict):
                continue
            ext_id = str(item.get("id") or item.get("external_id") or "").strip()
            if not ext_id:
                continue  # identity is required
            postings.append(
                Posting(
                    source=self.name,
                    external_id=ext_id,
                    title=str(item.get("title") or "(no title)"),
                    company=str(item.get("company") or ""),
                    url=str(item.get("url") or ""),
                    description=str(item.get("description") or ""),
                    location=str(item.get("location") or ""),
                    tags=tuple(str(t) for t in item.get("tags") or ()),
                    posted_at=item.get("posted_at"),
                )
            )
        return postings
