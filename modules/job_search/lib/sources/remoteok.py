# job_search/sources/remoteok.py
"""
RemoteOK public API source.

The API returns a JSON array whose first element is a legal/metadata notice;
everything after it is a listing. There is no server-side search, so keyword
and location filtering happen here.

Example sites entry:
{"name": "remoteok", "enabled": true, "params": {"timeout": 20}}
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from ..http_client import HttpClient
from ..models import Location, Posting
from ..utils import html_to_text, matches_keywords, truncate
from .base import SourceError
from .registry import register

log = logging.getLogger(__name__)

_MAX_DESCRIPTION = 5000


@register("remoteok")
class RemoteOKSource:
    name = "remoteok"
    API_URL = "https://remoteok.com/api"

    def __init__(self, timeout: float = 15.0, client: HttpClient | None = None) -> None:
        self._client = client or HttpClient(timeout=timeout)

    def fetch(self, keywords: Sequence[str], location: Location) -> list[Posting]:
        log.info("Searching RemoteOK with keywords: %s", ", ".join(keywords))
        data = self._client.get_json(self.API_URL)
        if not isinstance(data, list):
            raise SourceError(f"RemoteOK: expected a JSON array, got {type(data).__name__}")

        listings = [d for d in data[1:] if isinstance(d, dict)]
        matched = [job for job in listings if _keep(job, keywords, location)]
        log.info("RemoteOK: %d matching jobs out of %d total", len(matched), len(listings))
        return [self._to_posting(job) for job in matched]

    def _to_posting(self, job: dict[str, Any]) -> Posting:
        slug = str(job.get("slug") or "")
        return Posting(
            source=self.name,
            external_id=str(job.get("id") or slug),
            title=str(job.get("position") or "Untitled"),
            company=str(job.get("company") or "Unknown"),
            url=str(job.get("url") or f"https://remoteok.com/remote-jobs/{slug}"),
            description=truncate(html_to_text(job.get("description")), _MAX_DESCRIPTION),
            location=str(job.get("location") or "Remote"),
            tags=tuple(str(t) for t in job.get("tags") or ()),
            posted_at=job.get("date") or None,
        )


def _keep(job: dict[str, Any], keywords: Sequence[str], location: Location) -> bool:
    searchable = " ".join([
        str(job.get("position") or ""),
        str(job.get("description") or ""),
        *(str(t) for t in job.get("tags") or ()),
    ])
    if not matches_keywords(searchable, keywords):
        return False

    loc = str(job.get("location") or "").lower()
    if location.country and location.country.lower() not in loc:
        return False
    if location.city and location.city.lower() not in loc:
        return False
    return True
