# job_search/sources/headhunter.py
"""
HeadHunter (hh.ru) vacancies API source - paginated, area-aware.

Example sites entry:
{"name": "headhunter", "enabled": true, "params": {"max_pages": 5, "page_delay_ms": 500}}
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Any

from ..http_client import HttpClient
from ..models import Location, Posting
from ..utils import html_to_text, truncate
from .base import SourceError
from .registry import register

log = logging.getLogger(__name__)

# Lower-cased place name -> hh.ru area id
AREA_CODES: dict[str, int] = {
    "russia": 113,
    "moscow": 1,
    "saint petersburg": 2,
    "санкт-петербург": 2,
    "москва": 1,
    "россия": 113,
    "ukraine": 5,
    "kazakhstan": 40,
    "minsk": 16,
    "usa": 112,
    "germany": 96,
    "poland": 97,
    "serbia": 99,
    "georgia": 28,
    "turkey": 103,
    "cyprus": 48,
    "united kingdom": 110,
    "netherlands": 89,
    "portugal": 93,
}

_MAX_DESCRIPTION = 5000


@register("headhunter")
class HeadHunterSource:
    name = "headhunter"
    API_URL = "https://api.hh.ru/vacancies"

    def __init__(
        self,
        max_pages: int = 5,
        page_delay_ms: int = 0,
        per_page: int = 100,
        timeout: float = 15.0,
        client: HttpClient | None = None,
    ) -> None:
        self.max_pages = max(1, int(max_pages))
        self.page_delay = max(0, int(page_delay_ms)) / 1000.0
        self.per_page = int(per_page)
        self._client = client or HttpClient(timeout=timeout)

    def fetch(self, keywords: Sequence[str], location: Location) -> list[Posting]:
        query = " OR ".join(keywords)
        log.info("Searching HeadHunter with query: %s", query)

        base_params: dict[str, Any] = {"text": query, "per_page": self.per_page, "search_field": "name"}
        area = AREA_CODES.get((location.city or location.country or "").strip().lower())
        if area:
            base_params["area"] = area
        if location.remote:
            base_params["schedule"] = "remote"

        postings: list[Posting] = []
        total_pages = 1
        page = 0
        while page < min(total_pages, self.max_pages):
            if page > 0 and self.page_delay > 0:
                time.sleep(self.page_delay)
            try:
                data = self._client.get_json(self.API_URL, params={**base_params, "page": page})
            except Exception as e:
                if page == 0:
                    raise SourceError(f"HeadHunter: first page failed: {e!r}") from e
                # Keep what earlier pages produced.
                log.warning("HeadHunter: page %d failed (%r); keeping %d postings", page, e, len(postings))
                break

            if not isinstance(data, dict):
                raise SourceError(f"HeadHunter: expected a JSON object, got {type(data).__name__}")
            if page == 0:
                total_pages = int(data.get("pages") or 1)
                log.info(
                    "HeadHunter: %s available across %d pages (fetching up to %d)",
                    data.get("found"),
                    total_pages,
                    self.max_pages,
                )

            items = data.get("items") or []
            postings.extend(self._to_posting(v) for v in items if isinstance(v, dict))
            if not items:
                break
            page += 1

        log.info("HeadHunter: fetched %d postings", len(postings))
        return postings

    def _to_posting(self, v: dict[str, Any]) -> Posting:
        snippet = v.get("snippet") or {}
        description = "\n".join([
            html_to_text(snippet.get("requirement")),
            html_to_text(snippet.get("responsibility")),
        ])
        return Posting(
            source=self.name,
            external_id=str(v.get("id") or ""),
            title=str(v.get("name") or "Untitled"),
            company=str((v.get("employer") or {}).get("name") or "Unknown"),
            url=str(v.get("alternate_url") or ""),
            description=truncate(description, _MAX_DESCRIPTION),
            location=str((v.get("area") or {}).get("name") or ""),
            tags=tuple(str(r.get("name")) for r in v.get("professional_roles") or () if r.get("name")),
            posted_at=v.get("published_at") or None,
        )
