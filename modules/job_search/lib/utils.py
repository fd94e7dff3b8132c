from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

from bs4 import BeautifulSoup


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/config.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def now_iso() -> str:
    """
    UTC ISO-8601 timestamp with 'Z' suffix.
    """
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def html_to_text(fragment: str | None) -> str:
    """
    Reduce an HTML fragment (job descriptions often carry markup) to plain text.
    Plain strings pass through unchanged apart from whitespace collapsing.
    """
    if not fragment:
        return ""
    if "<" not in fragment:
        return " ".join(fragment.split())
    soup = BeautifulSoup(fragment, "html5lib")
    return " ".join(soup.get_text(" ", strip=True).split())


def truncate(s: str | None, limit: int) -> str:
    s = s or ""
    return s if len(s) <= limit else s[:limit]


def matches_keywords(text: str, keywords: Iterable[str]) -> bool:
    """Case-insensitive 'any keyword is a substring' test."""
    lower = (text or "").lower()
    return any(kw.lower() in lower for kw in keywords if kw)


def clean_str_list(values: Sequence[Any] | None) -> list[str]:
    """Strip, drop empties, keep order."""
    if not values:
        return []
    return [s for s in (str(v).strip() for v in values) if s]
