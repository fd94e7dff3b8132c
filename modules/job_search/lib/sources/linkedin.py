from __future__ import annotations

import logging
from collections.abc import Sequence

from ..models import Location, Posting
from .registry import register

log = logging.getLogger(__name__)


@register("linkedin")
class LinkedInSource:
    """
    Placeholder: LinkedIn offers no free public job search API.

    Kept registered so a config naming it stays valid; it always yields nothing.
    """

    name = "linkedin"

    def __init__(self, **_params: object) -> None:
        pass

    def fetch(self, keywords: Sequence[str], location: Location) -> list[Posting]:
        log.warning("LinkedIn source is a placeholder (no public API); returning no postings.")
        return []
