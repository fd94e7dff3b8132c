"""
Search-cycle orchestrator: fetch -> dedup-persist -> score -> notify.

Features:
  - One cycle at a time per process (non-blocking lock; overlap is rejected)
  - Stage A: per-source fault isolation; fetches may run on a thread pool,
    inserts happen afterwards on the calling thread in configured order
  - Stage B: per-posting retry with exponential backoff on transient rate
    limits, and a one-shot breaker on quota exhaustion
  - Stage C: best-first fan-out to subscribed chats, marked notified on attempt
  - Dependency injection for testability (source factory, sleep, clock)
  - Structured activity/error records via `logging_bridge`
"""

from __future__ import annotations

import logging
import math
import sqlite3
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any

from . import logging_bridge
from .config import Settings, SettingsHandle, SiteConfig
from .db import JobStore
from .models import CycleReport, Posting, SourceReport, StoredPosting
from .notifier import Notifier, NotifyResult
from .scoring import RateLimited, Scored, ScoreFailed, ScoreOutcome, Scorer
from .sources import registry
from .sources.base import Source, SourceError

LOG = logging.getLogger(__name__)

SourceFactory = Callable[[str, dict[str, Any]], Source]


class CycleInProgressError(RuntimeError):
    """Raised when a cycle is requested while another one is still running."""


class CycleOrchestrator:
    """
    Runs one bounded search cycle at a time and returns a CycleReport.

    Built once at process start; the scheduler and the bot command handlers
    share the same instance.
    """

    def __init__(
        self,
        settings: SettingsHandle,
        store: JobStore,
        scorer: Scorer,
        notifier: Notifier,
        *,
        source_factory: SourceFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.store = store
        self.scorer = scorer
        self.notifier = notifier
        self._source_factory = source_factory or registry.create
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._last_report: CycleReport | None = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @property
    def last_report(self) -> CycleReport | None:
        return self._last_report

    # =========================================================================
    # MAIN ENTRY
    # =========================================================================
    def run_cycle(self) -> CycleReport:
        """
        Execute exactly one fetch -> score -> notify pass.

        Stage failures are folded into the report. Only defects (e.g., the
        store being unavailable) propagate.

        Raises:
            CycleInProgressError: another cycle is still executing.
        """
        if not self._lock.acquire(blocking=False):
            raise CycleInProgressError("A search cycle is already running.")
        try:
            report = self._run(self.settings.get())
            self._last_report = report
            return report
        finally:
            self._lock.release()

    def _run(self, settings: Settings) -> CycleReport:
        started = self._clock()
        report = CycleReport()
        LOG.info("=== Search cycle started ===")
        logging_bridge.activity({
            "component": "job_search.engine",
            "op": "start",
            "sites": [s.name for s in settings.enabled_sites()],
            "keywords": list(settings.keywords),
        })

        self._fetch_stage(settings, report)
        self._score_stage(settings, report)
        self._notify_stage(settings, report)

        report.duration_s = self._clock() - started
        LOG.info(
            "=== Search cycle complete: new=%d analyzed=%d failed=%d notified=%d quota_exhausted=%s (%.1fs) ===",
            report.total_new,
            report.analyzed,
            report.analysis_failed,
            report.notified,
            report.quota_exhausted,
            report.duration_s,
        )
        logging_bridge.activity({"component": "job_search.engine", "op": "summary", **report.to_dict()})
        return report

    # =========================================================================
    # STAGE A: FETCH & DEDUP
    # =========================================================================
    def _fetch_stage(self, settings: Settings, report: CycleReport) -> None:
        sites = settings.enabled_sites()
        if not sites:
            LOG.warning("No enabled sites configured; skipping fetch.")
            return

        keywords = list(settings.keywords)
        location = settings.location

        def _fetch(site: SiteConfig) -> list[Posting]:
            LOG.info("Fetching from %s...", site.name)
            source = self._source_factory(site.source_kind, site.params)
            return list(source.fetch(keywords, location) or [])

        # Every fetch settles before any insert; inserts keep configured order.
        outcomes: dict[int, list[Posting] | Exception] = {}
        workers = max(1, min(len(sites), settings.search.max_fetch_threads))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fetch") as pool:
            futures = {pool.submit(_fetch, site): idx for idx, site in enumerate(sites)}
            for fut in as_completed(futures):
                idx = futures[fut]
                try:
                    outcomes[idx] = fut.result()
                except Exception as e:
                    outcomes[idx] = e

        for idx, site in enumerate(sites):
            sr = SourceReport(source=site.name)
            report.sources.append(sr)
            outcome = outcomes[idx]

            if isinstance(outcome, Exception):
                sr.error = _describe_error(outcome)
                LOG.error("Error fetching from %s: %s", site.name, sr.error)
                logging_bridge.error({
                    "component": "job_search.engine",
                    "op": "fetch",
                    "source": site.name,
                    "error": repr(outcome),
                })
                continue

            sr.fetched = len(outcome)
            try:
                for posting in outcome:
                    if not isinstance(posting, Posting) or not str(posting.external_id or "").strip():
                        raise SourceError(f"malformed posting from {site.name}: {posting!r:.200}")
                    if self.store.insert_if_absent(posting):
                        sr.new += 1
                    else:
                        sr.duplicates += 1
            except sqlite3.Error:
                raise
            except Exception as e:
                sr.error = _describe_error(e)
                LOG.error("Error storing postings from %s: %s", site.name, sr.error)
                logging_bridge.error({
                    "component": "job_search.engine",
                    "op": "insert",
                    "source": site.name,
                    "error": repr(e),
                })
                continue
            LOG.info("%s: fetched %d, new %d, duplicates %d", site.name, sr.fetched, sr.new, sr.duplicates)

    # =========================================================================
    # STAGE B: SCORING
    # =========================================================================
    def _score_stage(self, settings: Settings, report: CycleReport) -> None:
        pending = self.store.unscored()
        if not pending:
            return
        LOG.info("Analyzing %d jobs...", len(pending))

        for idx, posting in enumerate(pending):
            outcome = self._score_with_retry(posting, settings)

            if isinstance(outcome, Scored):
                self.store.record_score(posting.id, outcome.score, outcome.reasoning)
                report.analyzed += 1
                continue

            if isinstance(outcome, RateLimited) and outcome.quota_exhausted:
                # Every further call would hit the same wall; stop the stage.
                report.quota_exhausted = True
                remaining = len(pending) - idx
                LOG.error("Scoring quota exhausted; %d posting(s) left unscored this cycle.", remaining)
                logging_bridge.error({
                    "component": "job_search.engine",
                    "op": "quota_exhausted",
                    "job_id": posting.id,
                    "remaining": remaining,
                    "message": outcome.message,
                })
                break

            report.analysis_failed += 1
            reason = outcome.error if isinstance(outcome, ScoreFailed) else "rate limited after retries"
            LOG.error("Failed to analyze job %s (%r): %s", posting.id, posting.title, reason)

    def _score_with_retry(self, posting: StoredPosting, settings: Settings) -> ScoreOutcome:
        """
        Call the scorer; on a transient rate limit sleep base * 2**attempt and
        try again, at most `max_retries` times. Quota exhaustion is returned
        at once.
        """
        cfg = settings.scoring
        attempt = 0
        while True:
            outcome = self._call_scorer(posting, settings)
            if isinstance(outcome, RateLimited) and not outcome.quota_exhausted and attempt < cfg.max_retries:
                delay = cfg.retry_base_seconds * (2**attempt)
                attempt += 1
                LOG.warning(
                    "Rate limited, retrying in %.1fs (attempt %d/%d)...", delay, attempt, cfg.max_retries
                )
                self._sleep(delay)
                continue
            return outcome

    def _call_scorer(self, posting: StoredPosting, settings: Settings) -> ScoreOutcome:
        try:
            outcome = self.scorer.score(posting.title, posting.description, posting.company, list(settings.keywords))
        except Exception as e:
            return ScoreFailed(_describe_error(e))
        if not isinstance(outcome, (Scored, RateLimited, ScoreFailed)):
            return ScoreFailed(f"scorer returned {type(outcome).__name__}")
        if isinstance(outcome, Scored) and not _valid_score(outcome.score):
            return ScoreFailed(f"score out of range: {outcome.score!r}")
        return outcome

    # =========================================================================
    # STAGE C: NOTIFICATION
    # =========================================================================
    def _notify_stage(self, settings: Settings, report: CycleReport) -> None:
        eligible = self.store.unnotified_above_threshold(settings.search.min_match_score)
        if not eligible:
            return

        recipients = self.store.active_chats()
        if not recipients:
            LOG.info("No subscribed chats; holding %d eligible posting(s).", len(eligible))
            return

        LOG.info("Sending %d notifications to %d chat(s)...", len(eligible), len(recipients))
        for posting in eligible:
            result: NotifyResult | None = None
            try:
                result = self.notifier.send(recipients, posting)
            except Exception as e:
                LOG.error("Failed to notify job %s: %s", posting.id, _describe_error(e))
                logging_bridge.error({
                    "component": "job_search.engine",
                    "op": "notify",
                    "job_id": posting.id,
                    "error": repr(e),
                })

            # At-least-attempted: the flag is set whatever the per-chat outcome.
            self.store.mark_notified(posting.id)

            if result is not None and result.any_delivered:
                report.notified += 1
            elif result is not None and result.failed:
                LOG.warning("Job %s reached no chat (%d failed).", posting.id, len(result.failed))


def _valid_score(score: Any) -> bool:
    try:
        value = float(score)
    except (TypeError, ValueError):
        return False
    return math.isfinite(value) and 0.0 <= value <= 100.0


def _describe_error(e: BaseException) -> str:
    msg = str(e).strip()
    return f"{type(e).__name__}: {msg}" if msg else type(e).__name__
