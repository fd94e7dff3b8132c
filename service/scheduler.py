# service/scheduler.py
from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Iterable, Mapping
from datetime import datetime, time, timedelta
from datetime import tzinfo as _dt_tzinfo
from typing import Any

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from modules.job_search.lib.config import Settings
from modules.job_search.lib.engine import CycleInProgressError, CycleOrchestrator

from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)

SEARCH_JOB_ID = "search_cycle"

_INTERVAL_UNITS = ("weeks", "days", "hours", "minutes", "seconds")
_INTERVAL_KEYS = {*_INTERVAL_UNITS, "jitter", "timezone", "start_date", "end_date"}
_CRON_KEYS = {"second", "minute", "hour", "day", "day_of_week", "month", "timezone", "start_date", "end_date", "jitter"}
_DAILY_KEYS = {"time", "day_of_week", "timezone"}


class SchedulerController:
    """Lifecycle handle for the background scheduler (used by `serve` and `/status`)."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # A cycle already in flight finishes on its worker thread.
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()
        LOG.info("Scheduler stopped.")

    def join(self, timeout: float | None = None) -> bool:
        """True once stop() has run, False on timeout."""
        return self._stopped_evt.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return (job.id for job in self._scheduler.get_jobs())

    def next_run_time(self) -> datetime | None:
        job = self._scheduler.get_job(SEARCH_JOB_ID)
        return getattr(job, "next_run_time", None) if job else None


def start(orchestrator: CycleOrchestrator, settings: Settings) -> SchedulerController:
    """
    Start a BackgroundScheduler that runs `orchestrator.run_cycle` on the
    configured schedule.

    One worker thread, coalesce=True and max_instances=1: missed fires collapse
    into a single run and scheduled cycles never queue behind each other. Manual
    /search runs are guarded by the orchestrator's own lock.
    """
    tz = _resolve_timezone(settings.timezone)
    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults={"coalesce": True, "max_instances": 1},
        executors={"default": ThreadPoolExecutor(1)},
        jobstores={"default": MemoryJobStore()},
    )

    trigger = _build_trigger(settings.search.schedule, tz)
    _add_search_job(scheduler, orchestrator, trigger, summary=settings.schedule_summary())

    scheduler.start()
    LOG.info("Scheduler started (tz=%s, %s).", tz, settings.schedule_summary())
    return SchedulerController(scheduler)


# ---- Triggers ---------------------------------------------------------------


def _resolve_timezone(tz_name: str | None):
    """pytz zone for `tz_name` (else $TZ, else UTC); unknown names fall back to UTC."""
    name = tz_name or os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Unknown timezone %r; using UTC.", name)
        return pytz.UTC


def _as_tz(value: Any) -> _dt_tzinfo | None:
    if not value:
        return None
    if isinstance(value, _dt_tzinfo):
        return value
    try:
        return pytz.timezone(str(value))
    except pytz.UnknownTimeZoneError as err:
        raise ValueError(f"unknown timezone: {value!r}") from err


def _reject_unknown(block: str, given: Mapping[str, Any], allowed: set[str]) -> None:
    extra = set(given) - allowed
    if extra:
        raise ValueError(f"{block} has unknown field(s): {sorted(extra)}")


def _build_trigger(schedule: Mapping[str, Any], tz: Any) -> BaseTrigger:
    """
    Turn the `search.schedule` mapping into an APScheduler trigger.

      {"cron": "0 */2 * * *"}                        crontab, scheduler tz
      {"cron": {"minute": 0, "hour": "*/2", ...}}    CronTrigger fields
      {"interval": {"hours": 2, ...}}                IntervalTrigger
      {"daily_time": {"time": ["08:00", "18:30"], "day_of_week": "mon-fri"}}

    Exactly one kind must be given. A block's own "timezone" overrides `tz`.
    Raises ValueError on anything else.
    """
    if not isinstance(schedule, Mapping):
        raise ValueError("schedule must be a mapping")

    kinds = [k for k in ("interval", "cron", "daily_time") if schedule.get(k) is not None]
    if len(kinds) != 1:
        raise ValueError("schedule needs exactly one of 'interval', 'cron', 'daily_time'")

    kind = kinds[0]
    builder = {"interval": _interval_trigger, "cron": _cron_trigger, "daily_time": _daily_time_trigger}[kind]
    return builder(schedule[kind], _as_tz(tz))


def _interval_trigger(block: Any, default_tz: _dt_tzinfo | None) -> IntervalTrigger:
    if not isinstance(block, Mapping):
        raise ValueError("interval must be an object with time fields")
    _reject_unknown("interval", block, _INTERVAL_KEYS)

    def _count(name: str) -> int:
        try:
            n = int(block.get(name, 0))
        except (TypeError, ValueError) as err:
            raise ValueError(f"interval.{name} must be an integer") from err
        if n < 0:
            raise ValueError(f"interval.{name} must be >= 0")
        return n

    amounts = {unit: _count(unit) for unit in _INTERVAL_UNITS}
    if not any(amounts.values()):
        raise ValueError("interval must be longer than zero")

    kwargs: dict[str, Any] = {unit: n for unit, n in amounts.items() if n}
    if _count("jitter"):
        kwargs["jitter"] = _count("jitter")
    kwargs.update({k: block[k] for k in ("start_date", "end_date") if k in block})
    return IntervalTrigger(timezone=_as_tz(block.get("timezone")) or default_tz, **kwargs)


def _cron_trigger(block: Any, default_tz: _dt_tzinfo | None) -> CronTrigger:
    if isinstance(block, str):
        if len(block.split()) != 5:
            raise ValueError(f"cron expression needs 5 fields: {block!r}")
        return CronTrigger.from_crontab(block, timezone=default_tz)
    if not isinstance(block, Mapping):
        raise ValueError("cron must be a crontab string or an object")
    _reject_unknown("cron", block, _CRON_KEYS)

    fields = {k: block.get(k) for k in ("hour", "day", "day_of_week", "month", "start_date", "end_date", "jitter")}
    return CronTrigger(
        second=block.get("second", 0),
        minute=block.get("minute", 0),
        timezone=_as_tz(block.get("timezone")) or default_tz,
        **fields,
    )


def _parse_clock(value: Any) -> tuple[int, int, int]:
    """'HH:MM' or 'HH:MM:SS' -> (h, m, s), range-checked."""
    parts = str(value).split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"daily_time.time must be 'HH:MM' or 'HH:MM:SS', got {value!r}")
    try:
        h, m, s = (int(p) for p in (*parts, "0")[:3])
        time(h, m, s)
    except ValueError as err:
        raise ValueError(f"daily_time.time is not a valid clock time: {value!r}") from err
    return h, m, s


def _daily_time_trigger(block: Any, default_tz: _dt_tzinfo | None) -> BaseTrigger:
    if not isinstance(block, Mapping):
        raise ValueError("daily_time must be an object")
    _reject_unknown("daily_time", block, _DAILY_KEYS)

    times = block.get("time")
    if not times:
        raise ValueError("daily_time requires 'time'")
    if isinstance(times, str):
        times = [times]
    if not isinstance(times, (list, tuple)):
        raise ValueError("daily_time.time must be a string or a list of strings")

    tz = _as_tz(block.get("timezone")) or default_tz
    # One CronTrigger per exact clock time, so hours and minutes never cross-multiply.
    triggers = [
        CronTrigger(hour=h, minute=m, second=s, day_of_week=block.get("day_of_week"), timezone=tz)
        for h, m, s in sorted({_parse_clock(t) for t in times})
    ]
    return triggers[0] if len(triggers) == 1 else OrTrigger(triggers)


def _preview_trigger(trigger: BaseTrigger, tz: Any, count: int = 6) -> list[datetime]:
    """The next `count` fire times from now, for the SCHEDULER_PREVIEW log line."""
    now = datetime.now(tz=tz)
    prev, out = now, []
    for _ in range(count):
        nxt = trigger.get_next_fire_time(prev, now)
        if nxt is None:
            break
        out.append(nxt)
        prev, now = nxt, nxt + timedelta(microseconds=1)
    return out


# ---- Job --------------------------------------------------------------------


def _add_search_job(
    scheduler: BackgroundScheduler,
    orchestrator: CycleOrchestrator,
    trigger: BaseTrigger,
    summary: str | None = None,
) -> None:
    """Register the search cycle behind a wrapper that never raises into APScheduler."""

    def _run_search() -> None:
        started = _time.monotonic()
        LOG.info("Job[%s] starting", SEARCH_JOB_ID)
        try:
            report = orchestrator.run_cycle()
        except CycleInProgressError:
            LOG.warning("Job[%s] skipped: a search cycle is already running.", SEARCH_JOB_ID)
            _write_activity("skipped", _time.monotonic() - started, summary)
            return
        except Exception:
            LOG.exception("Job[%s] failed.", SEARCH_JOB_ID)
            _write_activity("error", _time.monotonic() - started, summary)
            return

        elapsed = _time.monotonic() - started
        LOG.info("Job[%s] finished in %.3fs", SEARCH_JOB_ID, elapsed)
        _write_activity("ok", elapsed, summary, report.to_dict())

    if os.getenv("SCHEDULER_PREVIEW") == "1":
        upcoming = _preview_trigger(trigger, scheduler.timezone, count=int(os.getenv("SCHEDULER_PREVIEW_COUNT", "6")))
        LOG.info("PREVIEW[%s]: %s", SEARCH_JOB_ID, ", ".join(t.isoformat() for t in upcoming) or "(none)")

    job = scheduler.add_job(
        func=_run_search,
        trigger=trigger,
        id=SEARCH_JOB_ID,
        name=summary or SEARCH_JOB_ID,
        replace_existing=True,
    )
    LOG.info("Registered job[%s] (%s)", job.id, summary)


def _write_activity(status: str, duration_s: float, summary: str | None, report: dict | None = None) -> None:
    try:
        write_activity_log({
            "source": "scheduler",
            "event": "job_run",
            "fields": {
                "job_id": SEARCH_JOB_ID,
                "status": status,
                "duration_ms": int(duration_s * 1000),
                "summary": summary,
                "report": report,
            },
        })
    except OSError:
        LOG.debug("write_activity_log failed for job[%s]", SEARCH_JOB_ID, exc_info=True)
