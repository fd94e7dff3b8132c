# tests/conftest.py
import os
import tempfile
from collections.abc import Callable, Sequence
from typing import Any

import pytest
from freezegun import freeze_time

from modules.job_search.lib.config import SearchConfig, Settings, SettingsHandle, SiteConfig
from modules.job_search.lib.db import JobStore
from modules.job_search.lib.engine import CycleOrchestrator
from modules.job_search.lib.models import Location, Posting, StoredPosting
from modules.job_search.lib.notifier import NotifyResult
from modules.job_search.lib.scoring import Scored, ScoreOutcome


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="js-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


# ---------------------------------------------------------------------
# Store / settings
# ---------------------------------------------------------------------
@pytest.fixture
def store(tmp_path) -> JobStore:
    return JobStore(str(tmp_path / "jobs.db"))


def make_posting(ext_id: str, source: str = "stub", **kw: Any) -> Posting:
    return Posting(
        source=source,
        external_id=ext_id,
        title=kw.pop("title", f"Engineer {ext_id}"),
        company=kw.pop("company", "Acme"),
        url=kw.pop("url", f"https://example.com/{source}/{ext_id}"),
        description=kw.pop("description", "Python, Django, PostgreSQL"),
        **kw,
    )


def stub_site(name: str, items: Sequence[dict] = (), error: str | None = None, enabled: bool = True) -> SiteConfig:
    """A 'stub' source configured under its own label (so several can coexist)."""
    params: dict[str, Any] = {"items": list(items), "label": name}
    if error:
        params["error"] = error
    return SiteConfig(name=name, kind="stub", enabled=enabled, params=params)


@pytest.fixture
def make_handle(tmp_path) -> Callable[..., SettingsHandle]:
    """
    Build a SettingsHandle around in-memory Settings.
    Sites are stub sources; pass `path` to make updates persist.
    """

    def _make(
        sites: Sequence[SiteConfig] = (),
        keywords: Sequence[str] = ("Python", "Django"),
        min_match_score: float = 70.0,
        max_fetch_threads: int = 4,
        path: str | None = None,
        **overrides: Any,
    ) -> SettingsHandle:
        settings = Settings(
            keywords=tuple(keywords),
            location=overrides.pop("location", Location(remote=True)),
            sites=tuple(sites),
            search=SearchConfig(min_match_score=min_match_score, max_fetch_threads=max_fetch_threads),
            sqlite_path=str(tmp_path / "jobs.db"),
            **overrides,
        )
        return SettingsHandle(settings, path)

    return _make


# ---------------------------------------------------------------------
# Fakes for the orchestrator's collaborators
# ---------------------------------------------------------------------
class FakeScorer:
    """
    Returns scripted outcomes.
    - by_title: {title: outcome | [outcome, outcome, ...]} (lists are consumed per call)
    - default: outcome for anything else
    """

    def __init__(self, by_title: dict[str, Any] | None = None, default: ScoreOutcome | None = None):
        self.by_title = {k: (list(v) if isinstance(v, list) else v) for k, v in (by_title or {}).items()}
        self.default = default or Scored(80.0, "good fit")
        self.calls: list[str] = []

    def score(self, title, description, company, skills) -> ScoreOutcome:
        self.calls.append(title)
        scripted = self.by_title.get(title, self.default)
        if isinstance(scripted, list):
            scripted = scripted.pop(0) if len(scripted) > 1 else scripted[0]
        if isinstance(scripted, Exception):
            raise scripted
        return scripted


class FakeNotifier:
    """Records fan-outs. `fail_chats` never receive; `raise_for` titles make send() raise."""

    def __init__(self, fail_chats: Sequence[int] = (), raise_for: Sequence[str] = ()):
        self.fail_chats = set(fail_chats)
        self.raise_for = set(raise_for)
        self.sent: list[tuple[tuple[int, ...], StoredPosting]] = []

    def send(self, recipients, posting) -> NotifyResult:
        if posting.title in self.raise_for:
            raise RuntimeError(f"transport down for {posting.title}")
        self.sent.append((tuple(recipients), posting))
        result = NotifyResult()
        for chat_id in recipients:
            if chat_id in self.fail_chats:
                result.failed[chat_id] = "blocked"
            else:
                result.delivered.append(chat_id)
        return result


class SleepRecorder:
    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_orchestrator(store, sleep_recorder) -> Callable[..., CycleOrchestrator]:
    def _make(handle: SettingsHandle, scorer=None, notifier=None, **kw: Any) -> CycleOrchestrator:
        return CycleOrchestrator(
            handle,
            kw.pop("store", store),
            scorer or FakeScorer(),
            notifier or FakeNotifier(),
            sleep=kw.pop("sleep", sleep_recorder),
            **kw,
        )

    return _make
