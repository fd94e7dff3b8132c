from __future__ import annotations

from typing import Any

from .lib.config import SettingsHandle
from .lib.db import JobStore
from .lib.engine import CycleOrchestrator
from .lib.logging_bridge import activity as log_activity
from .lib.notifier import TelegramNotifier
from .lib.render import format_report
from .lib.scoring import OpenAIScorer


def build_orchestrator(handle: SettingsHandle, **overrides: Any) -> CycleOrchestrator:
    """
    Wire the production collaborators around a settings handle.

    Any of store / scorer / notifier may be passed in `overrides`
    (tests and the CLI use this to swap in fakes).
    """
    settings = handle.get()
    store = overrides.pop("store", None) or JobStore(settings.sqlite_path)
    scorer = overrides.pop("scorer", None) or OpenAIScorer(settings.scoring)
    notifier = overrides.pop("notifier", None) or TelegramNotifier.from_env(settings.telegram.token_env)
    return CycleOrchestrator(handle, store, scorer, notifier, **overrides)


def run(**kwargs: Any) -> str:
    """
    Entry point for the 'job_search' module: one cycle, rendered as text.

    Accepts kwargs:
      config_path: str | None   # else CONFIG_PATH
      handle: SettingsHandle    # pre-built handle (takes precedence)
      store / scorer / notifier # optional collaborator overrides
    """
    config_path = kwargs.pop("config_path", None)
    handle = kwargs.pop("handle", None) or SettingsHandle.from_file(config_path)
    orchestrator = build_orchestrator(handle, **kwargs)

    log_activity({
        "component": "job_search.main",
        "op": "start",
        "config_path": handle.path,
        "sites": [s.name for s in handle.get().enabled_sites()],
    })

    report = orchestrator.run_cycle()
    return format_report(report)
