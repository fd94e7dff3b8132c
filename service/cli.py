# service/cli.py
"""
User-facing command-line entrypoints for the container.

Subcommands
-----------
serve
    - Builds the shared search orchestrator from the config file
    - Starts the APScheduler loop via service.scheduler.start()
    - Starts the Telegram command listener in a secondary thread
    - Registers signal handlers for graceful shutdown of both components

run
    - Executes one search cycle now and prints the cycle report
    - Exit 0 even when some sources failed (they are listed in the report)

list-sources
    - Prints the registered source adapters and whether the config enables them

validate-config
    - Loads/validates config (including the schedule) and returns nonzero on error
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
import time
from collections.abc import Iterable
from types import SimpleNamespace
from typing import Any

from modules.job_search.lib import sources as _sources
from modules.job_search.lib.config import ConfigError, SettingsHandle, load_settings
from modules.job_search.lib.render import format_report
from modules.job_search.main import build_orchestrator
from service import logging_utils as L
from service import scheduler as _scheduler
from service import telegram_listener as _listener
from service.bot_commands import CommandContext

LOG = logging.getLogger("service.cli")


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _print_table(rows: Iterable[tuple[str, str]], headers: tuple[str, str] = ("ID", "DETAILS")) -> None:
    """Very simple two-column table printer."""
    rows = list(rows)
    w0 = max(len(headers[0]), *(len(r[0]) for r in rows)) if rows else len(headers[0])
    w1 = max(len(headers[1]), *(len(r[1]) for r in rows)) if rows else len(headers[1])
    sep = f"+-{'-' * w0}-+-{'-' * w1}-+"
    print(sep)
    print(f"| {headers[0].ljust(w0)} | {headers[1].ljust(w1)} |")
    print(sep)
    for c0, c1 in rows:
        print(f"| {c0.ljust(w0)} | {c1.ljust(w1)} |")
    print(sep)


# ------------------------------ Subcommands ----------------------------------
def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        settings = load_settings(args.config)
        _scheduler._build_trigger(settings.search.schedule, _scheduler._resolve_timezone(settings.timezone))
        unknown = [s.source_kind for s in settings.sites if s.source_kind not in _sources.all_sources()]
        if unknown:
            raise ConfigError(f"Unknown site name(s): {', '.join(unknown)}")
        print("OK: configuration is valid.")
        return 0
    except KeyboardInterrupt:
        return 130
    except (ConfigError, ValueError) as e:
        LOG.error("Configuration validation failed: %s", e)
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1


def cmd_list_sources(args: argparse.Namespace) -> int:
    enabled: dict[str, bool] = {}
    if args.config or os.getenv("CONFIG_PATH"):
        try:
            for s in load_settings(args.config).sites:
                enabled[s.source_kind] = enabled.get(s.source_kind, False) or s.enabled
        except ConfigError as e:
            print(f"WARNING: could not read config: {e}", file=sys.stderr)

    rows = []
    for name in sorted(_sources.all_sources()):
        if name not in enabled:
            state = "not configured"
        else:
            state = "enabled" if enabled[name] else "disabled"
        rows.append((name, state))
    _print_table(rows, headers=("SOURCE", "STATUS"))
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    start_time = time.monotonic()
    try:
        handle = SettingsHandle.from_file(args.config)
        orchestrator = build_orchestrator(handle)
        report = orchestrator.run_cycle()
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        duration_s = time.monotonic() - start_time
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "where": "cli.run",
            "error": repr(e),
            "duration_ms": int(duration_s * 1000),
        })
        return 1

    L.write_activity_log({
        "event": "cli_run",
        "trigger_type": "adhoc",
        "duration_ms": int((time.monotonic() - start_time) * 1000),
        "report": report.to_dict(),
    })
    print(format_report(report))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the scheduler loop + Telegram listener until a termination signal
    is received. Both services are stopped cleanly.
    """
    L.write_activity_log({"event": "serve_start"})

    stop_event = threading.Event()
    running = SimpleNamespace(sched=None, listener=None)

    def _graceful_shutdown(signum=None, frame=None):
        LOG.info("Signal %s received; initiating shutdown...", signum)
        stop_event.set()
        _safe_stop("scheduler", running.sched)
        _safe_stop("telegram_listener", running.listener)

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _graceful_shutdown)

    try:
        handle = SettingsHandle.from_file(args.config)
        settings = handle.get()
        orchestrator = build_orchestrator(handle)

        running.sched = _scheduler.start(orchestrator, settings)
        LOG.info("Scheduler started: %r", running.sched)

        ctx = CommandContext(
            handle=handle,
            store=orchestrator.store,
            orchestrator=orchestrator,
            next_run=running.sched.next_run_time,
        )
        running.listener = _listener.start(
            orchestrator.notifier,
            ctx,
            poll_timeout=settings.telegram.poll_timeout,
            state_file=settings.telegram.state_file,
        )
        LOG.info("Telegram listener started: %r", running.listener)

        # Main wait loop (respond quickly to signals)
        while not stop_event.is_set():
            time.sleep(0.3)

        _safe_stop("scheduler", running.sched)
        _safe_stop("telegram_listener", running.listener)
        L.write_activity_log({"event": "serve_stop"})
        return 0

    except KeyboardInterrupt:
        _graceful_shutdown("KeyboardInterrupt")
        return 130
    except Exception as e:
        LOG.exception("Fatal error in serve: %s", e)
        _graceful_shutdown("UnhandledException")
        return 1


def _safe_stop(name: str, handle: Any) -> None:
    """Best-effort stop & join for a controller-like object."""
    if handle is None:
        return
    try:
        handle.stop()
    except Exception:  # pragma: no cover
        LOG.exception("Error stopping %s", name)
    try:
        handle.join(timeout=10.0)
    except Exception:  # pragma: no cover
        LOG.exception("Error joining %s", name)


# ------------------------------- Argparse ------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="python -m service.cli",
        description="Job search agent command-line tools",
    )
    p.add_argument(
        "--config",
        help="Path to config file (falls back to CONFIG_PATH env).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("serve", help="Run the scheduled search loop and the Telegram listener.")
    sp.set_defaults(func=cmd_serve)

    sp = sub.add_parser("run", help="Run one search cycle now and print the report.")
    sp.set_defaults(func=cmd_run)

    sp = sub.add_parser("list-sources", help="Print registered sources and their config status.")
    sp.set_defaults(func=cmd_list_sources)

    sp = sub.add_parser("validate-config", help="Verify configuration correctness.")
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
