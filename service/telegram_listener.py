# service/telegram_listener.py
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any

import requests

from modules.job_search.lib.notifier import NotifyError, TelegramNotifier
from service.bot_commands import CommandContext, handle_command

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())

INITIAL_BACKOFF_S = 30
MAX_BACKOFF_S = 300


# --------------------------------------------------------------------------- #
# Public control surface
# --------------------------------------------------------------------------- #
class ListenerController:
    def __init__(self, thread: threading.Thread, stop_event: threading.Event):
        self._thread = thread
        self._stop = stop_event

    def stop(self) -> None:
        """Signal the listener loop to exit promptly (after the current long-poll)."""
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        """Wait for the listener thread to exit."""
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    @property
    def thread(self) -> threading.Thread:
        return self._thread


def start(
    notifier: TelegramNotifier,
    ctx: CommandContext,
    *,
    poll_timeout: int = 30,
    state_file: str | None = None,
) -> ListenerController:
    """
    Start the Telegram command listener in a background thread (non-blocking).
    Returns a controller with .stop() and .join().
    """
    stop_event = threading.Event()
    t = threading.Thread(
        target=_listener_loop,
        name="telegram-command-listener",
        args=(notifier, ctx, poll_timeout, _state_path(state_file), stop_event),
        daemon=True,
    )
    t.start()
    return ListenerController(t, stop_event)


# --------------------------------------------------------------------------- #
# Offset state
# --------------------------------------------------------------------------- #
def _state_path(state_file: str | None) -> Path | None:
    if not state_file:
        return None
    p = Path(state_file)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p


def load_offset(p: Path | None) -> int | None:
    if p is None:
        return None
    try:
        return int(p.read_text().strip())
    except (OSError, ValueError):
        return None  # Start from whatever Telegram still holds


def save_offset(p: Path | None, offset: int) -> None:
    if p is None:
        return
    try:
        p.write_text(str(offset))
    except OSError as e:
        logger.warning("Failed to save update offset to %s: %s", p, e)


# --------------------------------------------------------------------------- #
# Polling
# --------------------------------------------------------------------------- #
def poll_once(
    notifier: TelegramNotifier,
    ctx: CommandContext,
    offset: int | None,
    poll_timeout: int,
    state_path: Path | None = None,
    stop_event: threading.Event | None = None,
) -> int | None:
    """
    Fetch one batch of updates, dispatch each message, and return the next offset.
    The offset advances past an update even when its handler fails, so a bad
    message is never redelivered forever.
    """
    updates = notifier.get_updates(offset, poll_timeout)
    for upd in sorted(updates, key=lambda u: u.get("update_id", 0)):
        if stop_event is not None and stop_event.is_set():
            break
        update_id = upd.get("update_id")
        if not isinstance(update_id, int):
            continue
        try:
            _dispatch(upd, notifier, ctx)
        except Exception as e:
            logger.error("Failed to process update %s: %s", update_id, e, exc_info=True)
        offset = update_id + 1
        save_offset(state_path, offset)
    return offset


def _dispatch(upd: dict[str, Any], notifier: TelegramNotifier, ctx: CommandContext) -> None:
    message = upd.get("message") or {}
    text = message.get("text")
    chat_id = (message.get("chat") or {}).get("id")
    if not text or chat_id is None:
        return

    def _reply(cid: int, body: str) -> None:
        try:
            notifier.send_text(cid, body)
        except (NotifyError, requests.RequestException, ValueError):
            logger.error("Failed to send reply to chat %s", cid, exc_info=True)

    handle_command(text, int(chat_id), ctx, _reply)


def _listener_loop(
    notifier: TelegramNotifier,
    ctx: CommandContext,
    poll_timeout: int,
    state_path: Path | None,
    stop_event: threading.Event,
) -> None:
    """
    Main long-poll loop:
    - Calls getUpdates with the persisted offset
    - Dispatches each message to the command handlers
    - Persists the offset after every update to resume after restarts
    - Uses exponential backoff on errors
    """
    offset = load_offset(state_path)
    backoff = INITIAL_BACKOFF_S
    logger.info("[commands] Telegram listener started (offset=%s)", offset)

    while not stop_event.is_set():
        try:
            offset = poll_once(notifier, ctx, offset, poll_timeout, state_path, stop_event)
            backoff = INITIAL_BACKOFF_S
        except Exception as e:  # noqa: PERF203
            if stop_event.is_set():
                break
            logger.error("[commands] Polling error: %r - retrying in %ds", e, backoff)
            stop_event.wait(backoff)
            backoff = min(backoff * 2, MAX_BACKOFF_S)

    logger.info("[commands] Listener stopped")
