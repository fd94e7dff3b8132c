# service/bot_commands/handlers.py
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from modules.job_search.lib.config import ConfigError, SettingsHandle
from modules.job_search.lib.db import JobStore
from modules.job_search.lib.engine import CycleInProgressError, CycleOrchestrator
from modules.job_search.lib.render import format_report

from . import templates
from .parser import parse_command, split_skills

logger = logging.getLogger(__name__)

Reply = Callable[[int, str], None]


@dataclass
class CommandContext:
    """What a command may touch. Built once by the listener."""

    handle: SettingsHandle
    store: JobStore
    orchestrator: CycleOrchestrator | None = None
    next_run: Callable[[], datetime | None] | None = None


def handle_command(text: str | None, chat_id: int, ctx: CommandContext, reply: Reply) -> str | None:
    """
    Process one incoming chat message and send replies through `reply`.
    Returns the command name handled, or None when the message was not a command.
    """
    cmd = parse_command(text)
    name = cmd["command"]
    if name is None:
        return None

    logger.info("Command from chat %s: /%s %s", chat_id, name, cmd["args"])
    handler = _HANDLERS.get(name)
    if handler is None:
        reply(chat_id, f"Unknown command: /{name}\n\n{templates.COMMANDS_HELP}")
        return name

    handler(cmd["args"], chat_id, ctx, reply)
    return name


# --------------------------------------------------------------------------- #
# Handlers
# --------------------------------------------------------------------------- #
def _handle_start(args: str, chat_id: int, ctx: CommandContext, reply: Reply) -> None:
    ctx.store.register_chat(chat_id)
    logger.info("Chat %s started", chat_id)
    reply(chat_id, templates.WELCOME)


def _handle_stop(args: str, chat_id: int, ctx: CommandContext, reply: Reply) -> None:
    ctx.store.deactivate_chat(chat_id)
    logger.info("Chat %s stopped", chat_id)
    reply(chat_id, "Notifications paused. Use /start to resume.")


def _handle_help(args: str, chat_id: int, ctx: CommandContext, reply: Reply) -> None:
    reply(chat_id, templates.COMMANDS_HELP)


def _handle_status(args: str, chat_id: int, ctx: CommandContext, reply: Reply) -> None:
    next_run = ctx.next_run() if ctx.next_run else None
    reply(
        chat_id,
        templates.status_text(
            active=ctx.store.is_chat_active(chat_id),
            settings=ctx.handle.get(),
            stats=ctx.store.stats(),
            next_run=next_run,
        ),
    )


def _handle_setstack(args: str, chat_id: int, ctx: CommandContext, reply: Reply) -> None:
    skills = split_skills(args)
    if not skills:
        reply(chat_id, templates.SETSTACK_USAGE)
        return
    try:
        updated = ctx.handle.update_keywords(skills)
    except (ConfigError, OSError) as e:
        logger.error("Failed to update keywords: %s", e)
        reply(chat_id, f"Could not update skills: {e}")
        return
    logger.info("Keywords updated to: %s", ", ".join(updated.keywords))
    reply(chat_id, f"Skills updated: {', '.join(updated.keywords)}")


def _handle_setlocation(args: str, chat_id: int, ctx: CommandContext, reply: Reply) -> None:
    place = args.strip()
    if not place:
        reply(chat_id, templates.SETLOCATION_USAGE)
        return
    try:
        if place.lower() == "remote":
            ctx.handle.update_location(remote=True)
            msg = "Location set to: Remote only"
        else:
            ctx.handle.update_location(country=place)
            msg = f"Location set to: {place}"
    except (ConfigError, OSError) as e:
        logger.error("Failed to update location: %s", e)
        reply(chat_id, f"Could not update location: {e}")
        return
    logger.info("Location updated: %s", place)
    reply(chat_id, msg)


def _handle_search(args: str, chat_id: int, ctx: CommandContext, reply: Reply) -> None:
    if ctx.orchestrator is None:
        reply(chat_id, "Search engine is not ready yet. Please wait.")
        return

    reply(chat_id, "Starting search... This may take a minute.")
    try:
        report = ctx.orchestrator.run_cycle()
    except CycleInProgressError:
        reply(chat_id, "A search is already running. Try again when it finishes.")
        return
    except Exception:
        logger.exception("Manual search failed")
        reply(chat_id, "Search failed. Check logs for details.")
        return
    reply(chat_id, "Search complete!\n\n" + format_report(report))


_HANDLERS: dict[str, Callable[[str, int, CommandContext, Reply], None]] = {
    "start": _handle_start,
    "stop": _handle_stop,
    "help": _handle_help,
    "status": _handle_status,
    "setstack": _handle_setstack,
    "setlocation": _handle_setlocation,
    "search": _handle_search,
}
