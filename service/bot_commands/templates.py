# service/bot_commands/templates.py
from __future__ import annotations

import textwrap
from datetime import datetime

from modules.job_search.lib.config import Settings
from modules.job_search.lib.models import StoreStats

COMMANDS_HELP = textwrap.dedent("""\
    Commands:
    /start - Start receiving notifications
    /stop - Stop notifications
    /status - Show current status
    /setstack <skills> - Update your skills (comma-separated)
    /setlocation <country/city> - Set location filter
    /search - Run search immediately
    /help - Show this message""")

WELCOME = (
    "Welcome to Job Search AI Agent!\n\n"
    "I will search for jobs matching your skills and notify you about the best matches.\n\n"
    + COMMANDS_HELP
)

SETSTACK_USAGE = "Usage: /setstack Frontend, Vue, TypeScript, Node.js"

SETLOCATION_USAGE = textwrap.dedent("""\
    Usage:
    /setlocation remote - remote jobs only
    /setlocation Germany - filter by country
    /setlocation Moscow - filter by city""")


def status_text(
    active: bool,
    settings: Settings,
    stats: StoreStats,
    next_run: datetime | None = None,
) -> str:
    sites = ", ".join(s.name for s in settings.enabled_sites()) or "none"
    next_run_str = next_run.strftime("%Y-%m-%d %H:%M %Z").strip() if next_run else "-"
    return (
        f"Status: {'Active' if active else 'Paused'}\n\n"
        f"Keywords: {', '.join(settings.keywords) or '-'}\n"
        f"Location: {settings.location.describe()}\n"
        f"Sites: {sites}\n"
        f"Schedule: {settings.schedule_summary()}\n"
        f"Next run: {next_run_str}\n"
        f"Min score: {settings.search.min_match_score:g}%\n\n"
        f"Jobs found: {stats.total}\n"
        f"Analyzed: {stats.analyzed}\n"
        f"Notified: {stats.notified}"
    )
