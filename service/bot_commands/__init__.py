# service/bot_commands/__init__.py
"""
Command handling for the Telegram chat interface.

Public API:
    handle_command(text, chat_id, ctx, reply) -> command name | None
"""

from __future__ import annotations

from .handlers import CommandContext, handle_command
from .parser import parse_command

__all__ = ["CommandContext", "handle_command", "parse_command"]
