# service/bot_commands/parser.py
from __future__ import annotations

import re
from typing import Any

_COMMAND_RE = re.compile(r"^/(?P<name>[A-Za-z0-9_]+)(?:@(?P<bot>\S+))?(?:\s+(?P<args>.*))?$", re.DOTALL)


def parse_command(text: str | None) -> dict[str, Any]:
    """
    Parse a chat message into a structured dict.

    SUPPORTED FORMS:

    1. /status
       → {"command": "status", "args": ""}

    2. /setstack Python, Django
       → {"command": "setstack", "args": "Python, Django"}

    3. /search@MyJobBot   (group chats address the bot by name)
       → {"command": "search", "args": ""}

    RULES:
    - Must start with "/"; anything else → {"command": None}
    - Command name is lower-cased; args are kept verbatim (trimmed)
    """
    line = (text or "").strip()
    match = _COMMAND_RE.match(line)
    if not match:
        return {"command": None, "args": ""}
    return {
        "command": match.group("name").lower(),
        "args": (match.group("args") or "").strip(),
    }


def split_skills(args: str) -> list[str]:
    """'Python, Django ,, SQL' → ['Python', 'Django', 'SQL']"""
    return [s.strip() for s in args.split(",") if s.strip()]
