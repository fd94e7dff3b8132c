from __future__ import annotations

import logging
import os
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from .http_client import HttpClient
from .models import StoredPosting

LOG = logging.getLogger(__name__)

_MD_SPECIALS = re.compile(r"([\\_*\[\]()~`>#+\-=|{}.!])")


class NotifyError(RuntimeError):
    """Raised when a message cannot be delivered to one chat."""


@dataclass
class NotifyResult:
    """Per-recipient outcome of one fan-out."""

    delivered: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    @property
    def any_delivered(self) -> bool:
        return bool(self.delivered)


class Notifier(Protocol):
    def send(self, recipients: Sequence[int], posting: StoredPosting) -> NotifyResult: ...


# ---- Message formatting -----------------------------------------------------


def escape_markdown(text: str) -> str:
    return _MD_SPECIALS.sub(r"\\\1", text or "")


def score_bar(score: float | None) -> str:
    filled = max(0, min(10, round((score or 0) / 10)))
    return "█" * filled + "░" * (10 - filled)


def format_posting_message(posting: StoredPosting) -> str:
    score = posting.match_score or 0
    score_txt = f"{score:g}"
    return (
        f"💼 *{escape_markdown(posting.title)}*\n"
        f"🏢 {escape_markdown(posting.company)}\n"
        f"📍 {escape_markdown(posting.location or 'Not specified')}\n"
        f"📊 Match: {escape_markdown(score_txt)}% {score_bar(score)}\n"
        f"💡 {escape_markdown(posting.match_reasoning or 'No analysis')}\n"
        f"🔗 Source: {escape_markdown(posting.source)}"
    )


# ---- Telegram transport -----------------------------------------------------


class TelegramNotifier:
    """
    Sends postings and plain replies through the Telegram Bot API.

    Fan-out is independent per chat: one chat failing never stops the rest.
    """

    API_BASE = "https://api.telegram.org"

    def __init__(self, token: str, client: HttpClient | None = None) -> None:
        if not token:
            raise ValueError("Telegram bot token is empty.")
        self._token = token
        # sendMessage is not idempotent: never let the transport resend a POST.
        self._client = client or HttpClient(timeout=15.0, retry_methods=("GET",))

    @classmethod
    def from_env(cls, token_env: str = "TELEGRAM_BOT_TOKEN") -> TelegramNotifier:
        token = os.getenv(token_env)
        if not token:
            raise RuntimeError(f"{token_env} not set")
        return cls(token)

    @property
    def client(self) -> HttpClient:
        return self._client

    def method_url(self, method: str) -> str:
        return f"{self.API_BASE}/bot{self._token}/{method}"

    def send(self, recipients: Sequence[int], posting: StoredPosting) -> NotifyResult:
        result = NotifyResult()
        text = format_posting_message(posting)
        markup = {"inline_keyboard": [[{"text": "Apply →", "url": posting.url or "https://t.me"}]]}
        for chat_id in recipients:
            try:
                self._call("sendMessage", {
                    "chat_id": chat_id,
                    "text": text,
                    "parse_mode": "MarkdownV2",
                    "reply_markup": markup,
                })
                result.delivered.append(chat_id)
            except Exception as e:
                LOG.error("Failed to send posting %s to chat %s: %s", posting.id, chat_id, e)
                result.failed[chat_id] = str(e)
        return result

    def send_text(self, chat_id: int, text: str) -> None:
        """Plain-text reply (no parse mode) used by bot commands."""
        self._call("sendMessage", {"chat_id": chat_id, "text": text, "disable_web_page_preview": True})

    def get_updates(self, offset: int | None, timeout: int) -> list[dict[str, Any]]:
        """Long-poll for incoming messages; blocks up to `timeout` seconds."""
        payload: dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = offset
        return self._call("getUpdates", payload, timeout=timeout + 10) or []

    def _call(self, method: str, payload: dict[str, Any], timeout: float | None = None) -> Any:
        data = self._client.post_json(self.method_url(method), payload, timeout=timeout, raise_for_status=False)
        if not isinstance(data, dict) or not data.get("ok"):
            desc = data.get("description") if isinstance(data, dict) else repr(data)
            raise NotifyError(f"Telegram {method} failed: {desc}")
        return data.get("result")
