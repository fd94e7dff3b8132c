from __future__ import annotations

import copy
import logging
from typing import Any

from service import logging_utils as _sink

# Keys that should never reach a log file
_REDACT_KEYS = {
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "openai_api_key",
    "telegram_bot_token",
    "bot_token",
    "authorization",
    "auth",
    "bearer",
}


def _redact_record(record: dict[str, Any]) -> dict[str, Any]:
    """
    Shallow-copy record and redact obvious secret-like fields at top level.
    The sink performs a deep pass of its own.
    """
    redacted = copy.copy(record)
    for k in list(redacted.keys()):
        lk = str(k).lower()
        if lk in _REDACT_KEYS or lk.endswith("_token") or lk.endswith("_secret"):
            redacted[k] = "***REDACTED***"
    return redacted


def activity(record: dict[str, Any]) -> None:
    """
    Write a structured activity record to the JSONL sink.
    Falls back to stdlib logging if the sink cannot be written.
    """
    payload = _redact_record(record)
    try:
        _sink.write_activity_log(payload)
        return
    except (OSError, TypeError, ValueError):
        logging.getLogger("job_search.activity").debug("activity sink unavailable", exc_info=True)
    logging.getLogger("job_search.activity").info(payload)


def error(record: dict[str, Any]) -> None:
    """
    Write a structured error record to the JSONL sink.
    Falls back to stdlib logging if the sink cannot be written.
    """
    payload = _redact_record(record)
    try:
        _sink.write_error_log(payload)
        return
    except (OSError, TypeError, ValueError):
        logging.getLogger("job_search.error").debug("error sink unavailable", exc_info=True)
    logging.getLogger("job_search.error").error(payload)
