"""
Language-model scoring of a posting against the user's skills.

The scorer never raises for expected upstream conditions. It returns one of
three outcomes, which the orchestrator dispatches on:

  - Scored(score, reasoning)
  - RateLimited(quota_exhausted)   # transient per-minute limit vs. spent quota
  - ScoreFailed(error)             # anything else; not retried

Retries and backoff live in the orchestrator, not here.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import openai

from .config import ScoringConfig

log = logging.getLogger(__name__)

_MAX_USER_CHARS = 4000
_QUOTA_CODES = {"insufficient_quota"}
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# ---- Outcomes ---------------------------------------------------------------


@dataclass(frozen=True)
class Scored:
    score: float
    reasoning: str


@dataclass(frozen=True)
class RateLimited:
    quota_exhausted: bool
    message: str = ""


@dataclass(frozen=True)
class ScoreFailed:
    error: str


ScoreOutcome = Scored | RateLimited | ScoreFailed


class Scorer(Protocol):
    def score(self, title: str, description: str, company: str, skills: Sequence[str]) -> ScoreOutcome: ...


# ---- Prompt -----------------------------------------------------------------


def build_messages(title: str, description: str, company: str, skills: Sequence[str]) -> list[dict[str, str]]:
    system = (
        f"You are a job matching assistant. The user has the following skills: {', '.join(skills)}.\n\n"
        "Analyze the job posting and determine how well it matches the user's skill set.\n"
        "Respond ONLY with a JSON object in this exact format:\n"
        '{"score": <number 0-100>, "reasoning": "<brief explanation in 1-2 sentences>"}\n\n'
        "Score guidelines:\n"
        "- 90-100: Perfect match, all key skills required\n"
        "- 70-89: Strong match, most skills align\n"
        "- 50-69: Partial match, some skills overlap\n"
        "- 30-49: Weak match, few skills relevant\n"
        "- 0-29: Poor match, skills don't align"
    )
    user = f"Job Title: {title}\nCompany: {company}\nDescription: {description}"
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user[:_MAX_USER_CHARS]},
    ]


def parse_score_reply(content: str | None) -> ScoreOutcome:
    """Turn the model's reply into Scored, or ScoreFailed if it is unusable."""
    text = _FENCE_RE.sub("", (content or "").strip()).strip()
    if not text:
        return ScoreFailed("empty response from model")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return ScoreFailed(f"model reply is not JSON: {e.msg}")
    if not isinstance(data, dict):
        return ScoreFailed("model reply is not a JSON object")

    raw = data.get("score")
    if isinstance(raw, bool):
        return ScoreFailed(f"score is not a number: {raw!r}")
    try:
        score = float(raw)
    except (TypeError, ValueError):
        return ScoreFailed(f"score is not a number: {raw!r}")
    if not (0.0 <= score <= 100.0):
        return ScoreFailed(f"score out of range 0..100: {score}")

    return Scored(score=score, reasoning=str(data.get("reasoning") or "").strip())


# ---- OpenAI implementation --------------------------------------------------


class OpenAIScorer:
    """
    Thin facade over openai.chat.completions for job scoring.

    The client is created lazily from the API key env var named in the
    config, unless one is injected (tests).
    """

    def __init__(self, cfg: ScoringConfig, client: Any | None = None) -> None:
        self._cfg = cfg
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            api_key = os.getenv(self._cfg.api_key_env)
            if not api_key:
                raise RuntimeError(f"{self._cfg.api_key_env} not set")
            # The orchestrator owns retry policy; the SDK must not retry 429s on its own.
            self._client = openai.OpenAI(api_key=api_key, max_retries=0)
        return self._client

    def score(self, title: str, description: str, company: str, skills: Sequence[str]) -> ScoreOutcome:
        try:
            resp = self._get_client().chat.completions.create(
                model=self._cfg.model,
                messages=build_messages(title, description, company, skills),
                temperature=self._cfg.temperature,
                max_tokens=self._cfg.max_tokens,
            )
        except openai.RateLimitError as e:
            quota = _error_code(e) in _QUOTA_CODES
            return RateLimited(quota_exhausted=quota, message=str(e))
        except openai.OpenAIError as e:
            return ScoreFailed(f"{type(e).__name__}: {e}")
        except RuntimeError as e:
            return ScoreFailed(str(e))

        content = resp.choices[0].message.content if resp.choices else None
        outcome = parse_score_reply(content)
        if isinstance(outcome, Scored):
            log.info("Scored %r -> %s", title, outcome.score)
        return outcome


def _error_code(err: openai.APIError) -> str | None:
    """Pull the API error code from wherever this client version put it."""
    code = getattr(err, "code", None)
    if code:
        return str(code)
    body = getattr(err, "body", None)
    if isinstance(body, dict):
        if body.get("code"):
            return str(body["code"])
        inner = body.get("error")
        if isinstance(inner, dict) and inner.get("code"):
            return str(inner["code"])
    return None
