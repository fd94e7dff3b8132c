from __future__ import annotations

import json
import os
import threading
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, replace
from typing import Any

import yaml

from .models import Location
from .utils import clean_str_list, truthy

DEFAULT_SQLITE_PATH = "/app/local/state/jobs.db"
DEFAULT_CRON = "0 */2 * * *"


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when the settings file (or a mapping) cannot form valid Settings."""


# -----------------------------
# Models
# -----------------------------
@dataclass(frozen=True)
class SiteConfig:
    """
    One configured upstream.
    - name: label used in reports (and the registry key unless `kind` is set)
    - kind: registry key of the source adapter (e.g., "remoteok", "headhunter");
      lets one adapter be configured twice under different names
    - enabled: disabled sites are skipped without a report entry
    - params: passed to the source constructor as keyword arguments
    """

    name: str
    enabled: bool = True
    params: dict[str, Any] = field(default_factory=dict)
    kind: str = ""

    @property
    def source_kind(self) -> str:
        return self.kind or self.name


@dataclass(frozen=True)
class SearchConfig:
    # APScheduler trigger shape ({"cron": ...} | {"interval": {...}} | {"daily_time": {...}})
    schedule: dict[str, Any] = field(default_factory=lambda: {"cron": DEFAULT_CRON})
    min_match_score: float = 70.0
    max_fetch_threads: int = 4


@dataclass(frozen=True)
class ScoringConfig:
    model: str = "gpt-4o-mini"
    temperature: float = 0.3
    max_tokens: int = 200
    max_retries: int = 2
    retry_base_seconds: float = 3.0
    api_key_env: str = "OPENAI_API_KEY"


@dataclass(frozen=True)
class TelegramConfig:
    token_env: str = "TELEGRAM_BOT_TOKEN"
    poll_timeout: int = 30
    state_file: str = "/app/local/state/telegram_offset.txt"


@dataclass(frozen=True)
class Settings:
    """
    Canonical configuration for the job search agent.

    Immutable: interactive updates (/setstack, /setlocation) produce a new
    instance through SettingsHandle.
    """

    keywords: tuple[str, ...] = ()
    location: Location = field(default_factory=Location)
    sites: tuple[SiteConfig, ...] = ()
    search: SearchConfig = field(default_factory=SearchConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    sqlite_path: str = DEFAULT_SQLITE_PATH
    timezone: str = "UTC"

    # ------------- convenience -------------
    def enabled_sites(self) -> list[SiteConfig]:
        return [s for s in self.sites if s.enabled]

    def schedule_summary(self) -> str:
        kind, value = next(iter(self.search.schedule.items()))
        if isinstance(value, str):
            return f"{kind}: {value}"
        return f"{kind}: {json.dumps(value, sort_keys=True)}"

    def to_mapping(self) -> dict[str, Any]:
        """Inverse of from_mapping; what gets written back to disk."""
        return {
            "timezone": self.timezone,
            "sqlite_path": self.sqlite_path,
            "keywords": list(self.keywords),
            "location": asdict(self.location),
            "sites": [_site_mapping(s) for s in self.sites],
            "search": {
                "schedule": dict(self.search.schedule),
                "min_match_score": self.search.min_match_score,
                "max_fetch_threads": self.search.max_fetch_threads,
            },
            "scoring": asdict(self.scoring),
            "telegram": asdict(self.telegram),
        }

    # ------------- constructors -------------
    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from a parsed config file with validation.
        Unknown top-level keys are ignored; malformed known keys raise ConfigError.
        """
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ConfigError("Top-level config must be an object.")

        keywords = data.get("keywords") or []
        if not isinstance(keywords, list):
            raise ConfigError("'keywords' must be a list of strings.")

        settings = cls(
            keywords=tuple(clean_str_list(keywords)),
            location=_parse_location(data.get("location")),
            sites=tuple(_parse_sites(data.get("sites"))),
            search=_parse_search(data.get("search")),
            scoring=_parse_scoring(data.get("scoring")),
            telegram=_parse_telegram(data.get("telegram")),
            sqlite_path=str(data.get("sqlite_path") or DEFAULT_SQLITE_PATH),
            timezone=str(data.get("timezone") or os.environ.get("TZ") or "UTC"),
        )
        _validate_settings(settings)
        return settings


# -----------------------------
# File I/O
# -----------------------------
def resolve_config_path(path: str | None = None) -> str:
    """
    Resolution order:
      1) explicit `path`
      2) os.environ['CONFIG_PATH']
    """
    resolved = path or os.environ.get("CONFIG_PATH")
    if not resolved:
        raise ConfigError("No config path given; pass --config or set CONFIG_PATH.")
    return resolved


def load_settings(path: str | None = None) -> Settings:
    return Settings.from_mapping(_read_any(resolve_config_path(path)))


def save_settings(path: str, settings: Settings) -> None:
    """
    Write settings back in the format implied by the file extension.
    Written to a sibling temp file then renamed, so readers never see half a file.
    """
    data = settings.to_mapping()
    lower = path.lower()
    if lower.endswith((".yml", ".yaml")):
        text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    else:
        text = json.dumps(data, ensure_ascii=False, indent=2) + "\n"

    d = os.path.dirname(os.path.abspath(path)) or "."
    os.makedirs(d, exist_ok=True)
    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(text)
    os.replace(tmp, path)


def _read_any(path: str) -> dict[str, Any]:
    lower = path.lower()
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}: {e}") from e

    if lower.endswith((".yml", ".yaml")):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        data = data if data is not None else {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level config in {path} must be an object.")
    return data


# -----------------------------
# Live handle
# -----------------------------
class SettingsHandle:
    """
    Holds the current Settings plus the file they came from.

    The orchestrator reads `get()` at the start of every cycle; bot commands
    replace the settings through the update_* methods, which also persist them.
    """

    def __init__(self, settings: Settings, path: str | None = None) -> None:
        self._settings = settings
        self._path = path
        self._lock = threading.Lock()

    @classmethod
    def from_file(cls, path: str | None = None) -> SettingsHandle:
        resolved = resolve_config_path(path)
        return cls(load_settings(resolved), resolved)

    @property
    def path(self) -> str | None:
        return self._path

    def get(self) -> Settings:
        return self._settings

    def update_keywords(self, keywords: list[str]) -> Settings:
        cleaned = tuple(clean_str_list(keywords))
        if not cleaned:
            raise ConfigError("At least one keyword is required.")
        return self._replace(keywords=cleaned)

    def update_location(self, *, country: str = "", city: str = "", remote: bool = False) -> Settings:
        return self._replace(location=Location(country=country.strip(), city=city.strip(), remote=bool(remote)))

    def reload(self) -> Settings:
        if not self._path:
            raise ConfigError("Settings were not loaded from a file; nothing to reload.")
        fresh = load_settings(self._path)
        with self._lock:
            self._settings = fresh
        return fresh

    def _replace(self, **changes: Any) -> Settings:
        with self._lock:
            updated = replace(self._settings, **changes)
            if self._path:
                save_settings(self._path, updated)
            self._settings = updated
        return updated


# -----------------------------
# Helpers
# -----------------------------
def _parse_location(value: Any) -> Location:
    if not value:
        return Location()
    if not isinstance(value, Mapping):
        raise ConfigError("'location' must be an object with country/city/remote.")
    return Location(
        country=str(value.get("country") or "").strip(),
        city=str(value.get("city") or "").strip(),
        remote=truthy(value.get("remote")),
    )


def _parse_sites(value: Any) -> list[SiteConfig]:
    """
    Accepts: [{"name": "...", "enabled": true, "params": {...}}, ...]
    Extra keys on an item (e.g., maxPages) are folded into params.
    """
    if not value:
        return []
    if not isinstance(value, list):
        raise ConfigError("'sites' must be a list of objects.")
    out: list[SiteConfig] = []
    seen: set[str] = set()
    for i, item in enumerate(value):
        if not isinstance(item, Mapping):
            raise ConfigError(f"sites[{i}] must be an object.")
        name = str(item.get("name") or "").strip().lower()
        if not name:
            raise ConfigError(f"sites[{i}] requires 'name'.")
        if name in seen:
            raise ConfigError(f"Duplicate site name {name!r}.")
        seen.add(name)
        params = item.get("params") or {}
        if not isinstance(params, Mapping):
            raise ConfigError(f"sites[{i}].params must be an object.")
        kind = str(item.get("kind") or "").strip().lower()
        extra = {k: v for k, v in item.items() if k not in ("name", "kind", "enabled", "params")}
        out.append(
            SiteConfig(
                name=name,
                kind=kind,
                enabled=truthy(item.get("enabled", True)),
                params={**extra, **dict(params)},
            )
        )
    return out


def _site_mapping(s: SiteConfig) -> dict[str, Any]:
    out: dict[str, Any] = {"name": s.name}
    if s.kind:
        out["kind"] = s.kind
    out.update({"enabled": s.enabled, "params": dict(s.params)})
    return out


def _parse_search(value: Any) -> SearchConfig:
    if not value:
        return SearchConfig()
    if not isinstance(value, Mapping):
        raise ConfigError("'search' must be an object.")

    schedule = value.get("schedule")
    cron = value.get("cron") or value.get("cron_expression")
    if schedule and cron:
        raise ConfigError("search: give either 'schedule' or 'cron', not both.")
    if cron:
        schedule = {"cron": str(cron)}
    if schedule is None:
        schedule = {"cron": DEFAULT_CRON}
    if not isinstance(schedule, Mapping) or len(schedule) != 1:
        raise ConfigError("search.schedule must be an object with exactly one trigger kind.")

    return SearchConfig(
        schedule=dict(schedule),
        min_match_score=_as_float(value.get("min_match_score", 70), "search.min_match_score"),
        max_fetch_threads=_as_int(value.get("max_fetch_threads", 4), "search.max_fetch_threads"),
    )


def _parse_scoring(value: Any) -> ScoringConfig:
    if not value:
        return ScoringConfig()
    if not isinstance(value, Mapping):
        raise ConfigError("'scoring' must be an object.")
    d = ScoringConfig()
    return ScoringConfig(
        model=str(value.get("model") or d.model),
        temperature=_as_float(value.get("temperature", d.temperature), "scoring.temperature"),
        max_tokens=_as_int(value.get("max_tokens", d.max_tokens), "scoring.max_tokens"),
        max_retries=_as_int(value.get("max_retries", d.max_retries), "scoring.max_retries"),
        retry_base_seconds=_as_float(value.get("retry_base_seconds", d.retry_base_seconds), "scoring.retry_base_seconds"),
        api_key_env=str(value.get("api_key_env") or d.api_key_env),
    )


def _parse_telegram(value: Any) -> TelegramConfig:
    if not value:
        return TelegramConfig()
    if not isinstance(value, Mapping):
        raise ConfigError("'telegram' must be an object.")
    d = TelegramConfig()
    return TelegramConfig(
        token_env=str(value.get("token_env") or d.token_env),
        poll_timeout=_as_int(value.get("poll_timeout", d.poll_timeout), "telegram.poll_timeout"),
        state_file=str(value.get("state_file") or d.state_file),
    )


def _as_float(v: Any, name: str) -> float:
    try:
        return float(v)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"'{name}' must be a number.") from err


def _as_int(v: Any, name: str) -> int:
    try:
        return int(v)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"'{name}' must be an integer.") from err


def _validate_settings(s: Settings) -> None:
    if not (0 <= s.search.min_match_score <= 100):
        raise ConfigError("'search.min_match_score' must be within 0..100.")
    if s.search.max_fetch_threads <= 0:
        raise ConfigError("'search.max_fetch_threads' must be >= 1.")
    if s.scoring.max_retries < 0:
        raise ConfigError("'scoring.max_retries' must be >= 0.")
    if s.scoring.retry_base_seconds < 0:
        raise ConfigError("'scoring.retry_base_seconds' must be >= 0.")
    if s.telegram.poll_timeout <= 0:
        raise ConfigError("'telegram.poll_timeout' must be >= 1.")
    if not s.sqlite_path.strip():
        raise ConfigError("'sqlite_path' cannot be empty.")
