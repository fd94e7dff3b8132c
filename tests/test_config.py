# tests/test_config.py
import json

import pytest
import yaml

from modules.job_search.lib.config import (
    ConfigError,
    Settings,
    SettingsHandle,
    load_settings,
    resolve_config_path,
    save_settings,
)
from modules.job_search.lib.models import Location

FULL_CONFIG = {
    "timezone": "Europe/Berlin",
    "sqlite_path": "/tmp/jobs.db",
    "keywords": ["Python", " Django ", ""],
    "location": {"country": "Germany", "city": "", "remote": "yes"},
    "sites": [
        {"name": "RemoteOK", "enabled": True},
        {"name": "headhunter", "enabled": "false", "maxPages": 3, "params": {"page_delay_ms": 500}},
        {"name": "hh-berlin", "kind": "headhunter", "params": {"max_pages": 1}},
    ],
    "search": {"cron": "0 */4 * * *", "min_match_score": 65, "max_fetch_threads": 2},
    "scoring": {"model": "gpt-4o-mini", "max_retries": 3, "retry_base_seconds": 1.5},
    "telegram": {"token_env": "MY_BOT_TOKEN", "poll_timeout": 20},
}


def test_from_mapping_full():
    s = Settings.from_mapping(FULL_CONFIG)

    assert s.keywords == ("Python", "Django")
    assert s.location == Location(country="Germany", city="", remote=True)
    assert [site.name for site in s.sites] == ["remoteok", "headhunter", "hh-berlin"]
    assert [site.name for site in s.enabled_sites()] == ["remoteok", "hh-berlin"]
    assert s.sites[1].params == {"maxPages": 3, "page_delay_ms": 500}
    assert s.sites[2].source_kind == "headhunter"
    assert s.sites[0].source_kind == "remoteok"
    assert s.search.schedule == {"cron": "0 */4 * * *"}
    assert s.search.min_match_score == 65.0
    assert s.search.max_fetch_threads == 2
    assert s.scoring.max_retries == 3
    assert s.scoring.retry_base_seconds == 1.5
    assert s.scoring.temperature == 0.3
    assert s.telegram.token_env == "MY_BOT_TOKEN"
    assert s.timezone == "Europe/Berlin"
    assert s.schedule_summary() == "cron: 0 */4 * * *"


def test_defaults_for_empty_mapping(monkeypatch):
    monkeypatch.delenv("TZ", raising=False)
    s = Settings.from_mapping({})
    assert s.keywords == ()
    assert s.sites == ()
    assert s.search.schedule == {"cron": "0 */2 * * *"}
    assert s.search.min_match_score == 70.0
    assert s.scoring.max_retries == 2
    assert s.scoring.retry_base_seconds == 3.0
    assert s.timezone == "UTC"


def test_schedule_object_form():
    s = Settings.from_mapping({"search": {"schedule": {"interval": {"hours": 2}}}})
    assert s.search.schedule == {"interval": {"hours": 2}}
    assert s.schedule_summary() == 'interval: {"hours": 2}'


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"keywords": "Python"},
        {"sites": {"name": "remoteok"}},
        {"sites": [{"enabled": True}]},
        {"sites": [{"name": "remoteok"}, {"name": "RemoteOK"}]},
        {"search": {"min_match_score": 120}},
        {"search": {"min_match_score": "high"}},
        {"search": {"max_fetch_threads": 0}},
        {"search": {"cron": "* * * * *", "schedule": {"interval": {"hours": 1}}}},
        {"search": {"schedule": {"interval": {"hours": 1}, "cron": "* * * * *"}}},
        {"scoring": {"max_retries": -1}},
        {"telegram": {"poll_timeout": 0}},
        {"location": "Berlin"},
    ],
)
def test_invalid_mappings_raise(data):
    with pytest.raises(ConfigError):
        Settings.from_mapping(data)


def test_load_yaml_and_json(tmp_path):
    yml = tmp_path / "config.yaml"
    yml.write_text(yaml.safe_dump(FULL_CONFIG), encoding="utf-8")
    jsn = tmp_path / "config.json"
    jsn.write_text(json.dumps(FULL_CONFIG), encoding="utf-8")

    assert load_settings(str(yml)) == load_settings(str(jsn))


def test_load_reports_missing_and_malformed_files(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_settings(str(tmp_path / "missing.json"))

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid JSON"):
        load_settings(str(bad))

    bad_yaml = tmp_path / "bad.yaml"
    bad_yaml.write_text("keywords: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_settings(str(bad_yaml))


def test_resolve_config_path_uses_env(monkeypatch):
    with pytest.raises(ConfigError):
        resolve_config_path(None)
    monkeypatch.setenv("CONFIG_PATH", "/etc/jobs.yaml")
    assert resolve_config_path(None) == "/etc/jobs.yaml"
    assert resolve_config_path("/explicit.json") == "/explicit.json"


@pytest.mark.parametrize("name", ["config.json", "config.yaml"])
def test_save_then_load_preserves_settings(tmp_path, name):
    path = str(tmp_path / name)
    original = Settings.from_mapping(FULL_CONFIG)
    save_settings(path, original)
    assert load_settings(path) == original
    assert not (tmp_path / f"{name}.tmp").exists()


def test_handle_updates_persist_to_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(FULL_CONFIG), encoding="utf-8")
    handle = SettingsHandle.from_file(str(path))

    handle.update_keywords(["Go", " Rust", ""])
    handle.update_location(remote=True)

    assert handle.get().keywords == ("Go", "Rust")
    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["keywords"] == ["Go", "Rust"]
    assert on_disk["location"] == {"country": "", "city": "", "remote": True}
    # Untouched sections survive the rewrite
    assert on_disk["search"]["min_match_score"] == 65.0
    assert on_disk["sites"][2] == {"name": "hh-berlin", "kind": "headhunter", "enabled": True, "params": {"max_pages": 1}}

    assert handle.reload() == handle.get()


def test_handle_rejects_empty_keywords():
    handle = SettingsHandle(Settings(keywords=("Python",)))
    with pytest.raises(ConfigError):
        handle.update_keywords([" ", ""])
    assert handle.get().keywords == ("Python",)


def test_handle_without_path_keeps_updates_in_memory():
    handle = SettingsHandle(Settings())
    updated = handle.update_location(country=" Germany ")
    assert updated.location.country == "Germany"
    assert handle.get() is updated
    with pytest.raises(ConfigError):
        handle.reload()
