"""Tests for configuration loading."""
import pytest

from config import DEFAULT_RULES_PATH, _deep_merge, load_config


def test_defaults():
    config = load_config()
    assert config["database"]["path"] == "data/tokenhealth.db"
    assert config["engine"]["rules_path"] == str(DEFAULT_RULES_PATH)
    assert config["retention"] == {"alerts_days": 7, "score_history_days": 30}
    assert config["monitor"]["poll_interval"] == 30


def test_override_file_merged(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("engine:\n  workers: 8\nretention:\n  alerts_days: 3\n")
    config = load_config(path)
    assert config["engine"]["workers"] == 8
    assert config["engine"]["state_ttl_hours"] == 48
    assert config["retention"]["alerts_days"] == 3
    assert config["retention"]["score_history_days"] == 30


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("TOKENHEALTH_DB_PATH", str(tmp_path / "x.db"))
    monkeypatch.setenv("TOKENHEALTH_POLL_INTERVAL", "5")
    monkeypatch.setenv("TOKENHEALTH_LOG_LEVEL", "DEBUG")
    config = load_config()
    assert config["database"]["path"] == str(tmp_path / "x.db")
    assert config["monitor"]["poll_interval"] == 5
    assert config["logging"]["level"] == "DEBUG"


@pytest.mark.parametrize("text", [
    "monitor:\n  poll_interval: 0\n",
    "engine:\n  workers: 0\n",
    "persistence:\n  retry_attempts: 0\n",
    "retention:\n  score_history_days: 0\n",
])
def test_invalid_values_rejected(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    with pytest.raises(ValueError):
        load_config(path)


def test_deep_merge_does_not_mutate_base():
    base = {"a": {"b": 1, "c": 2}}
    merged = _deep_merge(base, {"a": {"b": 5}})
    assert merged == {"a": {"b": 5, "c": 2}}
    assert base == {"a": {"b": 1, "c": 2}}


def test_bad_env_value_rejected(monkeypatch):
    monkeypatch.setenv("TOKENHEALTH_POLL_INTERVAL", "often")
    with pytest.raises(ValueError):
        load_config()


def test_missing_override_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")
