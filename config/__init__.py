"""Configuration management."""
import os
import yaml
from pathlib import Path

_config = None
_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"
DEFAULT_RULES_PATH = Path(__file__).parent / "alert_rules.yaml"

# env var -> (section, key, type)
ENV_OVERRIDES = {
    "TOKENHEALTH_DB_PATH": ("database", "path", str),
    "TOKENHEALTH_RULES_PATH": ("engine", "rules_path", str),
    "TOKENHEALTH_POLL_INTERVAL": ("monitor", "poll_interval", int),
    "TOKENHEALTH_LOG_LEVEL": ("logging", "level", str),
}

# (section, key, minimum)
_MINIMUMS = [
    ("monitor", "poll_interval", 1),
    ("monitor", "maintenance_interval_minutes", 1),
    ("engine", "workers", 1),
    ("engine", "state_ttl_hours", 1),
    ("persistence", "retry_attempts", 1),
    ("persistence", "retry_base_delay", 0),
    ("retention", "alerts_days", 1),
    ("retention", "score_history_days", 1),
]


def load_config(path=None):
    """Defaults, then the optional override file, then TOKENHEALTH_* env vars."""
    global _config

    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path:
        if not Path(path).exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        config = _deep_merge(config, overrides)

    _apply_env(config, os.environ)

    if not config["engine"].get("rules_path"):
        config["engine"]["rules_path"] = str(DEFAULT_RULES_PATH)

    _validate_config(config)
    _config = config
    return config


def get_config():
    """Return cached config, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _apply_env(config, environ):
    for env_key, (section, key, cast) in ENV_OVERRIDES.items():
        val = environ.get(env_key)
        if not val:
            continue
        try:
            config.setdefault(section, {})[key] = cast(val)
        except ValueError:
            raise ValueError(f"{env_key}={val!r} is not a valid {cast.__name__}")


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    required_sections = ["database", "engine", "monitor", "persistence", "retention", "alerts", "logging"]
    for section in required_sections:
        if not isinstance(config.get(section), dict):
            raise ValueError(f"Missing required config section: {section}")

    for section, key, minimum in _MINIMUMS:
        value = config[section].get(key)
        if not isinstance(value, (int, float)) or value < minimum:
            raise ValueError(f"{section}.{key} must be a number >= {minimum}, got {value!r}")
