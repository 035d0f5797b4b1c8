"""Configuration for worklog projects.

Values come from three layers, later ones winning:
built-in DEFAULTS, .worklog/config.defaults.yaml, .worklog/config.yaml.
"""
from pathlib import Path

import yaml

from worklog.ordering import InvalidGapError, validate_gap
from worklog.storage import ConfigError, data_dir

CONFIG_FILE = "config.yaml"
CONFIG_DEFAULTS_FILE = "config.defaults.yaml"

DEFAULTS = {
    "project_name": "",
    "prefix": "WL",
    "sort_gap": 100,
    "backup_before_resort": True,
    "backups_to_keep": 5,
}


def config_path() -> Path:
    return data_dir() / CONFIG_FILE


def defaults_path() -> Path:
    return data_dir() / CONFIG_DEFAULTS_FILE


def _read_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        content = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigError(f"Invalid config in {path}: expected a mapping")
    return content


def validate_config(config: dict) -> None:
    """Raise ConfigError for values the rest of the tool cannot use."""
    prefix = config.get("prefix")
    if not isinstance(prefix, str) or not prefix.isalnum():
        raise ConfigError(f"prefix must be alphanumeric, got {prefix!r}")
    try:
        validate_gap(config.get("sort_gap"))
    except InvalidGapError as e:
        raise ConfigError(f"sort_gap: {e}") from e
    keep = config.get("backups_to_keep")
    if isinstance(keep, bool) or not isinstance(keep, int) or keep < 1:
        raise ConfigError(f"backups_to_keep must be a positive integer, got {keep!r}")


def load_config() -> dict:
    """Load merged configuration. Missing files fall back to DEFAULTS."""
    config = dict(DEFAULTS)
    config.update(_read_yaml(defaults_path()))
    config.update(_read_yaml(config_path()))
    validate_config(config)
    return config


def save_config(config: dict) -> None:
    """Write config.yaml, keeping key order."""
    config_path().write_text(
        yaml.safe_dump(config, default_flow_style=False, allow_unicode=True, sort_keys=False)
    )


def load_prefix() -> str:
    return load_config()["prefix"]
