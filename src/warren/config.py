"""Configuration: YAML + env overlay."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

DEFAULT_CONFIG_PATH = Path("config/warren.yml")
DEFAULT_ENV = "development"

# Env keys that override connection options
_ENV_OVERRIDE_KEYS = {
    "WARREN_HOST": "host",
    "WARREN_PORT": "port",
    "WARREN_USER": "user",
    "WARREN_PASS": "pass",
    "WARREN_VHOST": "vhost",
}


def _deep_update(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` onto a copy of ``base``; nested sections merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = _deep_update(current, value)
        merged[key] = value
    return merged


def load_config(path: str | Path) -> dict[str, Any]:
    """Read a warren YAML config into a dict of environment sections.

    A missing file or a document that is not a mapping gives ``{}``;
    malformed YAML is logged and re-raised.
    """
    path = Path(path)
    if not path.is_file():
        logger.warning("No warren config at {}", path)
        return {}

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        logger.error("Cannot parse warren config {}: {}", path, exc)
        raise
    if isinstance(data, dict):
        return data
    logger.warning("Ignoring warren config {}: top level is {}, not a mapping", path, type(data).__name__)
    return {}


def load_config_with_env(path: str | Path) -> dict[str, Any]:
    """Load config from YAML after loading .env into the process environment."""
    from dotenv import find_dotenv, load_dotenv

    load_dotenv(find_dotenv(usecwd=True))
    return load_config(path)


def env_overrides() -> dict[str, Any]:
    """Connection options set through WARREN_* environment variables."""
    overrides: dict[str, Any] = {}
    for env_key, option in _ENV_OVERRIDE_KEYS.items():
        val = os.environ.get(env_key, "")
        if not val:
            continue
        overrides[option] = int(val) if option == "port" else val
    return overrides


def current_env() -> str:
    """Name of the config section to use (WARREN_ENV, default 'development')."""
    return os.environ.get("WARREN_ENV") or DEFAULT_ENV


def default_config_path() -> Path:
    """Config file path (WARREN_CONFIG, default config/warren.yml)."""
    val = os.environ.get("WARREN_CONFIG")
    return Path(val) if val else DEFAULT_CONFIG_PATH
