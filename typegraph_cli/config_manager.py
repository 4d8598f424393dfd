"""Configuration manager for TypeGraph using TOML files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from . import config
from .config import ConfigError, CrawlerSettings

logger = logging.getLogger(__name__)


def _config_file(path: Optional[Path]) -> Path:
    return path if path is not None else config.CONFIG_FILE


def load_full_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    config_file = _config_file(path)
    if not config_file.exists():
        return {}
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", config_file, exc)
        return {}


def _save_full_config(data: Dict[str, Any], path: Optional[Path] = None) -> None:
    """Write entire config dict to TOML file, preserving all sections."""
    config_file = _config_file(path)
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w", encoding="utf-8") as f:
        toml.dump(data, f)


def load_settings(path: Optional[Path] = None) -> CrawlerSettings:
    """Load crawler settings from the ``[crawler]`` section.

    Missing keys fall back to defaults. Invalid values are reported and
    replaced by their defaults so that a broken file never blocks a crawl.
    """
    section = load_full_config(path).get("crawler", {})
    settings = CrawlerSettings()
    for key, value in section.items():
        try:
            settings.update(key, value)
        except ConfigError as exc:
            logger.warning("Config: %s", exc)
    return settings


def save_setting(key: str, value: Any, path: Optional[Path] = None) -> CrawlerSettings:
    """Validate and persist one crawler setting.

    Preserves other sections in the file.

    Raises:
        ConfigError: if *key* is unknown or *value* invalid.
    """
    settings = load_settings(path)
    settings.update(key, value)
    data = load_full_config(path)
    data["crawler"] = settings.to_dict()
    _save_full_config(data, path)
    return settings


def reset_settings(path: Optional[Path] = None) -> None:
    """Remove the ``[crawler]`` section, restoring defaults."""
    data = load_full_config(path)
    data.pop("crawler", None)
    _save_full_config(data, path)
