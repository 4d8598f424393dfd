"""Configuration paths and crawler defaults for TypeGraph."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List

BASE_DIR = Path(os.environ.get("TYPEGRAPH_HOME", str(Path.home() / ".typegraph"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"
SUPPORTED_EXTENSIONS = {".rs"}

SKIP_DIRS = {
    ".git", "target", "node_modules", ".cargo", ".typegraph",
}

DEFAULT_EXCLUDE_PATTERNS = [
    "target/",
    "generated/",
    "*.generated.rs",
]
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_RETRY_DELAY = 1.5
DEFAULT_DEBOUNCE_SECONDS = 0.7


class ConfigError(ValueError):
    """Unknown setting or a value of the wrong type."""


@dataclass
class CrawlerSettings:
    exclude_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS

    @classmethod
    def keys(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_mapping(cls, values: Dict[str, Any]) -> "CrawlerSettings":
        settings = cls()
        for key, value in values.items():
            settings.update(key, value)
        return settings

    def update(self, key: str, value: Any) -> None:
        """Set *key*, coercing strings from the command line."""
        if key not in self.keys():
            raise ConfigError(f"Unknown setting '{key}'. Choose from: {', '.join(self.keys())}")
        try:
            if key == "exclude_patterns":
                if isinstance(value, str):
                    value = [p.strip() for p in value.split(",") if p.strip()]
                value = [str(p) for p in value]
            elif key == "max_attempts":
                value = int(value)
                if value < 1:
                    raise ConfigError("max_attempts must be at least 1")
            else:
                value = float(value)
                if value < 0:
                    raise ConfigError(f"{key} must not be negative")
        except (TypeError, ValueError) as exc:
            if isinstance(exc, ConfigError):
                raise
            raise ConfigError(f"Invalid value for {key}: {value!r}") from exc
        setattr(self, key, value)

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.keys()}
