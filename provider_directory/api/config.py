"""
Provider Directory — Application Settings

Settings are read once from a YAML file (path from ``DIRECTORY_CONFIG``,
default ``config.yaml`` in the working directory). Missing keys fall back to
the defaults below; a missing file means all defaults. Database connection
settings come from environment variables instead (see ``db.py``).

Dependencies:
    pip install pyyaml
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from ..algorithms.duplicate_scorer import DuplicateConfig
from ..algorithms.phone import DEFAULT_REGION
from ..algorithms.ranking import DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DIRECTORY_CONFIG"
DEFAULT_CONFIG_PATH = "config.yaml"

_DEFAULT_GEOCODER = {
    "api_url": "https://nominatim.openstreetmap.org/search",
    "user_agent": "provider-directory/0.4 (requests)",
    "min_interval_seconds": 1.1,
    "timeout_seconds": 10.0,
}

_DEFAULT_NEW_ENTRY_LIMIT = {
    "window_seconds": 300,
    "max_requests": 3,
}


@dataclass
class Settings:
    """Runtime settings for the directory API."""

    items_per_page: int = DEFAULT_PAGE_SIZE
    duplicates: DuplicateConfig = field(default_factory=DuplicateConfig)
    phone_region: str = DEFAULT_REGION
    geocoder: dict[str, Any] = field(default_factory=lambda: dict(_DEFAULT_GEOCODER))
    geocoding_enabled: bool = True
    new_entry_limit: dict[str, int] = field(default_factory=lambda: dict(_DEFAULT_NEW_ENTRY_LIMIT))
    backup_folder: Path = Path("files/backups")
    data_dir: Path = Path("data")

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Settings":
        geocoder_raw = raw.get("geocoder") or {}
        limits_raw = (raw.get("rate_limits") or {}).get("new_entries") or {}

        return cls(
            items_per_page=int(raw.get("items_per_page", DEFAULT_PAGE_SIZE)),
            duplicates=DuplicateConfig.from_dict(raw.get("duplicates")),
            phone_region=(raw.get("phone") or {}).get("default_region", DEFAULT_REGION),
            geocoder={
                key: geocoder_raw.get(key, default)
                for key, default in _DEFAULT_GEOCODER.items()
            },
            geocoding_enabled=bool(geocoder_raw.get("enabled", True)),
            new_entry_limit={
                key: int(limits_raw.get(key, default))
                for key, default in _DEFAULT_NEW_ENTRY_LIMIT.items()
            },
            backup_folder=Path(raw.get("backup_folder", "files/backups")),
            data_dir=Path(raw.get("data_dir", "data")),
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
        return cls.from_dict(raw)


def load_settings(path: str | Path | None = None) -> Settings:
    """
    Load settings from ``path`` or the configured location.

    Falls back to defaults when the file does not exist.
    """
    path = Path(path or os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH))
    if not path.exists():
        logger.info("No settings file at %s, using defaults", path)
        return Settings()

    settings = Settings.from_yaml(path)
    logger.info("Settings loaded from %s", path)
    return settings
