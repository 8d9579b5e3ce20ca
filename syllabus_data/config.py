"""
Runtime configuration for the syllabus engine.

Every value can be overridden through an environment variable so the CLI, the
MCP server and the REST service share one configuration surface.
"""
from __future__ import annotations

import os
from dataclasses import dataclass


DEFAULT_PREFS_PREFIX = "extensions.zotero-syllabus"

# Preference keys (without prefix)
COLLECTION_METADATA_KEY = "collectionMetadata"
VIEW_MODES_KEY = "viewModes"

# Extra-field key holding the per-item assignment map
SYLLABUS_DATA_KEY = "syllabus"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass
class SyllabusConfig:
    """Tunables for caches, polling and debounced writes."""
    prefs_prefix: str = DEFAULT_PREFS_PREFIX
    item_cache_size: int = 5000
    syllabus_data_cache_size: int = 2000
    poll_interval: float = 0.2       # seconds, selection stores
    debounce_delay: float = 0.5      # seconds, free-text writes
    log_level: str = "WARNING"
    library_path: str = "library.json"
    service_port: int = 8001

    @classmethod
    def from_env(cls) -> "SyllabusConfig":
        """Build a config from ``SYLLABUS_*`` environment variables."""
        return cls(
            prefs_prefix=os.getenv("SYLLABUS_PREFS_PREFIX", DEFAULT_PREFS_PREFIX),
            item_cache_size=_env_int("SYLLABUS_ITEM_CACHE_SIZE", 5000),
            syllabus_data_cache_size=_env_int("SYLLABUS_DATA_CACHE_SIZE", 2000),
            poll_interval=_env_float("SYLLABUS_POLL_INTERVAL", 0.2),
            debounce_delay=_env_float("SYLLABUS_DEBOUNCE_DELAY", 0.5),
            log_level=os.getenv("SYLLABUS_LOG_LEVEL", "WARNING"),
            library_path=os.getenv("SYLLABUS_LIBRARY_PATH", "library.json"),
            service_port=_env_int("SYLLABUS_SERVICE_PORT", 8001),
        )

    def pref_key(self, name: str) -> str:
        """Return the fully qualified preference key for ``name``."""
        return f"{self.prefs_prefix}.{name}"
