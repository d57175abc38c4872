"""
Centralized settings for the quote pricing engine.

Values come from ``QUOTE_PRICING_*`` environment variables with sensible
defaults, so the engine runs in-memory out of the box.
"""
import logging
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

ENV_PREFIX = "QUOTE_PRICING_"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    return float(raw) if raw is not None else default


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    return int(raw) if raw is not None else default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.lower() in ('true', '1', 'yes', 'on')


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Debounce window for parameter-change recalculation
    debounce_seconds: float = 0.5

    # Timeout for a single package fetch
    fetch_timeout_seconds: float = 5.0

    cache_max_entries: int = 1024

    # False = reject nearest-tier / nearest-duration fallbacks
    allow_approximate: bool = True

    # Package read API; None = in-memory package source
    package_api_url: Optional[str] = None

    # Quote documents directory; None = in-memory quote store
    quote_store_dir: Optional[Path] = None

    log_level: str = "INFO"

    @classmethod
    def load(cls) -> 'Settings':
        """Load settings from the environment."""
        store_dir = _env("QUOTE_STORE_DIR")
        return cls(
            debounce_seconds=_env_float("DEBOUNCE_SECONDS", 0.5),
            fetch_timeout_seconds=_env_float("FETCH_TIMEOUT_SECONDS", 5.0),
            cache_max_entries=_env_int("CACHE_MAX_ENTRIES", 1024),
            allow_approximate=_env_bool("ALLOW_APPROXIMATE", True),
            package_api_url=_env("PACKAGE_API_URL"),
            quote_store_dir=Path(store_dir) if store_dir else None,
            log_level=_env("LOG_LEVEL", "INFO").upper(),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings():
    """Drop the cached instance so the next call re-reads the environment."""
    global _settings
    _settings = None


def configure_logging(settings: Optional[Settings] = None):
    """Install a basic root handler at the configured level."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
