"""Shared CLI dependency helpers."""

from __future__ import annotations

from functools import lru_cache

from rowbound.config import Settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings for CLI commands."""

    return Settings.from_env()


def reset_settings() -> None:
    """Clear the cached settings (useful for tests)."""

    get_settings.cache_clear()
