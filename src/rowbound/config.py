"""Lightweight configuration loader."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    """Immutable configuration sourced from environment variables."""

    database_url: str = "sqlite+aiosqlite:///rowbound.db"
    echo_sql: bool = False
    enforce_foreign_keys: bool = True
    prefetch_chunk_size: int = 500
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            database_url=os.getenv("ROWBOUND_DATABASE_URL", cls.database_url),
            echo_sql=_env_bool("ROWBOUND_ECHO_SQL", cls.echo_sql),
            enforce_foreign_keys=_env_bool(
                "ROWBOUND_ENFORCE_FOREIGN_KEYS", cls.enforce_foreign_keys
            ),
            prefetch_chunk_size=_env_int("ROWBOUND_PREFETCH_CHUNK_SIZE", cls.prefetch_chunk_size),
            log_level=os.getenv("ROWBOUND_LOG_LEVEL", cls.log_level).upper(),
        )


__all__ = ["Settings"]
