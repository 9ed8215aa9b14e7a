from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import pytest

# Ensure the src/ directory is importable when tests run without an install.
sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from rowbound.config import Settings  # noqa: E402
from rowbound.storage.sqlite import SQLAlchemyDatabase, create_database, create_schema  # noqa: E402

from library import LIBRARY_RECORDS  # noqa: E402

T = TypeVar("T")

Scenario = Callable[[SQLAlchemyDatabase], Awaitable[Any]]


def _db_url(tmp_path: Path) -> str:
    db_file = tmp_path / "rowbound.db"
    return f"sqlite+aiosqlite:///{db_file}"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(database_url=_db_url(tmp_path))


@pytest.fixture
def run_db(settings: Settings) -> Callable[[Scenario], Any]:
    """Run an async scenario against a fresh sqlite database with the library schema."""

    def _run(scenario: Scenario, *, chunk_size: int | None = None) -> Any:
        resolved = settings
        if chunk_size is not None:
            resolved = Settings(database_url=settings.database_url, prefetch_chunk_size=chunk_size)

        async def _main() -> Any:
            database = create_database(settings=resolved)
            await create_schema(database, LIBRARY_RECORDS)
            try:
                return await scenario(database)
            finally:
                await database.dispose()

        return asyncio.run(_main())

    return _run
