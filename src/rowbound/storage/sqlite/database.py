"""SQLAlchemy asyncio implementation of the storage collaborator."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from sqlalchemy import Insert, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.sql import Executable

from rowbound.config import Settings
from rowbound.errors import ConstraintViolationError
from rowbound.storage.interfaces import Row, WriteResult

T = TypeVar("T")

logger = logging.getLogger(__name__)


class SQLAlchemyExecutor:
    """Executor bound to one :class:`AsyncConnection`."""

    def __init__(self, connection: AsyncConnection, *, prefetch_chunk_size: int = 500) -> None:
        self._connection = connection
        self.prefetch_chunk_size = prefetch_chunk_size

    async def execute(
        self,
        statement: Executable,
        parameters: Mapping[str, Any] | None = None,
    ) -> WriteResult:
        try:
            result = await self._connection.execute(statement, dict(parameters or {}))
        except IntegrityError as exc:
            raise ConstraintViolationError(str(exc.orig)) from exc
        inserted: tuple[Any, ...] | None = None
        if isinstance(statement, Insert):
            primary_key = result.inserted_primary_key
            inserted = tuple(primary_key) if primary_key is not None else None
        return WriteResult(rowcount=result.rowcount, inserted_primary_key=inserted)

    async def fetch_rows(
        self,
        statement: Executable,
        parameters: Mapping[str, Any] | None = None,
    ) -> Sequence[Row]:
        result = await self._connection.execute(statement, dict(parameters or {}))
        return list(result.mappings().all())


class SQLAlchemyDatabase:
    """Database backed by an :class:`AsyncEngine`."""

    def __init__(self, engine: AsyncEngine, *, prefetch_chunk_size: int = 500) -> None:
        self.engine = engine
        self._prefetch_chunk_size = prefetch_chunk_size

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[SQLAlchemyExecutor]:
        async with self.engine.connect() as conn:
            yield SQLAlchemyExecutor(conn, prefetch_chunk_size=self._prefetch_chunk_size)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLAlchemyExecutor]:
        # engine.begin() commits on clean exit and rolls back on any exception
        async with self.engine.begin() as conn:
            yield SQLAlchemyExecutor(conn, prefetch_chunk_size=self._prefetch_chunk_size)

    async def with_transaction(self, body: Callable[[SQLAlchemyExecutor], Awaitable[T]]) -> T:
        async with self.transaction() as executor:
            return await body(executor)

    async def dispose(self) -> None:
        await self.engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_database(
    database_url: str | None = None,
    *,
    settings: Settings | None = None,
) -> SQLAlchemyDatabase:
    """Build a :class:`SQLAlchemyDatabase` from a URL and settings."""

    resolved = settings or Settings.from_env()
    url = database_url or resolved.database_url
    engine = create_async_engine(url, echo=resolved.echo_sql)
    if engine.dialect.name == "sqlite" and resolved.enforce_foreign_keys:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    logger.debug("Created database for %s", engine.url.render_as_string(hide_password=True))
    return SQLAlchemyDatabase(engine, prefetch_chunk_size=resolved.prefetch_chunk_size)


__all__ = ["SQLAlchemyDatabase", "SQLAlchemyExecutor", "create_database"]
