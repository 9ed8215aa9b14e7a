"""Storage collaborator protocols consumed by the record layer."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from sqlalchemy.sql import Executable

T = TypeVar("T")

Row = Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class WriteResult:
    """Outcome of a write statement."""

    rowcount: int
    inserted_primary_key: tuple[Any, ...] | None = None


class Executor(Protocol):
    """Runs statements inside a connection or an active transaction."""

    prefetch_chunk_size: int

    async def execute(
        self,
        statement: Executable,
        parameters: Mapping[str, Any] | None = None,
    ) -> WriteResult: ...

    async def fetch_rows(
        self,
        statement: Executable,
        parameters: Mapping[str, Any] | None = None,
    ) -> Sequence[Row]: ...


class Database(Protocol):
    """Hands out read contexts and transaction scopes."""

    def connect(self) -> AbstractAsyncContextManager[Executor]: ...

    def transaction(self) -> AbstractAsyncContextManager[Executor]: ...

    async def with_transaction(self, body: Callable[[Executor], Awaitable[T]]) -> T: ...


__all__ = ["Database", "Executor", "Row", "WriteResult"]
