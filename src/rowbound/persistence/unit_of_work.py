"""Unit of work: one transaction scope with the record operations bound to it."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from types import TracebackType
from typing import Any, TypeVar

from rowbound.query import FetchRequest
from rowbound.records import Record
from rowbound.storage import Database, Executor

from . import batch, operations

R = TypeVar("R", bound=Record)


class UnitOfWork:
    """Async context manager that commits on clean exit and rolls back on error.

    Every call runs on the same transaction; fetched values are snapshots and
    do not change when later writes in the same unit touch their rows.
    """

    def __init__(self, database: Database) -> None:
        self._database = database
        self._scope: AbstractAsyncContextManager[Executor] | None = None
        self._executor: Executor | None = None

    async def __aenter__(self) -> UnitOfWork:
        if self._scope is not None:
            raise RuntimeError("UnitOfWork already started")
        self._scope = self._database.transaction()
        self._executor = await self._scope.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._scope is None:
            return
        scope, self._scope, self._executor = self._scope, None, None
        await scope.__aexit__(exc_type, exc, tb)

    @property
    def executor(self) -> Executor:
        if self._executor is None:
            raise RuntimeError("UnitOfWork session not started")
        return self._executor

    async def insert(self, record: R) -> R:
        return await operations.insert(self.executor, record)

    async def update(self, record: R) -> R:
        return await operations.update(self.executor, record)

    async def save(self, record: R) -> R:
        return await operations.save(self.executor, record)

    async def delete(self, record: Record) -> bool:
        return await operations.delete(self.executor, record)

    async def delete_key(self, record_type: type[Record], key: Any) -> bool:
        return await operations.delete_key(self.executor, record_type, key)

    async def exists(self, record_type: type[Record], key: Any) -> bool:
        return await operations.exists(self.executor, record_type, key)

    async def apply(self, ops: Sequence[batch.Operation]) -> list[Record]:
        """Apply operations in dependency order on this unit's transaction.

        Results line up with ``ops`` as given.
        """

        results: list[Record | None] = [None] * len(ops)
        for index in batch.ordered_indices(ops):
            results[index] = await batch.apply(self.executor, ops[index])
        return [result for result in results if result is not None]

    async def fetch_all(self, request: FetchRequest[Any]) -> list[Any]:
        return await request.fetch_all(self.executor)

    async def fetch_one(self, request: FetchRequest[Any]) -> Any | None:
        return await request.fetch_one(self.executor)

    async def fetch_count(self, request: FetchRequest[Any]) -> int:
        return await request.fetch_count(self.executor)


def create_unit_of_work_factory(database: Database) -> Callable[[], UnitOfWork]:
    def factory() -> UnitOfWork:
        return UnitOfWork(database)

    return factory


__all__ = ["UnitOfWork", "create_unit_of_work_factory"]
