"""Immutable, composable fetch requests."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Generic, TypeVar

from sqlalchemy import ColumnElement, Select

from rowbound.errors import ConfigurationError
from rowbound.records import Association, Record, key_mapping
from rowbound.records.mapping import storage_value
from rowbound.storage import Executor

from . import loader
from .compiler import compile_count, compile_select

R = TypeVar("R", bound=Record)


@dataclass(frozen=True, eq=False)
class Include:
    """An association to load alongside the owners, refined by a request on the related type."""

    association: Association
    request: FetchRequest[Any]


@dataclass(frozen=True, eq=False)
class FetchRequest(Generic[R]):
    """Description of a read: record type, filters, ordering, paging and includes.

    Every composition method returns a new request; the receiver is left untouched.
    Predicates and orderings are SQLAlchemy expressions over ``RecordType.column(...)``.
    """

    record_type: type[R]
    predicates: tuple[ColumnElement[bool], ...] = ()
    ordering: tuple[Any, ...] = ()
    limit_count: int | None = None
    offset_count: int | None = None
    includes: tuple[Include, ...] = ()

    @classmethod
    def of(cls, record_type: type[R]) -> FetchRequest[R]:
        key_mapping(record_type)
        return cls(record_type=record_type)

    def filter(self, *predicates: ColumnElement[bool]) -> FetchRequest[R]:
        """Add predicates; all predicates of a request are combined with AND."""

        return replace(self, predicates=self.predicates + tuple(predicates))

    def filter_by(self, **values: Any) -> FetchRequest[R]:
        mapping = key_mapping(self.record_type)
        return self.filter(
            *(
                mapping.column_for(field) == storage_value(value)
                for field, value in values.items()
            )
        )

    def filter_key(self, key: Any) -> FetchRequest[R]:
        return self.filter(key_mapping(self.record_type).key_clause(key))

    def order(self, *by: str | ColumnElement[Any]) -> FetchRequest[R]:
        """Replace the ordering. ``"field"`` sorts ascending, ``"-field"`` descending."""

        mapping = key_mapping(self.record_type)
        ordering: list[Any] = []
        for item in by:
            if isinstance(item, str):
                descending = item.startswith("-")
                column = mapping.column_for(item.lstrip("-"))
                ordering.append(column.desc() if descending else column.asc())
            else:
                ordering.append(item)
        return replace(self, ordering=tuple(ordering))

    def limit(self, count: int | None, offset: int | None = None) -> FetchRequest[R]:
        if (count is not None and count < 0) or (offset is not None and offset < 0):
            raise ValueError("limit and offset must not be negative")
        return replace(self, limit_count=count, offset_count=offset)

    def including(
        self,
        association: Association,
        nested: FetchRequest[Any] | None = None,
    ) -> FetchRequest[R]:
        """Load ``association`` with the owners, optionally filtered/ordered by ``nested``.

        Including an association that is already included replaces the earlier include.
        """

        if association.owner is not self.record_type:
            msg = (
                f"{association!r} starts from {association.owner.__name__}, "
                f"not {self.record_type.__name__}"
            )
            raise ConfigurationError(msg)
        if nested is None:
            nested = FetchRequest.of(association.related)
        elif nested.record_type is not association.related:
            msg = (
                f"Nested request on {nested.record_type.__name__} cannot refine {association!r}"
            )
            raise ConfigurationError(msg)
        kept = tuple(
            include for include in self.includes if include.association.name != association.name
        )
        return replace(self, includes=kept + (Include(association, nested),))

    def statement(self) -> Select[Any]:
        """The owner query this request compiles to."""

        stmt, _ = compile_select(self)
        return stmt

    async def fetch_all(self, executor: Executor) -> list[Any]:
        """Fetch every match: records, or composites when the request has includes."""

        return await loader.load(executor, self)

    async def fetch_one(self, executor: Executor) -> Any | None:
        """Fetch the first match, or ``None`` when nothing matches."""

        count = 1 if self.limit_count is None else min(1, self.limit_count)
        results = await loader.load(executor, self.limit(count, self.offset_count))
        return results[0] if results else None

    async def fetch_count(self, executor: Executor) -> int:
        rows = await executor.fetch_rows(compile_count(self))
        return int(rows[0]["count"])


def fetch(record_type: type[R]) -> FetchRequest[R]:
    """Start a request for all rows of ``record_type``."""

    return FetchRequest.of(record_type)


__all__ = ["FetchRequest", "Include", "fetch"]
