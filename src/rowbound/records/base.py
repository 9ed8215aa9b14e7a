"""Base class for plain, relation-free records."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ConfigDict
from sqlalchemy import ColumnElement

if TYPE_CHECKING:
    from .mapping import KeyMapping


@dataclass(frozen=True, slots=True)
class ForeignKey:
    """Declares that ``columns`` of a record reference another record type.

    ``references`` is the referenced record class or its class name (needed for
    self references). ``referenced_columns`` default to the referenced primary key.
    """

    columns: tuple[str, ...]
    references: type[Record] | str
    referenced_columns: tuple[str, ...] | None = None

    def __init__(
        self,
        columns: str | tuple[str, ...],
        references: type[Record] | str,
        referenced_columns: str | tuple[str, ...] | None = None,
    ) -> None:
        if isinstance(columns, str):
            columns = (columns,)
        if isinstance(referenced_columns, str):
            referenced_columns = (referenced_columns,)
        object.__setattr__(self, "columns", tuple(columns))
        object.__setattr__(self, "references", references)
        object.__setattr__(
            self,
            "referenced_columns",
            tuple(referenced_columns) if referenced_columns is not None else None,
        )


class Record(BaseModel):
    """Immutable row-shaped value with no embedded references to other records.

    Subclasses describe their storage binding with class variables::

        class Book(Record):
            table_name: ClassVar[str] = "books"
            primary_key: ClassVar[tuple[str, ...]] = ("id",)
            foreign_keys: ClassVar[tuple[ForeignKey, ...]] = (ForeignKey("author_id", Author),)

            id: int | None = None
            title: str
            author_id: int
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_assignment=True)

    table_name: ClassVar[str]
    primary_key: ClassVar[tuple[str, ...]] = ("id",)
    foreign_keys: ClassVar[tuple[ForeignKey, ...]] = ()
    column_names: ClassVar[Mapping[str, str]] = {}

    @classmethod
    def mapping(cls) -> KeyMapping:
        from .mapping import key_mapping

        return key_mapping(cls)

    @classmethod
    def column(cls, field: str) -> ColumnElement[Any]:
        """Return the table column bound to ``field`` for use in predicates and ordering."""

        return cls.mapping().column_for(field)

    @property
    def key(self) -> Any:
        """Primary-key value: a scalar for single-column keys, a tuple otherwise."""

        values = tuple(getattr(self, name) for name in self.primary_key)
        return values[0] if len(values) == 1 else values

    @property
    def has_key(self) -> bool:
        return all(getattr(self, name) is not None for name in self.primary_key)

    def column_values(self) -> dict[str, Any]:
        """Field values keyed by storage column name."""

        return self.mapping().to_row(self)


__all__ = ["ForeignKey", "Record"]
