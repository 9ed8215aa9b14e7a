"""Column type inference for record fields."""

from __future__ import annotations

import enum
import types
import typing
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from decimal import Decimal
from typing import Any, Union
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    Float,
    Integer,
    LargeBinary,
    String,
    Time,
    TypeDecorator,
    Uuid,
)
from sqlalchemy.types import TypeEngine


class UTCDateTime(TypeDecorator[datetime]):
    """Stores datetimes as ISO-8601 text.

    Aware values are normalised to UTC and read back aware; naive values are
    stored and read back unchanged.
    """

    impl = String
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> str | None:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.isoformat(timespec="microseconds")

    def process_result_value(self, value: str | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        return datetime.fromisoformat(value)


class DecimalString(TypeDecorator[Decimal]):
    """Stores decimals as their exact string form."""

    impl = String
    cache_ok = True

    def process_bind_param(self, value: Decimal | None, dialect: Any) -> str | None:
        return None if value is None else str(value)

    def process_result_value(self, value: str | None, dialect: Any) -> Decimal | None:
        return None if value is None else Decimal(value)


@dataclass(frozen=True, slots=True)
class ColumnType:
    """Resolved storage type of a single field."""

    python_type: type
    sql_type: TypeEngine[Any]
    nullable: bool


_SCALARS: tuple[tuple[type, Any], ...] = (
    # bool before int: bool is an int subclass
    (bool, Boolean),
    (int, Integer),
    (float, Float),
    (Decimal, DecimalString),
    (str, String),
    (bytes, LargeBinary),
    (datetime, UTCDateTime),
    (date, Date),
    (time, Time),
    (UUID, Uuid),
)


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    origin = typing.get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(args) == 1 and len(args) != len(typing.get_args(annotation)):
            return args[0], True
    return annotation, False


def _unwrap_annotated(annotation: Any) -> Any:
    while typing.get_origin(annotation) is typing.Annotated:
        annotation = typing.get_args(annotation)[0]
    return annotation


def _sql_type_for(annotation: Any) -> tuple[type, TypeEngine[Any]] | None:
    while hasattr(annotation, "__supertype__"):
        annotation = annotation.__supertype__
    origin = typing.get_origin(annotation)
    if origin in (dict, list, tuple) or annotation in (dict, list, tuple):
        return (origin or annotation), JSON()
    if not isinstance(annotation, type):
        return None
    if issubclass(annotation, enum.Enum):
        # enums are stored by value
        value_type = str
        for member in annotation:
            value_type = type(member.value)
            break
        return annotation, (Integer() if value_type is int else String())
    for python_type, sql_type in _SCALARS:
        if issubclass(annotation, python_type):
            return python_type, sql_type()
    return None


def contains_record(annotation: Any, record_base: type) -> bool:
    """Return True when ``annotation`` refers to a record type anywhere inside it."""

    annotation = _unwrap_annotated(annotation)
    if isinstance(annotation, type) and issubclass(annotation, record_base):
        return True
    return any(contains_record(arg, record_base) for arg in typing.get_args(annotation))


def infer_column_type(annotation: Any) -> ColumnType | None:
    """Map a field annotation to its column type, or None when it has no mapping."""

    annotation, nullable = _unwrap_optional(_unwrap_annotated(annotation))
    resolved = _sql_type_for(_unwrap_annotated(annotation))
    if resolved is None:
        return None
    python_type, sql_type = resolved
    return ColumnType(python_type=python_type, sql_type=sql_type, nullable=nullable)


def same_storage_type(left: TypeEngine[Any], right: TypeEngine[Any]) -> bool:
    """Two column types are compatible when they share a storage class.
 Decorated types only
    match the same decorator.
    """

    if isinstance(left, TypeDecorator) or isinstance(right, TypeDecorator):
        return type(left) is type(right)
    return left._type_affinity is right._type_affinity


__all__ = [
    "ColumnType",
    "DecimalString",
    "UTCDateTime",
    "contains_record",
    "infer_column_type",
    "same_storage_type",
]
