"""Turn fetched rows into record values and composite snapshots."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from rowbound.errors import DecodingError
from rowbound.records import Association, KeyMapping, Record

R = TypeVar("R", bound=Record)

Related = tuple[Any, ...] | Any | None


@dataclass(frozen=True)
class Composite(Generic[R]):
    """An owner record paired with the related items loaded for it.

    ``related`` maps association names to a tuple (to-many) or to an item or
    ``None`` (to-one). Items are records, or composites when the include had
    nested includes. The value is a snapshot and never refreshes.
    """

    record: R
    related: Mapping[str, Related] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "related", MappingProxyType(dict(self.related)))

    def __getitem__(self, association: str | Association) -> Related:
        name = association if isinstance(association, str) else association.name
        try:
            return self.related[name]
        except KeyError:
            raise KeyError(f"{name!r} was not included in the fetch request") from None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Composite):
            return NotImplemented
        return self.record == other.record and dict(self.related) == dict(other.related)

    def __hash__(self) -> int:
        return hash((self.record, tuple(sorted(self.related))))


def decode_record(
    mapping: KeyMapping,
    row: Mapping[str, Any] | Sequence[Any],
    prefix: str = "",
) -> Record:
    """Decode one row by column name, or by position for plain sequences."""

    name = mapping.record_type.__name__
    if isinstance(row, Mapping):
        values: dict[str, Any] = {}
        for column in mapping.columns:
            label = prefix + column.name
            if label not in row:
                raise DecodingError(f"{name}: row has no column {label!r}")
            values[column.field] = row[label]
    else:
        if len(row) != len(mapping.columns):
            msg = f"{name}: expected {len(mapping.columns)} positional values, got {len(row)}"
            raise DecodingError(msg)
        values = {column.field: value for column, value in zip(mapping.columns, row)}
    try:
        return mapping.record_type.model_validate(values)
    except ValidationError as exc:
        raise DecodingError(f"{name}: stored values do not match the record type: {exc}") from exc


def row_key(row: Mapping[str, Any], columns: Iterable[str], prefix: str = "") -> tuple[Any, ...]:
    return tuple(row[prefix + column] for column in columns)


def record_key(record: Record, mapping: KeyMapping, columns: Iterable[str]) -> tuple[Any, ...]:
    values = mapping.to_row(record)
    return tuple(values[column] for column in columns)


def unwrap(item: Any) -> Record:
    return item.record if isinstance(item, Composite) else item


def group_by_key(pairs: Iterable[tuple[tuple[Any, ...], Any]]) -> dict[tuple[Any, ...], list[Any]]:
    """Group ``(key, item)`` pairs, keeping the fetched order inside each group."""

    groups: dict[tuple[Any, ...], list[Any]] = {}
    for key, item in pairs:
        groups.setdefault(key, []).append(item)
    return groups


__all__ = ["Composite", "decode_record", "group_by_key", "record_key", "row_key", "unwrap"]
