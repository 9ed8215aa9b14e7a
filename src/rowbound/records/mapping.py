"""Key mappings binding record types to tables, columns and keys."""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import Column, ColumnElement, MetaData, PrimaryKeyConstraint, Table, and_
from sqlalchemy import ForeignKeyConstraint as SAForeignKeyConstraint
from sqlalchemy.types import TypeEngine

from rowbound.errors import ConfigurationError

from .base import ForeignKey, Record
from .types import contains_record, infer_column_type, same_storage_type

if TYPE_CHECKING:
    from .associations import Association

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    field: str
    name: str
    python_type: type
    sql_type: TypeEngine[Any]
    nullable: bool


@dataclass(frozen=True, slots=True)
class ForeignKeyMapping:
    columns: tuple[str, ...]
    target: type[Record]
    target_columns: tuple[str, ...]


@dataclass(frozen=True)
class KeyMapping:
    """Storage binding of one record type. Column references are column names."""

    record_type: type[Record]
    table_name: str
    columns: tuple[ColumnMapping, ...]
    primary_key: tuple[str, ...]
    foreign_keys: tuple[ForeignKeyMapping, ...]
    auto_increment: bool
    table: Table

    def column(self, name: str) -> ColumnMapping:
        for column in self.columns:
            if column.name == name:
                return column
        raise ConfigurationError(f"{self.record_type.__name__} has no column {name!r}")

    def column_for(self, field: str) -> ColumnElement[Any]:
        for column in self.columns:
            if column.field == field:
                return self.table.c[column.name]
        raise ConfigurationError(f"{self.record_type.__name__} has no field {field!r}")

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    def to_row(self, record: Record) -> dict[str, Any]:
        dumped = record.model_dump(mode="python")
        row: dict[str, Any] = {}
        for column in self.columns:
            value = dumped[column.field]
            row[column.name] = storage_value(value)
        return row

    def key_values(self, record: Record) -> tuple[Any, ...]:
        row = self.to_row(record)
        return tuple(row[name] for name in self.primary_key)

    def normalize_key(self, key: Any) -> tuple[Any, ...]:
        """Turn a scalar or tuple key into a tuple matching the primary-key columns."""

        values = key if isinstance(key, tuple) else (key,)
        if len(values) != len(self.primary_key):
            msg = (
                f"{self.record_type.__name__} key has {len(self.primary_key)} column(s), "
                f"got {len(values)} value(s)"
            )
            raise ValueError(msg)
        return tuple(values)

    def key_clause(self, key: Any, table: Any = None) -> ColumnElement[bool]:
        source = self.table if table is None else table
        values = self.normalize_key(key)
        clauses = [
            source.c[name] == storage_value(value)
            for name, value in zip(self.primary_key, values)
        ]
        if len(clauses) == 1:
            return clauses[0]
        return and_(*clauses)

    def foreign_keys_to(self, target: type[Record]) -> tuple[ForeignKeyMapping, ...]:
        return tuple(fk for fk in self.foreign_keys if fk.target is target)


def storage_value(value: Any) -> Any:
    """Return the value bound for ``value``: enum members are stored by value."""

    return value.value if isinstance(value, enum.Enum) else value


class MappingRegistry:
    """Process-wide registry of key mappings and declared associations.

    Entries are added once under a lock and never mutated afterwards.
    """

    def __init__(self) -> None:
        self.metadata = MetaData()
        self._lock = threading.RLock()
        self._mappings: dict[type[Record], KeyMapping] = {}
        self._tables: dict[str, KeyMapping] = {}
        self._associations: dict[tuple[type[Record], str], Association] = {}
        self._building: set[type[Record]] = set()

    def get(self, record_type: type[Record]) -> KeyMapping:
        mapping = self._mappings.get(record_type)
        if mapping is not None:
            return mapping
        with self._lock:
            mapping = self._mappings.get(record_type)
            if mapping is None:
                self._building.add(record_type)
                try:
                    mapping = self._build(record_type)
                finally:
                    self._building.discard(record_type)
                self._mappings[record_type] = mapping
                self._tables.setdefault(mapping.table_name, mapping)
                logger.debug(
                    "Registered key mapping %s -> %s", record_type.__name__, mapping.table_name
                )
            return mapping

    def mappings(self) -> tuple[KeyMapping, ...]:
        return tuple(self._mappings.values())

    def register_association(self, association: Association) -> Association:
        key = (association.owner, association.name)
        with self._lock:
            existing = self._associations.get(key)
            if existing is not None and existing != association:
                msg = (
                    f"{association.owner.__name__} already declares an association "
                    f"named {association.name!r}"
                )
                raise ConfigurationError(msg)
            self._associations[key] = association
        return association

    def associations(self) -> tuple[Association, ...]:
        return tuple(self._associations.values())

    def find_record_type(self, name: str) -> type[Record]:
        for record_type in self._mappings:
            if record_type.__name__ == name:
                return record_type
        for record_type in _all_record_types():
            if record_type.__name__ == name:
                return record_type
        raise ConfigurationError(f"Unknown record type {name!r}")

    def _build(self, record_type: type[Record]) -> KeyMapping:
        if not (isinstance(record_type, type) and issubclass(record_type, Record)):
            raise ConfigurationError(f"{record_type!r} is not a Record type")
        name = record_type.__name__
        table_name = getattr(record_type, "table_name", None)
        if not table_name:
            raise ConfigurationError(f"{name} does not declare a table_name")

        columns = self._columns(record_type)
        by_field = {column.field: column for column in columns}

        if not record_type.primary_key:
            raise ConfigurationError(f"{name} declares an empty primary key")
        unknown = [field for field in record_type.primary_key if field not in by_field]
        if unknown:
            raise ConfigurationError(f"{name} primary key names unknown fields {unknown}")
        primary_key = tuple(by_field[field].name for field in record_type.primary_key)

        foreign_keys = tuple(
            self._foreign_key(record_type, declaration, by_field)
            for declaration in record_type.foreign_keys
        )

        key_columns = [by_field[field] for field in record_type.primary_key]
        auto_increment = (
            len(key_columns) == 1
            and key_columns[0].python_type is int
            and key_columns[0].nullable
        )

        table = self._table(
            record_type, table_name, columns, primary_key, foreign_keys, auto_increment
        )
        return KeyMapping(
            record_type=record_type,
            table_name=table_name,
            columns=columns,
            primary_key=primary_key,
            foreign_keys=foreign_keys,
            auto_increment=auto_increment,
            table=table,
        )

    def _columns(self, record_type: type[Record]) -> tuple[ColumnMapping, ...]:
        overrides = dict(record_type.column_names)
        columns: list[ColumnMapping] = []
        for field, info in record_type.model_fields.items():
            annotation = info.annotation
            if contains_record(annotation, Record):
                msg = (
                    f"{record_type.__name__}.{field} refers to another record; "
                    "declare an association instead"
                )
                raise ConfigurationError(msg)
            resolved = infer_column_type(annotation)
            if resolved is None:
                msg = f"{record_type.__name__}.{field} has unsupported type {annotation!r}"
                raise ConfigurationError(msg)
            columns.append(
                ColumnMapping(
                    field=field,
                    name=overrides.pop(field, field),
                    python_type=resolved.python_type,
                    sql_type=resolved.sql_type,
                    nullable=resolved.nullable,
                )
            )
        if overrides:
            msg = f"{record_type.__name__} renames unknown fields {sorted(overrides)}"
            raise ConfigurationError(msg)
        return tuple(columns)

    def _foreign_key(
        self,
        record_type: type[Record],
        declaration: ForeignKey,
        by_field: Mapping[str, ColumnMapping],
    ) -> ForeignKeyMapping:
        name = record_type.__name__
        unknown = [field for field in declaration.columns if field not in by_field]
        if not declaration.columns or unknown:
            raise ConfigurationError(f"{name} foreign key names unmapped columns {unknown}")

        target = declaration.references
        if isinstance(target, str):
            target = record_type if target == name else self.find_record_type(target)
        if not (isinstance(target, type) and issubclass(target, Record)):
            raise ConfigurationError(f"{name} foreign key targets non-record {target!r}")

        local = [by_field[field] for field in declaration.columns]
        if target is record_type:
            target_fields = dict(by_field)
        elif target in self._building:
            # reference cycle: the target mapping is still being built further up the stack
            target_fields = {column.field: column for column in self._columns(target)}
        else:
            target_fields = {column.field: column for column in self.get(target).columns}
        referenced = declaration.referenced_columns or target.primary_key
        missing = [field for field in referenced if field not in target_fields]
        if missing:
            raise ConfigurationError(f"{name} foreign key references unknown fields {missing}")
        remote = [target_fields[field] for field in referenced]

        check_compatible(
            f"{name}{tuple(declaration.columns)} -> {target.__name__}",
            [column.sql_type for column in local],
            [column.sql_type for column in remote],
        )
        return ForeignKeyMapping(
            columns=tuple(column.name for column in local),
            target=target,
            target_columns=tuple(column.name for column in remote),
        )

    def _table(
        self,
        record_type: type[Record],
        table_name: str,
        columns: Iterable[ColumnMapping],
        primary_key: tuple[str, ...],
        foreign_keys: Iterable[ForeignKeyMapping],
        auto_increment: bool,
    ) -> Table:
        columns = tuple(columns)
        existing = self._tables.get(table_name)
        if existing is not None:
            if not _same_columns(existing.columns, columns) or existing.primary_key != primary_key:
                msg = (
                    f"{record_type.__name__} and {existing.record_type.__name__} both map "
                    f"table {table_name!r} with incompatible columns"
                )
                raise ConfigurationError(msg)
            return existing.table

        constraints: list[Any] = [PrimaryKeyConstraint(*primary_key)]
        for fk in foreign_keys:
            target_table = table_name if fk.target is record_type else fk.target.table_name
            constraints.append(
                SAForeignKeyConstraint(
                    list(fk.columns),
                    [f"{target_table}.{column}" for column in fk.target_columns],
                )
            )
        return Table(
            table_name,
            self.metadata,
            *(
                Column(
                    column.name,
                    column.sql_type,
                    nullable=column.nullable and column.name not in primary_key,
                    autoincrement=auto_increment if column.name in primary_key else False,
                )
                for column in columns
            ),
            *constraints,
        )

def _same_columns(left: Iterable[ColumnMapping], right: Iterable[ColumnMapping]) -> bool:
    left_types = {column.name: column.sql_type for column in left}
    right_types = {column.name: column.sql_type for column in right}
    if left_types.keys() != right_types.keys():
        return False
    return all(same_storage_type(left_types[name], right_types[name]) for name in left_types)


def check_compatible(
    label: str,
    local: list[TypeEngine[Any]],
    remote: list[TypeEngine[Any]],
) -> None:
    """Raise when foreign-key columns do not line up with the columns they reference."""

    if len(local) != len(remote):
        msg = f"{label}: {len(local)} column(s) cannot reference {len(remote)} key column(s)"
        raise ConfigurationError(msg)
    for left, right in zip(local, remote):
        if not same_storage_type(left, right):
            raise ConfigurationError(f"{label}: column type {left!r} does not match {right!r}")


def _all_record_types() -> Iterable[type[Record]]:
    pending: list[type[Record]] = list(Record.__subclasses__())
    while pending:
        record_type = pending.pop()
        pending.extend(record_type.__subclasses__())
        yield record_type


registry = MappingRegistry()


def key_mapping(record_type: type[Record]) -> KeyMapping:
    """Return the key mapping for ``record_type``, building it on first use."""

    return registry.get(record_type)


__all__ = [
    "ColumnMapping",
    "ForeignKeyMapping",
    "KeyMapping",
    "MappingRegistry",
    "check_compatible",
    "key_mapping",
    "registry",
    "storage_value",
]
