"""Association descriptors between record types.

Associations only describe how two tables relate through their key columns.
They are consumed by fetch requests (``including``) and by the batch writer
(dependency order) and are never used to walk from one record to another in
memory.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from sqlalchemy import ColumnElement, and_

from rowbound.errors import ConfigurationError

from .base import Record
from .mapping import ForeignKeyMapping, KeyMapping, check_compatible, key_mapping, registry


class AssociationKind(StrEnum):
    TO_ONE = "to_one"
    TO_MANY = "to_many"


@dataclass(frozen=True)
class Association:
    """A named, directed relationship from ``owner`` to ``related``.

    ``owner_columns[i]`` pairs with ``related_columns[i]``. For direct
    associations the foreign key sits on the owner table when
    ``foreign_key_on_owner`` is true and on the related table otherwise. Many-to-many
    associations carry the two hops through the pivot record in ``through``.
    """

    name: str
    owner: type[Record]
    related: type[Record]
    kind: AssociationKind
    owner_columns: tuple[str, ...]
    related_columns: tuple[str, ...]
    foreign_key_on_owner: bool
    through: tuple[Association, Association] | None = None

    @property
    def to_many(self) -> bool:
        return self.kind is AssociationKind.TO_MANY

    @property
    def pivot(self) -> type[Record] | None:
        return self.through[0].related if self.through is not None else None

    def join_condition(self, owner_table: Any, related_table: Any) -> ColumnElement[bool]:
        if self.through is not None:
            raise ConfigurationError(f"{self.name} joins through {self.pivot!r}; no direct join")
        clauses = [
            owner_table.c[owner] == related_table.c[related]
            for owner, related in zip(self.owner_columns, self.related_columns)
        ]
        return clauses[0] if len(clauses) == 1 else and_(*clauses)

    def inverse(self, name: str | None = None) -> Association:
        """Return the reciprocal association, from ``related`` back to ``owner``."""

        if self.through is not None:
            first, second = self.through
            to_pivot = second.inverse(name=f"{_plural(first.related)}__{_plural(self.owner)}")
            from_pivot = first.inverse(name=f"{_singular(self.owner)}__{_singular(self.related)}")
            return _register(
                Association(
                    name=name or _plural(self.owner),
                    owner=self.related,
                    related=self.owner,
                    kind=AssociationKind.TO_MANY,
                    owner_columns=self.related_columns,
                    related_columns=self.owner_columns,
                    foreign_key_on_owner=False,
                    through=(to_pivot, from_pivot),
                )
            )
        if self.foreign_key_on_owner:
            kind = AssociationKind.TO_MANY
            default = _plural(self.owner)
        else:
            kind = AssociationKind.TO_ONE
            default = _singular(self.owner)
        return _register(
            Association(
                name=name or default,
                owner=self.related,
                related=self.owner,
                kind=kind,
                owner_columns=self.related_columns,
                related_columns=self.owner_columns,
                foreign_key_on_owner=not self.foreign_key_on_owner,
            )
        )

    def __repr__(self) -> str:
        via = f" via {self.pivot.__name__}" if self.pivot is not None else ""
        return (
            f"Association({self.owner.__name__}.{self.name} -> "
            f"{self.kind.value} {self.related.__name__}{via})"
        )


def has_many(
    owner: type[Record],
    related: type[Record],
    *,
    name: str | None = None,
    foreign_key: str | tuple[str, ...] | None = None,
) -> Association:
    """Declare a to-many association; ``related`` holds the foreign key."""

    related_mapping = key_mapping(related)
    fk = _resolve_foreign_key(related_mapping, owner, foreign_key)
    return _register(
        Association(
            name=name or _plural(related),
            owner=owner,
            related=related,
            kind=AssociationKind.TO_MANY,
            owner_columns=fk.target_columns,
            related_columns=fk.columns,
            foreign_key_on_owner=False,
        )
    )


def belongs_to(
    owner: type[Record],
    related: type[Record],
    *,
    name: str | None = None,
    foreign_key: str | tuple[str, ...] | None = None,
) -> Association:
    """Declare a to-one association; ``owner`` holds the foreign key."""

    owner_mapping = key_mapping(owner)
    fk = _resolve_foreign_key(owner_mapping, related, foreign_key)
    return _register(
        Association(
            name=name or _singular(related),
            owner=owner,
            related=related,
            kind=AssociationKind.TO_ONE,
            owner_columns=fk.columns,
            related_columns=fk.target_columns,
            foreign_key_on_owner=True,
        )
    )


def has_many_through(
    owner: type[Record],
    via: type[Record],
    target: type[Record],
    *,
    name: str | None = None,
    owner_key: str | tuple[str, ...] | None = None,
    target_key: str | tuple[str, ...] | None = None,
) -> Association:
    """Declare a many-to-many association through the pivot record ``via``.

    ``owner_key`` and ``target_key`` pick the pivot's foreign keys when it
    declares more than one towards the same type.
    """

    to_pivot = has_many(
        owner, via, foreign_key=owner_key, name=f"{_plural(via)}__{_plural(target)}"
    )
    from_pivot = belongs_to(
        via, target, foreign_key=target_key, name=f"{_singular(target)}__{_singular(owner)}"
    )
    return _register(
        Association(
            name=name or _plural(target),
            owner=owner,
            related=target,
            kind=AssociationKind.TO_MANY,
            owner_columns=to_pivot.owner_columns,
            related_columns=from_pivot.related_columns,
            foreign_key_on_owner=False,
            through=(to_pivot, from_pivot),
        )
    )


def _resolve_foreign_key(
    holder: KeyMapping,
    target: type[Record],
    foreign_key: str | tuple[str, ...] | None,
) -> ForeignKeyMapping:
    holder_name = holder.record_type.__name__
    target_mapping = key_mapping(target)
    candidates = holder.foreign_keys_to(target)
    if foreign_key is not None:
        fields = (foreign_key,) if isinstance(foreign_key, str) else tuple(foreign_key)
        columns = tuple(_column_name(holder, field) for field in fields)
        candidates = tuple(fk for fk in candidates if fk.columns == columns)
        if not candidates:
            msg = f"{holder_name} declares no foreign key {fields} referencing {target.__name__}"
            raise ConfigurationError(msg)
    if not candidates:
        msg = f"{holder_name} declares no foreign key referencing {target.__name__}"
        raise ConfigurationError(msg)
    if len(candidates) > 1:
        msg = (
            f"{holder_name} declares several foreign keys referencing {target.__name__}; "
            "pass foreign_key to choose one"
        )
        raise ConfigurationError(msg)
    fk = candidates[0]
    check_compatible(
        f"{holder_name}{fk.columns} -> {target.__name__}",
        [holder.column(column).sql_type for column in fk.columns],
        [target_mapping.column(column).sql_type for column in fk.target_columns],
    )
    return fk


def _column_name(mapping: KeyMapping, field: str) -> str:
    for column in mapping.columns:
        if column.field == field:
            return column.name
    raise ConfigurationError(f"{mapping.record_type.__name__} has no field {field!r}")


def _register(association: Association) -> Association:
    return registry.register_association(association)


def _snake(record_type: type[Record]) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", record_type.__name__).lower()


def _singular(record_type: type[Record]) -> str:
    return _snake(record_type)


def _plural(record_type: type[Record]) -> str:
    word = _snake(record_type)
    if word.endswith("y") and not word.endswith(("ay", "ey", "oy", "uy")):
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "ch", "sh")):
        return word + "es"
    return word + "s"


__all__ = [
    "Association",
    "AssociationKind",
    "belongs_to",
    "has_many",
    "has_many_through",
]
