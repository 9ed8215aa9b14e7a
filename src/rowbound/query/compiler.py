"""Compile fetch requests into SQLAlchemy Core statements."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import ColumnElement, Select, and_, func, select, tuple_
from sqlalchemy.sql.util import ClauseAdapter

from rowbound.records import AssociationKind, KeyMapping, key_mapping

if TYPE_CHECKING:
    from .request import FetchRequest, Include

OWNER_KEY_LABEL = "__owner_key_{}"


@dataclass(frozen=True, slots=True)
class JoinedInclude:
    """A to-one include loaded by outer join; its columns are labelled ``prefix + column``."""

    name: str
    mapping: KeyMapping
    prefix: str


def joinable(include: Include) -> bool:
    """To-one includes without nested includes or paging are loaded in the owner query."""

    nested = include.request
    return (
        include.association.kind is AssociationKind.TO_ONE
        and include.association.through is None
        and not nested.includes
        and nested.limit_count is None
        and not nested.offset_count
    )


def compile_select(
    request: FetchRequest[Any],
    *,
    paged: bool = True,
    pivot: tuple[Any, ColumnElement[bool]] | None = None,
) -> tuple[Select[Any], tuple[JoinedInclude, ...]]:
    """Build the owner query: base columns, filters, ordering and joined to-one includes.

    ``pivot`` is an extra ``(table, on clause)`` inner join used by many-to-many prefetches.
    """

    mapping = key_mapping(request.record_type)
    table = mapping.table
    columns: list[Any] = list(table.c)
    from_clause: Any = table
    if pivot is not None:
        from_clause = from_clause.join(*pivot)
    joined: list[JoinedInclude] = []

    for include in request.includes:
        if not joinable(include):
            continue
        related = key_mapping(include.association.related)
        alias = related.table.alias(f"inc_{include.association.name}")
        prefix = f"{include.association.name}__"
        adapter = ClauseAdapter(alias)
        condition = include.association.join_condition(table, alias)
        nested = [adapter.traverse(predicate) for predicate in include.request.predicates]
        if nested:
            condition = and_(condition, *nested)
        from_clause = from_clause.outerjoin(alias, condition)
        columns.extend(alias.c[name].label(prefix + name) for name in related.column_names)
        joined.append(JoinedInclude(name=include.association.name, mapping=related, prefix=prefix))

    stmt = select(*columns).select_from(from_clause)
    if request.predicates:
        stmt = stmt.where(*request.predicates)
    if request.ordering:
        stmt = stmt.order_by(*request.ordering)
    if paged:
        if request.limit_count is not None:
            stmt = stmt.limit(request.limit_count)
        if request.offset_count:
            stmt = stmt.offset(request.offset_count)
    return stmt, tuple(joined)


def compile_count(request: FetchRequest[Any]) -> Select[Any]:
    mapping = key_mapping(request.record_type)
    inner = select(*mapping.table.c)
    if request.predicates:
        inner = inner.where(*request.predicates)
    if request.limit_count is not None or request.offset_count:
        inner = inner.order_by(*request.ordering)
        if request.limit_count is not None:
            inner = inner.limit(request.limit_count)
        if request.offset_count:
            inner = inner.offset(request.offset_count)
    return select(func.count().label("count")).select_from(inner.subquery())


def compile_related(
    include: Include,
    owner_keys: Sequence[tuple[Any, ...]],
) -> tuple[Select[Any], tuple[JoinedInclude, ...], tuple[str, ...]]:
    """Build the prefetch query for one include restricted to ``owner_keys``.

    Returns the statement, its joined to-one includes and the row labels that
    hold the owner key of each related row.
    """

    association = include.association
    related_table = key_mapping(association.related).table

    if association.through is None:
        stmt, joined = compile_select(include.request, paged=False)
        key_columns = [related_table.c[name] for name in association.related_columns]
        return stmt.where(_in(key_columns, owner_keys)), joined, association.related_columns

    to_pivot, from_pivot = association.through
    pivot_table = key_mapping(to_pivot.related).table.alias("through_pivot")
    labels = tuple(OWNER_KEY_LABEL.format(i) for i in range(len(to_pivot.related_columns)))
    stmt, joined = compile_select(
        include.request,
        paged=False,
        pivot=(pivot_table, from_pivot.join_condition(pivot_table, related_table)),
    )
    stmt = stmt.add_columns(
        *(
            pivot_table.c[name].label(label)
            for name, label in zip(to_pivot.related_columns, labels)
        )
    )
    key_columns = [pivot_table.c[name] for name in to_pivot.related_columns]
    return stmt.where(_in(key_columns, owner_keys)), joined, labels


def _in(columns: Sequence[Any], keys: Sequence[tuple[Any, ...]]) -> ColumnElement[bool]:
    if len(columns) == 1:
        return columns[0].in_([key[0] for key in keys])
    return tuple_(*columns).in_([tuple(key) for key in keys])


__all__ = ["JoinedInclude", "compile_count", "compile_related", "compile_select", "joinable"]
