"""Dependency-ordered batch writes.

The caller lists the operations; the order is derived from the declared
foreign keys (parents are written before children, children are deleted before
parents) unless the caller asks for its own order to be kept.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from graphlib import CycleError, TopologicalSorter

from rowbound.errors import DependencyCycleError
from rowbound.records import Record, key_mapping, registry
from rowbound.storage import Database, Executor

from . import operations

logger = logging.getLogger(__name__)


class OperationKind(StrEnum):
    INSERT = "insert"
    UPDATE = "update"
    SAVE = "save"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class Operation:
    kind: OperationKind
    record: Record

    @classmethod
    def insert(cls, record: Record) -> Operation:
        return cls(OperationKind.INSERT, record)

    @classmethod
    def update(cls, record: Record) -> Operation:
        return cls(OperationKind.UPDATE, record)

    @classmethod
    def save(cls, record: Record) -> Operation:
        return cls(OperationKind.SAVE, record)

    @classmethod
    def delete(cls, record: Record) -> Operation:
        return cls(OperationKind.DELETE, record)


def dependency_graph(
    record_types: Iterable[type[Record]],
) -> dict[type[Record], set[type[Record]]]:
    """Map each record type to the types it references, restricted to ``record_types``.

    Self references are left out: rows of one type keep the caller's order.
    """

    types = list(dict.fromkeys(record_types))
    members = set(types)
    graph: dict[type[Record], set[type[Record]]] = {record_type: set() for record_type in types}
    for record_type in types:
        for fk in key_mapping(record_type).foreign_keys:
            if fk.target in members and fk.target is not record_type:
                graph[record_type].add(fk.target)
    for association in registry.associations():
        if association.through is not None:
            continue
        if association.foreign_key_on_owner:
            child, parent = association.owner, association.related
        else:
            child, parent = association.related, association.owner
        if child in members and parent in members and child is not parent:
            graph[child].add(parent)
    return graph


def dependency_order(batch: Sequence[Operation]) -> list[Operation]:
    """Order ``batch``: writes parents-first, then deletes children-first.

    Operations on the same type keep their relative order. Raises
    ``DependencyCycleError`` when the involved types reference each other in a cycle.
    """

    return [batch[index] for index in ordered_indices(batch)]


def ordered_indices(batch: Sequence[Operation]) -> list[int]:
    graph = dependency_graph(type(operation.record) for operation in batch)
    try:
        order = list(TopologicalSorter(graph).static_order())
    except CycleError as exc:
        cycle = [record_type.__name__ for record_type in exc.args[1]]
        raise DependencyCycleError(cycle) from exc
    rank = {record_type: index for index, record_type in enumerate(order)}

    writes = [i for i, op in enumerate(batch) if op.kind is not OperationKind.DELETE]
    deletes = [i for i, op in enumerate(batch) if op.kind is OperationKind.DELETE]
    writes.sort(key=lambda i: rank[type(batch[i].record)])
    deletes.sort(key=lambda i: -rank[type(batch[i].record)])
    return writes + deletes


async def apply(executor: Executor, operation: Operation) -> Record:
    if operation.kind is OperationKind.INSERT:
        return await operations.insert(executor, operation.record)
    if operation.kind is OperationKind.UPDATE:
        return await operations.update(executor, operation.record)
    if operation.kind is OperationKind.SAVE:
        return await operations.save(executor, operation.record)
    await operations.delete(executor, operation.record)
    return operation.record


async def write_batch(
    database: Database,
    batch: Sequence[Operation],
    *,
    reorder: bool = True,
) -> list[Record]:
    """Run ``batch`` in one transaction; any failure rolls the whole batch back.

    With ``reorder`` the operations run in dependency order, otherwise exactly
    as given. Results line up with ``batch``: the written record (with assigned
    keys) for writes and the deleted record for deletes.
    """

    order = ordered_indices(batch) if reorder else range(len(batch))
    indexed = [(index, batch[index]) for index in order]
    logger.debug(
        "Writing batch: %s",
        ", ".join(f"{op.kind.value} {type(op.record).__name__}" for _, op in indexed),
    )

    results: list[Record | None] = [None] * len(batch)
    try:
        async with database.transaction() as executor:
            for index, operation in indexed:
                results[index] = await apply(executor, operation)
    except Exception:
        logger.warning("Batch of %d operation(s) rolled back", len(batch))
        raise
    return [result for result in results if result is not None]


__all__ = [
    "Operation",
    "OperationKind",
    "apply",
    "dependency_graph",
    "dependency_order",
    "ordered_indices",
    "write_batch",
]
