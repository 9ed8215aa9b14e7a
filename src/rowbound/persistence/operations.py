"""Single-record writes.

None of these functions look at associations: writing a record never touches
another record. Run them inside ``Database.transaction()`` so that several
writes commit or roll back together.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from sqlalchemy import delete as sa_delete
from sqlalchemy import insert as sa_insert
from sqlalchemy import literal, select
from sqlalchemy import update as sa_update

from rowbound.errors import NotFoundError, RecordError
from rowbound.records import Record, key_mapping
from rowbound.storage import Executor

R = TypeVar("R", bound=Record)

logger = logging.getLogger(__name__)


async def insert(executor: Executor, record: R) -> R:
    """Insert ``record`` and return it with any storage-assigned key filled in.

    Raises ``ConstraintViolationError`` when storage rejects the row.
    """

    mapping = key_mapping(type(record))
    row = mapping.to_row(record)
    assign_key = mapping.auto_increment and row[mapping.primary_key[0]] is None
    if assign_key:
        del row[mapping.primary_key[0]]
    elif any(row[name] is None for name in mapping.primary_key):
        raise ValueError(f"{type(record).__name__} needs a primary key value to be inserted")

    result = await executor.execute(sa_insert(mapping.table).values(row))
    if not assign_key:
        logger.debug("Inserted %s %r", type(record).__name__, record.key)
        return record

    assigned = result.inserted_primary_key
    if not assigned or assigned[0] is None:
        raise RecordError(f"Storage did not report a key for the new {type(record).__name__}")
    field = type(record).primary_key[0]
    logger.debug("Inserted %s with assigned key %r", type(record).__name__, assigned[0])
    return record.model_copy(update={field: assigned[0]})


async def update(executor: Executor, record: R) -> R:
    """Write every non-key column of ``record`` to its existing row.

    Raises ``NotFoundError`` when the key is missing or matches no row.
    """

    mapping = key_mapping(type(record))
    name = type(record).__name__
    if not record.has_key:
        raise NotFoundError(f"{name} has no primary key; insert it instead")
    row = mapping.to_row(record)
    values = {column: value for column, value in row.items() if column not in mapping.primary_key}
    if not values:
        if not await exists(executor, type(record), record.key):
            raise NotFoundError(f"{name} {record.key!r} not found")
        return record

    stmt = sa_update(mapping.table).where(mapping.key_clause(record.key)).values(values)
    result = await executor.execute(stmt)
    if result.rowcount == 0:
        raise NotFoundError(f"{name} {record.key!r} not found")
    logger.debug("Updated %s %r", name, record.key)
    return record


async def delete(executor: Executor, record: Record) -> bool:
    """Delete the row of ``record``; returns False when there was nothing to delete."""

    if not record.has_key:
        return False
    return await delete_key(executor, type(record), record.key)


async def delete_key(executor: Executor, record_type: type[Record], key: Any) -> bool:
    mapping = key_mapping(record_type)
    result = await executor.execute(sa_delete(mapping.table).where(mapping.key_clause(key)))
    removed = result.rowcount > 0
    logger.debug("Delete %s %r removed=%s", record_type.__name__, key, removed)
    return removed


async def exists(executor: Executor, record_type: type[Record], key: Any) -> bool:
    mapping = key_mapping(record_type)
    stmt = select(literal(1)).select_from(mapping.table).where(mapping.key_clause(key)).limit(1)
    return bool(await executor.fetch_rows(stmt))


async def save(executor: Executor, record: R) -> R:
    """Update the row of ``record`` when it exists, insert it otherwise."""

    if record.has_key and await exists(executor, type(record), record.key):
        return await update(executor, record)
    return await insert(executor, record)


__all__ = ["delete", "delete_key", "exists", "insert", "save", "update"]
