"""Schema creation helper for development databases and tests.

Production schemas are owned by migration tooling; this only issues
``CREATE TABLE IF NOT EXISTS`` for mapped record types.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from rowbound.records import Record, key_mapping, registry

from .database import SQLAlchemyDatabase

logger = logging.getLogger(__name__)


async def create_schema(
    database: SQLAlchemyDatabase,
    record_types: Iterable[type[Record]] | None = None,
) -> None:
    """Create tables for ``record_types`` (default: every mapped record type)."""

    if record_types is None:
        tables = [mapping.table for mapping in registry.mappings()]
    else:
        tables = [key_mapping(record_type).table for record_type in record_types]
    async with database.engine.begin() as conn:
        await conn.run_sync(registry.metadata.create_all, tables=tables)
    logger.info("Ensured %d table(s)", len(tables))


async def drop_schema(
    database: SQLAlchemyDatabase,
    record_types: Iterable[type[Record]],
) -> None:
    tables = [key_mapping(record_type).table for record_type in record_types]
    async with database.engine.begin() as conn:
        await conn.run_sync(registry.metadata.drop_all, tables=tables)


__all__ = ["create_schema", "drop_schema"]
