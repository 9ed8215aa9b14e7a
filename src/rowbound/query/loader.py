"""Execute fetch requests: owner query, joined to-one includes, then per-association prefetch."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from rowbound.records import key_mapping
from rowbound.storage import Executor

from .compiler import JoinedInclude, compile_related, compile_select, joinable
from .materialize import Composite, decode_record, group_by_key, record_key, row_key, unwrap

if TYPE_CHECKING:
    from .request import FetchRequest, Include

logger = logging.getLogger(__name__)


async def load(executor: Executor, request: FetchRequest[Any]) -> list[Any]:
    stmt, joined = compile_select(request)
    rows = await executor.fetch_rows(stmt)
    return await materialize(executor, request, rows, joined)


async def materialize(
    executor: Executor,
    request: FetchRequest[Any],
    rows: Sequence[Mapping[str, Any]],
    joined: Sequence[JoinedInclude],
) -> list[Any]:
    """Decode owner rows and attach their includes."""

    mapping = key_mapping(request.record_type)
    records = [decode_record(mapping, row) for row in rows]
    if not request.includes:
        return records

    related: list[dict[str, Any]] = [{} for _ in records]
    joined_by_name = {item.name: item for item in joined}
    for include in request.includes:
        association = include.association
        name = association.name
        logger.debug("Loading %r by %s", association, strategy(include))
        if name in joined_by_name:
            item = joined_by_name[name]
            for index, row in enumerate(rows):
                related[index][name] = _decode_joined(item, row)
            continue

        owner_keys = [record_key(record, mapping, association.owner_columns) for record in records]
        groups = await prefetch(executor, include, owner_keys)
        for index, key in enumerate(owner_keys):
            items = groups.get(key, [])
            if association.to_many:
                related[index][name] = _page(items, include.request)
            else:
                paged = _page(items, include.request)
                related[index][name] = paged[0] if paged else None

    return [Composite(record, values) for record, values in zip(records, related)]


async def prefetch(
    executor: Executor,
    include: Include,
    owner_keys: Sequence[tuple[Any, ...]],
) -> dict[tuple[Any, ...], list[Any]]:
    """Load related items for ``owner_keys`` with one query per chunk, grouped by owner key."""

    unique = list(dict.fromkeys(key for key in owner_keys if None not in key))
    if not unique:
        return {}
    chunk_size = max(1, executor.prefetch_chunk_size)
    related_mapping = key_mapping(include.association.related)
    pairs: list[tuple[tuple[Any, ...], Any]] = []
    seen: set[tuple[tuple[Any, ...], tuple[Any, ...]]] = set()
    for start in range(0, len(unique), chunk_size):
        chunk = unique[start : start + chunk_size]
        stmt, joined, labels = compile_related(include, chunk)
        logger.debug("Prefetching %r for %d owner key(s)", include.association, len(chunk))
        rows = await executor.fetch_rows(stmt)
        items = await materialize(executor, include.request, rows, joined)
        for row, item in zip(rows, items):
            owner_key = row_key(row, labels)
            identity = (owner_key, related_mapping.key_values(unwrap(item)))
            # a pivot may link the same pair twice
            if identity in seen:
                continue
            seen.add(identity)
            pairs.append((owner_key, item))
    return group_by_key(pairs)


def _decode_joined(item: JoinedInclude, row: Mapping[str, Any]) -> Any:
    key = [row[item.prefix + column] for column in item.mapping.primary_key]
    if all(value is None for value in key):
        return None
    return decode_record(item.mapping, row, prefix=item.prefix)


def _page(items: list[Any], request: FetchRequest[Any]) -> tuple[Any, ...]:
    start = request.offset_count or 0
    stop = None if request.limit_count is None else start + request.limit_count
    return tuple(items[start:stop])


def strategy(include: Include) -> str:
    return "join" if joinable(include) else "prefetch"


__all__ = ["load", "materialize", "prefetch", "strategy"]
