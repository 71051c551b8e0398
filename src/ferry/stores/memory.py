"""In-process memory store.

Collections live in named in-process databases, so two operations that
configure a memory store with the same ``name`` see the same data, just like
two clients of one server. Used for tests, dry runs and staging records
between pipelines of one process.

Queries follow the document-store shape used by definition files::

    await store.query("users")                       # whole collection
    await store.query({"users": {"active": True}})   # equality filter
    await store.query("users", limit=10)
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

from ferry.core.errors import StoreError

from .base import Record, StoreAdapter, key_fields, split_collection_query


class MemoryDatabase:
    """Named set of collections, each an insertion-ordered key → record map."""

    def __init__(self, name: str):
        self.name = name
        self.collections: dict[str, dict[Any, Record]] = {}
        self._ids = itertools.count(1)

    def collection(self, name: str) -> dict[Any, Record]:
        return self.collections.setdefault(name, {})

    def next_id(self) -> int:
        return next(self._ids)


_databases: dict[str, MemoryDatabase] = {}


def get_memory_database(name: str) -> MemoryDatabase:
    """Return the shared database called ``name``, creating it if needed."""
    if name not in _databases:
        _databases[name] = MemoryDatabase(name)
    return _databases[name]


def reset_memory_databases() -> None:
    """Drop every memory database (for testing)."""
    _databases.clear()


def _matches(record: Mapping[str, Any], where: Mapping[str, Any]) -> bool:
    return all(record.get(field) == value for field, value in where.items())


class MemoryStore(StoreAdapter):
    """Memory store driver."""

    async def _open(self) -> MemoryDatabase:
        return get_memory_database(self._config.name or "default")

    async def _close(self, client: MemoryDatabase) -> None:
        return None

    def _select(self, query: Any, params: Any, options: dict[str, Any]) -> list[Record]:
        collection, where = split_collection_query(query)
        if params:
            where = {**where, **params}
        rows = [
            copy.deepcopy(record)
            for record in self.client.collection(collection).values()
            if _matches(record, where)
        ]
        limit = options.get("limit")
        return rows[:limit] if limit is not None else rows

    async def query(self, query: Any, params: Any = None, **options: Any) -> list[Record]:
        return self._select(query, params, options)

    async def stream(self, query: Any, params: Any = None, **options: Any) -> AsyncIterator[Record]:
        for record in self._select(query, params, options):
            yield record
            await asyncio.sleep(0)

    async def insert(self, target: str, record: Mapping[str, Any]) -> int:
        db: MemoryDatabase = self.client
        data = copy.deepcopy(dict(record))
        key = data.get("id")
        if key is None:
            key = db.next_id()
        db.collection(target)[key] = data
        await asyncio.sleep(0)
        return 1

    async def upsert(
        self,
        target: str,
        record: Mapping[str, Any],
        key: str | Sequence[str] = "id",
    ) -> int:
        fields = key_fields(key)
        missing = [f for f in fields if f not in record]
        if missing:
            raise StoreError(f"Upsert into {target} is missing key field(s): {', '.join(missing)}")
        ident = tuple(record[f] for f in fields)
        self.client.collection(target)[ident[0] if len(ident) == 1 else ident] = copy.deepcopy(
            dict(record)
        )
        await asyncio.sleep(0)
        return 1

    async def update(
        self,
        target: str,
        changes: Mapping[str, Any],
        where: Mapping[str, Any] | None = None,
    ) -> int:
        matched = [r for r in self.client.collection(target).values() if _matches(r, where or {})]
        for record in matched:
            record.update(copy.deepcopy(dict(changes)))
        await asyncio.sleep(0)
        return len(matched)

    async def delete(self, target: str, where: Mapping[str, Any] | None = None) -> int:
        collection = self.client.collection(target)
        doomed = [k for k, record in collection.items() if _matches(record, where or {})]
        for k in doomed:
            del collection[k]
        return len(doomed)

    async def execute(self, statement: Any, params: Any = None) -> int:
        raise StoreError("Memory stores do not execute raw statements").with_context(alias=self.alias)


__all__ = [
    "MemoryStore",
    "MemoryDatabase",
    "get_memory_database",
    "reset_memory_databases",
]
