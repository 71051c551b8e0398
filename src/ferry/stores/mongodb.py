"""MongoDB store driver.

Backed by pymongo's native asyncio client (``AsyncMongoClient``). Queries use
the same document-store shape as the memory driver::

    await store.query("users")                         # whole collection
    await store.query({"users": {"active": True}})     # filter document
    async for doc in store.stream({"users": {}}, batch_size=1000): ...

Writes address a collection by name. ``upsert`` replaces the document
matching the key field(s) or inserts it; ``update`` takes either a plain
field mapping (applied with ``$set``) or an update document made of
operators such as ``{"$inc": {"seen": 1}}``.

Options (``options:`` in the store config):
    timeout: seconds to wait for server selection on connect (default 30)
    pool_size: maximum pooled connections (default 100, pymongo's own)
    auth_source: database holding the user's credentials
    batch_size: documents fetched per round trip while streaming
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any, ClassVar

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from ferry.core.errors import StoreError

from .base import Record, StoreAdapter, key_fields, split_collection_query

DEFAULT_PORT = 27017


def _update_document(changes: Mapping[str, Any]) -> dict[str, Any]:
    operators = [k for k in changes if k.startswith("$")]
    if operators and len(operators) != len(changes):
        raise StoreError("Update document mixes $operators with plain fields")
    if operators:
        return dict(changes)
    return {"$set": dict(changes)}


class MongoStore(StoreAdapter):
    """MongoDB store driver."""

    required_fields: ClassVar[tuple[str, ...]] = ("name",)

    def client_options(self) -> dict[str, Any]:
        """Keyword arguments for ``AsyncMongoClient`` built from the store config."""
        cfg = self._config
        options = cfg.options
        kwargs: dict[str, Any] = {
            "host": cfg.host or "localhost",
            "port": cfg.port or DEFAULT_PORT,
            "serverSelectionTimeoutMS": int(float(options.get("timeout", 30.0)) * 1000),
            # Acknowledged, journaled writes
            "w": 1,
            "journal": True,
        }
        if "pool_size" in options:
            kwargs["maxPoolSize"] = int(options["pool_size"])
        if cfg.user:
            kwargs["username"] = cfg.user
        if cfg.password:
            kwargs["password"] = cfg.password
        if "auth_source" in options:
            kwargs["authSource"] = options["auth_source"]
        return kwargs

    async def _open(self) -> AsyncDatabase:
        client: AsyncMongoClient = AsyncMongoClient(**self.client_options())
        try:
            # The client dials lazily; ping forces server selection now
            await client.admin.command("ping")
        except Exception:
            await client.close()
            raise
        return client[self._config.name]

    async def _close(self, client: AsyncDatabase) -> None:
        await client.client.close()

    # ── Reads ────────────────────────────────────────────────────────

    def _find(self, query: Any, params: Any, options: dict[str, Any]):
        collection, where = split_collection_query(query)
        if params:
            where = {**where, **params}
        return self.client[collection].find(where, **options)

    async def query(self, query: Any, params: Any = None, **options: Any) -> list[Record]:
        cursor = self._find(query, params, options)
        try:
            return await cursor.to_list(None)
        finally:
            await cursor.close()

    async def stream(self, query: Any, params: Any = None, **options: Any) -> AsyncIterator[Record]:
        cursor = self._find(query, params, options)
        try:
            async for document in cursor:
                yield document
        finally:
            await cursor.close()

    # ── Writes ───────────────────────────────────────────────────────

    async def insert(self, target: str, record: Mapping[str, Any]) -> int:
        # insert_one adds _id to the document it is given
        await self.client[target].insert_one(dict(record))
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
        where = {f: record[f] for f in fields}
        await self.client[target].replace_one(where, dict(record), upsert=True)
        return 1

    async def update(
        self,
        target: str,
        changes: Mapping[str, Any],
        where: Mapping[str, Any] | None = None,
    ) -> int:
        if not changes:
            raise StoreError(f"Update of {target} sets no fields")
        result = await self.client[target].update_many(dict(where or {}), _update_document(changes))
        return result.modified_count

    async def delete(self, target: str, where: Mapping[str, Any] | None = None) -> int:
        result = await self.client[target].delete_many(dict(where or {}))
        return result.deleted_count

    async def execute(self, statement: Any, params: Any = None) -> int:
        """Run a database command document, e.g. ``{"create": "users"}``."""
        if not isinstance(statement, Mapping):
            raise StoreError("MongoDB statements must be command documents").with_context(alias=self.alias)
        result = await self.client.command(dict(statement))
        return int(result.get("n", 0))


__all__ = ["MongoStore"]
