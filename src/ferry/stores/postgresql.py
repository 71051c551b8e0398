"""PostgreSQL store driver.

Backed by a ``psycopg_pool.AsyncConnectionPool`` so a long-running stream
holds one connection while loads and checkpoints into the same database use
others. Rows come back as dicts (``dict_row``); connections run in
autocommit mode, so every write is durable when its call returns.

Options (``options:`` in the store config):
    pool_size: maximum pool connections (default 5)
    timeout: seconds to wait for the pool to open or hand out a connection
    batch_size: rows fetched per round trip while streaming (default 500)
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any, ClassVar

from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from .base import Record, StoreAdapter, key_fields
from .sql import PostgreSQLDialect, record_columns


class PostgreSQLStore(StoreAdapter):
    """PostgreSQL store driver."""

    required_fields: ClassVar[tuple[str, ...]] = ("host", "name")
    dialect = PostgreSQLDialect()

    def conninfo(self) -> str:
        """libpq connection string built from the store config."""
        cfg = self._config
        params: dict[str, Any] = {"host": cfg.host, "dbname": cfg.name}
        if cfg.port:
            params["port"] = cfg.port
        if cfg.user:
            params["user"] = cfg.user
        if cfg.password:
            params["password"] = cfg.password
        return make_conninfo(**params)

    async def _open(self) -> AsyncConnectionPool:
        options = self._config.options
        timeout = float(options.get("timeout", 30.0))
        pool = AsyncConnectionPool(
            self.conninfo(),
            min_size=1,
            max_size=int(options.get("pool_size", 5)),
            timeout=timeout,
            kwargs={"autocommit": True, "row_factory": dict_row},
            open=False,
        )
        try:
            await pool.open(wait=True, timeout=timeout)
        except Exception:
            await pool.close()
            raise
        return pool

    async def _close(self, client: AsyncConnectionPool) -> None:
        await client.close()

    # ── Reads ────────────────────────────────────────────────────────

    async def query(self, query: Any, params: Any = None, **options: Any) -> list[Record]:
        pool: AsyncConnectionPool = self.client
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()

    async def stream(self, query: Any, params: Any = None, **options: Any) -> AsyncIterator[Record]:
        pool: AsyncConnectionPool = self.client
        batch_size = int(options.get("batch_size", 500))
        async with pool.connection() as conn:
            # Server-side cursors need a transaction
            async with conn.transaction():
                async with conn.cursor(name=options.get("cursor_name") or "ferry_stream") as cursor:
                    cursor.itersize = batch_size
                    await cursor.execute(query, params)
                    async for row in cursor:
                        yield row

    # ── Writes ───────────────────────────────────────────────────────

    async def _write(self, sql: str, values: Any) -> int:
        pool: AsyncConnectionPool = self.client
        async with pool.connection() as conn:
            cursor = await conn.execute(sql, values)
            return cursor.rowcount

    async def insert(self, target: str, record: Mapping[str, Any]) -> int:
        columns, values = record_columns(record)
        return await self._write(self.dialect.insert(target, columns), values)

    async def upsert(
        self,
        target: str,
        record: Mapping[str, Any],
        key: str | Sequence[str] = "id",
    ) -> int:
        columns, values = record_columns(record)
        return await self._write(self.dialect.upsert(target, columns, key_fields(key)), values)

    async def update(
        self,
        target: str,
        changes: Mapping[str, Any],
        where: Mapping[str, Any] | None = None,
    ) -> int:
        sql, values = self.dialect.update(target, changes, where)
        return await self._write(sql, values)

    async def delete(self, target: str, where: Mapping[str, Any] | None = None) -> int:
        sql, values = self.dialect.delete(target, where)
        return await self._write(sql, values)

    async def execute(self, statement: Any, params: Any = None) -> int:
        return await self._write(statement, params)


__all__ = ["PostgreSQLStore"]
