"""SQLite store driver.

Uses the built-in sqlite3 module. Every call runs in a worker thread via
``asyncio.to_thread`` so the event loop never blocks, and an ``asyncio.Lock``
serializes access to the single connection. Streams fetch in batches
(``batch_size`` option, default 500) and release the lock between batches,
so loads into the same file can interleave with an open stream.

``name`` is the database path; ``:memory:`` and ``file:`` URIs are accepted.
"""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

from .base import Record, StoreAdapter, key_fields
from .sql import SQLiteDialect, record_columns


class SQLiteStore(StoreAdapter):
    """SQLite store driver."""

    dialect = SQLiteDialect()

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._io_lock = asyncio.Lock()

    async def _open(self) -> sqlite3.Connection:
        path = self._config.name or ":memory:"
        timeout = float(self._config.options.get("timeout", 5.0))

        def _connect() -> sqlite3.Connection:
            conn = sqlite3.connect(
                path,
                timeout=timeout,
                check_same_thread=False,
                uri=path.startswith("file:"),
            )
            conn.row_factory = sqlite3.Row
            return conn

        return await asyncio.to_thread(_connect)

    async def _close(self, client: sqlite3.Connection) -> None:
        async with self._io_lock:
            await asyncio.to_thread(client.close)

    async def _run(self, fn: Any, *args: Any) -> Any:
        conn = self.client
        async with self._io_lock:
            return await asyncio.to_thread(fn, conn, *args)

    # ── Reads ────────────────────────────────────────────────────────

    async def query(self, query: Any, params: Any = None, **options: Any) -> list[Record]:
        def _fetch(conn: sqlite3.Connection) -> list[Record]:
            cursor = conn.execute(query, params or ())
            return [dict(row) for row in cursor.fetchall()]

        return await self._run(_fetch)

    async def stream(self, query: Any, params: Any = None, **options: Any) -> AsyncIterator[Record]:
        batch_size = int(options.get("batch_size", 500))
        cursor: sqlite3.Cursor = await self._run(lambda conn: conn.execute(query, params or ()))
        try:
            while True:
                rows = await self._run(lambda conn: cursor.fetchmany(batch_size))
                if not rows:
                    break
                for row in rows:
                    yield dict(row)
        finally:
            cursor.close()

    # ── Writes ───────────────────────────────────────────────────────

    async def _write(self, sql: str, values: Sequence[Any]) -> int:
        def _exec(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(sql, tuple(values))
            conn.commit()
            return cursor.rowcount

        return await self._run(_exec)

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
        return await self._write(statement, params or ())


__all__ = ["SQLiteStore"]
