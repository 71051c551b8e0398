"""Tests for ``ferry.stores.sqlite`` — SQLite driver."""

from __future__ import annotations

import sqlite3
from unittest.mock import patch

import pytest
import pytest_asyncio

from ferry.core.errors import StoreConnectionError, StoreError
from ferry.stores import SQLiteStore, StoreConfig


def _store(path) -> SQLiteStore:
    return SQLiteStore(StoreConfig(type="sqlite", name=str(path)), "local")


@pytest_asyncio.fixture
async def users_db(tmp_path):
    store = _store(tmp_path / "users.db")
    await store.connect()
    await store.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, email TEXT)")
    yield store
    await store.close()


class TestSQLiteConnect:
    @pytest.mark.asyncio
    async def test_connect_memory(self):
        store = SQLiteStore(StoreConfig(type="sqlite", name=":memory:"), "mem")
        await store.connect()
        assert store.is_connected is True
        assert store.client.row_factory is sqlite3.Row
        await store.close()
        assert store.is_connected is False

    @pytest.mark.asyncio
    async def test_connect_failure_raises(self, tmp_path):
        store = _store(tmp_path / "x.db")
        with patch("sqlite3.connect", side_effect=sqlite3.OperationalError("unable to open database")):
            with pytest.raises(StoreConnectionError):
                await store.connect()

    @pytest.mark.asyncio
    async def test_close_twice(self, tmp_path):
        store = _store(tmp_path / "x.db")
        await store.connect()
        await store.close()
        await store.close()
        assert store.close_count == 1


class TestSQLiteRecords:
    @pytest.mark.asyncio
    async def test_insert_and_query(self, users_db):
        await users_db.insert("users", {"id": 1, "name": "ada", "email": "ada@example.com"})
        rows = await users_db.query("SELECT * FROM users")
        assert rows == [{"id": 1, "name": "ada", "email": "ada@example.com"}]

    @pytest.mark.asyncio
    async def test_query_params(self, users_db):
        await users_db.insert("users", {"id": 1, "name": "ada"})
        await users_db.insert("users", {"id": 2, "name": "grace"})
        rows = await users_db.query("SELECT name FROM users WHERE id = ?", (2,))
        assert rows == [{"name": "grace"}]

    @pytest.mark.asyncio
    async def test_upsert_updates_non_key_columns(self, users_db):
        await users_db.upsert("users", {"id": 1, "name": "ada", "email": "a@x"})
        await users_db.upsert("users", {"id": 1, "name": "ada lovelace", "email": "a@y"})
        rows = await users_db.query("SELECT * FROM users")
        assert rows == [{"id": 1, "name": "ada lovelace", "email": "a@y"}]

    @pytest.mark.asyncio
    async def test_upsert_key_only(self, users_db):
        assert await users_db.upsert("users", {"id": 7}) == 1
        assert await users_db.upsert("users", {"id": 7}) == 0

    @pytest.mark.asyncio
    async def test_update(self, users_db):
        await users_db.insert("users", {"id": 1, "name": "ada", "email": "a@x"})
        await users_db.insert("users", {"id": 2, "name": "grace", "email": "g@x"})
        assert await users_db.update("users", {"email": "ada@y"}, {"id": 1}) == 1
        rows = await users_db.query("SELECT id, email FROM users ORDER BY id")
        assert rows == [{"id": 1, "email": "ada@y"}, {"id": 2, "email": "g@x"}]

    @pytest.mark.asyncio
    async def test_stream_batches(self, tmp_path):
        store = SQLiteStore(
            StoreConfig(type="sqlite", name=str(tmp_path / "s.db"), options={"batch_size": 2}), "s"
        )
        await store.connect()
        await store.execute("CREATE TABLE t (id INTEGER PRIMARY KEY)")
        for i in range(5):
            await store.insert("t", {"id": i})
        seen = [row["id"] async for row in store.stream("SELECT id FROM t ORDER BY id")]
        assert seen == [0, 1, 2, 3, 4]
        await store.close()

    @pytest.mark.asyncio
    async def test_writes_interleave_with_stream(self, tmp_path):
        store = SQLiteStore(
            StoreConfig(type="sqlite", name=str(tmp_path / "s.db"), options={"batch_size": 1}), "s"
        )
        await store.connect()
        await store.execute("CREATE TABLE src (id INTEGER PRIMARY KEY)")
        await store.execute("CREATE TABLE dst (id INTEGER PRIMARY KEY)")
        for i in range(3):
            await store.insert("src", {"id": i})
        async for row in store.stream("SELECT id FROM src ORDER BY id"):
            await store.upsert("dst", row)
        assert len(await store.query("SELECT * FROM dst")) == 3
        await store.close()

    @pytest.mark.asyncio
    async def test_delete(self, users_db):
        for i in range(3):
            await users_db.insert("users", {"id": i, "name": "n"})
        assert await users_db.delete("users", {"id": 1}) == 1
        assert await users_db.delete("users") == 2

    @pytest.mark.asyncio
    async def test_invalid_identifier(self, users_db):
        with pytest.raises(StoreError, match="Invalid SQL identifier"):
            await users_db.insert("users; DROP TABLE users", {"id": 1})

    @pytest.mark.asyncio
    async def test_empty_record(self, users_db):
        with pytest.raises(StoreError, match="empty record"):
            await users_db.insert("users", {})
