"""Tests for ``ferry.stores.mongodb`` against an in-process stand-in client."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest

from ferry.core.errors import ConfigError, StoreConnectionError, StoreError
from ferry.framework import PipelineExecutor, build_definition
from ferry.stores import MongoStore, StoreConfig, store_registry
from ferry.stores import mongodb as mongodb_module


def _matches(doc: dict[str, Any], where: dict[str, Any]) -> bool:
    return all(doc.get(k) == v for k, v in where.items())


class FakeCursor:
    def __init__(self, docs: list[dict[str, Any]]):
        self.docs = docs
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self.docs:
            yield doc

    async def to_list(self, length):
        return list(self.docs)

    async def close(self):
        self.closed = True


class FakeCollection:
    def __init__(self):
        self.docs: list[dict[str, Any]] = []
        self.cursors: list[FakeCursor] = []
        self.find_options: dict[str, Any] = {}

    def find(self, where, **options):
        self.find_options = options
        cursor = FakeCursor([dict(d) for d in self.docs if _matches(d, where)])
        self.cursors.append(cursor)
        return cursor

    async def insert_one(self, doc):
        doc.setdefault("_id", len(self.docs) + 1)
        self.docs.append(doc)

    async def replace_one(self, where, doc, upsert=False):
        for i, existing in enumerate(self.docs):
            if _matches(existing, where):
                self.docs[i] = {"_id": existing["_id"], **doc}
                return
        if upsert:
            await self.insert_one(dict(doc))

    async def update_many(self, where, update):
        matched = [d for d in self.docs if _matches(d, where)]
        for doc in matched:
            doc.update(update.get("$set", {}))
            for field, step in update.get("$inc", {}).items():
                doc[field] = doc.get(field, 0) + step
        return SimpleNamespace(modified_count=len(matched))

    async def delete_many(self, where):
        kept = [d for d in self.docs if not _matches(d, where)]
        deleted = len(self.docs) - len(kept)
        self.docs = kept
        return SimpleNamespace(deleted_count=deleted)


class FakeDatabase:
    def __init__(self, client, name):
        self.client = client
        self.name = name
        self.collections: dict[str, FakeCollection] = {}
        self.commands: list[dict[str, Any]] = []

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())

    async def command(self, document):
        self.commands.append(document)
        return {"ok": 1.0, "n": 2}


class FakeMongoClient:
    instances: list[FakeMongoClient] = []
    unreachable = False

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.closed = False
        self.databases: dict[str, FakeDatabase] = {}
        self.admin = SimpleNamespace(command=self._ping)
        FakeMongoClient.instances.append(self)

    async def _ping(self, name):
        if FakeMongoClient.unreachable:
            raise ConnectionError("No servers found yet")
        return {"ok": 1.0}

    def __getitem__(self, name):
        return self.databases.setdefault(name, FakeDatabase(self, name))

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_client(monkeypatch):
    FakeMongoClient.instances = []
    FakeMongoClient.unreachable = False
    monkeypatch.setattr(mongodb_module, "AsyncMongoClient", FakeMongoClient)
    return FakeMongoClient


def _store(**config) -> MongoStore:
    config.setdefault("name", "app")
    return MongoStore(StoreConfig(type="mongo", **config), "docs")


# ── Config ───────────────────────────────────────────────────────────────


class TestConfig:
    @pytest.mark.parametrize("tag", ["mongodb", "mongo", "mg", "Mongo"])
    def test_tags_resolve(self, tag):
        assert store_registry.resolve(tag) is MongoStore

    def test_name_required(self):
        with pytest.raises(ConfigError, match="requires: name"):
            store_registry.check(StoreConfig(type="mg"))

    def test_client_options_defaults(self):
        options = _store().client_options()
        assert options["host"] == "localhost"
        assert options["port"] == 27017
        assert options["serverSelectionTimeoutMS"] == 30000
        assert "username" not in options

    def test_client_options_full(self):
        store = _store(
            host="mongo.internal",
            port=27018,
            user="etl",
            password="pw",
            options={"timeout": 2, "pool_size": 10, "auth_source": "admin"},
        )
        options = store.client_options()
        assert (options["host"], options["port"]) == ("mongo.internal", 27018)
        assert (options["username"], options["password"]) == ("etl", "pw")
        assert options["maxPoolSize"] == 10
        assert options["authSource"] == "admin"
        assert options["serverSelectionTimeoutMS"] == 2000


# ── Lifecycle ────────────────────────────────────────────────────────────


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_connect_selects_database_and_close_closes_client(self, fake_client):
        store = _store(name="warehouse")
        db = await store.connect()
        assert db.name == "warehouse"

        await store.close()
        await store.close()
        (client,) = fake_client.instances
        assert client.closed is True
        assert store.close_count == 1

    @pytest.mark.asyncio
    async def test_unreachable_server(self, fake_client):
        fake_client.unreachable = True
        store = _store()
        with pytest.raises(StoreConnectionError):
            await store.connect()
        assert fake_client.instances[0].closed is True
        assert store.is_connected is False


# ── Operations ───────────────────────────────────────────────────────────


class TestOperations:
    @pytest.mark.asyncio
    async def test_insert_and_query(self, fake_client):
        async with _store() as store:
            record = {"id": 1, "name": "ada"}
            assert await store.insert("users", record) == 1
            await store.insert("users", {"id": 2, "name": "grace"})

            assert "_id" not in record
            assert [d["id"] for d in await store.query("users")] == [1, 2]
            rows = await store.query({"users": {"name": "grace"}})
            assert [d["id"] for d in rows] == [2]
            assert store.client["users"].cursors[-1].closed is True

    @pytest.mark.asyncio
    async def test_stream_passes_options_and_closes_cursor(self, fake_client):
        async with _store() as store:
            for i in (1, 2, 3):
                await store.insert("users", {"id": i})
            ids = [d["id"] async for d in store.stream({"users": {}}, batch_size=2)]
            assert ids == [1, 2, 3]
            collection = store.client["users"]
            assert collection.find_options == {"batch_size": 2}
            assert collection.cursors[-1].closed is True

    @pytest.mark.asyncio
    async def test_upsert_replaces_by_key(self, fake_client):
        async with _store() as store:
            await store.upsert("users", {"id": 1, "name": "ada"})
            await store.upsert("users", {"id": 1, "name": "ada lovelace"})
            docs = await store.query("users")
            assert len(docs) == 1
            assert docs[0]["name"] == "ada lovelace"

    @pytest.mark.asyncio
    async def test_upsert_requires_key(self, fake_client):
        async with _store() as store:
            with pytest.raises(StoreError, match="missing key"):
                await store.upsert("users", {"name": "nobody"})

    @pytest.mark.asyncio
    async def test_update_plain_fields_use_set(self, fake_client):
        async with _store() as store:
            await store.insert("users", {"id": 1, "active": True})
            await store.insert("users", {"id": 2, "active": True})
            assert await store.update("users", {"active": False}, {"id": 2}) == 1
            docs = await store.query({"users": {"active": False}})
            assert [d["id"] for d in docs] == [2]

    @pytest.mark.asyncio
    async def test_update_operator_document(self, fake_client):
        async with _store() as store:
            await store.insert("users", {"id": 1, "seen": 1})
            await store.update("users", {"$inc": {"seen": 2}})
            assert (await store.query("users"))[0]["seen"] == 3

    @pytest.mark.asyncio
    async def test_update_rejects_mixed_document(self, fake_client):
        async with _store() as store:
            with pytest.raises(StoreError, match="mixes"):
                await store.update("users", {"$inc": {"seen": 1}, "name": "x"})

    @pytest.mark.asyncio
    async def test_delete(self, fake_client):
        async with _store() as store:
            for i in (1, 2, 3):
                await store.insert("users", {"id": i, "even": i % 2 == 0})
            assert await store.delete("users", {"even": False}) == 2
            assert await store.delete("users") == 1

    @pytest.mark.asyncio
    async def test_execute_runs_command_document(self, fake_client):
        async with _store() as store:
            assert await store.execute({"count": "users"}) == 2
            assert store.client.commands == [{"count": "users"}]
            with pytest.raises(StoreError, match="command documents"):
                await store.execute("db.users.count()")


# ── In a pipeline ────────────────────────────────────────────────────────


async def _produce(store, registry, process):
    for i in (1, 2, 3):
        await process({"id": i, "name": f"user{i}"})


async def _upsert(store, registry, record):
    await store.upsert("users", record)


async def _stamp(store, registry):
    await store.update("users", {"synced": True})


class TestPipeline:
    @pytest.mark.asyncio
    async def test_mongo_load_and_exit_target(self, fake_client):
        definition = build_definition(
            {
                "stores": {
                    "src": {"type": "memory", "name": "source"},
                    "docs": {"type": "mongodb", "name": "archive"},
                },
                "operation": {
                    "name": "archive-users",
                    "extract": {"src": _produce},
                    "load": {"docs": _upsert},
                    "exit": {"docs": _stamp},
                },
            }
        )
        async with PipelineExecutor(definition, parity_poll_seconds=0.01) as executor:
            result = await executor.run()
            docs = await executor.stores["docs"].query("users")

        assert result.ok
        assert [(d["id"], d["synced"]) for d in docs] == [(1, True), (2, True), (3, True)]
