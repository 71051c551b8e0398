"""
Store handles: one connection-owning object per configured store alias.

Usage:
    from ferry.stores import StoreConfig, store_registry

    store = store_registry.create(StoreConfig(type="sqlite", name="data.db"), "local")
    async with store:
        rows = await store.query("SELECT * FROM users")
"""

from .base import Record, StoreAdapter
from .memory import MemoryStore, get_memory_database, reset_memory_databases
from .mongodb import MongoStore
from .postgresql import PostgreSQLStore
from .registry import StoreRegistry, store_registry
from .sqlite import SQLiteStore
from .types import StoreConfig, StoreType

__all__ = [
    "Record",
    "StoreAdapter",
    "StoreConfig",
    "StoreType",
    "StoreRegistry",
    "store_registry",
    "MemoryStore",
    "SQLiteStore",
    "PostgreSQLStore",
    "MongoStore",
    "get_memory_database",
    "reset_memory_databases",
]
