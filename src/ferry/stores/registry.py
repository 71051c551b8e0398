"""Store driver registry and factory.

Manifesto:
    Definitions name a store by type tag (``pg``, ``mongo``, ``sqlite``, ``memory``);
    nothing else in the engine hard-codes driver classes. The registry maps
    tags to classes and ``create()`` builds a configured, unconnected handle.

Features:
    - ``StoreRegistry`` singleton with the built-in drivers pre-registered
    - ``register()`` for custom drivers
    - ``check()`` validates a config without building anything

Tags:
    ferry, stores, registry, factory, singleton
"""

from __future__ import annotations

from ferry.core.errors import ConfigError

from .base import StoreAdapter
from .memory import MemoryStore
from .mongodb import MongoStore
from .postgresql import PostgreSQLStore
from .sqlite import SQLiteStore
from .types import TYPE_ALIASES, StoreConfig, StoreType


class StoreRegistry:
    """
    Registry of store driver classes keyed by type tag.

    Pre-registered drivers (with the tags listed in ``TYPE_ALIASES``):
    - ``memory`` — :class:`MemoryStore`
    - ``sqlite`` — :class:`SQLiteStore`
    - ``postgresql`` — :class:`PostgreSQLStore`
    - ``mongodb`` — :class:`MongoStore`
    """

    def __init__(self) -> None:
        self._factories: dict[str, type[StoreAdapter]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        drivers = {
            StoreType.MEMORY: MemoryStore,
            StoreType.SQLITE: SQLiteStore,
            StoreType.POSTGRESQL: PostgreSQLStore,
            StoreType.MONGODB: MongoStore,
        }
        for tag, store_type in TYPE_ALIASES.items():
            self._factories[tag] = drivers[store_type]

    def register(self, name: str, store_class: type[StoreAdapter]) -> None:
        """Register a driver class under a type tag."""
        self._factories[name.lower()] = store_class

    def unregister(self, name: str) -> None:
        self._factories.pop(name.lower(), None)

    def resolve(self, name: str) -> type[StoreAdapter]:
        """Driver class for a type tag."""
        try:
            return self._factories[name.lower()]
        except KeyError:
            raise ConfigError(
                f"Unknown store type: {name} (known: {', '.join(self.list_types())})"
            ) from None

    def check(self, config: StoreConfig) -> type[StoreAdapter]:
        """Validate a config against its driver's required fields."""
        store_class = self.resolve(config.type)
        missing = [f for f in store_class.required_fields if not getattr(config, f)]
        if missing:
            raise ConfigError(f"Store type {config.type} requires: {', '.join(missing)}")
        return store_class

    def create(self, config: StoreConfig, alias: str | None = None) -> StoreAdapter:
        """Create an unconnected store handle."""
        return self.check(config)(config, alias)

    def list_types(self) -> list[str]:
        return sorted(self._factories.keys())


# Global registry
store_registry = StoreRegistry()


__all__ = ["StoreRegistry", "store_registry"]
