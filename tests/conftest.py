"""
Shared pytest fixtures for ferry tests.

This module provides:
- State cleanup fixtures for test isolation (memory databases, settings,
  log context)
- Store factories backed by the in-memory driver
- A driver that always fails to connect, registered on demand

Usage:
    Fixtures are auto-discovered by pytest::

        async def test_load(memory_store):
            store = memory_store("dst")
            await store.connect()
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Any

import pytest

from ferry.core.logging import clear_context
from ferry.core.settings import clear_settings_cache
from ferry.stores import MemoryStore, StoreConfig, reset_memory_databases, store_registry


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate() -> Generator[None, None, None]:
    """Fresh memory databases, settings and log context for every test."""
    reset_memory_databases()
    clear_settings_cache()
    clear_context()
    yield
    reset_memory_databases()
    clear_settings_cache()
    clear_context()


# =============================================================================
# Stores
# =============================================================================


@pytest.fixture
def memory_store() -> Callable[..., MemoryStore]:
    """Factory for unconnected memory stores: ``memory_store("dst")``."""

    def _make(name: str = "default", alias: str | None = None, **kwargs: Any) -> MemoryStore:
        return MemoryStore(StoreConfig(type="memory", name=name, **kwargs), alias or name)

    return _make


class BrokenStore(MemoryStore):
    """Memory store whose connect always fails."""

    async def _open(self) -> Any:
        raise ConnectionError("connection refused")


class ClosingFailsStore(MemoryStore):
    """Memory store whose close always fails."""

    async def _close(self, client: Any) -> None:
        raise OSError("socket already gone")


@pytest.fixture
def broken_driver() -> Generator[str, None, None]:
    """Register the ``broken`` store type for the duration of a test."""
    store_registry.register("broken", BrokenStore)
    yield "broken"
    store_registry.unregister("broken")


@pytest.fixture
def close_fails_driver() -> Generator[str, None, None]:
    """Register the ``closefail`` store type for the duration of a test."""
    store_registry.register("closefail", ClosingFailsStore)
    yield "closefail"
    store_registry.unregister("closefail")


# =============================================================================
# Definitions
# =============================================================================


@pytest.fixture
def two_stores() -> dict[str, dict[str, Any]]:
    """``src`` and ``dst`` memory stores backed by separate databases."""
    return {
        "src": {"type": "memory", "name": "source"},
        "dst": {"type": "memory", "name": "target"},
    }
