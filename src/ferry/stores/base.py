"""Store adapter base class.

Manifesto:
    Every store driver shares the same lifecycle (idempotent connect and
    close) and the same record-level operations. The engine only ever talks
    to this interface, so a new backend is a new subclass and a registry
    entry.

Features:
    - Public ``connect()``/``close()`` coalesce concurrent callers behind an
      ``asyncio.Lock``: one dial per connect, one teardown per close
    - Abstract ``_open()``/``_close()`` hooks for drivers
    - Batch ``query()`` and streaming ``stream()`` reads
    - ``insert()``, ``upsert()``, ``update()``, ``delete()`` and ``execute()``
      writes

Tags:
    ferry, stores, abstract-base, adapter-pattern
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any, ClassVar

from ferry.core.errors import FerryError, StoreConnectionError, StoreError
from ferry.core.logging import get_logger

from .types import StoreConfig

logger = get_logger(__name__)

Record = dict[str, Any]


class StoreAdapter(ABC):
    """
    Abstract base class for store drivers.

    Args:
        config: Store configuration (already merged with operation flags)
        alias: Key the store was configured under, used when
            ``config.alias`` is not set
    """

    # Fields a definition must set for this driver
    required_fields: ClassVar[tuple[str, ...]] = ()

    def __init__(self, config: StoreConfig, alias: str | None = None):
        self._config = config
        self.alias = config.alias or alias or f"{config.type}/{config.name or ''}"
        self.debug = bool(config.debug)
        self.verbose = bool(config.verbose)

        self._client: Any = None
        self._connected = False
        self._lock = asyncio.Lock()

        # Observable for health output and tests
        self.connect_count = 0
        self.close_count = 0

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def is_connected(self) -> bool:
        """Whether the store currently holds an open client."""
        return self._connected

    @property
    def client(self) -> Any:
        """Underlying driver client; raises if the store is not connected."""
        if not self._connected:
            raise StoreError(f"Store '{self.alias}' is not connected").with_context(alias=self.alias)
        return self._client

    # ── Lifecycle ────────────────────────────────────────────────────

    async def connect(self) -> Any:
        """Connect once; concurrent and repeated callers get the same client.

        Raises:
            StoreConnectionError: If the driver fails to connect
        """
        async with self._lock:
            if self._connected:
                return self._client

            logger.debug("store.connecting", alias=self.alias, target=self._config.describe())
            try:
                client = await self._open()
            except FerryError:
                raise
            except Exception as e:
                raise StoreConnectionError(
                    f"Failed to connect to {self.alias} at {self._config.describe()}: {e}",
                    cause=e,
                ).with_context(alias=self.alias) from e

            self._client = client
            self._connected = True
            self.connect_count += 1
            logger.debug("store.connected", alias=self.alias)
            return client

    async def close(self) -> None:
        """Close the client; no-op when never connected or already closed.

        Raises:
            StoreError: If the driver fails while tearing down
        """
        async with self._lock:
            if not self._connected:
                return

            client = self._client
            self._client = None
            self._connected = False
            self.close_count += 1
            logger.debug("store.closing", alias=self.alias)
            try:
                await self._close(client)
            except Exception as e:
                raise StoreError(f"Failed to close {self.alias}: {e}", cause=e).with_context(
                    alias=self.alias
                ) from e

    async def __aenter__(self) -> StoreAdapter:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    @abstractmethod
    async def _open(self) -> Any:
        """Dial the backend and return the client."""
        ...

    @abstractmethod
    async def _close(self, client: Any) -> None:
        """Tear down a client returned by ``_open``."""
        ...

    # ── Reads ────────────────────────────────────────────────────────

    @abstractmethod
    async def query(self, query: Any, params: Any = None, **options: Any) -> list[Record]:
        """Run a query and return every resulting record."""
        ...

    @abstractmethod
    def stream(self, query: Any, params: Any = None, **options: Any) -> AsyncIterator[Record]:
        """Run a query and yield records incrementally.

        Drivers may hold a connection or cursor open while the generator is
        suspended. Callers that can stop early should iterate under
        ``contextlib.aclosing`` so it is released when they stop.
        """
        ...

    # ── Writes ───────────────────────────────────────────────────────

    @abstractmethod
    async def insert(self, target: str, record: Mapping[str, Any]) -> int:
        """Insert one record into ``target``. Returns affected count."""
        ...

    @abstractmethod
    async def upsert(
        self,
        target: str,
        record: Mapping[str, Any],
        key: str | Sequence[str] = "id",
    ) -> int:
        """Insert or replace one record identified by ``key`` field(s)."""
        ...

    @abstractmethod
    async def update(
        self,
        target: str,
        changes: Mapping[str, Any],
        where: Mapping[str, Any] | None = None,
    ) -> int:
        """Apply ``changes`` to records matching ``where`` (all when omitted)."""
        ...

    @abstractmethod
    async def delete(self, target: str, where: Mapping[str, Any] | None = None) -> int:
        """Delete records matching ``where`` (all when omitted)."""
        ...

    @abstractmethod
    async def execute(self, statement: Any, params: Any = None) -> int:
        """Run a raw statement. Returns affected count."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(alias={self.alias!r}, target={self._config.describe()!r})"


def split_collection_query(query: Any) -> tuple[str, Mapping[str, Any]]:
    """Split a document-store query into ``(collection, filter)``.

    Accepts a bare collection name or a single-entry ``{collection: filter}``
    mapping, the shape definition files use for memory and MongoDB stores.
    """
    if isinstance(query, str):
        return query, {}
    if isinstance(query, Mapping) and len(query) == 1:
        ((collection, where),) = query.items()
        return collection, where or {}
    raise StoreError(f"Query must be a collection name or {{collection: filter}}, got {query!r}")


def key_fields(key: str | Sequence[str]) -> list[str]:
    """Normalize an upsert key to a list of field names."""
    if isinstance(key, str):
        return [key]
    return list(key)


__all__ = ["StoreAdapter", "Record", "key_fields", "split_collection_query"]
