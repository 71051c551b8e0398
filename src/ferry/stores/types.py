"""Store types and configuration."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StoreType(str, Enum):
    """Supported store drivers."""

    MEMORY = "memory"
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MONGODB = "mongodb"


# Type tags accepted in definition files, mapped to their canonical driver
TYPE_ALIASES: dict[str, StoreType] = {
    "memory": StoreType.MEMORY,
    "mem": StoreType.MEMORY,
    "sqlite": StoreType.SQLITE,
    "sqlite3": StoreType.SQLITE,
    "postgresql": StoreType.POSTGRESQL,
    "postgres": StoreType.POSTGRESQL,
    "pg": StoreType.POSTGRESQL,
    "mongodb": StoreType.MONGODB,
    "mongo": StoreType.MONGODB,
    "mg": StoreType.MONGODB,
}


class StoreConfig(BaseModel):
    """
    Configuration for one named store.

    Different fields are used by different drivers: ``memory`` and
    ``sqlite`` only need ``name`` (the sqlite file path), ``postgresql``
    needs ``host`` and ``name`` at least, ``mongodb`` needs ``name`` (the
    database) and defaults to ``localhost:27017``. ``pass`` is accepted as the
    password key to match existing definition files.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    type: str = Field(..., min_length=1, description="Driver tag, e.g. postgresql or sqlite")
    name: str | None = Field(default=None, description="Database name or sqlite path")
    host: str | None = None
    port: int | None = Field(default=None, gt=0)
    user: str | None = None
    password: str | None = Field(default=None, alias="pass")

    alias: str | None = Field(default=None, description="Defaults to the config key")
    debug: bool | None = None
    verbose: bool | None = None

    # Driver-specific extras (pool_size, timeout, ...)
    options: dict[str, Any] = Field(default_factory=dict)

    @property
    def store_type(self) -> StoreType | None:
        return TYPE_ALIASES.get(self.type.lower())

    def inherit(self, *, debug: bool, verbose: bool) -> StoreConfig:
        """Copy with debug/verbose taken from the operation unless set here."""
        return self.model_copy(
            update={
                "debug": debug if self.debug is None else self.debug,
                "verbose": verbose if self.verbose is None else self.verbose,
            }
        )

    def describe(self) -> str:
        """Host/name label for log lines, never includes credentials."""
        location = self.host or "local"
        if self.port:
            location = f"{location}:{self.port}"
        return f"{location}/{self.name or ''}"


__all__ = [
    "StoreType",
    "StoreConfig",
    "TYPE_ALIASES",
]
