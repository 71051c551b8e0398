"""SQL statement building shared by the relational drivers.

Drivers differ only in placeholder style and in how statements reach the
wire, so the ``Dialect`` objects here generate the insert/upsert/update/delete
text and the drivers execute it.

Identifiers are validated instead of escaped: table and column names come
from definition files and records, never from free text, so anything that
is not a plain (optionally schema-qualified) identifier is rejected.

Examples:
    >>> SQLiteDialect().upsert("users", ["id", "name"], ["id"])
    'INSERT INTO "users" ("id", "name") VALUES (?, ?) ON CONFLICT ("id") DO UPDATE SET "name" = excluded."name"'
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from ferry.core.errors import StoreError

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_ident(name: str) -> str:
    """Quote a (possibly schema-qualified) identifier."""
    parts = name.split(".")
    for part in parts:
        if not _IDENT_RE.match(part):
            raise StoreError(f"Invalid SQL identifier: {name!r}")
    return ".".join(f'"{part}"' for part in parts)


class Dialect:
    """Base dialect; subclasses set the placeholder token."""

    name = "sql"
    token = "?"

    def placeholders(self, count: int) -> str:
        return ", ".join(self.token for _ in range(count))

    def insert(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(quote_ident(c) for c in columns)
        return f"INSERT INTO {quote_ident(table)} ({cols}) VALUES ({self.placeholders(len(columns))})"

    def upsert(self, table: str, columns: list[str], key_columns: list[str]) -> str:
        keys = ", ".join(quote_ident(c) for c in key_columns)
        update_cols = [c for c in columns if c not in key_columns]
        if not update_cols:
            return f"{self.insert(table, columns)} ON CONFLICT ({keys}) DO NOTHING"
        updates = ", ".join(f"{quote_ident(c)} = excluded.{quote_ident(c)}" for c in update_cols)
        return f"{self.insert(table, columns)} ON CONFLICT ({keys}) DO UPDATE SET {updates}"

    def _where(self, where: Mapping[str, Any] | None) -> tuple[str, tuple[Any, ...]]:
        if not where:
            return "", ()
        clauses = " AND ".join(f"{quote_ident(c)} = {self.token}" for c in where)
        return f" WHERE {clauses}", tuple(where.values())

    def update(
        self, table: str, changes: Mapping[str, Any], where: Mapping[str, Any] | None
    ) -> tuple[str, tuple[Any, ...]]:
        if not changes:
            raise StoreError(f"Update of {table} sets no columns")
        sets = ", ".join(f"{quote_ident(c)} = {self.token}" for c in changes)
        clause, where_values = self._where(where)
        return f"UPDATE {quote_ident(table)} SET {sets}{clause}", tuple(changes.values()) + where_values

    def delete(self, table: str, where: Mapping[str, Any] | None) -> tuple[str, tuple[Any, ...]]:
        clause, values = self._where(where)
        return f"DELETE FROM {quote_ident(table)}{clause}", values


class SQLiteDialect(Dialect):
    """SQLite dialect — ``?`` placeholders."""

    name = "sqlite"
    token = "?"


class PostgreSQLDialect(Dialect):
    """PostgreSQL dialect — ``%s`` placeholders (psycopg)."""

    name = "postgresql"
    token = "%s"


def record_columns(record: Mapping[str, Any]) -> tuple[list[str], tuple[Any, ...]]:
    """Split a record into column names and a matching value tuple."""
    if not record:
        raise StoreError("Cannot write an empty record")
    columns = list(record.keys())
    return columns, tuple(record[c] for c in columns)


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "quote_ident",
    "record_columns",
]
