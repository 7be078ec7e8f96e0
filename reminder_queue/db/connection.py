"""
Thin per-backend connection wrappers.

Queries are written once with ``%s`` placeholders (psycopg style) and rows
come back as plain dicts regardless of backend.
"""

from typing import Any, Protocol

import aiosqlite
import psycopg


class DbConnection(Protocol):
    backend: str

    async def execute(self, query: str, params: tuple = ()) -> int: ...

    async def fetch_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None: ...

    async def fetch_all(self, query: str, params: tuple = ()) -> list[dict[str, Any]]: ...


class PostgresConnection:
    """Wraps a pooled ``psycopg.AsyncConnection`` configured with ``dict_row``."""

    backend = "postgres"

    def __init__(self, conn: psycopg.AsyncConnection):
        self.raw = conn

    async def execute(self, query: str, params: tuple = ()) -> int:
        async with self.raw.cursor() as cur:
            await cur.execute(query, params or None)
            return cur.rowcount

    async def fetch_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        async with self.raw.cursor() as cur:
            await cur.execute(query, params or None)
            row = await cur.fetchone()
            return dict(row) if row else None

    async def fetch_all(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        async with self.raw.cursor() as cur:
            await cur.execute(query, params or None)
            rows = await cur.fetchall()
            return [dict(row) for row in rows]


class SqliteConnection:
    """Wraps an ``aiosqlite.Connection`` opened in autocommit mode."""

    backend = "sqlite"

    def __init__(self, conn: aiosqlite.Connection):
        self.raw = conn

    @staticmethod
    def _sql(query: str) -> str:
        return query.replace("%s", "?")

    async def execute(self, query: str, params: tuple = ()) -> int:
        async with self.raw.execute(self._sql(query), tuple(params)) as cursor:
            return cursor.rowcount

    async def fetch_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        async with self.raw.execute(self._sql(query), tuple(params)) as cursor:
            row = await cursor.fetchone()
            return dict(row) if row else None

    async def fetch_all(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        async with self.raw.execute(self._sql(query), tuple(params)) as cursor:
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]
