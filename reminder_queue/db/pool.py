"""
Connection manager for the reminder store.

PostgreSQL URLs are served from a psycopg_pool ``AsyncConnectionPool``;
SQLite paths open one aiosqlite connection per transaction so concurrent
pollers never share a transaction.
"""

import asyncio
import os
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite
import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from reminder_queue.db.connection import DbConnection, PostgresConnection, SqliteConnection
from reminder_queue.db.migrations import MIGRATIONS, Migration, current_schema_version, run_migrations
from reminder_queue.errors import MigrationError
from reminder_queue.infrastructure.observability.logging import get_logger
from reminder_queue.utils.clock import Clock, SystemClock

logger = get_logger(__name__)


def sqlite_path_from_url(database_url: str) -> str:
    """Map ``sqlite:///relative.db`` / ``sqlite:////abs.db`` / bare paths to a file path."""
    path = database_url
    if database_url.startswith("sqlite:///"):
        path = database_url[len("sqlite:///") :]
    elif database_url.startswith("sqlite://"):
        path = database_url[len("sqlite://") :]

    if not path or path == ":memory:" or "mode=memory" in path:
        raise ValueError("In-memory SQLite cannot be shared between transactions; use a file path")
    return path


class DatabasePoolManager:
    """
    Owns the backing store: opening it, migrating it, handing out
    transactions and closing it.
    """

    def __init__(
        self,
        database_url: str,
        *,
        clock: Clock | None = None,
        pool_config: dict[str, Any] | None = None,
        sqlite_busy_timeout: float = 30.0,
        application_name: str = "reminder-queue",
        migrations: tuple[Migration, ...] = MIGRATIONS,
    ):
        self.database_url = database_url
        self.backend = (
            "postgres" if database_url.startswith(("postgresql://", "postgres://")) else "sqlite"
        )
        self.pool: AsyncConnectionPool | None = None
        self.schema_version = 0
        self._clock = clock or SystemClock()
        self._pool_config = pool_config or {}
        self._sqlite_path = sqlite_path_from_url(database_url) if self.backend == "sqlite" else None
        self._sqlite_busy_timeout = sqlite_busy_timeout
        self._application_name = application_name
        self._migrations = migrations
        self._initialized = False
        self._closed = False

    @property
    def initialized(self) -> bool:
        return self._initialized and not self._closed

    async def initialize(self) -> None:
        """
        Open the store and bring the schema up to date.

        Raises:
            MigrationError: If migrations fail. The store is closed again and
                must not be used.
            RuntimeError: If the backend cannot be opened.
        """
        if self._initialized:
            logger.warning("Database already initialized")
            return

        if self._closed:
            raise RuntimeError("Cannot reinitialize closed database")

        logger.info("Initializing reminder database", backend=self.backend)

        try:
            if self.backend == "postgres":
                await self._open_postgres_pool()
            else:
                await self._prepare_sqlite_file()

            self._initialized = True

            async with self.transaction() as conn:
                self.schema_version = await run_migrations(conn, self._clock, self._migrations)

        except MigrationError:
            await self._abort_initialize()
            raise
        except Exception as e:
            logger.error("Failed to initialize database", backend=self.backend, error=str(e))
            await self._abort_initialize()
            raise RuntimeError(f"Database initialization failed: {e}") from e

        logger.info(
            "Database initialized successfully",
            backend=self.backend,
            schema_version=self.schema_version,
        )

    async def _abort_initialize(self) -> None:
        self._initialized = False
        if self.pool:
            try:
                await self.pool.close()
            except Exception as cleanup_error:
                logger.error("Error closing pool after failed startup", error=str(cleanup_error))
            self.pool = None

    async def _open_postgres_pool(self) -> None:
        self.pool = AsyncConnectionPool(
            conninfo=self.database_url,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **self._pool_config,
        )
        await self.pool.open()
        await self.pool.wait()

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        """Configure each new connection from the pool."""
        conn.row_factory = dict_row

        # Transactions are always explicit via conn.transaction()
        await conn.set_autocommit(True)
        await conn.execute(
            sql.SQL("SET application_name = {}").format(sql.Literal(self._application_name))
        )
        await conn.execute("SET timezone = 'UTC'")

    async def _prepare_sqlite_file(self) -> None:
        db_dir = os.path.dirname(self._sqlite_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        # WAL lets readers proceed while a poller holds the write lock
        async with aiosqlite.connect(self._sqlite_path, timeout=self._sqlite_busy_timeout) as conn:
            await conn.execute("PRAGMA journal_mode = WAL")

    async def close(self) -> None:
        """Close the store gracefully."""
        if not self._initialized or self._closed:
            return

        logger.info("Closing reminder database", backend=self.backend)
        try:
            if self.pool:
                await asyncio.wait_for(self.pool.close(), timeout=30.0)
        except TimeoutError:
            logger.warning("Database pool close timed out, forcing shutdown")
        finally:
            self._initialized = False
            self._closed = True

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[DbConnection, None]:
        """
        Get a connection without opening a transaction.

        Usage:
            async with db.connection() as conn:
                row = await fetch_one("SELECT 1 AS ok", connection=conn)
        """
        if not self._initialized:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        if self._closed:
            raise RuntimeError("Database is closed")

        if self.backend == "postgres":
            async with self.pool.connection() as conn:
                yield PostgresConnection(conn)
        else:
            conn = await aiosqlite.connect(
                self._sqlite_path, timeout=self._sqlite_busy_timeout, isolation_level=None
            )
            try:
                conn.row_factory = aiosqlite.Row
                await conn.execute("PRAGMA foreign_keys = ON")
                yield SqliteConnection(conn)
            finally:
                await conn.close()

    @asynccontextmanager
    async def transaction(self, readonly: bool = False) -> AsyncGenerator[DbConnection, None]:
        """
        Get a connection with automatic transaction management.

        Usage:
            async with db.transaction() as conn:
                await execute_query("UPDATE ...", params, connection=conn)
                # Commit on success, rollback on any exception or cancellation

        SQLite write transactions start with ``BEGIN IMMEDIATE`` so the
        write lock is taken before the first read.
        """
        async with self.connection() as conn:
            if isinstance(conn, PostgresConnection):
                async with conn.raw.transaction():
                    yield conn
                return

            await conn.execute("BEGIN" if readonly else "BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                if conn.raw.in_transaction:
                    await conn.execute("ROLLBACK")
                raise
            else:
                await conn.execute("COMMIT")

    async def health_check(self) -> dict[str, Any]:
        """
        Health check for the store.

        Returns:
            dict: Health status with timing and schema version
        """
        if not self.initialized:
            return {
                "healthy": False,
                "service": "reminder_database",
                "backend": self.backend,
                "error": "Database not initialized",
            }

        start_time = time.time()
        try:
            async with self.connection() as conn:
                row = await conn.fetch_one("SELECT 1 AS ok")
                if not row or row["ok"] != 1:
                    raise RuntimeError(f"Database test failed - got {row!r}")
                version = await current_schema_version(conn)
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "reminder_database",
                "backend": self.backend,
                "error": str(e),
                "error_type": type(e).__name__,
            }

        connection_time_ms = (time.time() - start_time) * 1000
        health_data: dict[str, Any] = {
            "healthy": True,
            "service": "reminder_database",
            "backend": self.backend,
            "schema_version": version,
            "connection_time_ms": round(connection_time_ms, 2),
        }

        if self.pool is not None:
            stats = self.pool.get_stats()
            health_data["pool_stats"] = {
                "pool_size": stats.get("pool_size", 0),
                "pool_available": stats.get("pool_available", 0),
                "requests_waiting": stats.get("requests_waiting", 0),
            }

        return health_data
