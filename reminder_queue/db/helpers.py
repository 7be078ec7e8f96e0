"""
Database helper functions for common patterns.
Every helper runs on an explicit connection and turns driver errors into
``DatabaseError`` so repositories never see driver-specific exceptions.
"""

import sqlite3
from typing import Any

import psycopg

from reminder_queue.db.connection import DbConnection
from reminder_queue.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# OverflowError: an int parameter wider than the driver can bind
DRIVER_ERRORS = (psycopg.Error, sqlite3.Error, OverflowError)


class DatabaseError(Exception):
    """Custom exception for database operations."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


def is_recoverable(error: Exception) -> bool:
    # Constraint and data errors will fail again on retry
    return not isinstance(
        error,
        (
            psycopg.IntegrityError,
            psycopg.DataError,
            sqlite3.IntegrityError,
            sqlite3.DataError,
            OverflowError,
        ),
    )


async def fetch_one(
    query: str, params: tuple = (), *, connection: DbConnection
) -> dict[str, Any] | None:
    """
    Execute query and return single row as dict.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Connection to run on

    Returns:
        Dict with row data or None if no results
    """
    try:
        return await connection.fetch_one(query, params)
    except DRIVER_ERRORS as e:
        logger.error("Database fetch_one error", query=query[:100], error=str(e))
        raise DatabaseError(
            f"Query failed: {e}", operation="fetch_one", recoverable=is_recoverable(e)
        ) from e


async def fetch_all(
    query: str, params: tuple = (), *, connection: DbConnection
) -> list[dict[str, Any]]:
    """
    Execute query and return all rows as list of dicts.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Connection to run on

    Returns:
        List of dicts with row data
    """
    try:
        return await connection.fetch_all(query, params)
    except DRIVER_ERRORS as e:
        logger.error("Database fetch_all error", query=query[:100], error=str(e))
        raise DatabaseError(
            f"Query failed: {e}", operation="fetch_all", recoverable=is_recoverable(e)
        ) from e


async def fetch_val(query: str, params: tuple = (), *, connection: DbConnection) -> Any:
    """Execute query and return the first column of the first row."""
    row = await fetch_one(query, params, connection=connection)
    return next(iter(row.values())) if row else None


async def execute_query(query: str, params: tuple = (), *, connection: DbConnection) -> int:
    """
    Execute query and return number of affected rows.

    Args:
        query: SQL query with %s placeholders
        params: Query parameters
        connection: Connection to run on

    Returns:
        Number of affected rows
    """
    try:
        return await connection.execute(query, params)
    except DRIVER_ERRORS as e:
        logger.error("Database execute error", query=query[:100], error=str(e))
        raise DatabaseError(
            f"Query failed: {e}", operation="execute", recoverable=is_recoverable(e)
        ) from e


def in_placeholders(values: list | tuple) -> str:
    """Build ``%s, %s, ...`` for an IN clause."""
    if not values:
        raise ValueError("IN clause needs at least one value")
    return ", ".join(["%s"] * len(values))
