"""
db/connection.py
----------------
Manages PostgreSQL connections and transactions.
Uses psycopg2's SimpleConnectionPool for efficient connection reuse,
or a direct connection when a caller supplies its own connection string.

Whoever opens a connection owns it: `scoped_connection()` guarantees it
is released (or closed) on every exit path, and `transaction()` makes
a block of statements commit together or not at all.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
from psycopg2 import pool

from config import DATABASE_URL, DB_POOL_MAX, DB_POOL_MIN
from db.errors import (
    ConnectionAcquisitionError,
    RollbackError,
    StatementError,
)
from utils.logger import get_logger

logger = get_logger(__name__)

_pool: pool.SimpleConnectionPool | None = None


def init_pool(
    min_conn: int = DB_POOL_MIN,
    max_conn: int = DB_POOL_MAX,
    dsn: str = DATABASE_URL,
) -> None:
    """
    Initialize the database connection pool.

    Args:
        min_conn: Minimum number of connections to keep open.
        max_conn: Maximum number of connections allowed.
        dsn: Connection string of the target database.

    Raises:
        ConnectionAcquisitionError: If the database is unreachable.
    """
    global _pool
    if _pool is not None:
        return
    try:
        _pool = pool.SimpleConnectionPool(min_conn, max_conn, dsn)
        logger.info("Database connection pool initialized successfully.")
    except psycopg2.OperationalError as e:
        logger.error(f"Failed to initialize database pool: {e}")
        raise ConnectionAcquisitionError(
            "Could not initialize the database connection pool.",
            operation="init_pool",
        ) from e


def get_connection():
    """
    Get a connection from the pool.

    Returns:
        A psycopg2 connection object.

    Raises:
        ConnectionAcquisitionError: If the pool is not initialized,
            exhausted, or cannot reach the database.
    """
    if _pool is None:
        raise ConnectionAcquisitionError(
            "Database pool not initialized. Call init_pool() first.",
            operation="get_connection",
        )
    try:
        return _pool.getconn()
    except (pool.PoolError, psycopg2.OperationalError) as e:
        logger.error(f"Failed to borrow a pooled connection: {e}")
        raise ConnectionAcquisitionError(
            "Could not acquire a database connection.",
            operation="get_connection",
        ) from e


def release_connection(conn) -> None:
    """
    Return a connection back to the pool.
    Closed connections are discarded instead of being reused.

    Args:
        conn: The psycopg2 connection to release.
    """
    if _pool is not None:
        _pool.putconn(conn, close=bool(conn.closed))


def close_pool() -> None:
    """Close all connections in the pool."""
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None
        logger.info("Database connection pool closed.")


def open_connection(dsn: str):
    """
    Open a dedicated (non-pooled) connection.

    Raises:
        ConnectionAcquisitionError: If the database is unreachable.
    """
    try:
        return psycopg2.connect(dsn)
    except psycopg2.OperationalError as e:
        logger.error(f"Failed to open database connection: {e}")
        raise ConnectionAcquisitionError(
            "Could not open a database connection.",
            operation="open_connection",
        ) from e


@contextmanager
def scoped_connection(dsn: Optional[str] = None) -> Iterator:
    """
    Acquire a connection for the duration of a ``with`` block.

    With no ``dsn`` the connection is borrowed from the pool and handed
    back on exit; otherwise a dedicated connection is opened and closed.
    """
    if dsn is None:
        conn = get_connection()
        try:
            yield conn
        finally:
            release_connection(conn)
    else:
        conn = open_connection(dsn)
        try:
            yield conn
        finally:
            conn.close()


def _rollback(conn, operation: str, program_id: Optional[int]) -> None:
    try:
        conn.rollback()
    except psycopg2.Error as e:
        logger.critical(
            f"Rollback failed during {operation} (program {program_id}); "
            f"stored state needs manual reconciliation: {e}"
        )
        raise RollbackError(
            f"Rollback failed during {operation}; stored state is unknown.",
            operation=operation,
            program_id=program_id,
        ) from e


@contextmanager
def transaction(
    conn,
    operation: str,
    program_id: Optional[int] = None,
    readonly: bool = False,
) -> Iterator:
    """
    Run a block of statements as one unit of work on ``conn``.

    On success the block is committed (or rolled back when ``readonly``).
    On any failure it is rolled back and the failure re-raised: driver
    errors become StatementError, storage errors pass through unchanged.
    A failed rollback raises RollbackError instead.

    Args:
        conn: An open psycopg2 connection owned by the caller.
        operation: Name used in log lines and error context.
        program_id: Aggregate the statements act on, if any.
        readonly: Discard instead of commit at the end.
    """
    try:
        yield conn
    except psycopg2.Error as e:
        _rollback(conn, operation, program_id)
        logger.error(f"{operation} failed for program {program_id}: {e}")
        raise StatementError(
            f"{operation} failed.", operation=operation, program_id=program_id
        ) from e
    except BaseException:
        _rollback(conn, operation, program_id)
        raise

    if readonly:
        _rollback(conn, operation, program_id)
        return
    try:
        conn.commit()
    except psycopg2.Error as e:
        _rollback(conn, operation, program_id)
        logger.error(f"Commit of {operation} failed for program {program_id}: {e}")
        raise StatementError(
            f"{operation} could not be committed.",
            operation=operation,
            program_id=program_id,
        ) from e
