"""
db/connection.py
----------------
Manages the PostgreSQL connection pool for the invoice store.
Uses psycopg2's SimpleConnectionPool; every session runs in UTC so
TIMESTAMPTZ columns come back as aware UTC datetimes.
"""

import psycopg2
from psycopg2 import pool

from config import DATABASE_URL
from utils.logger import get_logger

logger = get_logger(__name__)

_pool: pool.SimpleConnectionPool | None = None


def init_pool(min_conn: int = 1, max_conn: int = 5, dsn: str = DATABASE_URL) -> None:
    """
    Open the connection pool (idempotent).

    Args:
        min_conn: Connections kept open.
        max_conn: Upper bound on simultaneous connections.
        dsn: PostgreSQL connection string, DATABASE_URL by default.

    Raises:
        psycopg2.OperationalError: If the database is unreachable.
    """
    global _pool
    if _pool is not None:
        return
    try:
        _pool = pool.SimpleConnectionPool(min_conn, max_conn, dsn, options="-c timezone=UTC")
        logger.info(f"Invoice store pool ready ({min_conn}-{max_conn} connections).")
    except psycopg2.OperationalError as e:
        logger.error(f"Cannot connect to the invoice store: {e}")
        raise


def get_connection():
    """
    Borrow a connection from the pool.

    Raises:
        RuntimeError: If init_pool() was never called.
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    return _pool.getconn()


def release_connection(conn) -> None:
    """Hand a borrowed connection back to the pool."""
    if _pool is not None:
        _pool.putconn(conn)


def close_pool() -> None:
    """Close every pooled connection on shutdown."""
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None
        logger.info("Invoice store pool closed.")
