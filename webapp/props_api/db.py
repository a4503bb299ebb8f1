"""
Database connection utilities.

Design Pattern: Singleton Pattern for connection pool
Algorithm: Queue-based pool of psycopg async connections
Big O: O(1) for connection acquisition from pool
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import psycopg

from . import config
from .logging_config import get_logger, DEBUG_MODE

logger = get_logger(__name__)

# Global connection pool (initialized on first use)
_connection_pool: Optional[asyncio.Queue] = None
_pool_dsn: Optional[str] = None
_pool_size = config.DB_POOL_SIZE


def _get_connection_pool() -> asyncio.Queue:
    """Get or create the global connection pool."""
    global _connection_pool, _pool_dsn

    if _connection_pool is None:
        _pool_dsn = config.DATABASE_URL
        if DEBUG_MODE:
            # Mask credentials in logs
            safe_dsn = _pool_dsn.split('@')[-1] if '@' in _pool_dsn else _pool_dsn
            logger.debug(f"Creating connection pool to: ...@{safe_dsn} (max_size={_pool_size})")
        _connection_pool = asyncio.Queue(maxsize=_pool_size)

    return _connection_pool


@asynccontextmanager
async def get_db_connection() -> AsyncIterator[psycopg.AsyncConnection]:
    """
    Get an async database connection from the connection pool.

    Connections are returned to the pool when the context exits, or closed if
    the pool is full or the connection is broken.

    Usage:
        async with get_db_connection() as conn:
            cursor = await conn.execute("SELECT ...")
    """
    pool = _get_connection_pool()
    conn: Optional[psycopg.AsyncConnection] = None

    try:
        try:
            conn = pool.get_nowait()
            if DEBUG_MODE:
                logger.debug("Connection acquired from pool (reused)")
        except asyncio.QueueEmpty:
            if DEBUG_MODE:
                logger.debug("Pool empty, creating new connection")
            conn = await psycopg.AsyncConnection.connect(_pool_dsn, autocommit=True)

        yield conn
    finally:
        if conn is not None:
            await _release(pool, conn)


async def _release(pool: asyncio.Queue, conn: psycopg.AsyncConnection) -> None:
    if conn.closed or conn.broken:
        if DEBUG_MODE:
            logger.debug("Invalid connection dropped (not returned to pool)")
        return
    try:
        pool.put_nowait(conn)
        if DEBUG_MODE:
            logger.debug("Connection returned to pool")
    except asyncio.QueueFull:
        await conn.close()
        if DEBUG_MODE:
            logger.debug("Pool full, connection closed")


async def close_pool() -> None:
    """Close every pooled connection (called on app shutdown)."""
    global _connection_pool
    if _connection_pool is None:
        return
    while not _connection_pool.empty():
        conn = _connection_pool.get_nowait()
        await conn.close()
    _connection_pool = None
    logger.info("Database connection pool closed")
