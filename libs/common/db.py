"""Connection plumbing shared by the identity and order stores.

Stores receive either a ``psycopg_pool.AsyncConnectionPool`` or, in tests, a
connection double, and go through ``acquire_connection`` either way. All SQL
in the gateway uses psycopg ``%s`` placeholders, so asyncpg pools ($1 style)
are refused outright.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

logger = logging.getLogger(__name__)


def _checkout(db_pool: Any) -> Any:
    """Return an async context manager yielding a connection, or None for a bare connection."""
    if hasattr(db_pool, "connection"):
        checkout = db_pool.connection()
        if hasattr(checkout, "__aenter__"):
            return checkout
        if hasattr(checkout, "__enter__"):
            raise RuntimeError(
                "Synchronous pools block the event loop; pass an AsyncConnectionPool"
            )
        raise RuntimeError(f"Unsupported db_pool: connection() returned {type(checkout).__name__}")
    if hasattr(db_pool, "acquire"):
        raise RuntimeError("asyncpg pools use $1 placeholders; gateway SQL needs psycopg %s")
    if hasattr(db_pool, "execute"):
        return None
    raise RuntimeError(f"Unsupported db_pool: {type(db_pool).__name__}")


@asynccontextmanager
async def acquire_connection(db_pool: Any) -> AsyncIterator[Any]:
    """Yield a connection from ``db_pool``, or ``db_pool`` itself if it is one."""
    checkout = _checkout(db_pool)
    if checkout is None:
        yield db_pool
        return
    async with checkout as conn:
        yield conn


@asynccontextmanager
async def maybe_transaction(conn: Any) -> AsyncIterator[None]:
    """Run the block inside ``conn.transaction()``; plain doubles get no transaction."""
    begin = getattr(conn, "transaction", None)
    transaction = begin() if callable(begin) else None
    if transaction is None or not hasattr(transaction, "__aenter__"):
        yield
        return
    async with transaction:
        yield


def create_db_pool(
    database_url: str,
    *,
    min_size: int = 1,
    max_size: int = 10,
    timeout: float = 10.0,
) -> AsyncConnectionPool:
    """Create an (unopened) async pool whose connections return dict rows.

    Call ``await pool.open()`` during application startup.
    """
    pool = AsyncConnectionPool(
        database_url,
        min_size=min_size,
        max_size=max_size,
        timeout=timeout,
        kwargs={"row_factory": dict_row},
        open=False,
    )
    logger.info("db_pool_initialized", extra={"min_size": min_size, "max_size": max_size})
    return pool


__all__ = ["acquire_connection", "maybe_transaction", "create_db_pool"]
