"""Tests for connection acquisition helpers."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

import pytest

from libs.common.db import acquire_connection, create_db_pool, maybe_transaction
from tests.fixtures.stores import RecordingConnection


class AsyncPool:
    def __init__(self, conn: Any) -> None:
        self.conn = conn
        self.checkouts = 0

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Any]:
        self.checkouts += 1
        yield self.conn


class SyncPool:
    @contextmanager
    def connection(self) -> Any:
        yield object()


class AsyncpgStylePool:
    async def acquire(self) -> None:
        return None


class TestAcquireConnection:
    @pytest.mark.asyncio()
    async def test_async_pool(self) -> None:
        conn = RecordingConnection()
        pool = AsyncPool(conn)
        async with acquire_connection(pool) as acquired:
            assert acquired is conn
        assert pool.checkouts == 1

    @pytest.mark.asyncio()
    async def test_connection_like_object(self) -> None:
        conn = RecordingConnection()
        async with acquire_connection(conn) as acquired:
            assert acquired is conn

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        ("pool", "match"),
        [
            (SyncPool(), "Synchronous"),
            (AsyncpgStylePool(), "asyncpg"),
            (object(), "Unsupported db_pool"),
        ],
    )
    async def test_rejected_pools(self, pool: object, match: str) -> None:
        with pytest.raises(RuntimeError, match=match):
            async with acquire_connection(pool):
                pass


class TestMaybeTransaction:
    @pytest.mark.asyncio()
    async def test_uses_connection_transaction(self) -> None:
        conn = RecordingConnection()
        async with maybe_transaction(conn):
            pass
        assert conn.transactions == 1

    @pytest.mark.asyncio()
    async def test_plain_object(self) -> None:
        async with maybe_transaction(object()):
            pass


def test_create_db_pool_is_unopened() -> None:
    pool = create_db_pool("postgresql://gateway@localhost/gateway", min_size=2, max_size=4)
    assert pool.min_size == 2
    assert pool.max_size == 4
    assert pool.closed
