"""Order persistence.

Status-dependent writes go through ``compare_and_set``: a single
``UPDATE ... WHERE status = ANY(expected) ... RETURNING *``. A None result
means the expected state no longer held; callers re-read to classify the
conflict instead of overwriting.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from psycopg.errors import UniqueViolation
from psycopg.types.json import Jsonb

from libs.common.db import acquire_connection
from libs.orders.models import Order, OrderStatus, OrderSummary
from libs.rbac.predicates import Predicate, compile_sql

logger = logging.getLogger(__name__)

ORDER_COLUMNS: dict[str, str] = {
    "order_id": "order_id",
    "user": "user_id",
    "merchant": "merchant_id",
    "status": "status",
    "active": "is_active",
    "amount": "amount",
    "created_by": "created_by",
    "created_at": "created_at",
    "expires_at": "expires_at",
}

# Columns a transition may write
TRANSITION_COLUMNS = frozenset(
    {"status", "reference", "invalidated_by", "invalidated_at", "invalidation_reason"}
)


class OrderStore(Protocol):
    async def insert(self, order: Order) -> Order | None: ...

    async def get(self, order_id: str) -> Order | None: ...

    async def find_one(self, predicate: Predicate) -> Order | None: ...

    async def find(self, predicate: Predicate, *, limit: int, offset: int = 0) -> list[Order]: ...

    async def count(self, predicate: Predicate) -> int: ...

    async def summarize(self, predicate: Predicate) -> OrderSummary: ...

    async def compare_and_set(
        self,
        order_id: str,
        expected: Iterable[OrderStatus],
        changes: Mapping[str, Any],
        *,
        not_expired_at: datetime | None = None,
    ) -> Order | None: ...

    async def soft_delete(self, order_id: str, *, actor_id: str) -> Order | None: ...


def _column_value(value: Any) -> Any:
    if isinstance(value, OrderStatus):
        return value.value
    return value


class PostgresOrderStore:
    """psycopg3 implementation of ``OrderStore``."""

    def __init__(self, db_pool: Any) -> None:
        self.db_pool = db_pool

    async def insert(self, order: Order) -> Order | None:
        """Insert a new order; returns None if the order id is already taken."""
        try:
            async with acquire_connection(self.db_pool) as conn:
                cursor = await conn.execute(
                    """
                    INSERT INTO orders (
                        order_id, amount, target_address, display_name, note,
                        payment_link, status, reference, expires_at, user_id,
                        created_by, merchant_id, is_active, metadata,
                        created_at, updated_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        order.order_id,
                        order.amount,
                        order.target_address,
                        order.display_name,
                        order.note,
                        order.payment_link,
                        order.status.value,
                        order.reference,
                        order.expires_at,
                        order.user_id,
                        order.created_by,
                        order.merchant_id,
                        order.is_active,
                        Jsonb(order.metadata.to_dict()),
                        order.created_at,
                        order.updated_at,
                    ),
                )
                row = await cursor.fetchone()
        except UniqueViolation:
            logger.warning("order_id_collision", extra={"order_id": order.order_id})
            return None
        return Order.from_row(row)

    async def get(self, order_id: str) -> Order | None:
        async with acquire_connection(self.db_pool) as conn:
            cursor = await conn.execute("SELECT * FROM orders WHERE order_id = %s", (order_id,))
            row = await cursor.fetchone()
        return Order.from_row(row) if row else None

    async def find_one(self, predicate: Predicate) -> Order | None:
        results = await self.find(predicate, limit=1)
        return results[0] if results else None

    async def find(self, predicate: Predicate, *, limit: int, offset: int = 0) -> list[Order]:
        where_sql, params = compile_sql(predicate, ORDER_COLUMNS)
        query = (
            f"SELECT * FROM orders WHERE {where_sql} "
            "ORDER BY created_at DESC, order_id LIMIT %s OFFSET %s"
        )
        async with acquire_connection(self.db_pool) as conn:
            cursor = await conn.execute(query, (*params, limit, offset))
            rows = await cursor.fetchall()
        return [Order.from_row(row) for row in rows or []]

    async def count(self, predicate: Predicate) -> int:
        where_sql, params = compile_sql(predicate, ORDER_COLUMNS)
        async with acquire_connection(self.db_pool) as conn:
            cursor = await conn.execute(
                f"SELECT COUNT(*) AS total FROM orders WHERE {where_sql}", tuple(params)
            )
            row = await cursor.fetchone()
        return int(row["total"]) if row else 0

    async def summarize(self, predicate: Predicate) -> OrderSummary:
        """Count and amount totals per status for the matching orders."""
        where_sql, params = compile_sql(predicate, ORDER_COLUMNS)
        async with acquire_connection(self.db_pool) as conn:
            cursor = await conn.execute(
                f"""
                SELECT status, COUNT(*) AS order_count, COALESCE(SUM(amount), 0) AS total_amount
                FROM orders
                WHERE {where_sql}
                GROUP BY status
                """,
                tuple(params),
            )
            rows = await cursor.fetchall()

        status_counts: dict[str, int] = {}
        status_amounts: dict[str, Decimal] = {}
        for row in rows or []:
            status_counts[row["status"]] = int(row["order_count"])
            status_amounts[row["status"]] = Decimal(str(row["total_amount"]))
        return OrderSummary(
            count=sum(status_counts.values()),
            total_amount=sum(status_amounts.values(), Decimal("0")),
            status_counts=status_counts,
            status_amounts=status_amounts,
        )

    async def compare_and_set(
        self,
        order_id: str,
        expected: Iterable[OrderStatus],
        changes: Mapping[str, Any],
        *,
        not_expired_at: datetime | None = None,
    ) -> Order | None:
        """Apply ``changes`` only if the active order is in an ``expected`` status.

        Args:
            order_id: Order to update
            expected: Statuses the order must currently have
            changes: Column -> value; keys must be in ``TRANSITION_COLUMNS``
            not_expired_at: When set, additionally require ``expires_at >= not_expired_at``

        Returns:
            Updated order, or None if the condition did not hold
        """
        unknown = set(changes) - TRANSITION_COLUMNS
        if unknown or not changes:
            raise ValueError(f"Unsupported transition columns: {sorted(unknown)}")

        columns = sorted(changes)
        assignments = ", ".join(f"{column} = %s" for column in columns)
        params: list[Any] = [_column_value(changes[column]) for column in columns]
        params.append(order_id)
        params.append([status.value for status in expected])

        expiry_clause = ""
        if not_expired_at is not None:
            expiry_clause = " AND expires_at >= %s"
            params.append(not_expired_at)

        query = (
            f"UPDATE orders SET {assignments}, updated_at = NOW() "
            "WHERE order_id = %s AND is_active AND status = ANY(%s)"
            f"{expiry_clause} RETURNING *"
        )
        async with acquire_connection(self.db_pool) as conn:
            cursor = await conn.execute(query, tuple(params))
            row = await cursor.fetchone()
        return Order.from_row(row) if row else None

    async def soft_delete(self, order_id: str, *, actor_id: str) -> Order | None:
        """Deactivate an order; returns None if it was not active."""
        async with acquire_connection(self.db_pool) as conn:
            cursor = await conn.execute(
                """
                UPDATE orders
                SET is_active = FALSE,
                    deleted_at = NOW(),
                    deleted_by = %s,
                    updated_at = NOW()
                WHERE order_id = %s AND is_active
                RETURNING *
                """,
                (actor_id, order_id),
            )
            row = await cursor.fetchone()
        return Order.from_row(row) if row else None


__all__ = ["ORDER_COLUMNS", "TRANSITION_COLUMNS", "OrderStore", "PostgresOrderStore"]
