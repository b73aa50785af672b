"""Identity persistence.

``IdentityStore`` is the interface the service depends on;
``PostgresIdentityStore`` implements it over psycopg3. Reads take a scoping
predicate (see ``libs.rbac.scoping``) that is compiled against an
allow-listed column map, so callers can only narrow what they read.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from typing import Any, Protocol

from psycopg.errors import UniqueViolation

from libs.common.db import acquire_connection, maybe_transaction
from libs.common.exceptions import DuplicateHandleError, NotFoundError
from libs.identity.models import Identity, IdentityCandidate, IdentityChanges, PreparedIdentity
from libs.rbac.permissions import Role
from libs.rbac.predicates import Predicate, compile_sql

logger = logging.getLogger(__name__)

IDENTITY_COLUMNS: dict[str, str] = {
    "id": "id",
    "handle": "handle",
    "role": "role",
    "parent": "parent_id",
    "active": "is_active",
    "created_by": "created_by",
    "created_at": "created_at",
}

# prepare(candidate, parent, previous_role=..., has_members=...) -> PreparedIdentity
PrepareFn = Callable[..., PreparedIdentity]


class IdentityStore(Protocol):
    async def get(self, identity_id: str) -> Identity | None: ...

    async def get_by_handle(self, handle: str) -> Identity | None: ...

    async def find_one(self, predicate: Predicate) -> Identity | None: ...

    async def find(
        self, predicate: Predicate, *, limit: int, offset: int = 0
    ) -> list[Identity]: ...

    async def count(self, predicate: Predicate) -> int: ...

    async def insert(
        self, candidate: IdentityCandidate, *, created_by: str | None, prepare: PrepareFn
    ) -> Identity: ...

    async def update(
        self, identity_id: str, changes: IdentityChanges, *, actor_id: str, prepare: PrepareFn
    ) -> Identity: ...

    async def deactivate(self, identity_id: str, *, actor_id: str) -> Identity | None: ...


class PostgresIdentityStore:
    """psycopg3 implementation of ``IdentityStore``."""

    def __init__(self, db_pool: Any) -> None:
        self.db_pool = db_pool

    async def get(self, identity_id: str) -> Identity | None:
        async with acquire_connection(self.db_pool) as conn:
            cursor = await conn.execute("SELECT * FROM identities WHERE id = %s", (identity_id,))
            row = await cursor.fetchone()
        return Identity.from_row(row) if row else None

    async def get_by_handle(self, handle: str) -> Identity | None:
        async with acquire_connection(self.db_pool) as conn:
            cursor = await conn.execute("SELECT * FROM identities WHERE handle = %s", (handle,))
            row = await cursor.fetchone()
        return Identity.from_row(row) if row else None

    async def find_one(self, predicate: Predicate) -> Identity | None:
        results = await self.find(predicate, limit=1)
        return results[0] if results else None

    async def find(self, predicate: Predicate, *, limit: int, offset: int = 0) -> list[Identity]:
        where_sql, params = compile_sql(predicate, IDENTITY_COLUMNS)
        query = (
            f"SELECT * FROM identities WHERE {where_sql} "
            "ORDER BY created_at DESC, id LIMIT %s OFFSET %s"
        )
        async with acquire_connection(self.db_pool) as conn:
            cursor = await conn.execute(query, (*params, limit, offset))
            rows = await cursor.fetchall()
        return [Identity.from_row(row) for row in rows or []]

    async def count(self, predicate: Predicate) -> int:
        where_sql, params = compile_sql(predicate, IDENTITY_COLUMNS)
        async with acquire_connection(self.db_pool) as conn:
            cursor = await conn.execute(
                f"SELECT COUNT(*) AS total FROM identities WHERE {where_sql}", tuple(params)
            )
            row = await cursor.fetchone()
        return int(row["total"]) if row else 0

    async def _lock_parent(self, conn: Any, parent_id: str | None) -> Identity | None:
        if not parent_id:
            return None
        cursor = await conn.execute(
            "SELECT * FROM identities WHERE id = %s FOR SHARE", (parent_id,)
        )
        row = await cursor.fetchone()
        return Identity.from_row(row) if row else None

    async def insert(
        self, candidate: IdentityCandidate, *, created_by: str | None, prepare: PrepareFn
    ) -> Identity:
        """Validate against the locked parent row and insert, in one transaction.

        Raises:
            InvalidHierarchyError / ValidationError: From ``prepare``
            DuplicateHandleError: Handle already taken
        """
        identity_id = str(uuid.uuid4())
        async with acquire_connection(self.db_pool) as conn:
            async with maybe_transaction(conn):
                parent = await self._lock_parent(conn, candidate.parent_id)
                prepared = await asyncio.to_thread(
                    prepare, candidate, parent, previous_role=None, has_members=False
                )
                try:
                    cursor = await conn.execute(
                        """
                        INSERT INTO identities (
                            id, handle, password_hash, role, parent_id, is_active,
                            created_by, created_at, updated_at
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s, NOW(), NOW())
                        RETURNING *
                        """,
                        (
                            identity_id,
                            prepared.handle,
                            prepared.password_hash,
                            prepared.role.value,
                            prepared.parent_id,
                            prepared.is_active,
                            created_by,
                        ),
                    )
                except UniqueViolation as exc:
                    raise DuplicateHandleError(
                        "Handle already exists", details={"handle": prepared.handle}
                    ) from exc
                row = await cursor.fetchone()
        return Identity.from_row(row)

    async def update(
        self, identity_id: str, changes: IdentityChanges, *, actor_id: str, prepare: PrepareFn
    ) -> Identity:
        """Apply a partial update under row locks on the target and its parent.

        Raises:
            NotFoundError: Target missing or inactive
            InvalidHierarchyError / ValidationError: From ``prepare``
            DuplicateHandleError: Handle already taken
        """
        async with acquire_connection(self.db_pool) as conn:
            async with maybe_transaction(conn):
                cursor = await conn.execute(
                    "SELECT * FROM identities WHERE id = %s AND is_active FOR UPDATE",
                    (identity_id,),
                )
                row = await cursor.fetchone()
                if not row:
                    raise NotFoundError("User not found")
                current = Identity.from_row(row)

                candidate = changes.apply(current)
                parent = await self._lock_parent(conn, candidate.parent_id)
                has_members = False
                if current.role is Role.MERCHANT:
                    cursor = await conn.execute(
                        "SELECT COUNT(*) AS total FROM identities "
                        "WHERE parent_id = %s AND is_active",
                        (identity_id,),
                    )
                    count_row = await cursor.fetchone()
                    has_members = bool(count_row and int(count_row["total"]) > 0)

                prepared = await asyncio.to_thread(
                    prepare,
                    candidate,
                    parent,
                    previous_role=current.role,
                    has_members=has_members,
                )
                deactivating = current.is_active and not prepared.is_active
                try:
                    cursor = await conn.execute(
                        """
                        UPDATE identities
                        SET handle = %s,
                            role = %s,
                            parent_id = %s,
                            is_active = %s,
                            password_hash = COALESCE(%s, password_hash),
                            deleted_at = CASE WHEN %s THEN NOW() ELSE deleted_at END,
                            deleted_by = CASE WHEN %s THEN %s ELSE deleted_by END,
                            updated_at = NOW()
                        WHERE id = %s
                        RETURNING *
                        """,
                        (
                            prepared.handle,
                            prepared.role.value,
                            prepared.parent_id,
                            prepared.is_active,
                            prepared.password_hash,
                            deactivating,
                            deactivating,
                            actor_id,
                            identity_id,
                        ),
                    )
                except UniqueViolation as exc:
                    raise DuplicateHandleError(
                        "Handle already exists", details={"handle": prepared.handle}
                    ) from exc
                updated = await cursor.fetchone()
        return Identity.from_row(updated)

    async def deactivate(self, identity_id: str, *, actor_id: str) -> Identity | None:
        """Soft-delete; returns None if the identity was not active."""
        async with acquire_connection(self.db_pool) as conn:
            cursor = await conn.execute(
                """
                UPDATE identities
                SET is_active = FALSE,
                    deleted_at = NOW(),
                    deleted_by = %s,
                    updated_at = NOW()
                WHERE id = %s AND is_active
                RETURNING *
                """,
                (actor_id, identity_id),
            )
            row = await cursor.fetchone()
        return Identity.from_row(row) if row else None


__all__ = ["IDENTITY_COLUMNS", "IdentityStore", "PostgresIdentityStore", "PrepareFn"]
