"""Identity records and write-side value objects."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from libs.rbac.permissions import Role


@dataclass
class Identity:
    """Stored account. ``parent_id`` is a weak reference (id only)."""

    id: str
    handle: str
    password_hash: str
    role: Role
    parent_id: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    created_by: str | None = None
    deleted_at: datetime | None = None
    deleted_by: str | None = None

    def as_record(self) -> dict[str, Any]:
        """Logical-field view used by predicate evaluation."""
        return {
            "id": self.id,
            "handle": self.handle,
            "role": self.role.value,
            "parent": self.parent_id,
            "active": self.is_active,
            "created_by": self.created_by,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Identity:
        """Build from a ``dict_row`` result of the ``identities`` table."""
        parent_id = row.get("parent_id")
        created_by = row.get("created_by")
        return cls(
            id=str(row["id"]),
            handle=row["handle"],
            password_hash=row["password_hash"],
            role=Role(row["role"]),
            parent_id=str(parent_id) if parent_id is not None else None,
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            created_by=str(created_by) if created_by is not None else None,
            deleted_at=row.get("deleted_at"),
            deleted_by=row.get("deleted_by"),
        )


@dataclass(frozen=True)
class IdentityCandidate:
    """Desired state of an identity after a write.

    ``secret`` is set only when a new secret is being supplied.
    """

    handle: str
    role: Role
    parent_id: str | None = None
    secret: str | None = None
    is_active: bool = True
    id: str | None = None


@dataclass(frozen=True)
class IdentityChanges:
    """Partial update. ``parent_id`` is applied only when ``set_parent`` is True."""

    handle: str | None = None
    secret: str | None = None
    role: Role | None = None
    is_active: bool | None = None
    parent_id: str | None = None
    set_parent: bool = False

    def is_empty(self) -> bool:
        return (
            self.handle is None
            and self.secret is None
            and self.role is None
            and self.is_active is None
            and not self.set_parent
        )

    def apply(self, current: Identity) -> IdentityCandidate:
        candidate = IdentityCandidate(
            id=current.id,
            handle=current.handle,
            role=current.role,
            parent_id=current.parent_id,
            is_active=current.is_active,
        )
        if self.handle is not None:
            candidate = replace(candidate, handle=self.handle)
        if self.secret is not None:
            candidate = replace(candidate, secret=self.secret)
        if self.role is not None:
            candidate = replace(candidate, role=self.role)
        if self.is_active is not None:
            candidate = replace(candidate, is_active=self.is_active)
        if self.set_parent:
            candidate = replace(candidate, parent_id=self.parent_id)
        return candidate


@dataclass(frozen=True)
class PreparedIdentity:
    """Validated candidate, ready to persist.

    ``password_hash`` is None when the secret is unchanged.
    """

    handle: str
    role: Role
    parent_id: str | None
    is_active: bool
    password_hash: str | None = None


__all__ = ["Identity", "IdentityCandidate", "IdentityChanges", "PreparedIdentity"]
