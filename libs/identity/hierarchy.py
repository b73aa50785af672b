"""Structural invariants of the owner -> merchant -> member hierarchy.

Every write path (create and update) calls ``validate_and_prepare`` inside
the transaction that reads the parent row and writes the identity, so the
invariant holds no matter which code path performs the write:

- a member has a parent, and that parent is an active merchant
- a merchant or owner has no parent
- a merchant with active members keeps its role
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any, assert_never

from libs.common.exceptions import InvalidHierarchyError, ValidationError
from libs.identity.models import IdentityCandidate, PreparedIdentity
from libs.identity.passwords import hash_password
from libs.rbac.permissions import Role

HANDLE_PATTERN = re.compile(r"^[A-Za-z0-9_.@\-]{3,64}$")
MIN_SECRET_LENGTH = 8
MAX_SECRET_LENGTH = 256


def validate_handle(handle: str) -> str:
    cleaned = (handle or "").strip()
    if not HANDLE_PATTERN.match(cleaned):
        raise ValidationError(
            "Handle must be 3-64 characters of letters, digits, '_', '.', '-' or '@'"
        )
    return cleaned


def validate_secret(secret: str) -> str:
    if not isinstance(secret, str) or not MIN_SECRET_LENGTH <= len(secret) <= MAX_SECRET_LENGTH:
        raise ValidationError(
            f"Secret must be between {MIN_SECRET_LENGTH} and {MAX_SECRET_LENGTH} characters"
        )
    return secret


def validate_identity_write(
    candidate: IdentityCandidate,
    parent: Any | None,
    *,
    previous_role: Role | None = None,
    has_members: bool = False,
) -> None:
    """Check the role/parent invariant for a candidate write.

    Args:
        candidate: Desired post-write state
        parent: Stored record for ``candidate.parent_id`` (None if absent)
        previous_role: Role before the write (None for creates)
        has_members: Whether the identity currently has active members

    Raises:
        InvalidHierarchyError: If the write would break the hierarchy
    """
    match candidate.role:
        case Role.MEMBER:
            if not candidate.parent_id:
                raise InvalidHierarchyError("Members must have a merchant parent")
            if parent is None or not parent.is_active:
                raise InvalidHierarchyError("Parent merchant does not exist")
            if parent.role is not Role.MERCHANT:
                raise InvalidHierarchyError("Member parent must be a merchant")
            if candidate.id is not None and parent.id == candidate.id:
                raise InvalidHierarchyError("An identity cannot be its own parent")
        case Role.MERCHANT | Role.OWNER:
            if candidate.parent_id is not None:
                raise InvalidHierarchyError("Merchants and owners cannot have a parent")
        case _:
            assert_never(candidate.role)

    if previous_role is Role.MERCHANT and candidate.role is not Role.MERCHANT and has_members:
        raise InvalidHierarchyError("Merchant still has active members")


def validate_and_prepare(
    candidate: IdentityCandidate,
    parent: Any | None,
    *,
    previous_role: Role | None = None,
    has_members: bool = False,
    hasher: Callable[[str], str] = hash_password,
) -> PreparedIdentity:
    """Validate a candidate and hash its secret when a new one is supplied."""
    handle = validate_handle(candidate.handle)
    validate_identity_write(
        candidate, parent, previous_role=previous_role, has_members=has_members
    )
    password_hash = None
    if candidate.secret is not None:
        password_hash = hasher(validate_secret(candidate.secret))
    return PreparedIdentity(
        handle=handle,
        role=candidate.role,
        parent_id=candidate.parent_id,
        is_active=candidate.is_active,
        password_hash=password_hash,
    )


__all__ = [
    "validate_handle",
    "validate_secret",
    "validate_identity_write",
    "validate_and_prepare",
]
