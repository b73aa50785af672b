"""Row-level scoping for identities and orders.

Scopes are predicates over logical fields; they are intersected with any
caller-supplied terms through ``scoped`` and never replaced by them. Store
implementations translate them to SQL with their own column allow-lists.

Identity logical fields: ``id``, ``handle``, ``role``, ``parent``, ``active``,
``created_by``, ``created_at``.

Order logical fields: ``order_id``, ``user``, ``merchant``, ``status``,
``active``, ``amount``, ``created_by``, ``created_at``, ``expires_at``.
"""

from __future__ import annotations

from typing import Any, assert_never

from libs.rbac.permissions import Role, normalize_role
from libs.rbac.predicates import NOTHING, Predicate, all_of, any_of, eq

IDENTITY_FIELDS = frozenset(
    {"id", "handle", "role", "parent", "active", "created_by", "created_at"}
)
ORDER_FIELDS = frozenset(
    {
        "order_id",
        "user",
        "merchant",
        "status",
        "active",
        "amount",
        "created_by",
        "created_at",
        "expires_at",
    }
)

ACTIVE = eq("active", True)


def identity_filter(actor_role: Any, actor_id: str) -> Predicate:
    """Identities visible to the actor.

    owner: every active identity; merchant: itself and its members;
    member: itself only. Unknown roles see nothing.
    """
    role = normalize_role(actor_role)
    if role is None or not actor_id:
        return NOTHING
    match role:
        case Role.OWNER:
            return ACTIVE
        case Role.MERCHANT:
            return all_of(ACTIVE, any_of(eq("id", actor_id), eq("parent", actor_id)))
        case Role.MEMBER:
            return all_of(ACTIVE, eq("id", actor_id))
        case _:
            assert_never(role)


def order_filter(actor_role: Any, actor_id: str) -> Predicate:
    """Orders visible to the actor.

    owner: every active order; merchant: orders attributed to it;
    member: orders it owns. Unknown roles see nothing.
    """
    role = normalize_role(actor_role)
    if role is None or not actor_id:
        return NOTHING
    match role:
        case Role.OWNER:
            return ACTIVE
        case Role.MERCHANT:
            return all_of(ACTIVE, eq("merchant", actor_id))
        case Role.MEMBER:
            return all_of(ACTIVE, eq("user", actor_id))
        case _:
            assert_never(role)


def scoped(scope: Predicate, *terms: Predicate) -> Predicate:
    """Intersect caller terms with a scope.

    The scope is always the first conjunct, so an empty or permissive term
    list can only narrow the result.
    """
    return all_of(scope, *terms)


__all__ = [
    "ACTIVE",
    "IDENTITY_FIELDS",
    "ORDER_FIELDS",
    "identity_filter",
    "order_filter",
    "scoped",
]
