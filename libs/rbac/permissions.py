"""Role model and permission decisions for the payment gateway.

Default-deny: any unknown role value is normalised to ``None`` and every
decision function returns False for it. Every function here is pure and
total over the closed ``Role`` enum; adding a role without handling it is a
type error (``assert_never``).

Hierarchy (highest first)::

    owner     platform operator, sees and manages everything
    merchant  manages its own members and the orders attributed to it
    member    manages only itself and its own orders
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, assert_never


class Role(str, Enum):
    """Supported principal roles."""

    OWNER = "owner"
    MERCHANT = "merchant"
    MEMBER = "member"


ROLE_LEVELS: dict[Role, int] = {
    Role.MEMBER: 1,
    Role.MERCHANT: 2,
    Role.OWNER: 3,
}


class Subject(Protocol):
    """Anything carrying the fields the identity checks need."""

    id: str
    role: Any
    parent_id: str | None
    is_active: bool


def normalize_role(role_value: Any) -> Role | None:
    """Convert arbitrary role value to Role enum or None if unknown."""

    if isinstance(role_value, Role):
        return role_value
    if isinstance(role_value, str):
        try:
            return Role(role_value)
        except ValueError:
            return None
    return None


def is_role_at_or_above(role: Any, minimum: Role) -> bool:
    normalized = normalize_role(role)
    if normalized is None:
        return False
    return ROLE_LEVELS[normalized] >= ROLE_LEVELS[minimum]


def is_role_above(role: Any, other: Any) -> bool:
    """True when ``role`` is strictly higher in the hierarchy than ``other``."""
    left = normalize_role(role)
    right = normalize_role(other)
    if left is None or right is None:
        return False
    return ROLE_LEVELS[left] > ROLE_LEVELS[right]


def roles_at_or_below(role: Any) -> list[Role]:
    """Roles whose level does not exceed ``role`` (lowest first)."""
    normalized = normalize_role(role)
    if normalized is None:
        return []
    level = ROLE_LEVELS[normalized]
    return sorted((r for r in Role if ROLE_LEVELS[r] <= level), key=ROLE_LEVELS.__getitem__)


def can_create_role(actor_role: Any, target_role: Any) -> bool:
    """Owner creates any role; merchant creates members only; member creates nothing."""
    actor = normalize_role(actor_role)
    target = normalize_role(target_role)
    if actor is None or target is None:
        return False
    match actor:
        case Role.OWNER:
            return True
        case Role.MERCHANT:
            return target is Role.MEMBER
        case Role.MEMBER:
            return False
        case _:
            assert_never(actor)


def can_delete_user(actor_role: Any, target_role: Any, is_self: bool) -> bool:
    """Self-deletion is forbidden except for the owner."""
    actor = normalize_role(actor_role)
    target = normalize_role(target_role)
    if actor is None or target is None:
        return False
    match actor:
        case Role.OWNER:
            return True
        case Role.MERCHANT:
            return not is_self and target is Role.MEMBER
        case Role.MEMBER:
            return False
        case _:
            assert_never(actor)


def can_view_user(actor_role: Any, target_role: Any, is_same_parent: bool, is_self: bool) -> bool:
    """Visibility of one identity to another.

    ``is_same_parent`` is True when the target's parent is the actor.
    """
    actor = normalize_role(actor_role)
    target = normalize_role(target_role)
    if actor is None or target is None:
        return False
    if is_self:
        return True
    match actor:
        case Role.OWNER:
            return True
        case Role.MERCHANT:
            return target is Role.MEMBER and is_same_parent
        case Role.MEMBER:
            return False
        case _:
            assert_never(actor)


def can_manage_identity(actor: Subject, target: Subject) -> bool:
    """Whether ``actor`` may mutate ``target``.

    Inactive actors never manage anything and inactive targets are never
    manageable, not even by the owner.
    """
    actor_role = normalize_role(actor.role)
    if actor_role is None or not actor.is_active or not target.is_active:
        return False
    match actor_role:
        case Role.OWNER:
            return True
        case Role.MERCHANT:
            return normalize_role(target.role) is Role.MEMBER and target.parent_id == actor.id
        case Role.MEMBER:
            return target.id == actor.id
        case _:
            assert_never(actor_role)


def can_change_role(actor_role: Any, from_role: Any, to_role: Any) -> bool:
    """Only the owner changes roles, and an owner is never demoted."""
    actor = normalize_role(actor_role)
    current = normalize_role(from_role)
    desired = normalize_role(to_role)
    if actor is None or current is None or desired is None:
        return False
    if actor is not Role.OWNER:
        return False
    if current is Role.OWNER and desired is not Role.OWNER:
        return False
    return True


def can_manage_order(
    actor_role: Any, order_owner_id: str | None, order_merchant_id: str | None, actor_id: str
) -> bool:
    """Owner manages every order; merchant its attributed orders; member its own."""
    actor = normalize_role(actor_role)
    if actor is None:
        return False
    match actor:
        case Role.OWNER:
            return True
        case Role.MERCHANT:
            return order_merchant_id is not None and order_merchant_id == actor_id
        case Role.MEMBER:
            return order_owner_id is not None and order_owner_id == actor_id
        case _:
            assert_never(actor)


def can_invalidate_order(actor_role: Any) -> bool:
    return normalize_role(actor_role) is Role.OWNER


def can_verify_orders(actor_role: Any) -> bool:
    """Coarse guard for the verify route: merchant or above."""
    return is_role_at_or_above(actor_role, Role.MERCHANT)


__all__ = [
    "Role",
    "ROLE_LEVELS",
    "Subject",
    "normalize_role",
    "is_role_at_or_above",
    "is_role_above",
    "roles_at_or_below",
    "can_create_role",
    "can_delete_user",
    "can_view_user",
    "can_manage_identity",
    "can_change_role",
    "can_manage_order",
    "can_invalidate_order",
    "can_verify_orders",
]
