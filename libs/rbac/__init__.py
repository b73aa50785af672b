"""Role-based access control: roles, permission decisions and row scoping."""

from libs.rbac.permissions import (
    ROLE_LEVELS,
    Role,
    can_change_role,
    can_create_role,
    can_delete_user,
    can_invalidate_order,
    can_manage_identity,
    can_manage_order,
    can_verify_orders,
    can_view_user,
    is_role_above,
    is_role_at_or_above,
    normalize_role,
    roles_at_or_below,
)
from libs.rbac.scoping import identity_filter, order_filter, scoped

__all__ = [
    "Role",
    "ROLE_LEVELS",
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
    "identity_filter",
    "order_filter",
    "scoped",
]
