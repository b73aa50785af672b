"""RBAC diagnostics.

``DiagnosticsContext`` is passed explicitly into services; when disabled,
its logging methods do nothing. The remaining functions are pure and
operate on principals, records and predicates only, so the debug endpoints
are thin wrappers around them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from libs.common.exceptions import ValidationError
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
    normalize_role,
)
from libs.rbac.predicates import describe, matches
from libs.rbac.scoping import identity_filter, order_filter

PROBE_ACTIONS = frozenset({"create", "delete", "view", "change_role", "manage"})


@dataclass
class DiagnosticsContext:
    """Explicit switch and sink for RBAC decision logging."""

    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))
    enabled: bool = False

    def log_permission_check(
        self,
        principal: Any,
        action: str,
        allowed: bool,
        reason: str | None = None,
        **context: Any,
    ) -> None:
        if not self.enabled:
            return
        self.logger.debug(
            "permission_check",
            extra={
                "context": {
                    "principal_id": getattr(principal, "id", None),
                    "role": _role_value(getattr(principal, "role", None)),
                    "action": action,
                    "allowed": allowed,
                    "reason": reason,
                    **context,
                }
            },
        )

    def log_data_filter(
        self, principal: Any, resource: str, predicate: Any, result_count: int | None = None
    ) -> None:
        if not self.enabled:
            return
        self.logger.debug(
            "data_filter_applied",
            extra={
                "context": {
                    "principal_id": getattr(principal, "id", None),
                    "resource": resource,
                    "filter": describe(predicate),
                    "result_count": result_count,
                }
            },
        )


def _role_value(role: Any) -> str | None:
    normalized = normalize_role(role)
    return normalized.value if normalized else None


def describe_capabilities(principal: Any) -> dict[str, Any]:
    """Summary of what the principal's role allows."""
    role = normalize_role(principal.role)
    return {
        "principal_id": principal.id,
        "role": _role_value(role),
        "level": ROLE_LEVELS.get(role, 0) if role else 0,
        "can_create": [r.value for r in Role if can_create_role(role, r)],
        "can_delete": [r.value for r in Role if can_delete_user(role, r, is_self=False)],
        "can_invalidate_orders": can_invalidate_order(role),
        "can_verify_orders": can_verify_orders(role),
        "can_change_roles": role is Role.OWNER,
        "can_view_all_identities": role is Role.OWNER,
        "can_view_all_orders": role is Role.OWNER,
    }


def role_matrix() -> dict[str, Any]:
    """Static role hierarchy and per-role capabilities."""
    return {
        "hierarchy": {
            role.value: {
                "level": ROLE_LEVELS[role],
                "can_create": [r.value for r in Role if can_create_role(role, r)],
                "can_delete": [r.value for r in Role if can_delete_user(role, r, is_self=False)],
                "can_invalidate_orders": can_invalidate_order(role),
                "can_verify_orders": can_verify_orders(role),
            }
            for role in sorted(Role, key=ROLE_LEVELS.__getitem__, reverse=True)
        }
    }


def explain_filters(principal: Any) -> dict[str, Any]:
    """Render the identity and order scopes the principal reads through."""
    return {
        "principal_id": principal.id,
        "role": _role_value(principal.role),
        "identities": describe(identity_filter(principal.role, principal.id)),
        "orders": describe(order_filter(principal.role, principal.id)),
    }


def run_permission_probes(
    principal: Any,
    target_role: Any = None,
    target: Any = None,
    action: str | None = None,
) -> dict[str, Any]:
    """Evaluate permission functions for the principal against hypothetical targets.

    Args:
        principal: Acting principal
        target_role: Role to probe (defaults to every role)
        target: Optional concrete identity for identity-level checks
        action: Restrict output to one of ``PROBE_ACTIONS``

    Raises:
        ValidationError: Unknown action or target role
    """
    if action is not None and action not in PROBE_ACTIONS:
        raise ValidationError(f"Unknown probe action: {action}")

    if target_role is None:
        roles = list(Role)
    else:
        normalized = normalize_role(target_role)
        if normalized is None:
            raise ValidationError(f"Unknown role: {target_role}")
        roles = [normalized]

    actor_role = principal.role
    results: dict[str, Any] = {}
    for role in roles:
        probe: dict[str, Any] = {
            "create": can_create_role(actor_role, role),
            "delete": can_delete_user(actor_role, role, is_self=False),
            "view": can_view_user(actor_role, role, is_same_parent=True, is_self=False),
            "change_role": {r.value: can_change_role(actor_role, role, r) for r in Role},
        }
        if action is None:
            results[role.value] = probe
        else:
            results[role.value] = {action: probe[action]} if action in probe else {}

    output: dict[str, Any] = {
        "principal_id": principal.id,
        "role": _role_value(actor_role),
        "roles": results,
    }
    if target is not None:
        is_self = target.id == principal.id
        target_checks = {
            "manage": can_manage_identity(principal, target),
            "delete": can_delete_user(actor_role, target.role, is_self=is_self),
            "view": can_view_user(
                actor_role,
                target.role,
                is_same_parent=target.parent_id == principal.id,
                is_self=is_self,
            ),
        }
        if action is not None:
            target_checks = {k: v for k, v in target_checks.items() if k == action}
        output["target"] = {"id": target.id, "role": _role_value(target.role), **target_checks}
    return output


def audit_relationships(identities: Iterable[Any], orders: Iterable[Any]) -> dict[str, Any]:
    """Find records that break the hierarchy or order attribution rules.

    Reports members without an active merchant parent, merchants/owners
    with a parent, and orders whose merchant does not match the one derived
    from their owning identity.
    """
    by_id: Mapping[str, Any] = {identity.id: identity for identity in identities}
    issues: list[dict[str, Any]] = []

    for identity in by_id.values():
        role = normalize_role(identity.role)
        if role is Role.MEMBER:
            parent = by_id.get(identity.parent_id) if identity.parent_id else None
            if parent is None:
                issues.append(
                    {"kind": "member_without_parent", "identity_id": identity.id}
                )
            elif normalize_role(parent.role) is not Role.MERCHANT:
                issues.append(
                    {
                        "kind": "parent_not_merchant",
                        "identity_id": identity.id,
                        "parent_id": parent.id,
                    }
                )
        elif identity.parent_id is not None:
            issues.append({"kind": "unexpected_parent", "identity_id": identity.id})

    order_count = 0
    for order in orders:
        order_count += 1
        owner = by_id.get(order.user_id)
        if owner is None:
            issues.append({"kind": "order_owner_missing", "order_id": order.order_id})
            continue
        owner_role = normalize_role(owner.role)
        if owner_role is Role.MEMBER:
            expected = owner.parent_id
        elif owner_role is Role.MERCHANT:
            expected = owner.id
        else:
            expected = None
        if expected is None or order.merchant_id != expected:
            issues.append(
                {
                    "kind": "order_merchant_mismatch",
                    "order_id": order.order_id,
                    "merchant_id": order.merchant_id,
                    "expected_merchant_id": expected,
                }
            )

    return {
        "identities_checked": len(by_id),
        "orders_checked": order_count,
        "issues": issues,
        "healthy": not issues,
    }


def explain_access(principal: Any, record: Any, kind: str) -> dict[str, Any]:
    """Explain whether ``record`` is visible and manageable to the principal.

    Args:
        kind: ``"identity"`` or ``"order"``

    Raises:
        ValidationError: Unknown kind
    """
    if kind == "identity":
        scope = identity_filter(principal.role, principal.id)
        manageable = can_manage_identity(principal, record)
    elif kind == "order":
        scope = order_filter(principal.role, principal.id)
        manageable = can_manage_order(
            principal.role, record.user_id, record.merchant_id, principal.id
        )
    else:
        raise ValidationError(f"Unknown record kind: {kind}")

    return {
        "kind": kind,
        "visible": matches(scope, record.as_record()),
        "manageable": manageable,
        "scope": describe(scope),
    }


__all__ = [
    "PROBE_ACTIONS",
    "DiagnosticsContext",
    "describe_capabilities",
    "role_matrix",
    "explain_filters",
    "run_permission_probes",
    "audit_relationships",
    "explain_access",
]
