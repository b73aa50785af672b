"""RBAC diagnostics endpoints.

Mounted always, answered only when ``settings.rbac_debug`` is set; otherwise
every path returns 404 as if it did not exist. Handlers are thin wrappers
around the pure functions in ``libs.rbac.diagnostics``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query

from apps.payment_gateway.app_context import AppContext
from apps.payment_gateway.dependencies import get_context, get_principal
from apps.payment_gateway.schemas import ProbeRequest
from libs.common.exceptions import InsufficientPrivilegeError, NotFoundError, ValidationError
from libs.gateway_auth import Principal
from libs.rbac.diagnostics import (
    audit_relationships,
    describe_capabilities,
    explain_access,
    explain_filters,
    role_matrix,
    run_permission_probes,
)
from libs.rbac.permissions import Role
from libs.rbac.scoping import ACTIVE
from libs.security.sanitization import sanitize_identifier, sanitize_order_id

logger = logging.getLogger(__name__)

AUDIT_LIMIT = 5000


def require_debug_enabled(ctx: AppContext = Depends(get_context)) -> None:
    if not ctx.settings.rbac_debug:
        raise NotFoundError("Not found")


router = APIRouter(
    prefix="/api/v1/debug",
    tags=["debug"],
    dependencies=[Depends(require_debug_enabled)],
)


def _require_owner(principal: Principal, action: str) -> None:
    if principal.role is not Role.OWNER:
        raise InsufficientPrivilegeError(f"Owner access required for {action}")


@router.get("/capabilities")
async def capabilities(principal: Principal = Depends(get_principal)) -> dict[str, Any]:
    return describe_capabilities(principal)


@router.get("/roles")
async def roles() -> dict[str, Any]:
    return role_matrix()


@router.get("/filters")
async def filters(principal: Principal = Depends(get_principal)) -> dict[str, Any]:
    return explain_filters(principal)


@router.post("/probe")
async def probe(
    body: ProbeRequest,
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> dict[str, Any]:
    """Evaluate permission functions against hypothetical or concrete targets.

    A ``target_id`` is resolved through the caller's own identity scope, so
    probing cannot reveal identities the caller could not read anyway.
    """
    target = None
    if body.target_id is not None:
        target = await ctx.identity_service.get_identity(principal, body.target_id)
    return run_permission_probes(
        principal, target_role=body.target_role, target=target, action=body.action
    )


@router.get("/relationships")
async def relationships(
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> dict[str, Any]:
    """Owner-only integrity audit of the hierarchy and order attribution."""
    _require_owner(principal, "relationship audit")
    identities = await ctx.identities.find(ACTIVE, limit=AUDIT_LIMIT)
    orders = await ctx.orders.find(ACTIVE, limit=AUDIT_LIMIT)
    report = audit_relationships(identities, orders)
    logger.info(
        "relationship_audit",
        extra={
            "identities_checked": report["identities_checked"],
            "orders_checked": report["orders_checked"],
            "issue_count": len(report["issues"]),
        },
    )
    report["truncated"] = len(identities) >= AUDIT_LIMIT or len(orders) >= AUDIT_LIMIT
    return report


@router.get("/access")
async def access(
    kind: str = Query(..., pattern="^(identity|order)$"),
    record_id: str = Query(..., max_length=64),
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> dict[str, Any]:
    """Owner-only: explain why a record is or is not visible to the owner scope."""
    _require_owner(principal, "access explanation")
    record: Any
    if kind == "identity":
        identity_id = sanitize_identifier(record_id)
        if identity_id is None:
            raise ValidationError("Malformed identity id")
        record = await ctx.identities.get(identity_id)
    else:
        order_id = sanitize_order_id(record_id)
        if order_id is None:
            raise ValidationError("Malformed order id")
        record = await ctx.orders.get(order_id)
    if record is None:
        raise NotFoundError(f"{kind.capitalize()} not found")
    return explain_access(principal, record, kind)
