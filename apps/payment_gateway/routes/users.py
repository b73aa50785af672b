"""Identity management endpoints.

Every handler delegates to ``IdentityService``; out-of-scope targets come
back as 404 exactly like missing ones.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from apps.payment_gateway.app_context import AppContext
from apps.payment_gateway.dependencies import get_context, get_principal
from apps.payment_gateway.schemas import (
    CreateIdentityRequest,
    IdentityListResponse,
    IdentityResponse,
    PaginationResponse,
    UpdateIdentityRequest,
)
from libs.common.exceptions import ValidationError
from libs.gateway_auth import Principal
from libs.identity.models import IdentityChanges
from libs.identity.service import IdentityPage
from libs.rbac.permissions import normalize_role
from libs.security.sanitization import parse_bracketed_params

router = APIRouter(prefix="/api/v1/users", tags=["users"])


def _page_response(page: IdentityPage) -> IdentityListResponse:
    return IdentityListResponse(
        items=[IdentityResponse.from_domain(identity) for identity in page.items],
        pagination=PaginationResponse(
            page=page.page, limit=page.page_size, total=page.total, pages=page.pages
        ),
    )


@router.get("")
async def list_users(
    request: Request,
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> IdentityListResponse:
    """Identities visible to the caller, filtered by query parameters.

    Supports ``role``, ``parentId``, ``startDate``, ``endDate``,
    ``createdAt[gte]=...`` style operators, ``page`` and ``limit``.
    """
    raw_filter = parse_bracketed_params(request.query_params.multi_items())
    page = await ctx.identity_service.list_identities(principal, raw_filter)
    return _page_response(page)


@router.get("/merchants")
async def list_merchants(
    request: Request,
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> IdentityListResponse:
    raw_filter = parse_bracketed_params(request.query_params.multi_items())
    page = await ctx.identity_service.list_merchants(principal, raw_filter)
    return _page_response(page)


@router.get("/{identity_id}")
async def get_user(
    identity_id: str,
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> IdentityResponse:
    identity = await ctx.identity_service.get_identity(principal, identity_id)
    return IdentityResponse.from_domain(identity)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    body: CreateIdentityRequest,
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> IdentityResponse:
    identity = await ctx.identity_service.create_identity(
        principal,
        body.username,
        body.password,
        role=body.role,
        parent_id=body.parent_id,
    )
    return IdentityResponse.from_domain(identity)


@router.put("/{identity_id}")
async def update_user(
    identity_id: str,
    body: UpdateIdentityRequest,
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> IdentityResponse:
    role = None
    if body.role is not None:
        role = normalize_role(body.role)
        if role is None:
            raise ValidationError("Unknown role", details={"role": body.role})

    changes = IdentityChanges(
        handle=body.username,
        secret=body.password,
        role=role,
        is_active=body.is_active,
        parent_id=body.parent_id,
        set_parent="parent_id" in body.model_fields_set,
    )
    identity = await ctx.identity_service.update_identity(principal, identity_id, changes)
    return IdentityResponse.from_domain(identity)


@router.delete("/{identity_id}")
async def delete_user(
    identity_id: str,
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> IdentityResponse:
    """Deactivate an account (soft delete)."""
    identity = await ctx.identity_service.deactivate_identity(principal, identity_id)
    return IdentityResponse.from_domain(identity)
