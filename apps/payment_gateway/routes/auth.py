"""Login and current-principal endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from apps.payment_gateway.app_context import AppContext
from apps.payment_gateway.dependencies import get_context, get_principal
from apps.payment_gateway.schemas import (
    IdentityResponse,
    LoginRequest,
    PrincipalResponse,
    TokenResponse,
)
from libs.gateway_auth import Principal

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/login")
async def login(body: LoginRequest, ctx: AppContext = Depends(get_context)) -> TokenResponse:
    """Exchange username/password for a bearer token.

    Unknown user, wrong password and inactive account all return the same
    401 ``unauthenticated`` response.
    """
    issued = await ctx.identity_service.login(body.username, body.password)
    return TokenResponse(
        access_token=issued.token,
        expires_in=issued.expires_in,
        user=IdentityResponse.from_domain(issued.identity),
    )


@router.get("/me")
async def me(principal: Principal = Depends(get_principal)) -> PrincipalResponse:
    return PrincipalResponse(
        id=principal.id,
        username=principal.handle,
        role=principal.role.value,
        parent_id=principal.parent_id,
    )
