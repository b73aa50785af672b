"""FastAPI dependency providers for the Payment Gateway.

Usage:
    @router.get("/api/v1/orders")
    async def list_orders(
        ctx: AppContext = Depends(get_context),
        principal: Principal = Depends(get_principal),
    ): ...
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Request

from apps.payment_gateway.app_context import AppContext
from libs.gateway_auth import Principal, clear_current_principal, set_current_principal
from libs.orders.models import OrderMetadata

PLATFORM_HEADER = "X-Platform"


def get_context(request: Request) -> AppContext:
    """Get application context from FastAPI app state.

    Raises:
        RuntimeError: If AppContext is not initialized in app.state
    """
    ctx = getattr(request.app.state, "context", None)
    if ctx is None:
        raise RuntimeError(
            "AppContext not initialized in app.state. "
            "Ensure the app lifespan completed before handling requests."
        )
    return ctx


async def get_principal(
    request: Request, ctx: AppContext = Depends(get_context)
) -> AsyncIterator[Principal]:
    """Authenticate the bearer credential and bind the principal for the request."""
    principal = await ctx.authenticator.authenticate(request.headers.get("Authorization"))
    set_current_principal(principal)
    try:
        yield principal
    finally:
        clear_current_principal()


def get_request_metadata(request: Request) -> OrderMetadata:
    return OrderMetadata(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("User-Agent"),
        platform=request.headers.get(PLATFORM_HEADER) or "web",
    )


__all__ = ["get_context", "get_principal", "get_request_metadata"]
