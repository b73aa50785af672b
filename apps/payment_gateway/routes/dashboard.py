"""Role-shaped dashboard overview."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from apps.payment_gateway.app_context import AppContext
from apps.payment_gateway.dependencies import get_context, get_principal
from apps.payment_gateway.schemas import DashboardResponse
from libs.gateway_auth import Principal

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


@router.get("/stats")
async def dashboard_stats(
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> DashboardResponse:
    summary = await ctx.order_service.dashboard_summary(principal)
    return DashboardResponse.from_domain(summary)
