"""
Order endpoints for the Payment Gateway.

Key endpoints:
- POST /api/v1/orders - Create an order (member or merchant)
- GET /api/v1/orders - Scoped listing
- GET /api/v1/orders/stats - Scoped statistics
- GET /api/v1/orders/{order_id} - Public payer view (no auth)
- POST /api/v1/orders/{order_id}/utr - Submit settlement reference (no auth)
- POST /api/v1/orders/{order_id}/verify - Verify (merchant or owner)
- POST /api/v1/orders/{order_id}/invalidate - Invalidate (owner)
- DELETE /api/v1/orders/{order_id} - Soft delete (owner)

Static paths are registered before ``/{order_id}`` so ``stats`` is never
read as an order id.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from apps.payment_gateway.app_context import AppContext
from apps.payment_gateway.dependencies import get_context, get_principal, get_request_metadata
from apps.payment_gateway.schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    InvalidateOrderRequest,
    OrderListResponse,
    OrderResponse,
    OrderStatisticsResponse,
    OrderTransitionResponse,
    PaginationResponse,
    PublicOrderResponse,
    SubmitReferenceRequest,
    SubmitReferenceResponse,
)
from libs.gateway_auth import Principal
from libs.orders.models import OrderMetadata
from libs.security.sanitization import parse_bracketed_params

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    body: CreateOrderRequest,
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
    metadata: OrderMetadata = Depends(get_request_metadata),
) -> CreateOrderResponse:
    created = await ctx.order_service.create_order(
        principal,
        amount=body.amount,
        target_address=body.vpa,
        display_name=body.merchant_name,
        note=body.note,
        expires_in_sec=body.expires_in_sec,
        metadata=metadata,
    )
    return CreateOrderResponse.from_domain(created)


@router.get("")
async def list_orders(
    request: Request,
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> OrderListResponse:
    """Orders visible to the caller.

    Filters: ``status``, ``merchantId``, ``userId``, ``startDate``,
    ``endDate``, ``minAmount``, ``maxAmount`` and operator forms such as
    ``amount[gte]=100`` or ``status[in]=PENDING&status[in]=SUBMITTED``.
    Unrecognised keys and operators are ignored.
    """
    raw_filter = parse_bracketed_params(request.query_params.multi_items())
    page = await ctx.order_service.list_orders(principal, raw_filter)
    return OrderListResponse(
        items=[OrderResponse.from_domain(order) for order in page.items],
        pagination=PaginationResponse(
            page=page.page, limit=page.page_size, total=page.total, pages=page.pages
        ),
    )


@router.get("/stats")
async def order_statistics(
    request: Request,
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> OrderStatisticsResponse:
    raw_filter = parse_bracketed_params(request.query_params.multi_items())
    stats = await ctx.order_service.order_statistics(principal, raw_filter)
    return OrderStatisticsResponse.from_domain(stats)


@router.get("/{order_id}")
async def get_public_order(
    order_id: str, ctx: AppContext = Depends(get_context)
) -> PublicOrderResponse:
    view = await ctx.order_service.get_public_order(order_id)
    return PublicOrderResponse.from_domain(view)


@router.post("/{order_id}/utr")
async def submit_reference(
    order_id: str,
    body: SubmitReferenceRequest,
    ctx: AppContext = Depends(get_context),
) -> SubmitReferenceResponse:
    order = await ctx.order_service.submit_reference(order_id, body.utr)
    return SubmitReferenceResponse(order_id=order.order_id, status=order.status.value)


@router.post("/{order_id}/verify")
async def verify_order(
    order_id: str,
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> OrderTransitionResponse:
    order = await ctx.order_service.verify_order(principal, order_id)
    return OrderTransitionResponse(
        message="Order verified", order=OrderResponse.from_domain(order)
    )


@router.post("/{order_id}/invalidate")
async def invalidate_order(
    order_id: str,
    body: InvalidateOrderRequest | None = None,
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> OrderTransitionResponse:
    reason = body.reason if body else None
    order = await ctx.order_service.invalidate_order(principal, order_id, reason)
    return OrderTransitionResponse(
        message="Order invalidated", order=OrderResponse.from_domain(order)
    )


@router.delete("/{order_id}")
async def delete_order(
    order_id: str,
    ctx: AppContext = Depends(get_context),
    principal: Principal = Depends(get_principal),
) -> OrderTransitionResponse:
    order = await ctx.order_service.delete_order(principal, order_id)
    return OrderTransitionResponse(message="Order deleted", order=OrderResponse.from_domain(order))
