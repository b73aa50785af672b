"""
Pydantic schemas for the Payment Gateway API.

Request models only check shape; domain validation (VPA format, amount
range, hierarchy rules) happens in the services so the same rules apply to
every caller. Response models are built from domain objects via
``from_domain`` helpers.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from libs.common.schemas import TimestampSerializerMixin
from libs.identity.models import Identity
from libs.orders.models import Order
from libs.orders.service import (
    CreatedOrder,
    DashboardSummary,
    OrderStatistics,
    PublicOrderView,
)

RoleName = Literal["owner", "merchant", "member"]

# ============================================================================
# Common
# ============================================================================


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class HealthResponse(TimestampSerializerMixin, BaseModel):
    """Liveness response."""

    status: Literal["healthy", "degraded"]
    service: str
    database_connected: bool | None = None
    timestamp: datetime


# ============================================================================
# Auth & Identity Schemas
# ============================================================================


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=256)
    password: str = Field(..., min_length=1, max_length=1024)


class IdentityResponse(BaseModel):
    id: str
    username: str
    role: RoleName
    parent_id: str | None
    is_active: bool
    created_by: str | None
    created_at: datetime

    @classmethod
    def from_domain(cls, identity: Identity) -> IdentityResponse:
        return cls(
            id=identity.id,
            username=identity.handle,
            role=identity.role.value,
            parent_id=identity.parent_id,
            is_active=identity.is_active,
            created_by=identity.created_by,
            created_at=identity.created_at,
        )


class TokenResponse(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int
    user: IdentityResponse


class PrincipalResponse(BaseModel):
    id: str
    username: str
    role: RoleName
    parent_id: str | None


class CreateIdentityRequest(BaseModel):
    """
    Create an account.

    Merchants may only create members (parented to themselves); the owner
    must supply ``parent_id`` when creating a member.
    """

    username: str = Field(..., min_length=1, max_length=256)
    password: str = Field(..., min_length=1, max_length=1024)
    role: str = "member"
    parent_id: str | None = None


class UpdateIdentityRequest(BaseModel):
    """Partial update; send ``parent_id: null`` explicitly to clear a parent."""

    username: str | None = Field(default=None, max_length=256)
    password: str | None = Field(default=None, max_length=1024)
    role: str | None = None
    is_active: bool | None = None
    parent_id: str | None = None


class IdentityListResponse(BaseModel):
    items: list[IdentityResponse]
    pagination: PaginationResponse


# ============================================================================
# Order Schemas
# ============================================================================


class CreateOrderRequest(BaseModel):
    """
    Request to create a payment order.

    Examples:
        {"amount": "250.00", "vpa": "shop1@okbank", "merchant_name": "Shop One"}
    """

    amount: Decimal
    vpa: str = Field(..., max_length=330)
    merchant_name: str | None = Field(default=None, max_length=1000)
    note: str | None = Field(default=None, max_length=1000)
    expires_in_sec: int | None = None


class CreateOrderResponse(BaseModel):
    order_id: str
    payment_url: str
    payment_link: str
    expires_at: datetime

    @classmethod
    def from_domain(cls, created: CreatedOrder) -> CreateOrderResponse:
        return cls(
            order_id=created.order_id,
            payment_url=created.payment_url,
            payment_link=created.payment_link,
            expires_at=created.expires_at,
        )


class PublicOrderResponse(BaseModel):
    order_id: str
    amount: Decimal
    merchant_name: str
    masked_vpa: str
    payment_link: str
    status: str
    expires_at: datetime
    created_at: datetime

    @classmethod
    def from_domain(cls, view: PublicOrderView) -> PublicOrderResponse:
        return cls(
            order_id=view.order_id,
            amount=view.amount,
            merchant_name=view.display_name,
            masked_vpa=view.masked_address,
            payment_link=view.payment_link,
            status=view.status.value,
            expires_at=view.expires_at,
            created_at=view.created_at,
        )


class OrderResponse(BaseModel):
    """Order as seen by an authenticated principal (VPA masked unless owner)."""

    order_id: str
    amount: Decimal
    vpa: str
    merchant_name: str
    note: str | None
    payment_link: str
    status: str
    utr: str | None
    expires_at: datetime
    user_id: str
    merchant_id: str
    created_by: str
    invalidated_by: str | None = None
    invalidated_at: datetime | None = None
    invalidation_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, order: Order) -> OrderResponse:
        return cls(
            order_id=order.order_id,
            amount=order.amount,
            vpa=order.target_address,
            merchant_name=order.display_name,
            note=order.note,
            payment_link=order.payment_link,
            status=order.status.value,
            utr=order.reference,
            expires_at=order.expires_at,
            user_id=order.user_id,
            merchant_id=order.merchant_id,
            created_by=order.created_by,
            invalidated_by=order.invalidated_by,
            invalidated_at=order.invalidated_at,
            invalidation_reason=order.invalidation_reason,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    pagination: PaginationResponse


class SubmitReferenceRequest(BaseModel):
    utr: str = Field(..., max_length=256)


class SubmitReferenceResponse(BaseModel):
    order_id: str
    status: str


class InvalidateOrderRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)


class OrderTransitionResponse(BaseModel):
    message: str
    order: OrderResponse


class StatusBucket(BaseModel):
    count: int
    amount: Decimal


class OrderStatisticsResponse(BaseModel):
    count: int
    total_amount: Decimal
    average_amount: Decimal
    status_breakdown: dict[str, StatusBucket]

    @classmethod
    def from_domain(cls, stats: OrderStatistics) -> OrderStatisticsResponse:
        return cls(
            count=stats.count,
            total_amount=stats.total_amount,
            average_amount=stats.average_amount,
            status_breakdown={k: StatusBucket(**v) for k, v in stats.status_breakdown.items()},
        )


class DashboardResponse(BaseModel):
    role: RoleName
    total_orders: int
    verified_revenue: Decimal
    status_breakdown: dict[str, StatusBucket]
    identity_counts: dict[str, int]
    recent_orders: list[OrderResponse]

    @classmethod
    def from_domain(cls, summary: DashboardSummary) -> DashboardResponse:
        return cls(
            role=summary.role,
            total_orders=summary.total_orders,
            verified_revenue=summary.verified_revenue,
            status_breakdown={
                k: StatusBucket(**v) for k, v in summary.status_breakdown.items()
            },
            identity_counts=summary.identity_counts,
            recent_orders=[OrderResponse.from_domain(o) for o in summary.recent_orders],
        )


# ============================================================================
# Diagnostics Schemas
# ============================================================================


class ProbeRequest(BaseModel):
    target_role: str | None = None
    target_id: str | None = None
    action: str | None = None

