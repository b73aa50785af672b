"""Order entity and lifecycle states."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any


class OrderStatus(str, Enum):
    """Lifecycle states of a payment order.

    ``CANCELLED`` is reserved: no operation transitions into it.
    """

    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    VERIFIED = "VERIFIED"
    EXPIRED = "EXPIRED"
    INVALIDATED = "INVALIDATED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class OrderMetadata:
    """Request details captured when the order was created."""

    ip_address: str | None = None
    user_agent: str | None = None
    platform: str = "web"

    def to_dict(self) -> dict[str, Any]:
        return {
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "platform": self.platform,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> OrderMetadata:
        data = data or {}
        return cls(
            ip_address=data.get("ip_address"),
            user_agent=data.get("user_agent"),
            platform=data.get("platform") or "web",
        )


@dataclass
class Order:
    order_id: str
    amount: Decimal
    target_address: str
    display_name: str
    payment_link: str
    status: OrderStatus
    expires_at: datetime
    user_id: str
    created_by: str
    merchant_id: str
    created_at: datetime
    updated_at: datetime
    note: str | None = None
    reference: str | None = None
    is_active: bool = True
    invalidated_by: str | None = None
    invalidated_at: datetime | None = None
    invalidation_reason: str | None = None
    deleted_at: datetime | None = None
    deleted_by: str | None = None
    metadata: OrderMetadata = field(default_factory=OrderMetadata)

    def is_past_expiry(self, now: datetime) -> bool:
        return now > self.expires_at

    def as_record(self) -> dict[str, Any]:
        """Logical-field view used by predicate evaluation."""
        return {
            "order_id": self.order_id,
            "user": self.user_id,
            "merchant": self.merchant_id,
            "status": self.status.value,
            "active": self.is_active,
            "amount": self.amount,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Order:
        """Build from a ``dict_row`` result of the ``orders`` table."""
        metadata = row.get("metadata")
        return cls(
            order_id=row["order_id"],
            amount=Decimal(str(row["amount"])),
            target_address=row["target_address"],
            display_name=row["display_name"],
            payment_link=row["payment_link"],
            status=OrderStatus(row["status"]),
            expires_at=row["expires_at"],
            user_id=str(row["user_id"]),
            created_by=str(row["created_by"]),
            merchant_id=str(row["merchant_id"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            note=row.get("note"),
            reference=row.get("reference"),
            is_active=bool(row.get("is_active", True)),
            invalidated_by=row.get("invalidated_by"),
            invalidated_at=row.get("invalidated_at"),
            invalidation_reason=row.get("invalidation_reason"),
            deleted_at=row.get("deleted_at"),
            deleted_by=row.get("deleted_by"),
            metadata=OrderMetadata.from_dict(metadata if isinstance(metadata, dict) else None),
        )


@dataclass(frozen=True)
class OrderSummary:
    """Aggregate over the orders matched by a predicate."""

    count: int = 0
    total_amount: Decimal = Decimal("0")
    status_counts: dict[str, int] = field(default_factory=dict)
    status_amounts: dict[str, Decimal] = field(default_factory=dict)

    @property
    def average_amount(self) -> Decimal:
        if not self.count:
            return Decimal("0")
        return (self.total_amount / self.count).quantize(Decimal("0.01"))


__all__ = ["OrderStatus", "OrderMetadata", "Order", "OrderSummary"]
