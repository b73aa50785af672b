"""Order operations.

Reads are scoped through ``order_filter`` (public payer endpoints excepted);
status changes are compare-and-set updates against ``TRANSITIONS``. When a
conditional update misses, the order is re-read and the conflict reported
as ``NotFoundError``, ``AlreadyInvalidatedError``, ``OrderExpiredError`` or
``InvalidTransitionError``. Nothing is retried except order id collisions
on insert.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from libs.common.exceptions import (
    AlreadyInvalidatedError,
    GatewayError,
    InsufficientPrivilegeError,
    InvalidTransitionError,
    NotFoundError,
    OrderExpiredError,
    ValidationError,
)
from libs.gateway_auth.authenticator import Principal
from libs.identity.store import IdentityStore
from libs.orders.models import Order, OrderMetadata, OrderStatus, OrderSummary
from libs.orders.payment_link import (
    DEFAULT_DISPLAY_NAME,
    build_payment_link,
    build_payment_url,
    generate_order_id,
    is_valid_vpa,
    mask_vpa,
)
from libs.orders.state_machine import (
    DEFAULT_TTL_SECONDS,
    MAX_TTL_SECONDS,
    MIN_TTL_SECONDS,
    TRANSITIONS,
    Transition,
    compute_expiry,
    resolve_merchant,
)
from libs.orders.store import OrderStore
from libs.rbac.diagnostics import DiagnosticsContext
from libs.rbac.permissions import (
    Role,
    can_invalidate_order,
    can_manage_order,
    can_verify_orders,
)
from libs.rbac.predicates import eq
from libs.rbac.scoping import identity_filter, order_filter, scoped
from libs.security.sanitization import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    MAX_PAGE,
    sanitize_order_filter,
    sanitize_order_id,
    sanitize_reference,
    sanitize_string,
)

logger = logging.getLogger(__name__)

MAX_ORDER_AMOUNT = Decimal("10000000.00")
MAX_DISPLAY_NAME_LENGTH = 100
MAX_NOTE_LENGTH = 255
MAX_REASON_LENGTH = 500
MAX_ID_ATTEMPTS = 5
RECENT_ORDERS_LIMIT = 5


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class CreatedOrder:
    order_id: str
    payment_url: str
    payment_link: str
    expires_at: datetime
    order: Order


@dataclass(frozen=True)
class PublicOrderView:
    """What an unauthenticated payer may see of an order."""

    order_id: str
    amount: Decimal
    display_name: str
    masked_address: str
    payment_link: str
    status: OrderStatus
    expires_at: datetime
    created_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> PublicOrderView:
        return cls(
            order_id=order.order_id,
            amount=order.amount,
            display_name=order.display_name,
            masked_address=mask_vpa(order.target_address),
            payment_link=order.payment_link,
            status=order.status,
            expires_at=order.expires_at,
            created_at=order.created_at,
        )


@dataclass(frozen=True)
class OrderPage:
    items: list[Order]
    page: int
    page_size: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0


@dataclass(frozen=True)
class OrderStatistics:
    count: int
    total_amount: Decimal
    average_amount: Decimal
    status_breakdown: dict[str, dict[str, Any]]

    @classmethod
    def from_summary(cls, summary: OrderSummary) -> OrderStatistics:
        breakdown = {
            status: {
                "count": summary.status_counts.get(status, 0),
                "amount": summary.status_amounts.get(status, Decimal("0")),
            }
            for status in summary.status_counts
        }
        return cls(
            count=summary.count,
            total_amount=summary.total_amount,
            average_amount=summary.average_amount,
            status_breakdown=breakdown,
        )


@dataclass(frozen=True)
class DashboardSummary:
    role: str
    total_orders: int
    verified_revenue: Decimal
    status_breakdown: dict[str, dict[str, Any]]
    identity_counts: dict[str, int] = field(default_factory=dict)
    recent_orders: list[Order] = field(default_factory=list)


def parse_order_amount(value: Any) -> Decimal:
    """Validate and quantize an order amount to two decimal places.

    Raises:
        ValidationError: Not a finite number in ``(0, MAX_ORDER_AMOUNT]``
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("Amount must be numeric", details={"amount": value})
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("Amount must be numeric", details={"amount": str(value)}) from None
    if not amount.is_finite():
        raise ValidationError("Amount must be numeric", details={"amount": str(value)})
    amount = amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if amount <= 0 or amount > MAX_ORDER_AMOUNT:
        raise ValidationError(
            f"Amount must be greater than 0 and at most {MAX_ORDER_AMOUNT}",
            details={"amount": str(value)},
        )
    return amount


class OrderService:
    """Order lifecycle bound to the caller's scope."""

    def __init__(
        self,
        orders: OrderStore,
        identities: IdentityStore | None = None,
        *,
        app_base_url: str,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        min_ttl: int = MIN_TTL_SECONDS,
        max_ttl: int = MAX_TTL_SECONDS,
        diagnostics: DiagnosticsContext | None = None,
        clock: Callable[[], datetime] = utcnow,
        default_page_size: int = DEFAULT_LIMIT,
        max_page_size: int = MAX_LIMIT,
        max_page: int = MAX_PAGE,
    ) -> None:
        self.orders = orders
        self.identities = identities
        self.app_base_url = app_base_url
        self.default_ttl = default_ttl
        self.min_ttl = min_ttl
        self.max_ttl = max_ttl
        self.diagnostics = diagnostics or DiagnosticsContext()
        self.clock = clock
        self._page_bounds = {
            "default_limit": default_page_size,
            "max_limit": max_page_size,
            "max_page": max_page,
        }

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_order(
        self,
        principal: Principal,
        *,
        amount: Any,
        target_address: Any,
        display_name: Any = None,
        note: Any = None,
        expires_in_sec: int | None = None,
        metadata: OrderMetadata | None = None,
    ) -> CreatedOrder:
        """Create a PENDING order attributed to the principal's merchant.

        Raises:
            ValidationError: Bad amount, payee address or TTL
            InsufficientPrivilegeError: Principal's role cannot own orders
            InvalidHierarchyError: Member without a parent merchant
        """
        parsed_amount = parse_order_amount(amount)

        address = target_address.strip() if isinstance(target_address, str) else ""
        if not is_valid_vpa(address):
            raise ValidationError("Invalid VPA format")

        name = sanitize_string(display_name, MAX_DISPLAY_NAME_LENGTH) or DEFAULT_DISPLAY_NAME
        clean_note = sanitize_string(note, MAX_NOTE_LENGTH) or None

        merchant_id = resolve_merchant(principal)
        now = self.clock()
        expires_at = compute_expiry(
            now,
            expires_in_sec,
            default_ttl=self.default_ttl,
            min_ttl=self.min_ttl,
            max_ttl=self.max_ttl,
        )

        for attempt in range(1, MAX_ID_ATTEMPTS + 1):
            order_id = generate_order_id()
            candidate = Order(
                order_id=order_id,
                amount=parsed_amount,
                target_address=address,
                display_name=name,
                note=clean_note,
                payment_link=build_payment_link(
                    payee_address=address,
                    amount=parsed_amount,
                    order_id=order_id,
                    display_name=name,
                    note=clean_note,
                ),
                status=OrderStatus.PENDING,
                expires_at=expires_at,
                user_id=principal.id,
                created_by=principal.id,
                merchant_id=merchant_id,
                created_at=now,
                updated_at=now,
                metadata=metadata or OrderMetadata(),
            )
            created = await self.orders.insert(candidate)
            if created is not None:
                break
            logger.warning("order_id_retry", extra={"attempt": attempt})
        else:
            raise GatewayError("Could not allocate an order id")

        logger.info(
            "order_created",
            extra={
                "order_id": created.order_id,
                "user_id": created.user_id,
                "merchant_id": created.merchant_id,
                "amount": str(created.amount),
                "expires_at": created.expires_at.isoformat(),
            },
        )
        return CreatedOrder(
            order_id=created.order_id,
            payment_url=build_payment_url(self.app_base_url, created.order_id),
            payment_link=created.payment_link,
            expires_at=created.expires_at,
            order=created,
        )

    # ------------------------------------------------------------------
    # Public payer flow
    # ------------------------------------------------------------------

    async def _get_public(self, order_id: Any) -> Order:
        clean_id = sanitize_order_id(order_id)
        if clean_id is None:
            raise ValidationError("Invalid order ID format")
        order = await self.orders.get(clean_id)
        if order is None or not order.is_active:
            raise NotFoundError("Order not found")
        return order

    async def _expire(self, order: Order) -> Order:
        """Flip a PENDING order past its expiry to EXPIRED."""
        rule = TRANSITIONS[Transition.EXPIRE]
        expired = await self.orders.compare_and_set(
            order.order_id, rule.sources, {"status": rule.target}
        )
        if expired is not None:
            logger.info("order_expired", extra={"order_id": order.order_id})
            return expired
        current = await self.orders.get(order.order_id)
        if current is None or not current.is_active:
            raise NotFoundError("Order not found")
        return current

    async def get_public_order(self, order_id: Any) -> PublicOrderView:
        """Payer view of an order with the payee address masked."""
        order = await self._get_public(order_id)
        if order.status is OrderStatus.PENDING and order.is_past_expiry(self.clock()):
            order = await self._expire(order)
        return PublicOrderView.from_order(order)

    async def submit_reference(self, order_id: Any, reference: Any) -> Order:
        """Record the payer's settlement reference (UTR).

        Raises:
            ValidationError: Malformed order id or reference
            NotFoundError: Order missing or deleted
            OrderExpiredError: Order is, or has just become, EXPIRED
            InvalidTransitionError: Order is not PENDING
        """
        clean_reference = sanitize_reference(reference)
        if clean_reference is None:
            raise ValidationError("Invalid UTR format. Must be 6-32 alphanumeric characters")

        order = await self._get_public(order_id)
        now = self.clock()
        if order.status is OrderStatus.PENDING and order.is_past_expiry(now):
            await self._expire(order)
            raise OrderExpiredError("Order has expired")
        if order.status is not OrderStatus.PENDING:
            raise self._transition_error(order, Transition.SUBMIT)

        rule = TRANSITIONS[Transition.SUBMIT]
        submitted = await self.orders.compare_and_set(
            order.order_id,
            rule.sources,
            {"status": rule.target, "reference": clean_reference},
            not_expired_at=now,
        )
        if submitted is None:
            current = await self._reread(order.order_id)
            if current.status is OrderStatus.PENDING and current.is_past_expiry(now):
                await self._expire(current)
                raise OrderExpiredError("Order has expired")
            raise self._transition_error(current, Transition.SUBMIT)

        logger.info("order_reference_submitted", extra={"order_id": submitted.order_id})
        return submitted

    # ------------------------------------------------------------------
    # Principal-bound transitions
    # ------------------------------------------------------------------

    async def _scoped_order(self, principal: Principal, order_id: Any) -> Order:
        clean_id = sanitize_order_id(order_id)
        if clean_id is None:
            raise NotFoundError("Order not found")
        predicate = scoped(order_filter(principal.role, principal.id), eq("order_id", clean_id))
        order = await self.orders.find_one(predicate)
        self.diagnostics.log_data_filter(principal, "order", predicate, 1 if order else 0)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    async def _reread(self, order_id: str) -> Order:
        current = await self.orders.get(order_id)
        if current is None or not current.is_active:
            raise NotFoundError("Order not found")
        return current

    @staticmethod
    def _transition_error(order: Order, transition: Transition) -> InvalidTransitionError:
        details = {"order_id": order.order_id, "status": order.status.value}
        if order.status is OrderStatus.INVALIDATED and transition is Transition.INVALIDATE:
            return AlreadyInvalidatedError("Order is already invalidated", details=details)
        if order.status is OrderStatus.EXPIRED:
            return OrderExpiredError("Order has expired", details=details)
        return InvalidTransitionError(
            f"Cannot {transition.value} an order in status {order.status.value}",
            details=details,
        )

    async def verify_order(self, principal: Principal, order_id: Any) -> Order:
        """Mark a SUBMITTED order VERIFIED.

        Raises:
            InsufficientPrivilegeError: Member, or order not manageable
            NotFoundError: Order missing or out of scope
            InvalidTransitionError: Order is not SUBMITTED
        """
        allowed = can_verify_orders(principal.role)
        self.diagnostics.log_permission_check(principal, "verify_orders", allowed)
        if not allowed:
            raise InsufficientPrivilegeError("Merchant access required")

        order = await self._scoped_order(principal, order_id)
        manageable = can_manage_order(
            principal.role, order.user_id, order.merchant_id, principal.id
        )
        self.diagnostics.log_permission_check(
            principal, "manage_order", manageable, order_id=order.order_id
        )
        if not manageable:
            raise InsufficientPrivilegeError("Cannot verify this order")

        rule = TRANSITIONS[Transition.VERIFY]
        if order.status not in rule.sources:
            raise self._transition_error(order, Transition.VERIFY)

        verified = await self.orders.compare_and_set(
            order.order_id, rule.sources, {"status": rule.target}
        )
        if verified is None:
            current = await self._reread(order.order_id)
            raise self._transition_error(current, Transition.VERIFY)

        logger.info(
            "order_verified",
            extra={"order_id": verified.order_id, "verified_by": principal.id},
        )
        return verified

    async def invalidate_order(
        self, principal: Principal, order_id: Any, reason: Any = None
    ) -> Order:
        """Owner override: invalidate an order from any non-final status.

        Raises:
            InsufficientPrivilegeError: Principal is not the owner
            NotFoundError: Order missing or deleted
            AlreadyInvalidatedError: Order is already INVALIDATED
            InvalidTransitionError: Order is CANCELLED
        """
        allowed = can_invalidate_order(principal.role)
        self.diagnostics.log_permission_check(principal, "invalidate_order", allowed)
        if not allowed:
            raise InsufficientPrivilegeError("Only the owner can invalidate orders")

        order = await self._scoped_order(principal, order_id)
        rule = TRANSITIONS[Transition.INVALIDATE]
        if order.status not in rule.sources:
            raise self._transition_error(order, Transition.INVALIDATE)

        clean_reason = sanitize_string(reason, MAX_REASON_LENGTH) or None
        invalidated = await self.orders.compare_and_set(
            order.order_id,
            rule.sources,
            {
                "status": rule.target,
                "invalidated_by": principal.id,
                "invalidated_at": self.clock(),
                "invalidation_reason": clean_reason,
            },
        )
        if invalidated is None:
            current = await self._reread(order.order_id)
            raise self._transition_error(current, Transition.INVALIDATE)

        logger.info(
            "order_invalidated",
            extra={
                "order_id": invalidated.order_id,
                "invalidated_by": principal.id,
                "previous_status": order.status.value,
            },
        )
        return invalidated

    async def delete_order(self, principal: Principal, order_id: Any) -> Order:
        """Owner-only soft delete; status is left untouched."""
        allowed = principal.role is Role.OWNER
        self.diagnostics.log_permission_check(principal, "delete_order", allowed)
        if not allowed:
            raise InsufficientPrivilegeError("Only the owner can delete orders")

        order = await self._scoped_order(principal, order_id)
        deleted = await self.orders.soft_delete(order.order_id, actor_id=principal.id)
        if deleted is None:
            raise NotFoundError("Order not found")
        logger.info(
            "order_deleted",
            extra={"order_id": deleted.order_id, "deleted_by": principal.id},
        )
        return deleted

    # ------------------------------------------------------------------
    # Listing and statistics
    # ------------------------------------------------------------------

    @staticmethod
    def _mask_for(principal: Principal, order: Order) -> Order:
        if principal.role is Role.OWNER:
            return order
        return replace(order, target_address=mask_vpa(order.target_address))

    async def list_orders(self, principal: Principal, raw_filter: Any = None) -> OrderPage:
        """Scoped, sanitized and paginated order listing."""
        sanitized = sanitize_order_filter(raw_filter, now=self.clock(), **self._page_bounds)
        predicate = scoped(order_filter(principal.role, principal.id), *sanitized.terms)
        page = sanitized.page
        items = await self.orders.find(predicate, limit=page.limit, offset=page.offset)
        total = await self.orders.count(predicate)
        self.diagnostics.log_data_filter(principal, "order", predicate, total)
        return OrderPage(
            items=[self._mask_for(principal, order) for order in items],
            page=page.page,
            page_size=page.limit,
            total=total,
        )

    async def order_statistics(
        self, principal: Principal, raw_filter: Any = None
    ) -> OrderStatistics:
        """Count, totals and per-status breakdown within scope and filter."""
        sanitized = sanitize_order_filter(raw_filter, now=self.clock(), **self._page_bounds)
        predicate = scoped(order_filter(principal.role, principal.id), *sanitized.terms)
        summary = await self.orders.summarize(predicate)
        self.diagnostics.log_data_filter(principal, "order", predicate, summary.count)
        return OrderStatistics.from_summary(summary)

    async def dashboard_summary(self, principal: Principal) -> DashboardSummary:
        """Role-shaped overview: orders, verified revenue, team size, recent orders."""
        scope = order_filter(principal.role, principal.id)
        summary = await self.orders.summarize(scope)
        recent = await self.orders.find(scope, limit=RECENT_ORDERS_LIMIT)

        identity_counts: dict[str, int] = {}
        if self.identities is not None and principal.role in (Role.OWNER, Role.MERCHANT):
            visible = identity_filter(principal.role, principal.id)
            identity_counts["members"] = await self.identities.count(
                scoped(visible, eq("role", Role.MEMBER.value))
            )
            if principal.role is Role.OWNER:
                identity_counts["merchants"] = await self.identities.count(
                    scoped(visible, eq("role", Role.MERCHANT.value))
                )

        return DashboardSummary(
            role=principal.role.value,
            total_orders=summary.count,
            verified_revenue=summary.status_amounts.get(OrderStatus.VERIFIED.value, Decimal("0")),
            status_breakdown=OrderStatistics.from_summary(summary).status_breakdown,
            identity_counts=identity_counts,
            recent_orders=[self._mask_for(principal, order) for order in recent],
        )


__all__ = [
    "MAX_ORDER_AMOUNT",
    "CreatedOrder",
    "PublicOrderView",
    "OrderPage",
    "OrderStatistics",
    "DashboardSummary",
    "OrderService",
    "parse_order_amount",
]
