"""
Tests for OrderService.

Covers:
- Creation: attribution, validation, payment link, id collisions
- Public payer flow: masking, lazy expiry, reference submission
- Verify / invalidate / delete with scope and privilege checks
- Compare-and-set under concurrency
- Listing, statistics and dashboard shapes per role
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from libs.common.exceptions import (
    AlreadyInvalidatedError,
    GatewayError,
    InsufficientPrivilegeError,
    InvalidHierarchyError,
    InvalidTransitionError,
    NotFoundError,
    OrderExpiredError,
    ValidationError,
)
from libs.orders.models import Order, OrderMetadata, OrderStatus
from libs.orders.service import (
    MAX_ORDER_AMOUNT,
    OrderService,
    parse_order_amount,
)
from libs.rbac.permissions import Role
from tests.fixtures.stores import (
    FrozenClock,
    Hierarchy,
    InMemoryIdentityStore,
    InMemoryOrderStore,
    principal_for,
)

VPA = "shop.one@okbank"
UTR = "123456789012"


async def create(
    service: OrderService, hierarchy: Hierarchy, who: str, amount: str = "250", **kwargs: object
) -> Order:
    created = await service.create_order(
        hierarchy.principal(who), amount=amount, target_address=VPA, **kwargs
    )
    return created.order


async def submitted_order(service: OrderService, hierarchy: Hierarchy, who: str) -> Order:
    order = await create(service, hierarchy, who)
    return await service.submit_reference(order.order_id, UTR)


class TestParseOrderAmount:
    def test_quantized(self) -> None:
        assert parse_order_amount("250") == Decimal("250.00")
        assert parse_order_amount(19.999) == Decimal("20.00")
        assert parse_order_amount(MAX_ORDER_AMOUNT) == MAX_ORDER_AMOUNT

    @pytest.mark.parametrize(
        "value", ["0", "-1", "0.001", "abc", None, True, "Infinity", "NaN", "10000000.01"]
    )
    def test_rejected(self, value: object) -> None:
        with pytest.raises(ValidationError):
            parse_order_amount(value)


class TestCreateOrder:
    @pytest.mark.asyncio()
    async def test_member_order_attributed_to_parent_merchant(
        self, order_service: OrderService, hierarchy: Hierarchy, clock: FrozenClock
    ) -> None:
        created = await order_service.create_order(
            hierarchy.principal("alice"),
            amount="250",
            target_address=f"  {VPA} ",
            display_name="Corner <Shop>",
            note="Table 4",
            expires_in_sec=600,
            metadata=OrderMetadata(ip_address="10.0.0.1", platform="android"),
        )
        order = created.order
        assert order.status is OrderStatus.PENDING
        assert order.user_id == hierarchy.alice.id
        assert order.created_by == hierarchy.alice.id
        assert order.merchant_id == hierarchy.shop1.id
        assert order.amount == Decimal("250.00")
        assert order.target_address == VPA
        assert order.display_name == "Corner Shop"
        assert order.metadata.platform == "android"
        assert created.expires_at == clock.now + timedelta(seconds=600)
        assert created.payment_url == f"https://pay.example.com/pay/{order.order_id}"
        assert created.payment_link == (
            f"upi://pay?pa={VPA}&pn=Corner%20Shop&am=250.00&cu=INR&tn=Table%204"
            f"&tr={order.order_id}"
        )

    @pytest.mark.asyncio()
    async def test_merchant_order_attributed_to_itself(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await create(order_service, hierarchy, "shop1")
        assert order.merchant_id == hierarchy.shop1.id
        assert order.display_name == "Merchant"

    @pytest.mark.asyncio()
    async def test_owner_cannot_create_orders(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        with pytest.raises(InsufficientPrivilegeError):
            await create(order_service, hierarchy, "owner")

    @pytest.mark.asyncio()
    async def test_orphan_member_cannot_create_orders(
        self,
        order_service: OrderService,
        identity_store: InMemoryIdentityStore,
        hierarchy: Hierarchy,
    ) -> None:
        orphan = identity_store.seed("orphan", Role.MEMBER)
        with pytest.raises(InvalidHierarchyError):
            await order_service.create_order(
                principal_for(orphan), amount="10", target_address=VPA
            )

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("address", ["not-a-vpa", "", None, "a@b"])
    async def test_invalid_address(
        self, order_service: OrderService, hierarchy: Hierarchy, address: object
    ) -> None:
        with pytest.raises(ValidationError, match="Invalid VPA"):
            await order_service.create_order(
                hierarchy.principal("alice"), amount="10", target_address=address
            )

    @pytest.mark.asyncio()
    async def test_ttl_out_of_bounds(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        with pytest.raises(ValidationError):
            await create(order_service, hierarchy, "alice", expires_in_sec=30)

    @pytest.mark.asyncio()
    async def test_id_collision_retried(
        self,
        order_service: OrderService,
        order_store: InMemoryOrderStore,
        hierarchy: Hierarchy,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        first = await create(order_service, hierarchy, "alice")
        ids = iter([first.order_id, "fresh00001"])
        monkeypatch.setattr("libs.orders.service.generate_order_id", lambda: next(ids))

        second = await create(order_service, hierarchy, "alice")

        assert second.order_id == "fresh00001"
        assert len(order_store.rows) == 2

    @pytest.mark.asyncio()
    async def test_id_allocation_gives_up(
        self,
        order_service: OrderService,
        hierarchy: Hierarchy,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        first = await create(order_service, hierarchy, "alice")
        monkeypatch.setattr("libs.orders.service.generate_order_id", lambda: first.order_id)

        with pytest.raises(GatewayError, match="order id"):
            await create(order_service, hierarchy, "alice")


class TestPublicFlow:
    @pytest.mark.asyncio()
    async def test_public_view_masks_address(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await create(order_service, hierarchy, "alice", display_name="Corner Shop")
        view = await order_service.get_public_order(order.order_id)
        assert view.masked_address == "sh***@okbank"
        assert view.display_name == "Corner Shop"
        assert view.status is OrderStatus.PENDING

    @pytest.mark.asyncio()
    async def test_malformed_and_unknown_ids(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        with pytest.raises(ValidationError):
            await order_service.get_public_order("x")
        with pytest.raises(NotFoundError):
            await order_service.get_public_order("zzzzzzzzzz")

    @pytest.mark.asyncio()
    async def test_lazy_expiry_on_read(
        self,
        order_service: OrderService,
        order_store: InMemoryOrderStore,
        hierarchy: Hierarchy,
        clock: FrozenClock,
    ) -> None:
        order = await create(order_service, hierarchy, "alice", expires_in_sec=60)

        clock.advance(seconds=60)
        assert (await order_service.get_public_order(order.order_id)).status is OrderStatus.PENDING

        clock.advance(seconds=1)
        view = await order_service.get_public_order(order.order_id)
        assert view.status is OrderStatus.EXPIRED
        assert order_store.rows[order.order_id].status is OrderStatus.EXPIRED

    @pytest.mark.asyncio()
    async def test_submit_reference(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await create(order_service, hierarchy, "alice")
        submitted = await order_service.submit_reference(order.order_id, f"  {UTR}\t")
        assert submitted.status is OrderStatus.SUBMITTED
        assert submitted.reference == UTR

    @pytest.mark.asyncio()
    async def test_second_submit_rejected(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await submitted_order(order_service, hierarchy, "alice")
        with pytest.raises(InvalidTransitionError) as exc_info:
            await order_service.submit_reference(order.order_id, "999999999999")
        assert exc_info.type is InvalidTransitionError

    @pytest.mark.asyncio()
    async def test_invalid_reference_checked_first(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        with pytest.raises(ValidationError, match="UTR"):
            await order_service.submit_reference("zzzzzzzzzz", "12")

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("reference", ["<AB-12-34>", "1234-5678-9012", "1234 5678 9012"])
    async def test_reference_with_separators_rejected(
        self,
        order_service: OrderService,
        order_store: InMemoryOrderStore,
        hierarchy: Hierarchy,
        reference: str,
    ) -> None:
        order = await create(order_service, hierarchy, "alice")
        with pytest.raises(ValidationError, match="UTR"):
            await order_service.submit_reference(order.order_id, reference)
        assert order_store.rows[order.order_id].status is OrderStatus.PENDING
        assert order_store.rows[order.order_id].reference is None

    @pytest.mark.asyncio()
    async def test_submit_after_expiry_expires_order(
        self,
        order_service: OrderService,
        order_store: InMemoryOrderStore,
        hierarchy: Hierarchy,
        clock: FrozenClock,
    ) -> None:
        order = await create(order_service, hierarchy, "alice", expires_in_sec=60)
        clock.advance(minutes=5)

        with pytest.raises(OrderExpiredError):
            await order_service.submit_reference(order.order_id, UTR)
        assert order_store.rows[order.order_id].status is OrderStatus.EXPIRED

        # Already EXPIRED on the next attempt
        with pytest.raises(OrderExpiredError):
            await order_service.submit_reference(order.order_id, UTR)

    @pytest.mark.asyncio()
    async def test_deleted_order_is_gone_publicly(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await create(order_service, hierarchy, "alice")
        await order_service.delete_order(hierarchy.principal("owner"), order.order_id)
        with pytest.raises(NotFoundError):
            await order_service.get_public_order(order.order_id)
        with pytest.raises(NotFoundError):
            await order_service.submit_reference(order.order_id, UTR)


class TestVerify:
    @pytest.mark.asyncio()
    async def test_merchant_verifies_member_order_once(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await create(order_service, hierarchy, "alice")
        await order_service.submit_reference(order.order_id, UTR)

        verified = await order_service.verify_order(hierarchy.principal("shop1"), order.order_id)
        assert verified.status is OrderStatus.VERIFIED

        with pytest.raises(InvalidTransitionError):
            await order_service.verify_order(hierarchy.principal("shop1"), order.order_id)

    @pytest.mark.asyncio()
    async def test_member_cannot_verify(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await submitted_order(order_service, hierarchy, "alice")
        with pytest.raises(InsufficientPrivilegeError):
            await order_service.verify_order(hierarchy.principal("alice"), order.order_id)

    @pytest.mark.asyncio()
    async def test_other_merchant_sees_not_found(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await submitted_order(order_service, hierarchy, "alice")
        with pytest.raises(NotFoundError):
            await order_service.verify_order(hierarchy.principal("shop2"), order.order_id)

    @pytest.mark.asyncio()
    async def test_pending_cannot_be_verified(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await create(order_service, hierarchy, "alice")
        with pytest.raises(InvalidTransitionError):
            await order_service.verify_order(hierarchy.principal("owner"), order.order_id)

    @pytest.mark.asyncio()
    async def test_concurrent_verify_exactly_one_wins(
        self,
        order_service: OrderService,
        order_store: InMemoryOrderStore,
        hierarchy: Hierarchy,
    ) -> None:
        order = await submitted_order(order_service, hierarchy, "alice")
        cas_before = order_store.cas_calls

        results = await asyncio.gather(
            order_service.verify_order(hierarchy.principal("shop1"), order.order_id),
            order_service.verify_order(hierarchy.principal("owner"), order.order_id),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, Order)]
        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], InvalidTransitionError)
        # Both callers passed the read-side check and raced on the conditional update
        assert order_store.cas_calls - cas_before == 2
        assert order_store.rows[order.order_id].status is OrderStatus.VERIFIED


class TestInvalidate:
    @pytest.mark.asyncio()
    async def test_owner_invalidates_verified_order(
        self, order_service: OrderService, hierarchy: Hierarchy, clock: FrozenClock
    ) -> None:
        order = await submitted_order(order_service, hierarchy, "alice")
        await order_service.verify_order(hierarchy.principal("shop1"), order.order_id)

        with pytest.raises(InsufficientPrivilegeError):
            await order_service.invalidate_order(
                hierarchy.principal("alice"), order.order_id, "chargeback"
            )

        invalidated = await order_service.invalidate_order(
            hierarchy.principal("owner"), order.order_id, "chargeback"
        )
        assert invalidated.status is OrderStatus.INVALIDATED
        assert invalidated.invalidated_by == hierarchy.owner.id
        assert invalidated.invalidated_at == clock.now
        assert invalidated.invalidation_reason == "chargeback"

    @pytest.mark.asyncio()
    async def test_second_invalidate_reports_already_invalidated(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await create(order_service, hierarchy, "alice")
        await order_service.invalidate_order(hierarchy.principal("owner"), order.order_id)
        with pytest.raises(AlreadyInvalidatedError):
            await order_service.invalidate_order(hierarchy.principal("owner"), order.order_id)

    @pytest.mark.asyncio()
    async def test_merchant_cannot_invalidate(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await create(order_service, hierarchy, "alice")
        with pytest.raises(InsufficientPrivilegeError):
            await order_service.invalidate_order(hierarchy.principal("shop1"), order.order_id)

    @pytest.mark.asyncio()
    async def test_reason_sanitized_and_truncated(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await create(order_service, hierarchy, "alice")
        invalidated = await order_service.invalidate_order(
            hierarchy.principal("owner"), order.order_id, "{$set: 1} " + "x" * 600
        )
        assert invalidated.invalidation_reason is not None
        assert invalidated.invalidation_reason.startswith("set: 1 ")
        assert len(invalidated.invalidation_reason) == 500

    @pytest.mark.asyncio()
    async def test_concurrent_invalidate_one_already_invalidated(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await create(order_service, hierarchy, "alice")
        owner = hierarchy.principal("owner")
        results = await asyncio.gather(
            order_service.invalidate_order(owner, order.order_id, "fraud"),
            order_service.invalidate_order(owner, order.order_id, "fraud"),
            return_exceptions=True,
        )
        assert sum(isinstance(r, Order) for r in results) == 1
        assert sum(isinstance(r, AlreadyInvalidatedError) for r in results) == 1


class TestDelete:
    @pytest.mark.asyncio()
    async def test_owner_soft_deletes(
        self,
        order_service: OrderService,
        order_store: InMemoryOrderStore,
        hierarchy: Hierarchy,
    ) -> None:
        order = await submitted_order(order_service, hierarchy, "alice")
        deleted = await order_service.delete_order(hierarchy.principal("owner"), order.order_id)
        assert deleted.is_active is False
        assert deleted.status is OrderStatus.SUBMITTED
        assert order_store.rows[order.order_id].deleted_by == hierarchy.owner.id

        with pytest.raises(NotFoundError):
            await order_service.delete_order(hierarchy.principal("owner"), order.order_id)

    @pytest.mark.asyncio()
    async def test_merchant_cannot_delete(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        order = await create(order_service, hierarchy, "alice")
        with pytest.raises(InsufficientPrivilegeError):
            await order_service.delete_order(hierarchy.principal("shop1"), order.order_id)


class TestListing:
    @pytest_asyncio.fixture()
    async def populated(self, order_service: OrderService, hierarchy: Hierarchy) -> Hierarchy:
        await create(order_service, hierarchy, "alice", amount="100")
        verified = await submitted_order(order_service, hierarchy, "alice")
        await order_service.verify_order(hierarchy.principal("shop1"), verified.order_id)
        await create(order_service, hierarchy, "shop1", amount="50")
        await create(order_service, hierarchy, "bob", amount="75")
        return hierarchy

    @pytest.mark.asyncio()
    async def test_scoped_listing(self, order_service: OrderService, populated: Hierarchy) -> None:
        owner_page = await order_service.list_orders(populated.principal("owner"))
        assert owner_page.total == 4

        merchant_page = await order_service.list_orders(populated.principal("shop1"))
        assert merchant_page.total == 3
        assert {o.merchant_id for o in merchant_page.items} == {populated.shop1.id}

        member_page = await order_service.list_orders(populated.principal("bob"))
        assert member_page.total == 1

    @pytest.mark.asyncio()
    async def test_address_masked_below_owner(
        self, order_service: OrderService, populated: Hierarchy
    ) -> None:
        owner_page = await order_service.list_orders(populated.principal("owner"))
        assert {o.target_address for o in owner_page.items} == {VPA}

        merchant_page = await order_service.list_orders(populated.principal("shop1"))
        assert {o.target_address for o in merchant_page.items} == {"sh***@okbank"}

    @pytest.mark.asyncio()
    async def test_filter_only_narrows(
        self, order_service: OrderService, populated: Hierarchy
    ) -> None:
        page = await order_service.list_orders(
            populated.principal("shop1"), {"merchantId": populated.shop2.id}
        )
        assert page.total == 0

        page = await order_service.list_orders(
            populated.principal("shop1"), {"status": {"$in": ["verified"]}, "$where": "1"}
        )
        assert page.total == 1
        assert page.items[0].status is OrderStatus.VERIFIED

    @pytest.mark.asyncio()
    async def test_amount_range_and_pagination(
        self, order_service: OrderService, populated: Hierarchy
    ) -> None:
        page = await order_service.list_orders(
            populated.principal("owner"), {"minAmount": "60", "maxAmount": "200", "limit": "1"}
        )
        assert page.total == 2
        assert len(page.items) == 1
        assert page.pages == 2

    @pytest.mark.asyncio()
    async def test_statistics(self, order_service: OrderService, populated: Hierarchy) -> None:
        stats = await order_service.order_statistics(populated.principal("shop1"))
        assert stats.count == 3
        assert stats.total_amount == Decimal("400.00")
        assert stats.average_amount == Decimal("133.33")
        assert stats.status_breakdown == {
            "PENDING": {"count": 2, "amount": Decimal("150.00")},
            "VERIFIED": {"count": 1, "amount": Decimal("250.00")},
        }

    @pytest.mark.asyncio()
    async def test_statistics_empty_scope(
        self, order_service: OrderService, hierarchy: Hierarchy
    ) -> None:
        stats = await order_service.order_statistics(hierarchy.principal("alice"))
        assert stats.count == 0
        assert stats.average_amount == Decimal("0")
        assert stats.status_breakdown == {}

    @pytest.mark.asyncio()
    async def test_dashboard_per_role(
        self, order_service: OrderService, populated: Hierarchy
    ) -> None:
        owner = await order_service.dashboard_summary(populated.principal("owner"))
        assert owner.total_orders == 4
        assert owner.verified_revenue == Decimal("250.00")
        assert owner.identity_counts == {"members": 2, "merchants": 2}
        assert len(owner.recent_orders) == 4

        merchant = await order_service.dashboard_summary(populated.principal("shop1"))
        assert merchant.identity_counts == {"members": 1}
        assert all(o.target_address == "sh***@okbank" for o in merchant.recent_orders)

        member = await order_service.dashboard_summary(populated.principal("alice"))
        assert member.role == "member"
        assert member.total_orders == 2
        assert member.identity_counts == {}
