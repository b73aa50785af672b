"""Order lifecycle rules: transition table, attribution and expiry."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import pytest

from libs.common.exceptions import (
    InsufficientPrivilegeError,
    InvalidHierarchyError,
    ValidationError,
)
from libs.orders.models import OrderStatus
from libs.orders.state_machine import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    Transition,
    can_transition,
    compute_expiry,
    resolve_merchant,
)
from libs.rbac.permissions import Role

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)


@dataclass
class Owner:
    id: str
    role: object
    parent_id: str | None = None


class TestTransitions:
    def test_forward_path(self) -> None:
        assert can_transition(OrderStatus.PENDING, Transition.SUBMIT)
        assert can_transition(OrderStatus.SUBMITTED, Transition.VERIFY)
        assert TRANSITIONS[Transition.SUBMIT].target is OrderStatus.SUBMITTED
        assert TRANSITIONS[Transition.VERIFY].target is OrderStatus.VERIFIED

    def test_no_skipping_or_reversal(self) -> None:
        assert not can_transition(OrderStatus.PENDING, Transition.VERIFY)
        assert not can_transition(OrderStatus.VERIFIED, Transition.SUBMIT)
        assert not can_transition(OrderStatus.SUBMITTED, Transition.SUBMIT)
        assert not can_transition(OrderStatus.EXPIRED, Transition.SUBMIT)

    def test_only_pending_expires(self) -> None:
        assert TRANSITIONS[Transition.EXPIRE].sources == {OrderStatus.PENDING}

    def test_invalidate_from_every_non_terminal_status(self) -> None:
        for status in OrderStatus:
            assert can_transition(status, Transition.INVALIDATE) is (
                status not in TERMINAL_STATUSES
            )

    def test_terminal_statuses_have_no_exit(self) -> None:
        for status in TERMINAL_STATUSES:
            assert not any(can_transition(status, t) for t in Transition)


class TestResolveMerchant:
    def test_member_attributed_to_parent(self) -> None:
        assert resolve_merchant(Owner("u1", Role.MEMBER, "m1")) == "m1"

    def test_merchant_attributed_to_itself(self) -> None:
        assert resolve_merchant(Owner("m1", "merchant")) == "m1"

    def test_member_without_parent(self) -> None:
        with pytest.raises(InvalidHierarchyError):
            resolve_merchant(Owner("u1", Role.MEMBER))

    @pytest.mark.parametrize("role", [Role.OWNER, "auditor", None])
    def test_non_order_roles(self, role: object) -> None:
        with pytest.raises(InsufficientPrivilegeError):
            resolve_merchant(Owner("x", role))


class TestComputeExpiry:
    def test_default_ttl(self) -> None:
        assert compute_expiry(NOW, None) == NOW + timedelta(seconds=5400)

    def test_explicit_ttl_within_bounds(self) -> None:
        assert compute_expiry(NOW, 60) == NOW + timedelta(seconds=60)
        assert compute_expiry(NOW, 86400) == NOW + timedelta(days=1)

    @pytest.mark.parametrize("ttl", [59, 86401, 0, -5, True, "600", 90.5])
    def test_out_of_bounds_or_wrong_type(self, ttl: object) -> None:
        with pytest.raises(ValidationError):
            compute_expiry(NOW, ttl)  # type: ignore[arg-type]

    def test_custom_bounds(self) -> None:
        assert compute_expiry(NOW, None, default_ttl=300, min_ttl=120, max_ttl=600) == (
            NOW + timedelta(seconds=300)
        )
        with pytest.raises(ValidationError):
            compute_expiry(NOW, 900, min_ttl=120, max_ttl=600)
