"""Order lifecycle rules.

Transitions::

    PENDING   --submit-->     SUBMITTED --verify--> VERIFIED
    PENDING   --expire-->     EXPIRED            (lazily, on read past expiry)
    any*      --invalidate--> INVALIDATED        (owner only)

    * every status except INVALIDATED and the reserved CANCELLED

Each transition is applied as one conditional update against the set of
``source`` statuses below, so two racing callers cannot both succeed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, assert_never

from libs.common.exceptions import (
    InsufficientPrivilegeError,
    InvalidHierarchyError,
    ValidationError,
)
from libs.orders.models import OrderStatus
from libs.rbac.permissions import Role, normalize_role

DEFAULT_TTL_SECONDS = 5400
MIN_TTL_SECONDS = 60
MAX_TTL_SECONDS = 86400


class Transition(str, Enum):
    SUBMIT = "submit"
    VERIFY = "verify"
    EXPIRE = "expire"
    INVALIDATE = "invalidate"


@dataclass(frozen=True)
class TransitionRule:
    sources: frozenset[OrderStatus]
    target: OrderStatus


TRANSITIONS: dict[Transition, TransitionRule] = {
    Transition.SUBMIT: TransitionRule(frozenset({OrderStatus.PENDING}), OrderStatus.SUBMITTED),
    Transition.VERIFY: TransitionRule(frozenset({OrderStatus.SUBMITTED}), OrderStatus.VERIFIED),
    Transition.EXPIRE: TransitionRule(frozenset({OrderStatus.PENDING}), OrderStatus.EXPIRED),
    Transition.INVALIDATE: TransitionRule(
        frozenset(OrderStatus) - {OrderStatus.INVALIDATED, OrderStatus.CANCELLED},
        OrderStatus.INVALIDATED,
    ),
}

TERMINAL_STATUSES = frozenset({OrderStatus.INVALIDATED, OrderStatus.CANCELLED})


def can_transition(status: OrderStatus, transition: Transition) -> bool:
    return status in TRANSITIONS[transition].sources


def resolve_merchant(owner: Any) -> str:
    """Derive the merchant an order is attributed to from its owning identity.

    Raises:
        InvalidHierarchyError: Member without a parent merchant
        InsufficientPrivilegeError: Owner or unknown role
    """
    role = normalize_role(getattr(owner, "role", None))
    if role is None:
        raise InsufficientPrivilegeError("Role cannot own orders")
    match role:
        case Role.MEMBER:
            parent_id = getattr(owner, "parent_id", None)
            if not parent_id:
                raise InvalidHierarchyError("Member has no parent merchant")
            return str(parent_id)
        case Role.MERCHANT:
            return str(owner.id)
        case Role.OWNER:
            raise InsufficientPrivilegeError("Owners cannot create orders")
        case _:
            assert_never(role)


def compute_expiry(
    now: datetime,
    ttl_seconds: int | None,
    *,
    default_ttl: int = DEFAULT_TTL_SECONDS,
    min_ttl: int = MIN_TTL_SECONDS,
    max_ttl: int = MAX_TTL_SECONDS,
) -> datetime:
    """Expiry timestamp for a new order.

    Raises:
        ValidationError: TTL outside ``[min_ttl, max_ttl]``
    """
    ttl = default_ttl if ttl_seconds is None else ttl_seconds
    if isinstance(ttl, bool) or not isinstance(ttl, int) or not min_ttl <= ttl <= max_ttl:
        raise ValidationError(
            f"expires_in_sec must be between {min_ttl} and {max_ttl}",
            details={"expires_in_sec": ttl_seconds},
        )
    return now + timedelta(seconds=ttl)


__all__ = [
    "DEFAULT_TTL_SECONDS",
    "MIN_TTL_SECONDS",
    "MAX_TTL_SECONDS",
    "Transition",
    "TransitionRule",
    "TRANSITIONS",
    "TERMINAL_STATUSES",
    "can_transition",
    "resolve_merchant",
    "compute_expiry",
]
