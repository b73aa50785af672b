"""Payment orders: entity, lifecycle rules and payment links.

The service and store live in ``libs.orders.service`` / ``libs.orders.store``
and are imported from there directly.
"""

from libs.orders.models import Order, OrderMetadata, OrderStatus, OrderSummary
from libs.orders.payment_link import build_payment_link, is_valid_vpa, mask_vpa
from libs.orders.state_machine import TRANSITIONS, Transition, compute_expiry, resolve_merchant

__all__ = [
    "Order",
    "OrderMetadata",
    "OrderStatus",
    "OrderSummary",
    "build_payment_link",
    "is_valid_vpa",
    "mask_vpa",
    "TRANSITIONS",
    "Transition",
    "compute_expiry",
    "resolve_merchant",
]
