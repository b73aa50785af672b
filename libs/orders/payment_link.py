"""UPI payment deep links, payee address validation and masking."""

from __future__ import annotations

import re
import secrets
from decimal import ROUND_HALF_UP, Decimal
from urllib.parse import quote, urlencode

ORDER_ID_ALPHABET = "1234567890abcdefghijklmnopqrstuvwxyz"
ORDER_ID_LENGTH = 10

DEFAULT_DISPLAY_NAME = "Merchant"
CURRENCY = "INR"

VPA_PATTERN = re.compile(r"^[a-zA-Z0-9.\-_]{2,256}@[a-zA-Z]{2,64}$")


def generate_order_id() -> str:
    """Random 10-character order id over ``[0-9a-z]``."""
    return "".join(secrets.choice(ORDER_ID_ALPHABET) for _ in range(ORDER_ID_LENGTH))


def is_valid_vpa(vpa: str) -> bool:
    return bool(VPA_PATTERN.match(vpa or ""))


def mask_vpa(vpa: str) -> str:
    """Mask a payee address, keeping the first two characters and the handle.

    Example:
        >>> mask_vpa("alice.shop@okbank")
        'al***@okbank'
    """
    if not vpa:
        return "***"
    local, sep, handle = vpa.partition("@")
    if not sep:
        return "***"
    return f"{local[:2]}***@{handle}"


def format_amount(amount: Decimal) -> str:
    return str(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def build_payment_link(
    *,
    payee_address: str,
    amount: Decimal,
    order_id: str,
    display_name: str | None = None,
    note: str | None = None,
) -> str:
    """Build a ``upi://pay`` deep link.

    Parameters are emitted in the order ``pa, pn, am, cu, tn, tr``; ``tn`` is
    omitted when there is no note.
    """
    params: list[tuple[str, str]] = [
        ("pa", payee_address),
        ("pn", display_name or DEFAULT_DISPLAY_NAME),
        ("am", format_amount(amount)),
        ("cu", CURRENCY),
    ]
    if note:
        params.append(("tn", note))
    params.append(("tr", order_id))
    return "upi://pay?" + urlencode(params, quote_via=quote, safe="@")


def build_payment_url(app_base_url: str, order_id: str) -> str:
    return f"{app_base_url.rstrip('/')}/pay/{order_id}"


__all__ = [
    "ORDER_ID_ALPHABET",
    "ORDER_ID_LENGTH",
    "DEFAULT_DISPLAY_NAME",
    "generate_order_id",
    "is_valid_vpa",
    "mask_vpa",
    "format_amount",
    "build_payment_link",
    "build_payment_url",
]
