"""Payment deep links, payee address validation and masking."""

from __future__ import annotations

import re
from decimal import Decimal

import pytest

from libs.orders.payment_link import (
    ORDER_ID_LENGTH,
    build_payment_link,
    build_payment_url,
    format_amount,
    generate_order_id,
    is_valid_vpa,
    mask_vpa,
)


def test_generate_order_id_shape() -> None:
    ids = {generate_order_id() for _ in range(50)}
    assert all(re.fullmatch(r"[0-9a-z]{10}", order_id) for order_id in ids)
    assert len(next(iter(ids))) == ORDER_ID_LENGTH
    assert len(ids) > 1


@pytest.mark.parametrize(
    ("vpa", "expected"),
    [
        ("shop.one@okbank", True),
        ("9876543210@upi", True),
        ("a_b-c@ybl", True),
        ("x@okbank", False),
        ("shop@ok1", False),
        ("shop@b", False),
        ("shop okbank", False),
        ("shop@@okbank", False),
        ("", False),
    ],
)
def test_is_valid_vpa(vpa: str, expected: bool) -> None:
    assert is_valid_vpa(vpa) is expected


def test_mask_vpa() -> None:
    assert mask_vpa("alice.shop@okbank") == "al***@okbank"
    assert mask_vpa("ab@upi") == "ab***@upi"
    assert mask_vpa("no-handle") == "***"
    assert mask_vpa("") == "***"


def test_format_amount_rounds_half_up() -> None:
    assert format_amount(Decimal("10")) == "10.00"
    assert format_amount(Decimal("10.005")) == "10.01"


class TestBuildPaymentLink:
    def test_parameter_order_and_encoding(self) -> None:
        link = build_payment_link(
            payee_address="shop.one@okbank",
            amount=Decimal("250"),
            order_id="ab12cd34ef",
            display_name="Corner Shop",
            note="Order 42",
        )
        assert link == (
            "upi://pay?pa=shop.one@okbank&pn=Corner%20Shop&am=250.00&cu=INR"
            "&tn=Order%2042&tr=ab12cd34ef"
        )

    def test_note_omitted_and_default_name(self) -> None:
        link = build_payment_link(
            payee_address="shop@okbank", amount=Decimal("1.5"), order_id="zz99zz99zz"
        )
        assert link == "upi://pay?pa=shop@okbank&pn=Merchant&am=1.50&cu=INR&tr=zz99zz99zz"


def test_build_payment_url_trims_trailing_slash() -> None:
    assert build_payment_url("https://pay.example.com/", "ab12cd34ef") == (
        "https://pay.example.com/pay/ab12cd34ef"
    )
