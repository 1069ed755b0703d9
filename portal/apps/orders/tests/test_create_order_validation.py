"""Tests for create-order validation and request composition.

Validation happens locally: invalid requests never reach the order
service. The in-process ``OrdersStub`` counts calls so the tests can
assert that no request was sent.
"""
from decimal import Decimal

import pytest

from portal.apps.orders.adapters import OrdersStub
from portal.apps.orders.domain import OrderLine, compute_totals, format_order_description
from portal.apps.orders.errors import ValidationError
from portal.apps.orders.schemas import validate_create_order
from portal.apps.orders.service import build_create_order_request

VALID = {
    "userId": "user_1",
    "userName": "Ann",
    "userEmail": "ann@example.com",
    "orderDescription": "Widget (x1) - $10.00",
    "totalAmount": "11.00",
    "shippingAddress": "1 Main St",
}


def test_empty_user_name_is_required():
    with pytest.raises(ValidationError) as exc:
        validate_create_order({**VALID, "userName": ""})
    assert exc.value.fields == {"userName": "required"}


def test_missing_fields_are_required():
    with pytest.raises(ValidationError) as exc:
        validate_create_order({"userEmail": "ann@example.com"})
    assert exc.value.fields["userId"] == "required"
    assert exc.value.fields["shippingAddress"] == "required"


@pytest.mark.parametrize("email", ["plain", "a@b", "two@@example.com", "spa ce@example.com"])
def test_invalid_email(email):
    with pytest.raises(ValidationError) as exc:
        validate_create_order({**VALID, "userEmail": email})
    assert exc.value.fields == {"userEmail": "invalid email"}


@pytest.mark.parametrize("amount,message", [
    ("0", "must be positive"),
    ("-5", "must be positive"),
    ("10000000000.00", "too large"),
    ("abc", "must be a number"),
])
def test_invalid_amount(amount, message):
    with pytest.raises(ValidationError) as exc:
        validate_create_order({**VALID, "totalAmount": amount})
    assert exc.value.fields == {"totalAmount": message}


def test_long_text_is_rejected():
    with pytest.raises(ValidationError) as exc:
        validate_create_order({**VALID, "shippingAddress": "x" * 1001})
    assert exc.value.fields == {"shippingAddress": "must be at most 1000 characters"}


def test_maximum_amount_is_accepted():
    dto = validate_create_order({**VALID, "totalAmount": "9999999999.99"})
    assert dto.total_amount == Decimal("9999999999.99")


@pytest.mark.asyncio
async def test_invalid_request_makes_no_call():
    orders = OrdersStub()
    with pytest.raises(ValidationError) as exc:
        await orders.create_order({**VALID, "userName": ""})
    assert exc.value.fields == {"userName": "required"}
    assert orders.orders == {}


def test_description_and_totals():
    lines = [OrderLine("Widget", Decimal("2.50"), 2), OrderLine("Gadget", Decimal("10"), 1)]
    assert format_order_description(lines) == "Widget (x2) - $5.00, Gadget (x1) - $10.00"
    totals = compute_totals(lines, Decimal("0.10"))
    assert totals.subtotal == Decimal("15.00")
    assert totals.tax == Decimal("1.50")
    assert totals.total == Decimal("16.50")


def test_build_create_order_request_generates_user_id():
    dto = build_create_order_request(
        [OrderLine("Widget", Decimal("10.00"), 3)],
        user_name="Ann",
        user_email="ann@example.com",
        shipping_address="1 Main St",
    )
    assert dto.user_id.startswith("user_")
    assert dto.order_description == "Widget (x3) - $30.00"
    assert dto.total_amount == Decimal("33.00")
    assert dto.to_payload()["totalAmount"] == 33.0


def test_build_create_order_request_validates():
    with pytest.raises(ValidationError) as exc:
        build_create_order_request(
            [OrderLine("Widget", Decimal("1"), 1)],
            user_name="Ann",
            user_email="nope",
            shipping_address="1 Main St",
            user_id="user_7",
        )
    assert "userEmail" in exc.value.fields
