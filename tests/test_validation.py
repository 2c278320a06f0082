from decimal import Decimal

import pytest

from shopcore.domain.errors import ValidationError
from shopcore.domain.validation import (
    money,
    order_total,
    to_minor_units,
    validate_line_items,
    validate_quantity,
    validate_shipping_address,
)


def test_money_rounds_half_up():
    assert money("2.345") == Decimal("2.35")
    assert money(0) == Decimal("0.00")


def test_order_total_sums_lines():
    lines = [(Decimal("10.00"), 2), (Decimal("5.00"), 1)]
    assert order_total(lines) == Decimal("25.00")


def test_order_total_of_nothing_is_zero():
    assert order_total([]) == Decimal("0.00")


def test_to_minor_units():
    assert to_minor_units(Decimal("25.00")) == 2500
    assert to_minor_units(Decimal("0.1")) == 10


@pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True, None])
def test_invalid_quantity(quantity):
    with pytest.raises(ValidationError):
        validate_quantity(quantity)


def test_line_items_are_normalized():
    lines = validate_line_items([{"product_id": 2, "quantity": 1}, {"product_id": 1, "quantity": 3}])
    assert [(l.product_id, l.quantity, l.unit_price) for l in lines] == [(2, 1, None), (1, 3, None)]


def test_line_items_report_every_bad_field():
    with pytest.raises(ValidationError) as exc:
        validate_line_items(
            [
                {"product_id": 0, "quantity": 1},
                {"product_id": 1, "quantity": 0},
                {"product_id": 2, "quantity": 1},
                {"product_id": 2, "quantity": 4},
            ]
        )
    fields = [d["field"] for d in exc.value.details]
    assert fields == ["items.0.product_id", "items.1.quantity", "items.3.product_id"]


def test_empty_line_items():
    with pytest.raises(ValidationError) as exc:
        validate_line_items([])
    assert exc.value.details == [{"field": "items", "message": "at least one item is required"}]


def test_shipping_address_requires_core_fields():
    with pytest.raises(ValidationError) as exc:
        validate_shipping_address({"street": "1 Main St", "city": " "})
    fields = {d["field"] for d in exc.value.details}
    assert fields == {"shipping_address.city", "shipping_address.state", "shipping_address.zip_code"}


def test_shipping_address_missing():
    with pytest.raises(ValidationError):
        validate_shipping_address(None)


def test_shipping_address_drops_empty_optionals():
    address = validate_shipping_address(
        {"street": "1 Main St", "city": "Springfield", "state": "IL", "zip_code": "62701", "country": None}
    )
    assert "country" not in address
