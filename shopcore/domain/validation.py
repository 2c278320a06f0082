# shopcore/domain/validation.py
"""Input checks and pricing helpers used by the services before persistence."""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Mapping

from shopcore.domain.errors import ValidationError

CENT = Decimal("0.01")
ADDRESS_FIELDS = ("street", "city", "state", "zip_code")


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int
    # None means "price from the catalog at reservation time"
    unit_price: Decimal | None = None


def money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return money(unit_price * quantity)


def order_total(priced_lines: Iterable[tuple[Decimal, int]]) -> Decimal:
    return money(sum((line_total(price, qty) for price, qty in priced_lines), Decimal("0.00")))


def to_minor_units(amount: Decimal) -> int:
    """Amount in cents, as payment gateways expect it."""
    return int((money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def validate_quantity(quantity: Any, field: str = "quantity") -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError(
            "Quantity must be at least 1",
            details=[{"field": field, "message": "must be an integer >= 1"}],
        )
    return quantity


def validate_line_items(items: Iterable[Mapping[str, Any]]) -> list[OrderLine]:
    lines: list[OrderLine] = []
    errors: list[dict] = []
    seen: set[int] = set()

    for index, item in enumerate(items):
        product_id = item.get("product_id")
        quantity = item.get("quantity")

        if isinstance(product_id, bool) or not isinstance(product_id, int) or product_id < 1:
            errors.append({"field": f"items.{index}.product_id", "message": "invalid product id"})
            continue
        if product_id in seen:
            errors.append({"field": f"items.{index}.product_id", "message": "duplicate product"})
            continue
        try:
            validate_quantity(quantity)
        except ValidationError:
            errors.append({"field": f"items.{index}.quantity", "message": "must be an integer >= 1"})
            continue

        seen.add(product_id)
        lines.append(OrderLine(product_id=product_id, quantity=quantity))

    if not lines and not errors:
        errors.append({"field": "items", "message": "at least one item is required"})
    if errors:
        raise ValidationError("Invalid order items", details=errors)
    return lines


def validate_shipping_address(address: Mapping[str, Any] | None) -> dict:
    if not isinstance(address, Mapping):
        raise ValidationError(
            "Shipping address is required",
            details=[{"field": "shipping_address", "message": "required"}],
        )

    errors = [
        {"field": f"shipping_address.{name}", "message": "required"}
        for name in ADDRESS_FIELDS
        if not str(address.get(name) or "").strip()
    ]
    if errors:
        raise ValidationError("Invalid shipping address", details=errors)

    return {key: value for key, value in address.items() if value is not None}
