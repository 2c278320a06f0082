from decimal import Decimal

import pytest

from shopcore.domain.errors import InsufficientStock, NotFoundError, ProductUnavailable, ValidationError


def test_get_cart_without_cart_is_empty(new_uow, cart_service):
    with new_uow() as uow:
        cart = cart_service.get_cart(uow, 1)
    assert cart["cart_id"] is None
    assert cart["items"] == []
    assert cart["total_amount"] == Decimal("0.00")


def test_add_item_creates_cart_and_snapshots_price(new_uow, cart_service):
    with new_uow() as uow:
        cart = cart_service.add_item(uow, 1, 1, 2)

    assert cart["cart_id"] is not None
    assert cart["status"] == "active"
    assert cart["version"] == 2
    assert [(i["product_id"], i["quantity"], i["price"]) for i in cart["items"]] == [(1, 2, Decimal("10.00"))]
    assert cart["total_amount"] == Decimal("20.00")


def test_adding_same_product_merges_lines(new_uow, cart_service):
    with new_uow() as uow:
        cart_service.add_item(uow, 1, 1, 2)
    with new_uow() as uow:
        cart = cart_service.add_item(uow, 1, 1, 3)

    assert len(cart["items"]) == 1
    assert cart["items"][0]["quantity"] == 5
    assert cart["total_amount"] == Decimal("50.00")


def test_total_tracks_surviving_items(new_uow, cart_service):
    with new_uow() as uow:
        cart_service.add_item(uow, 1, 1, 2)
    with new_uow() as uow:
        cart = cart_service.add_item(uow, 1, 2, 1)
    assert cart["total_amount"] == Decimal("25.00")

    item_b = next(i for i in cart["items"] if i["product_id"] == 2)
    with new_uow() as uow:
        cart = cart_service.remove_item(uow, 1, item_b["id"])
    assert cart["total_amount"] == Decimal("20.00")

    item_a = cart["items"][0]
    with new_uow() as uow:
        cart = cart_service.update_item_quantity(uow, 1, item_a["id"], 1)
    assert cart["total_amount"] == Decimal("10.00")


def test_price_change_does_not_touch_existing_lines(new_uow, cart_service, set_price):
    with new_uow() as uow:
        cart_service.add_item(uow, 1, 1, 1)
    with new_uow() as uow:
        cart_service.add_item(uow, 1, 2, 1)

    set_price(1, "12.00")

    with new_uow() as uow:
        cart = cart_service.get_cart(uow, 1)
    assert cart["total_amount"] == Decimal("15.00")

    # updating the line takes a fresh snapshot
    item_a = next(i for i in cart["items"] if i["product_id"] == 1)
    with new_uow() as uow:
        cart = cart_service.update_item_quantity(uow, 1, item_a["id"], 1)
    assert cart["total_amount"] == Decimal("17.00")


def test_add_unknown_or_inactive_product(new_uow, cart_service):
    with new_uow() as uow:
        with pytest.raises(ProductUnavailable):
            cart_service.add_item(uow, 1, 999, 1)
    with new_uow() as uow:
        with pytest.raises(ProductUnavailable):
            cart_service.add_item(uow, 1, 3, 1)


def test_add_beyond_stock(new_uow, cart_service):
    with new_uow() as uow:
        cart_service.add_item(uow, 1, 2, 2)

    with new_uow() as uow:
        with pytest.raises(InsufficientStock) as exc:
            cart_service.add_item(uow, 1, 2, 2)
    assert exc.value.details == {"product_id": 2, "requested": 4, "available": 3}

    with new_uow() as uow:
        cart = cart_service.get_cart(uow, 1)
    assert cart["items"][0]["quantity"] == 2


def test_update_beyond_stock(new_uow, cart_service):
    with new_uow() as uow:
        cart = cart_service.add_item(uow, 1, 2, 1)
    with new_uow() as uow:
        with pytest.raises(InsufficientStock):
            cart_service.update_item_quantity(uow, 1, cart["items"][0]["id"], 4)


def test_invalid_quantity(new_uow, cart_service):
    with new_uow() as uow:
        with pytest.raises(ValidationError):
            cart_service.add_item(uow, 1, 1, 0)


def test_items_of_other_users_are_not_found(new_uow, cart_service):
    with new_uow() as uow:
        cart = cart_service.add_item(uow, 1, 1, 1)
    item_id = cart["items"][0]["id"]

    with new_uow() as uow:
        cart_service.add_item(uow, 2, 2, 1)

    with new_uow() as uow:
        with pytest.raises(NotFoundError):
            cart_service.remove_item(uow, 2, item_id)
    with new_uow() as uow:
        with pytest.raises(NotFoundError):
            cart_service.update_item_quantity(uow, 2, item_id, 2)


def test_clear(new_uow, cart_service):
    with new_uow() as uow:
        cart_service.add_item(uow, 1, 1, 1)
    with new_uow() as uow:
        cart_service.add_item(uow, 1, 2, 1)
    with new_uow() as uow:
        cart = cart_service.clear(uow, 1)

    assert cart["items"] == []
    assert cart["total_amount"] == Decimal("0.00")


def test_clear_without_cart(new_uow, cart_service):
    with new_uow() as uow:
        with pytest.raises(NotFoundError):
            cart_service.clear(uow, 1)


def test_adding_to_cart_does_not_reserve_stock(new_uow, cart_service, stock_of):
    with new_uow() as uow:
        cart_service.add_item(uow, 1, 1, 4)
    assert stock_of(1) == 10
