# shopcore/services/cart_service.py
from decimal import Decimal
from typing import Any, Dict

from shopcore.data.models.cart import CartModel
from shopcore.data.models.cart_item import CartItemModel
from shopcore.data.unit_of_work import UnitOfWork
from shopcore.domain.errors import ConflictError, InsufficientStock, NotFoundError, ProductUnavailable
from shopcore.domain.state import CartStatus
from shopcore.domain.validation import money, validate_quantity
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)


def cart_view(cart: CartModel | None, user_id: int) -> Dict[str, Any]:
    if cart is None:
        return {
            "cart_id": None,
            "user_id": user_id,
            "status": CartStatus.ACTIVE.value,
            "items": [],
            "total_amount": Decimal("0.00"),
            "version": None,
        }

    return {
        "cart_id": cart.id,
        "user_id": cart.user_id,
        "status": cart.status,
        "items": [
            {
                "id": i.id,
                "product_id": i.product_id,
                "quantity": i.quantity,
                "price": i.price,
            }
            for i in cart.items
        ],
        "total_amount": money(cart.total_amount),
        "version": cart.version,
    }


class CartService:
    """
    Use cases of the cart aggregate.
    Commands (add, update, remove, clear) lock the cart row, mutate its items
    and recompute the total in the caller's unit of work.
    Query (get) only reads.
    """

    # query
    def get_cart(self, uow: UnitOfWork, user_id: int) -> Dict[str, Any]:
        cart = uow.carts.get_active_cart_by_user(user_id)
        return cart_view(cart, user_id)

    # commands
    def add_item(self, uow: UnitOfWork, user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        validate_quantity(quantity)

        cart = self._get_or_create_active_cart(uow, user_id)

        product = uow.inventory.find_active_product(product_id)
        if not product:
            raise ProductUnavailable(product_id)

        existing_item = uow.carts.get_cart_item(cart.id, product_id)
        new_quantity = quantity + (existing_item.quantity if existing_item else 0)

        if product.stock < new_quantity:
            raise InsufficientStock(product_id, new_quantity, product.stock)

        if existing_item:
            logger.info(
                f"Product {product_id} already in cart {cart.id}, "
                f"quantity {existing_item.quantity} -> {new_quantity}"
            )
            existing_item.quantity = new_quantity
            existing_item.price = product.price  # fresh price snapshot
        else:
            logger.info(f"Adding product {product_id} to cart {cart.id}")
            uow.carts.add_cart_item(
                CartItemModel(
                    cart_id=cart.id,
                    product_id=product_id,
                    quantity=quantity,
                    price=product.price,
                )
            )

        return self._save(uow, cart)

    def update_item_quantity(self, uow: UnitOfWork, user_id: int, item_id: int, quantity: int) -> Dict[str, Any]:
        validate_quantity(quantity)

        cart, item = self._get_owned_item(uow, user_id, item_id)

        product = uow.inventory.find_active_product(item.product_id)
        if not product:
            raise ProductUnavailable(item.product_id)
        if product.stock < quantity:
            raise InsufficientStock(item.product_id, quantity, product.stock)

        logger.info(f"Cart item {item_id}: quantity {item.quantity} -> {quantity}")
        item.quantity = quantity
        item.price = product.price

        return self._save(uow, cart)

    def remove_item(self, uow: UnitOfWork, user_id: int, item_id: int) -> Dict[str, Any]:
        cart, item = self._get_owned_item(uow, user_id, item_id)

        logger.info(f"Removing product {item.product_id} from cart {cart.id}")
        uow.carts.delete_cart_item(item)

        return self._save(uow, cart)

    def clear(self, uow: UnitOfWork, user_id: int) -> Dict[str, Any]:
        cart = uow.carts.get_active_cart_by_user(user_id, lock=True)
        if not cart:
            raise NotFoundError("Cart not found")

        removed = uow.carts.delete_cart_items(cart.id)
        logger.info(f"Cleared {removed} items from cart {cart.id}")

        return self._save(uow, cart)

    # helpers
    def _get_or_create_active_cart(self, uow: UnitOfWork, user_id: int) -> CartModel:
        cart = uow.carts.get_active_cart_by_user(user_id, lock=True)
        if cart:
            return cart

        cart = uow.carts.create_cart(
            CartModel(
                user_id=user_id,
                status=CartStatus.ACTIVE.value,
                total_amount=Decimal("0.00"),
                version=1,
            )
        )
        logger.info(f"Created cart {cart.id} for user {user_id}")
        return cart

    def _get_owned_item(self, uow: UnitOfWork, user_id: int, item_id: int) -> tuple[CartModel, CartItemModel]:
        cart = uow.carts.get_active_cart_by_user(user_id, lock=True)
        item = uow.carts.get_cart_item_by_id(item_id)

        if not cart or not item or item.cart_id != cart.id:
            raise NotFoundError("Cart item not found")
        return cart, item

    def _save(self, uow: UnitOfWork, cart: CartModel) -> Dict[str, Any]:
        """Recompute the total from the surviving items and bump the version.

        The update is guarded on the version we read, so a concurrent writer
        that slipped past the row lock makes this one fail instead of
        silently overwriting its total.
        """
        total = money(uow.carts.compute_total(cart.id))

        rowcount = uow.carts.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={"version": cart.version + 1, "total_amount": total},
        )
        if rowcount == 0:
            raise ConflictError("Cart was modified by another operation")

        uow.commit()
        uow.session.refresh(cart)

        logger.info(f"Cart {cart.id} saved, total {total}, version {cart.version}")
        return cart_view(cart, cart.user_id)
