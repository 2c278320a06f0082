# shopcore/repos/cart_repo.py
from decimal import Decimal

from sqlalchemy import select, update

from shopcore.data.models.cart import CartModel
from shopcore.data.models.cart_item import CartItemModel
from shopcore.domain.state import CartStatus
from shopcore.repos.base import BaseRepo


class CartRepo(BaseRepo):
    def get_active_cart_by_user(self, user_id: int, lock: bool = False) -> CartModel | None:
        stmt = select(CartModel).where(
            CartModel.user_id == user_id,
            CartModel.status == CartStatus.ACTIVE.value,
        )
        return self._fetch_one(stmt, lock=lock)

    def create_cart(self, cart: CartModel) -> CartModel:
        return self._add(cart)

    def get_cart_items(self, cart_id: int) -> list[CartItemModel]:
        stmt = select(CartItemModel).where(CartItemModel.cart_id == cart_id).order_by(CartItemModel.id)
        return list(self._execute(stmt).scalars().all())

    def get_cart_item(self, cart_id: int, product_id: int) -> CartItemModel | None:
        stmt = select(CartItemModel).where(
            CartItemModel.cart_id == cart_id,
            CartItemModel.product_id == product_id,
        )
        return self._fetch_one(stmt)

    def get_cart_item_by_id(self, item_id: int) -> CartItemModel | None:
        return self._fetch_one(select(CartItemModel).where(CartItemModel.id == item_id))

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        return self._add(item)

    def delete_cart_item(self, item: CartItemModel) -> None:
        self._delete([item])

    def delete_cart_items(self, cart_id: int) -> int:
        items = self.get_cart_items(cart_id)
        self._delete(items)
        return len(items)

    def compute_total(self, cart_id: int) -> Decimal:
        items = self.get_cart_items(cart_id)
        return sum((i.price * i.quantity for i in items), Decimal("0.00"))

    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        """Guarded update: only applies when nobody bumped the version meanwhile.

        Returns the number of rows affected (0 means a concurrent write won).
        """
        stmt = (
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        rowcount = self._execute(stmt).rowcount
        self._expire_cached(CartModel, cart_id, list(new_data))
        return rowcount
