# shopcore/repos/order_repo.py
from sqlalchemy import select

from shopcore.data.models.order import OrderModel
from shopcore.data.models.order_item import OrderItemModel
from shopcore.repos.base import BaseRepo


class OrderRepo(BaseRepo):
    def create_order(self, order: OrderModel) -> OrderModel:
        return self._add(order)

    def add_order_item(self, item: OrderItemModel) -> OrderItemModel:
        return self._add(item)

    def get_order(self, order_id: int, lock: bool = False) -> OrderModel | None:
        return self._fetch_one(select(OrderModel).where(OrderModel.id == order_id), lock=lock)

    def get_by_idempotency_key(self, user_id: int, key: str) -> OrderModel | None:
        stmt = select(OrderModel).where(
            OrderModel.user_id == user_id,
            OrderModel.idempotency_key == key,
        )
        return self._fetch_one(stmt)

    def list_orders(self, user_id: int) -> list[OrderModel]:
        stmt = (
            select(OrderModel)
            .where(OrderModel.user_id == user_id)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        )
        return list(self._execute(stmt).scalars().all())
