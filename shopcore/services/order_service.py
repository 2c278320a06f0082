# shopcore/services/order_service.py
from typing import Any, Dict, Iterable, Mapping

from shopcore.data.models.order import OrderModel
from shopcore.data.models.order_item import OrderItemModel
from shopcore.data.unit_of_work import UnitOfWork
from shopcore.domain.errors import (
    ConflictError,
    EmptyCart,
    InsufficientStock,
    NotFoundError,
    PaymentManagedExternally,
    ProductUnavailable,
    ValidationError,
)
from shopcore.domain.state import (
    MANUAL_PAYMENT_STATUSES,
    RESTOCKABLE_ORDER_STATUSES,
    CartStatus,
    OrderPaymentStatus,
    OrderStatus,
    check_order_transition,
)
from shopcore.domain.validation import (
    OrderLine,
    money,
    order_total,
    validate_line_items,
    validate_shipping_address,
)
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)


def order_view(order: OrderModel) -> Dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "cart_id": order.cart_id,
        "status": order.status,
        "payment_status": order.payment_status,
        "total_amount": money(order.total_amount),
        "shipping_address": dict(order.shipping_address or {}),
        "items": [
            {
                "id": i.id,
                "product_id": i.product_id,
                "quantity": i.quantity,
                "price": i.price,
            }
            for i in order.items
        ],
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


def restock_order(uow: UnitOfWork, order: OrderModel) -> None:
    """Put the order's reserved units back, if they never left the warehouse."""
    if OrderStatus(order.status) not in RESTOCKABLE_ORDER_STATUSES:
        return
    for item in sorted(order.items, key=lambda i: i.product_id):
        uow.inventory.increment(item.product_id, item.quantity)
    logger.info(f"Returned stock of order {order.id} to the ledger")


class OrderService:
    """
    Use cases of the order aggregate.
    Both ways of placing an order share _place_order, which reserves stock
    and writes Order + OrderItems inside the caller's unit of work.
    """

    def create_order(
        self,
        uow: UnitOfWork,
        user_id: int,
        items: Iterable[Mapping[str, Any]],
        shipping_address: Mapping[str, Any],
        idempotency_key: str | None = None,
    ) -> Dict[str, Any]:
        lines = validate_line_items(items)
        address = validate_shipping_address(shipping_address)

        replay = self._find_replay(uow, user_id, idempotency_key)
        if replay:
            return order_view(replay)

        order = self._place_order(uow, user_id, lines, address, idempotency_key=idempotency_key)
        uow.commit()

        logger.info(f"Order {order.id} created for user {user_id}, total {order.total_amount}")
        return order_view(order)

    def create_order_from_cart(
        self,
        uow: UnitOfWork,
        user_id: int,
        shipping_address: Mapping[str, Any],
        idempotency_key: str | None = None,
    ) -> Dict[str, Any]:
        address = validate_shipping_address(shipping_address)

        replay = self._find_replay(uow, user_id, idempotency_key)
        if replay:
            return order_view(replay)

        cart = uow.carts.get_active_cart_by_user(user_id, lock=True)
        if not cart:
            raise EmptyCart("No active cart to convert")

        cart_items = uow.carts.get_cart_items(cart.id)
        if not cart_items:
            raise EmptyCart("Cart is empty")

        # the cart's snapshot prices are what the customer agreed to
        lines = [
            OrderLine(product_id=i.product_id, quantity=i.quantity, unit_price=i.price)
            for i in cart_items
        ]
        order = self._place_order(
            uow, user_id, lines, address, cart_id=cart.id, idempotency_key=idempotency_key
        )

        uow.carts.delete_cart_items(cart.id)
        rowcount = uow.carts.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={
                "status": CartStatus.CONVERTED.value,
                "total_amount": money(0),
                "version": cart.version + 1,
            },
        )
        if rowcount == 0:
            raise ConflictError("Cart was modified by another operation")

        uow.commit()

        logger.info(f"Cart {cart.id} converted into order {order.id}")
        return order_view(order)

    def get_order(self, uow: UnitOfWork, order_id: int, user_id: int) -> Dict[str, Any]:
        order = uow.orders.get_order(order_id)
        if not order or order.user_id != user_id:
            raise NotFoundError("Order not found")
        return order_view(order)

    def list_orders(self, uow: UnitOfWork, user_id: int) -> list[Dict[str, Any]]:
        return [order_view(o) for o in uow.orders.list_orders(user_id)]

    def update_status(self, uow: UnitOfWork, order_id: int, new_status: str) -> Dict[str, Any]:
        order = uow.orders.get_order(order_id, lock=True)
        if not order:
            raise NotFoundError("Order not found")

        target = check_order_transition(order.status, new_status)
        if target == OrderStatus.CANCELLED:
            restock_order(uow, order)

        logger.info(f"Order {order_id}: status {order.status} -> {target.value}")
        order.status = target.value
        uow.commit()
        return order_view(order)

    def update_manual_payment_status(self, uow: UnitOfWork, order_id: int, new_status: str) -> Dict[str, Any]:
        try:
            target = OrderPaymentStatus(new_status)
        except ValueError:
            target = None
        if target not in MANUAL_PAYMENT_STATUSES:
            raise ValidationError(
                "Invalid payment status",
                details=[{"field": "payment_status", "message": "must be pending, paid or failed"}],
            )

        order = uow.orders.get_order(order_id, lock=True)
        if not order:
            raise NotFoundError("Order not found")

        if uow.payments.count_for_order(order.id) > 0:
            raise PaymentManagedExternally(
                "Payment status of gateway-backed orders changes only through the payment system"
            )

        logger.info(f"Order {order_id}: payment status {order.payment_status} -> {target.value} (manual)")
        order.payment_status = target.value
        uow.commit()
        return order_view(order)

    # core path shared by both ways of placing an order
    def _place_order(
        self,
        uow: UnitOfWork,
        user_id: int,
        lines: list[OrderLine],
        address: dict,
        cart_id: int | None = None,
        idempotency_key: str | None = None,
    ) -> OrderModel:
        """Reserve stock for every line and persist the order.

        Rows are locked in ascending product id so two orders over the same
        products always queue in the same order. Any failure leaves the unit
        of work uncommitted; the caller's rollback undoes earlier decrements.
        """
        priced: dict[int, OrderLine] = {}
        for line in sorted(lines, key=lambda l: l.product_id):
            product = uow.inventory.find_active_product(line.product_id, lock=True)
            if not product:
                raise ProductUnavailable(line.product_id)
            if product.stock < line.quantity:
                raise InsufficientStock(line.product_id, line.quantity, product.stock)

            uow.inventory.decrement(line.product_id, line.quantity)

            unit_price = line.unit_price if line.unit_price is not None else product.price
            priced[line.product_id] = OrderLine(line.product_id, line.quantity, money(unit_price))

        total = order_total((p.unit_price, p.quantity) for p in priced.values())

        order = uow.orders.create_order(
            OrderModel(
                user_id=user_id,
                cart_id=cart_id,
                total_amount=total,
                shipping_address=address,
                status=OrderStatus.PENDING.value,
                payment_status=OrderPaymentStatus.PENDING.value,
                idempotency_key=idempotency_key,
            )
        )
        # items keep the caller's line order
        for line in lines:
            p = priced[line.product_id]
            uow.orders.add_order_item(
                OrderItemModel(order_id=order.id, product_id=p.product_id, quantity=p.quantity, price=p.unit_price)
            )

        uow.session.refresh(order)
        return order

    def _find_replay(self, uow: UnitOfWork, user_id: int, idempotency_key: str | None) -> OrderModel | None:
        if not idempotency_key:
            return None
        order = uow.orders.get_by_idempotency_key(user_id, idempotency_key)
        if order:
            logger.info(f"Idempotency key {idempotency_key!r} replayed, returning order {order.id}")
        return order
