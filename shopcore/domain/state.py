# shopcore/domain/state.py
"""Status enums and the transition rules for carts, orders and payments.

Everything here is pure; services call these functions before they touch
the database so the rules can be tested without one.
"""
from enum import Enum

from shopcore.domain.errors import InvalidStatusTransition, ValidationError


class CartStatus(str, Enum):
    ACTIVE = "active"
    CONVERTED = "converted"
    ABANDONED = "abandoned"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class TransitionPlan(str, Enum):
    APPLY = "apply"
    NOOP = "noop"
    STALE = "stale"


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# stock is still in the warehouse, so cancelling puts it back on the ledger
RESTOCKABLE_ORDER_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})

# admins may set these by hand while no payment record exists
MANUAL_PAYMENT_STATUSES = frozenset(
    {OrderPaymentStatus.PENDING, OrderPaymentStatus.PAID, OrderPaymentStatus.FAILED}
)

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.SUCCEEDED, PaymentStatus.FAILED}),
    PaymentStatus.SUCCEEDED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

# how far along the machine a status is; succeeded and failed are siblings
_PAYMENT_STAGE = {
    PaymentStatus.PENDING: 0,
    PaymentStatus.PROCESSING: 1,
    PaymentStatus.SUCCEEDED: 2,
    PaymentStatus.FAILED: 2,
    PaymentStatus.REFUNDED: 3,
}


def check_order_transition(current: str, target: str) -> OrderStatus:
    """Validate an admin fulfillment move. No-ops are rejected too."""
    current_status = OrderStatus(current)
    try:
        target_status = OrderStatus(target)
    except ValueError:
        raise ValidationError(
            "Invalid order status",
            details=[
                {
                    "field": "status",
                    "message": f"must be one of {', '.join(s.value for s in OrderStatus)}",
                }
            ],
        ) from None
    if target_status not in ORDER_TRANSITIONS[current_status]:
        raise InvalidStatusTransition("order", current_status.value, target_status.value)
    return target_status


def plan_payment_transition(current: str, target: str) -> TransitionPlan:
    """Decide what to do with a requested payment move.

    APPLY when the move is legal, NOOP when the payment already sits in the
    target status, STALE when it has moved past the target (an old event
    delivered late). A move that skips ahead raises InvalidStatusTransition.
    """
    current_status = PaymentStatus(current)
    target_status = PaymentStatus(target)

    if current_status == target_status:
        return TransitionPlan.NOOP
    if target_status in PAYMENT_TRANSITIONS[current_status]:
        return TransitionPlan.APPLY
    if _PAYMENT_STAGE[current_status] >= _PAYMENT_STAGE[target_status]:
        return TransitionPlan.STALE
    raise InvalidStatusTransition("payment", current_status.value, target_status.value)
