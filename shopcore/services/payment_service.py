# shopcore/services/payment_service.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

from shopcore.data.models.payment import PaymentModel
from shopcore.data.unit_of_work import UnitOfWork
from shopcore.domain.errors import NotFoundError, NotRefundable, OrderNotPayable, ValidationError
from shopcore.domain.schemas import GatewayMetadata, WebhookEvent, WebhookEventType
from shopcore.domain.state import (
    OrderPaymentStatus,
    OrderStatus,
    PaymentStatus,
    TransitionPlan,
    plan_payment_transition,
)
from shopcore.domain.validation import money
from shopcore.services.lock_service import LockService, payment_lock_key
from shopcore.services.order_service import restock_order
from shopcore.services.payment_gateway import PaymentGateway, gateway_from_settings
from shopcore.utils.logging import get_logger
from shopcore.utils.settings import PAYMENT_CURRENCY, TRANSACTION_TIMEOUT_MS

logger = get_logger(__name__)

WEBHOOK_TARGETS = {
    WebhookEventType.PAYMENT_SUCCEEDED: PaymentStatus.SUCCEEDED,
    WebhookEventType.PAYMENT_FAILED: PaymentStatus.FAILED,
    WebhookEventType.CHARGE_REFUNDED: PaymentStatus.REFUNDED,
}


def payment_view(payment: PaymentModel) -> Dict[str, Any]:
    order = payment.order
    return {
        "id": payment.id,
        "order_id": payment.order_id,
        "user_id": payment.user_id,
        "amount": money(payment.amount),
        "currency": payment.currency,
        "status": payment.status,
        "payment_method": payment.payment_method,
        "payment_intent_id": payment.payment_intent_id,
        "refund_id": payment.refund_id,
        "error_message": payment.error_message,
        "metadata": dict(payment.gateway_metadata or {}),
        "order": {
            "id": order.id,
            "status": order.status,
            "payment_status": order.payment_status,
            "total_amount": money(order.total_amount),
        }
        if order is not None
        else None,
        "created_at": payment.created_at,
        "updated_at": payment.updated_at,
    }


class PaymentService:
    """
    Payment attempts against orders and their reconciliation with the gateway.

    Every status change of a payment goes through _transition, whether it was
    triggered by a webhook or by the client asking for a refund.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        lock_service: LockService,
        currency: str = PAYMENT_CURRENCY,
        lock_timeout: float = TRANSACTION_TIMEOUT_MS / 1000,
    ):
        self.gateway = gateway
        self.lock_service = lock_service
        self.currency = currency
        self.lock_timeout = lock_timeout

    def create_payment_intent(self, uow: UnitOfWork, order_id: int, user_id: int) -> Dict[str, Any]:
        order = uow.orders.get_order(order_id, lock=True)
        if (
            not order
            or order.user_id != user_id
            or order.payment_status != OrderPaymentStatus.PENDING.value
            or order.status == OrderStatus.CANCELLED.value
        ):
            raise OrderNotPayable("Order not found or already paid")

        if uow.payments.has_in_flight(order.id):
            raise OrderNotPayable("A payment for this order is already in progress")

        payment = uow.payments.create_payment(
            PaymentModel(
                order_id=order.id,
                user_id=user_id,
                amount=order.total_amount,
                currency=self.currency,
                status=PaymentStatus.PENDING.value,
                payment_method="card",
                gateway_metadata=GatewayMetadata().model_dump(mode="json"),
            )
        )
        logger.info(f"Payment {payment.id} created for order {order.id}, amount {payment.amount}")

        # a failure here propagates and the caller's rollback drops the pending row
        intent = self.gateway.create_intent(
            Decimal(order.total_amount),
            self.currency,
            metadata={"order_id": order.id, "payment_id": payment.id},
            idempotency_key=f"intent-{order.id}-{uuid.uuid4().hex}",
        )

        self._transition(
            uow,
            payment,
            PaymentStatus.PROCESSING,
            event_type="intent_created",
            raw_payload=intent.raw,
            intent_id=intent.intent_id,
        )
        uow.commit()

        logger.info(f"Payment {payment.id} processing with intent {intent.intent_id}")
        return {
            "payment_id": payment.id,
            "payment_intent_id": intent.intent_id,
            "client_secret": intent.client_secret,
            "amount": money(payment.amount),
            "currency": payment.currency,
        }

    def handle_webhook(self, uow: UnitOfWork, event: WebhookEvent) -> bool:
        """Apply a gateway event. Returns True when it changed anything.

        Safe to call any number of times with the same event.
        """
        target = WEBHOOK_TARGETS.get(event.type)
        if target is None:
            logger.info(f"Ignoring webhook event {event.event_id} of type {event.type.value}")
            return False

        if not event.intent_id:
            raise ValidationError(
                "Webhook event carries no payment intent id",
                details=[{"field": "intent_id", "message": "required"}],
            )

        with self.lock_service.hold(payment_lock_key(event.intent_id), timeout=self.lock_timeout):
            payment = uow.payments.get_by_intent_id(event.intent_id, lock=True)
            if not payment:
                # possibly our own commit has not landed yet; the gateway will redeliver
                raise NotFoundError(f"No payment for intent {event.intent_id}")

            applied = self._transition(
                uow,
                payment,
                target,
                event_type=event.type.value,
                raw_payload=event.payload,
                occurred_at=event.occurred_at,
                refund_id=event.refund_id,
                error_message=event.error_message,
            )
            uow.commit()

        return applied

    def refund_payment(
        self,
        uow: UnitOfWork,
        payment_id: int,
        user_id: int,
        reason: str | None = None,
    ) -> Dict[str, Any]:
        payment = uow.payments.get_payment(payment_id)
        if (
            not payment
            or payment.user_id != user_id
            or payment.status != PaymentStatus.SUCCEEDED.value
            or not payment.payment_intent_id
        ):
            raise NotRefundable("Payment not found or not eligible for refund")

        intent_id = payment.payment_intent_id
        with self.lock_service.hold(payment_lock_key(intent_id), timeout=self.lock_timeout):
            payment = uow.payments.get_payment(payment_id, lock=True)
            # a refund webhook may have won the race for the lock
            if payment.status != PaymentStatus.SUCCEEDED.value:
                raise NotRefundable("Payment not found or not eligible for refund")

            refund = self.gateway.create_refund(
                intent_id, idempotency_key=f"refund-{payment.id}", reason=reason
            )

            self._transition(
                uow,
                payment,
                PaymentStatus.REFUNDED,
                event_type="refund_requested",
                raw_payload=refund.raw,
                refund_id=refund.refund_id,
                refund_reason=reason,
            )
            uow.commit()

        logger.info(f"Payment {payment.id} refunded with {refund.refund_id}")
        return payment_view(payment)

    def get_payment_details(self, uow: UnitOfWork, payment_id: int, user_id: int) -> Dict[str, Any]:
        payment = uow.payments.get_payment(payment_id)
        if not payment or payment.user_id != user_id:
            raise NotFoundError("Payment not found")
        return payment_view(payment)

    # the one place payment status changes
    def _transition(
        self,
        uow: UnitOfWork,
        payment: PaymentModel,
        target: PaymentStatus,
        *,
        event_type: str,
        raw_payload: dict | None = None,
        occurred_at: datetime | None = None,
        intent_id: str | None = None,
        refund_id: str | None = None,
        error_message: str | None = None,
        refund_reason: str | None = None,
    ) -> bool:
        plan = plan_payment_transition(payment.status, target.value)

        if plan == TransitionPlan.NOOP:
            logger.info(f"Payment {payment.id} already {target.value}, nothing to do")
            return False
        if plan == TransitionPlan.STALE:
            logger.warning(
                f"Stale {event_type} for payment {payment.id}: "
                f"status is {payment.status}, event wants {target.value}"
            )
            return False

        logger.info(f"Payment {payment.id}: {payment.status} -> {target.value} ({event_type})")
        payment.status = target.value
        if intent_id:
            payment.payment_intent_id = intent_id
        if refund_id:
            payment.refund_id = refund_id
        if error_message:
            payment.error_message = error_message

        metadata = GatewayMetadata(
            raw_gateway_payload=raw_payload or {},
            last_event_type=event_type,
            last_event_timestamp=occurred_at or datetime.now(timezone.utc),
            refund_reason=refund_reason,
        )
        payment.gateway_metadata = metadata.model_dump(mode="json")

        uow.flush()
        self._sync_order(uow, payment, target)
        return True

    def _sync_order(self, uow: UnitOfWork, payment: PaymentModel, target: PaymentStatus) -> None:
        if target == PaymentStatus.PROCESSING:
            return

        order = uow.orders.get_order(payment.order_id, lock=True)

        if target == PaymentStatus.SUCCEEDED:
            order.payment_status = OrderPaymentStatus.PAID.value
            if order.status == OrderStatus.PENDING.value:
                order.status = OrderStatus.PROCESSING.value
            elif order.status == OrderStatus.CANCELLED.value:
                logger.warning(f"Order {order.id} was cancelled but payment {payment.id} succeeded")

        elif target == PaymentStatus.FAILED:
            order.payment_status = OrderPaymentStatus.FAILED.value

        elif target == PaymentStatus.REFUNDED:
            order.payment_status = OrderPaymentStatus.REFUNDED.value
            if order.status != OrderStatus.CANCELLED.value:
                restock_order(uow, order)
                order.status = OrderStatus.CANCELLED.value

        logger.info(f"Order {order.id}: status {order.status}, payment status {order.payment_status}")


def build_payment_service() -> PaymentService:
    return PaymentService(gateway_from_settings(), LockService())
