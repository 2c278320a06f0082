# shopcore/services/payment_gateway.py
"""Contract with the external payment processor and its adapters.

StripeGateway goes through the ``stripe`` SDK; FakePaymentGateway
never leaves the process and is what development and the tests run against.
"""
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

import stripe

from shopcore.domain.errors import ExternalServiceError, ValidationError
from shopcore.domain.schemas import WebhookEvent, WebhookEventType
from shopcore.domain.validation import to_minor_units
from shopcore.utils.logging import get_logger
from shopcore.utils.retry import gateway_retry
from shopcore.utils import settings

logger = get_logger(__name__)

# gateway event names -> the kinds the core reconciles
STRIPE_EVENT_TYPES = {
    "payment_intent.succeeded": WebhookEventType.PAYMENT_SUCCEEDED,
    "payment_intent.payment_failed": WebhookEventType.PAYMENT_FAILED,
    "charge.refunded": WebhookEventType.CHARGE_REFUNDED,
}


@dataclass(frozen=True)
class IntentResult:
    intent_id: str
    client_secret: str | None
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    raw: dict = field(default_factory=dict)


class PaymentGateway(ABC):
    @abstractmethod
    def create_intent(
        self,
        amount: Decimal,
        currency: str,
        metadata: dict,
        idempotency_key: str | None = None,
    ) -> IntentResult:
        """Open a payment intent for ``amount``. Raises ExternalServiceError."""

    @abstractmethod
    def create_refund(
        self,
        intent_id: str,
        idempotency_key: str | None = None,
        reason: str | None = None,
    ) -> RefundResult:
        """Refund the charge behind ``intent_id``. Raises ExternalServiceError."""

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        ...


class StripeGateway(PaymentGateway):
    """Stripe through the official SDK. Transient errors are retried with the
    same idempotency key, so Stripe never opens two intents for one attempt."""

    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        tolerance: int | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.PAYMENT_GATEWAY_API_KEY
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.PAYMENT_WEBHOOK_SECRET
        )
        self.tolerance = tolerance if tolerance is not None else settings.PAYMENT_WEBHOOK_TOLERANCE_SECONDS

    @gateway_retry()
    def _create_intent(self, params: dict, idempotency_key: str | None):
        logger.info("StripeGateway PaymentIntent.create")
        return stripe.PaymentIntent.create(api_key=self.api_key, idempotency_key=idempotency_key, **params)

    @gateway_retry()
    def _create_refund(self, params: dict, idempotency_key: str | None):
        logger.info("StripeGateway Refund.create")
        return stripe.Refund.create(api_key=self.api_key, idempotency_key=idempotency_key, **params)

    def create_intent(self, amount, currency, metadata, idempotency_key=None) -> IntentResult:
        params = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": {key: str(value) for key, value in metadata.items()},
        }
        try:
            intent = self._create_intent(params, idempotency_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe PaymentIntent.create failed: {e.user_message or e}")
            raise ExternalServiceError("Payment gateway request failed") from e

        intent_id = getattr(intent, "id", None)
        if not intent_id:
            raise ExternalServiceError("Payment gateway did not return an intent id")
        return IntentResult(
            intent_id=intent_id,
            client_secret=getattr(intent, "client_secret", None),
            raw=intent.to_dict(),
        )

    def create_refund(self, intent_id, idempotency_key=None, reason=None) -> RefundResult:
        params = {"payment_intent": intent_id}
        if reason:
            # Stripe's own reason field takes a fixed vocabulary; free text goes to metadata
            params["metadata"] = {"reason": reason}
        try:
            refund = self._create_refund(params, idempotency_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe Refund.create failed: {e.user_message or e}")
            raise ExternalServiceError("Payment gateway request failed") from e

        refund_id = getattr(refund, "id", None)
        if not refund_id:
            raise ExternalServiceError("Payment gateway did not return a refund id")
        return RefundResult(refund_id=refund_id, raw=refund.to_dict())

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        if not signature or not self.webhook_secret:
            return False
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError:
            return False
        try:
            stripe.Webhook.construct_event(text, signature, self.webhook_secret, tolerance=self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Rejected webhook signature: {e}")
            return False
        except ValueError:
            # the signature checked out, the body is not JSON; the route reports that
            return True
        return True


class FakePaymentGateway(PaymentGateway):
    """Configurable in-process gateway. Records every call it receives."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Gateway unavailable"
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Gateway unavailable") -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_intent(self, amount, currency, metadata, idempotency_key=None) -> IntentResult:
        self.calls.append(
            {
                "method": "create_intent",
                "amount": amount,
                "currency": currency,
                "metadata": dict(metadata),
                "idempotency_key": idempotency_key,
            }
        )
        if not self.should_succeed:
            raise ExternalServiceError(self.failure_reason)

        intent_id = f"pi_fake_{uuid.uuid4().hex[:12]}"
        raw = {"id": intent_id, "amount": to_minor_units(amount), "currency": currency, "status": "requires_payment_method"}
        return IntentResult(intent_id=intent_id, client_secret=f"{intent_id}_secret", raw=raw)

    def create_refund(self, intent_id, idempotency_key=None, reason=None) -> RefundResult:
        self.calls.append(
            {
                "method": "create_refund",
                "intent_id": intent_id,
                "idempotency_key": idempotency_key,
                "reason": reason,
            }
        )
        if not self.should_succeed:
            raise ExternalServiceError(self.failure_reason)

        refund_id = f"re_fake_{uuid.uuid4().hex[:12]}"
        return RefundResult(refund_id=refund_id, raw={"id": refund_id, "payment_intent": intent_id, "status": "succeeded"})

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        return signature == "test-signature"


def gateway_from_settings() -> PaymentGateway:
    if settings.PAYMENT_GATEWAY == "fake":
        return FakePaymentGateway()
    return StripeGateway()


def parse_webhook_event(body: dict) -> WebhookEvent:
    """Normalize a gateway callback body into a WebhookEvent.

    Accepts Stripe-shaped events (``{"type", "data": {"object": ...}}``) and
    events already in the core's own shape (``{"type", "intent_id", "payload"}``).
    """
    if not isinstance(body, dict) or not isinstance(body.get("type"), str):
        raise ValidationError(
            "Malformed webhook event",
            details=[{"field": "type", "message": "required"}],
        )

    raw_type = body["type"]
    if "data" not in body:
        try:
            kind = WebhookEventType(raw_type)
        except ValueError:
            kind = WebhookEventType.OTHER
        return WebhookEvent(
            type=kind,
            intent_id=body.get("intent_id"),
            payload=body.get("payload") or {},
            event_id=body.get("event_id"),
            occurred_at=body.get("occurred_at"),
            error_message=body.get("error_message"),
            refund_id=body.get("refund_id"),
        )

    obj = (body.get("data") or {}).get("object") or {}
    kind = STRIPE_EVENT_TYPES.get(raw_type, WebhookEventType.OTHER)
    occurred_at = (
        datetime.fromtimestamp(body["created"], tz=timezone.utc)
        if isinstance(body.get("created"), (int, float))
        else None
    )

    intent_id = None
    error_message = None
    refund_id = None
    if kind in (WebhookEventType.PAYMENT_SUCCEEDED, WebhookEventType.PAYMENT_FAILED):
        intent_id = obj.get("id")
        error_message = (obj.get("last_payment_error") or {}).get("message")
    elif kind == WebhookEventType.CHARGE_REFUNDED:
        intent_id = obj.get("payment_intent")
        refunds = (obj.get("refunds") or {}).get("data") or []
        refund_id = refunds[0].get("id") if refunds else obj.get("id")

    return WebhookEvent(
        type=kind,
        intent_id=intent_id,
        payload=obj,
        event_id=body.get("id"),
        occurred_at=occurred_at,
        error_message=error_message,
        refund_id=refund_id,
    )
