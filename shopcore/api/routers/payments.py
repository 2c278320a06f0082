# shopcore/api/routers/payments.py
import json

from fastapi import APIRouter, Depends, Header, Query

from shopcore.api.deps import get_payment_gateway, get_payment_service, get_uow, raw_body
from shopcore.data.unit_of_work import UnitOfWork
from shopcore.domain.errors import ValidationError
from shopcore.domain.schemas import PaymentIntentOut, PaymentOut, RefundIn, WebhookAck
from shopcore.services.payment_gateway import PaymentGateway, parse_webhook_event
from shopcore.services.payment_service import PaymentService
from shopcore.utils import settings
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-intent/{order_id}", response_model=PaymentIntentOut)
def create_intent(
    order_id: int,
    user_id: int = Query(..., gt=0),
    uow: UnitOfWork = Depends(get_uow),
    svc: PaymentService = Depends(get_payment_service),
):
    return svc.create_payment_intent(uow, order_id, user_id)


@router.post("/webhook", response_model=WebhookAck)
def webhook(
    payload: bytes = Depends(raw_body),
    signature: str | None = Header(default=None, alias="Stripe-Signature"),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    uow: UnitOfWork = Depends(get_uow),
    svc: PaymentService = Depends(get_payment_service),
):
    """
    Gateway callback. Non-2xx answers make the gateway redeliver.
    """
    if not gateway.verify_webhook_signature(payload, signature):
        raise ValidationError("Invalid webhook signature")

    try:
        body = json.loads(payload)
    except ValueError as e:
        raise ValidationError("Webhook body is not valid JSON") from e

    event = parse_webhook_event(body)

    if settings.WEBHOOK_PROCESSING == "async":
        from shopcore.tasks.webhooks import process_webhook_event_task

        process_webhook_event_task.delay(event.model_dump(mode="json"))
        logger.info(f"Queued webhook event {event.event_id} ({event.type.value})")
        return WebhookAck(queued=True)

    applied = svc.handle_webhook(uow, event)
    return WebhookAck(applied=applied)


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(
    payment_id: int,
    user_id: int = Query(..., gt=0),
    uow: UnitOfWork = Depends(get_uow),
    svc: PaymentService = Depends(get_payment_service),
):
    return svc.get_payment_details(uow, payment_id, user_id)


@router.post("/{payment_id}/refund", response_model=PaymentOut)
def refund(
    payment_id: int,
    payload: RefundIn | None = None,
    user_id: int = Query(..., gt=0),
    uow: UnitOfWork = Depends(get_uow),
    svc: PaymentService = Depends(get_payment_service),
):
    reason = payload.reason if payload else None
    return svc.refund_payment(uow, payment_id, user_id, reason=reason)
