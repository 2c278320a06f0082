# shopcore/tasks/webhooks.py
from shopcore.celery_worker import celery_app
from shopcore.data.unit_of_work import UnitOfWork
from shopcore.domain.errors import ConflictError, NotFoundError
from shopcore.domain.schemas import WebhookEvent
from shopcore.services.payment_service import build_payment_service
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(
    name="shopcore.tasks.webhooks.process_webhook_event_task",
    autoretry_for=(ConflictError, NotFoundError),
    retry_backoff=True,
    retry_backoff_max=300,
    max_retries=8,
)
def process_webhook_event_task(event_data: dict):
    """Reconcile a queued gateway event.

    Lock contention, premature events and events for payments whose row is
    not committed yet are retried with backoff; reconciliation is idempotent
    so a retry never applies anything twice.
    """
    event = WebhookEvent.model_validate(event_data)
    logger.info(f"Processing queued webhook event {event.event_id} ({event.type.value})")

    service = build_payment_service()
    with UnitOfWork() as uow:
        applied = service.handle_webhook(uow, event)

    return {"event_id": event.event_id, "intent_id": event.intent_id, "applied": applied}
