import logging

from plain_triage.api.schemas import PlainEventPayload, PlainWebhook
from plain_triage.infra.plain_client import PlainApiClient
from plain_triage.services.ticket_processor import ProcessOutcome, TicketProcessorService

logger = logging.getLogger(__name__)


class PlainWebhookHandler:
    """Dispatches verified Plain events; unknown event types are acknowledged and ignored."""

    def __init__(self, processor: TicketProcessorService, plain_client: PlainApiClient | None = None) -> None:
        self._processor = processor
        self._plain_client = plain_client

    async def handle(self, webhook: PlainWebhook, request_id: str) -> ProcessOutcome | None:
        payload = webhook.payload
        match payload.event_type:
            case "thread.thread_created":
                return await self._thread_created(payload, request_id)
            case "thread.email_received":
                if not payload.is_start_of_thread:
                    logger.debug("[%s] Email received but not start of thread, skipping", request_id)
                    return None
                return await self._thread_created(payload, request_id)
            case "thread.labels_changed":
                self._labels_changed(payload, request_id)
                return None
            case _:
                logger.debug("[%s] Unhandled event type %s", request_id, payload.event_type)
                return None

    async def _thread_created(self, payload: PlainEventPayload, request_id: str) -> ProcessOutcome | None:
        if payload.thread is None:
            logger.warning("[%s] %s event without a thread, skipping", request_id, payload.event_type)
            return None

        ticket = payload.thread.to_ticket()
        logger.info("[%s] Processing thread %s (tier=%s)", request_id, ticket.id, ticket.customer_tier)
        message_id = payload.thread.first_message.id if payload.thread.first_message else None
        return await self._processor.process(ticket, message_id=message_id)

    def _labels_changed(self, payload: PlainEventPayload, request_id: str) -> None:
        if self._plain_client is None or payload.thread is None:
            return

        changes = []
        for action, labels in (("added", payload.added_labels), ("removed", payload.removed_labels)):
            for label in labels:
                band = self._plain_client.priority_for_label_type(label.label_type.id if label.label_type else None)
                if band is not None:
                    changes.append(f"{action} {band.value}")

        if changes:
            # TODO: store manual overrides so they can feed the historical context window
            logger.info("[%s] Manual priority label changes on thread %s: %s", request_id, payload.thread.id, ", ".join(changes))
