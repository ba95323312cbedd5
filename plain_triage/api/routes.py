import json
import logging
import time
import uuid

from fastapi import APIRouter, Depends, Query, Request
from pydantic import ValidationError as PydanticValidationError

from plain_triage.api.schemas import (
    ClassifierStatus,
    ClassifyTicketRequest,
    HealthResponse,
    PlainWebhook,
    WebhookResponse,
)
from plain_triage.api.webhook import PlainWebhookHandler
from plain_triage.core.errors import ConfigurationError, ValidationError
from plain_triage.deps import (
    get_selector,
    get_ticket_service,
    get_webhook_handler,
    get_webhook_secret,
)
from plain_triage.domain.models import ClassificationResult, ClassifierComparison
from plain_triage.infra.webhook_verification import verify_signature
from plain_triage.services.hybrid_selector import HybridPrioritySelector
from plain_triage.services.ticket_processor import ClassificationStats, TicketProcessorService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
def health(selector: HybridPrioritySelector = Depends(get_selector)):
    ai_available = selector.ai_available()
    return HealthResponse(
        mode=selector.mode,
        classifiers={
            "ai": ClassifierStatus(available=ai_available, configured=ai_available),
            "rules": ClassifierStatus(available=True, configured=True),
        },
    )


@router.post("/webhook/plain", response_model=WebhookResponse, tags=["webhooks"])
async def plain_webhook(
    request: Request,
    handler: PlainWebhookHandler = Depends(get_webhook_handler),
    secret: str | None = Depends(get_webhook_secret),
):
    started = time.perf_counter()
    request_id = f"req_{uuid.uuid4().hex[:12]}"

    if not secret:
        raise ConfigurationError("PLAIN_SIGNATURE_SECRET is not configured")

    body = await request.body()
    verify_signature(body, request.headers.get("Plain-Request-Signature"), secret)

    try:
        webhook = PlainWebhook.model_validate(json.loads(body))
    except (ValueError, PydanticValidationError) as e:
        raise ValidationError(f"Invalid webhook payload: {e}") from e

    event_type = webhook.payload.event_type
    logger.info("[%s] Webhook verified: event=%s workspace=%s", request_id, event_type, webhook.workspace_id)

    outcome = await handler.handle(webhook, request_id)
    processing_time_ms = (time.perf_counter() - started) * 1000
    logger.info("[%s] Webhook processed in %.0fms", request_id, processing_time_ms)

    return WebhookResponse(
        message="Webhook processed successfully",
        request_id=request_id,
        event_type=event_type,
        processing_time_ms=processing_time_ms,
        classification=outcome.classification if outcome else None,
        label_applied=outcome.label_applied if outcome else False,
        stored=outcome.stored if outcome else False,
    )


@router.post("/classify", response_model=ClassificationResult, tags=["classification"])
async def classify_ticket(
    payload: ClassifyTicketRequest,
    selector: HybridPrioritySelector = Depends(get_selector),
):
    return await selector.classify(payload.to_ticket())


@router.post("/classify/compare", response_model=ClassifierComparison, tags=["classification"])
async def compare_classifiers(
    payload: ClassifyTicketRequest,
    selector: HybridPrioritySelector = Depends(get_selector),
):
    comparison = await selector.compare(payload.to_ticket())
    if comparison is None:
        raise ConfigurationError("Comparison requires a configured language model")
    return comparison


@router.get("/stats", response_model=ClassificationStats, tags=["classification"])
async def classification_stats(
    days: int = Query(7, ge=1, le=365),
    svc: TicketProcessorService = Depends(get_ticket_service),
):
    return await svc.classification_stats(days)
