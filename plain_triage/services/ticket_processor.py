import asyncio
import logging
from datetime import datetime, timezone

from pydantic import BaseModel

from plain_triage.core.errors import AppError
from plain_triage.domain.models import (
    AuditRecord,
    BandStats,
    ClassificationResult,
    Ticket,
    normalized_confidence,
)
from plain_triage.domain.ports import AuditStore, LabelApplier
from plain_triage.services.hybrid_selector import HybridPrioritySelector

logger = logging.getLogger(__name__)


class ProcessOutcome(BaseModel):
    ticket_id: str
    classification: ClassificationResult
    label_applied: bool = False
    manual_review: bool = False
    stored: bool = False


class ClassificationStats(BaseModel):
    window_days: int
    total: int
    by_band: list[BandStats]


class TicketProcessorService:
    """
    Orchestrates the use-case:
    - classify the ticket priority
    - apply the priority label in Plain when confident enough
    - upsert the audit record
    """

    def __init__(
        self,
        selector: HybridPrioritySelector,
        store: AuditStore,
        labeler: LabelApplier | None = None,
        label_threshold: float = 0.7,
    ) -> None:
        self._selector = selector
        self._store = store
        self._labeler = labeler
        self._label_threshold = label_threshold

    async def process(self, ticket: Ticket, message_id: str | None = None) -> ProcessOutcome:
        classification = await self._selector.classify(ticket)
        outcome = ProcessOutcome(ticket_id=ticket.id, classification=classification)

        if normalized_confidence(classification) >= self._label_threshold:
            outcome.label_applied = await self._apply_label(ticket, classification)
        else:
            outcome.manual_review = True
            logger.info(
                "Low confidence classification for ticket %s (%s), manual review required",
                ticket.id,
                classification.confidence,
            )

        outcome.stored = await self._store_audit(ticket, classification, message_id)
        return outcome

    async def _apply_label(self, ticket: Ticket, classification: ClassificationResult) -> bool:
        if self._labeler is None:
            logger.debug("No label client configured, skipping label for ticket %s", ticket.id)
            return False
        try:
            await self._labeler.add_priority_label(ticket.id, classification.band)
        except AppError as e:
            logger.warning("Could not apply priority label to ticket %s. Reason: %s", ticket.id, e)
            return False
        except Exception:
            logger.exception("Unexpected error applying priority label to ticket %s", ticket.id)
            return False
        logger.info("Priority label %s applied to ticket %s", classification.band, ticket.id)
        return True

    async def _store_audit(
        self,
        ticket: Ticket,
        classification: ClassificationResult,
        message_id: str | None,
    ) -> bool:
        record = AuditRecord(
            thread_id=ticket.id,
            message_id=message_id,
            first_message=ticket.message,
            priority_score=classification.score,
            priority_band=classification.band,
            reasoning=classification.reasoning,
            processed_at=datetime.now(timezone.utc),
        )
        try:
            await asyncio.to_thread(self._store.save_ticket, record)
        except AppError as e:
            logger.warning("Could not store audit record for ticket %s. Reason: %s", ticket.id, e)
            return False
        except Exception:
            logger.exception("Unexpected error storing audit record for ticket %s", ticket.id)
            return False
        return True

    async def classification_stats(self, window_days: int = 7) -> ClassificationStats:
        by_band = await asyncio.to_thread(self._store.get_priority_stats, window_days)
        return ClassificationStats(
            window_days=window_days,
            total=sum(stat.count for stat in by_band),
            by_band=list(by_band),
        )
