"""Tests for the ticket processing flow."""

import httpx
import pytest

from conftest import FailingStore, FakeAIClassifier, make_ticket
from plain_triage.core.errors import ExternalServiceError, RepositoryError
from plain_triage.core.rules import DEFAULT_RULES
from plain_triage.domain.models import ClassificationResult, ClassifierMode, ConfidenceLevel, PriorityBand
from plain_triage.infra.memory_store import InMemoryAuditStore
from plain_triage.infra.plain_client import PlainApiClient
from plain_triage.services.hybrid_selector import HybridPrioritySelector
from plain_triage.services.rule_evaluator import RuleEvaluator
from plain_triage.services.ticket_processor import TicketProcessorService


class FakeLabeler:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.applied: list[tuple[str, PriorityBand]] = []

    async def add_priority_label(self, thread_id: str, band: PriorityBand) -> dict:
        if self.error is not None:
            raise self.error
        self.applied.append((thread_id, band))
        return {"id": thread_id}


class RepositoryFailingStore(InMemoryAuditStore):
    def save_ticket(self, record):
        raise RepositoryError("upsert failed")


def _service(ai: FakeAIClassifier, store, labeler=None, mode: ClassifierMode = ClassifierMode.AI, rules=None):
    selector = HybridPrioritySelector(rules=rules or RuleEvaluator(DEFAULT_RULES), ai=ai, mode=mode)
    return TicketProcessorService(selector=selector, store=store, labeler=labeler, label_threshold=0.7)


class TestProcess:
    """Tests for TicketProcessorService.process."""

    @pytest.mark.asyncio
    async def test_confident_result_is_labelled_and_stored(self, memory_store: InMemoryAuditStore) -> None:
        labeler = FakeLabeler()
        service = _service(FakeAIClassifier(), memory_store, labeler)

        outcome = await service.process(make_ticket("Exports fail for the whole team", ticket_id="th_9"), message_id="m_1")

        assert outcome.label_applied
        assert outcome.stored
        assert not outcome.manual_review
        assert labeler.applied == [("th_9", PriorityBand.P1)]
        (record,) = memory_store.get_recent_tickets(10)
        assert record.thread_id == "th_9"
        assert record.message_id == "m_1"
        assert record.priority_band == PriorityBand.P1
        assert record.priority_score == 250

    @pytest.mark.asyncio
    async def test_low_confidence_goes_to_manual_review(self, memory_store: InMemoryAuditStore) -> None:
        ai = FakeAIClassifier(
            result=ClassificationResult(band=PriorityBand.P3, confidence=ConfidenceLevel.LOW, method="ai-fake", score=900)
        )
        labeler = FakeLabeler()

        outcome = await _service(ai, memory_store, labeler).process(make_ticket("Could be nicer"))

        assert outcome.manual_review
        assert not outcome.label_applied
        assert labeler.applied == []
        assert outcome.stored

    @pytest.mark.asyncio
    async def test_rule_confidence_gates_the_label(self, memory_store: InMemoryAuditStore) -> None:
        labeler = FakeLabeler()
        service = _service(FakeAIClassifier(available=False), memory_store, labeler)

        strong = await service.process(make_ticket("The site is completely down for everyone", ticket_id="a"))
        weak = await service.process(make_ticket("", tier="unknown", ticket_id="b"))

        assert strong.label_applied
        assert weak.manual_review
        assert labeler.applied == [("a", PriorityBand.P0)]

    @pytest.mark.asyncio
    async def test_label_failure_is_reported_not_raised(self, memory_store: InMemoryAuditStore) -> None:
        labeler = FakeLabeler(error=ExternalServiceError("Plain is down"))

        outcome = await _service(FakeAIClassifier(), memory_store, labeler).process(make_ticket("x" * 80))

        assert not outcome.label_applied
        assert outcome.stored

    @pytest.mark.asyncio
    async def test_non_json_label_response_still_stores_the_record(self, memory_store: InMemoryAuditStore) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>gateway</html>"))
        plain_client = PlainApiClient("https://plain.test/graphql", "token", {PriorityBand.P1: "lt_p1"}, transport=transport)

        outcome = await _service(FakeAIClassifier(), memory_store, plain_client).process(make_ticket("x" * 80, ticket_id="th_5"))
        await plain_client.aclose()

        assert not outcome.label_applied
        assert outcome.stored
        (record,) = memory_store.get_recent_tickets(10)
        assert record.thread_id == "th_5"

    @pytest.mark.asyncio
    async def test_unexpected_label_error_is_reported_not_raised(self, memory_store: InMemoryAuditStore) -> None:
        labeler = FakeLabeler(error=RuntimeError("boom"))

        outcome = await _service(FakeAIClassifier(), memory_store, labeler).process(make_ticket("x" * 80))

        assert not outcome.label_applied
        assert outcome.stored

    @pytest.mark.asyncio
    async def test_without_labeler_nothing_is_applied(self, memory_store: InMemoryAuditStore) -> None:
        outcome = await _service(FakeAIClassifier(), memory_store).process(make_ticket("x" * 80))

        assert not outcome.label_applied
        assert not outcome.manual_review

    @pytest.mark.asyncio
    async def test_audit_failure_is_reported_not_raised(self) -> None:
        outcome = await _service(FakeAIClassifier(), RepositoryFailingStore()).process(make_ticket("x" * 80))

        assert not outcome.stored
        assert outcome.classification.band == PriorityBand.P1

    @pytest.mark.asyncio
    async def test_unexpected_audit_error_is_reported_not_raised(self) -> None:
        labeler = FakeLabeler()

        outcome = await _service(FakeAIClassifier(), FailingStore(), labeler).process(make_ticket("x" * 80))

        assert not outcome.stored
        assert outcome.label_applied

    @pytest.mark.asyncio
    async def test_reclassifying_overwrites_the_record(self, memory_store: InMemoryAuditStore) -> None:
        first = FakeAIClassifier()
        second = FakeAIClassifier(
            result=ClassificationResult(band=PriorityBand.P0, confidence=ConfidenceLevel.HIGH, method="ai-fake", score=10)
        )

        await _service(first, memory_store).process(make_ticket("x" * 80, ticket_id="same"))
        await _service(second, memory_store).process(make_ticket("x" * 80, ticket_id="same"))

        (record,) = memory_store.get_recent_tickets(10)
        assert record.priority_band == PriorityBand.P0


class TestClassificationStats:
    """Tests for TicketProcessorService.classification_stats."""

    @pytest.mark.asyncio
    async def test_counts_and_averages(self, memory_store: InMemoryAuditStore) -> None:
        service = _service(FakeAIClassifier(), memory_store)
        for i in range(3):
            await service.process(make_ticket("x" * 80, ticket_id=f"t{i}"))

        stats = await service.classification_stats(7)

        assert stats.total == 3
        (p1,) = stats.by_band
        assert p1.band == PriorityBand.P1
        assert p1.count == 3
        assert p1.avg_score == pytest.approx(250)

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self) -> None:
        service = _service(FakeAIClassifier(), FailingStore())

        with pytest.raises(ConnectionError):
            await service.classification_stats(7)
