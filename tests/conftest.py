"""
Test Configuration
==================

Shared fixtures and fakes for the priority triage tests.
"""

import os

# Keep the real environment (.env, API keys) out of module-level settings
os.environ["OPENAI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["SUPABASE_URL"] = ""
os.environ["PLAIN_API_TOKEN"] = ""

from datetime import datetime, timedelta, timezone

import pytest

from plain_triage.core.rules import DEFAULT_RULES
from plain_triage.domain.models import (
    ClassificationResult,
    ConfidenceLevel,
    PriorityBand,
    Ticket,
)
from plain_triage.infra.memory_store import InMemoryAuditStore
from plain_triage.services.rule_evaluator import RuleEvaluator

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class FakeAIClassifier:
    """Stands in for the language-model classifier."""

    provider = "fake"

    def __init__(
        self,
        result: ClassificationResult | None = None,
        error: Exception | None = None,
        available: bool = True,
    ) -> None:
        self.result = result or ClassificationResult(
            band=PriorityBand.P1,
            score=250,
            confidence=ConfidenceLevel.HIGH,
            method="ai-fake",
            reasoning="fake model answer",
        )
        self.error = error
        self.available = available
        self.calls: list[str] = []

    def is_available(self) -> bool:
        return self.available

    async def classify(self, ticket_text: str) -> ClassificationResult:
        self.calls.append(ticket_text)
        if self.error is not None:
            raise self.error
        return self.result


class FailingStore:
    """Audit store whose reads and writes always blow up."""

    def save_ticket(self, record):
        raise ConnectionError("database unreachable")

    def get_recent_tickets(self, limit):
        raise ConnectionError("database unreachable")

    def get_priority_stats(self, window_days):
        raise ConnectionError("database unreachable")


@pytest.fixture
def rule_evaluator() -> RuleEvaluator:
    return RuleEvaluator(DEFAULT_RULES)


@pytest.fixture
def memory_store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def fake_ai() -> FakeAIClassifier:
    return FakeAIClassifier()


def make_ticket(
    message: str,
    tier: str = "pro",
    age_seconds: float | None = None,
    ticket_id: str = "th_1",
) -> Ticket:
    """Ticket aged relative to NOW; without an age it has no creation time (age 0)."""
    return Ticket(
        id=ticket_id,
        message=message,
        customer_tier=tier,
        created_at=NOW - timedelta(seconds=age_seconds) if age_seconds is not None else None,
    )
