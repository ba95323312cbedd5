from typing import Any, Protocol, Sequence

from plain_triage.domain.models import (
    AuditRecord,
    BandStats,
    ClassificationResult,
    PriorityBand,
    Ticket,
)


class AuditStore(Protocol):
    def save_ticket(self, record: AuditRecord) -> None: ...

    def get_recent_tickets(self, limit: int) -> Sequence[AuditRecord]: ...

    def get_priority_stats(self, window_days: int) -> Sequence[BandStats]: ...


class LabelApplier(Protocol):
    async def add_priority_label(self, thread_id: str, band: PriorityBand) -> dict[str, Any]: ...


class AIClassifier(Protocol):
    provider: str

    def is_available(self) -> bool: ...

    async def classify(self, ticket_text: str) -> ClassificationResult: ...


class RuleClassifier(Protocol):
    def classify(self, ticket: Ticket) -> ClassificationResult: ...
