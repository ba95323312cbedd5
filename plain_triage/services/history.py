import asyncio
import logging
from typing import Final

from plain_triage.domain.models import HistoricalExample
from plain_triage.domain.ports import AuditStore

logger = logging.getLogger(__name__)

TRUNCATION_MARKER: Final[str] = "..."


def truncate_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


class HistoricalContextProvider:
    """
    Sliding window of the most recent classifications, newest first,
    used as few-shot examples for the language model.

    Never raises: an unreachable store just means an empty window.
    """

    def __init__(
        self,
        store: AuditStore,
        window_size: int = 12,
        max_chars: int = 200,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._store = store
        self._window_size = window_size
        self._max_chars = max_chars
        self._timeout_seconds = timeout_seconds

    @property
    def window_size(self) -> int:
        return self._window_size

    async def fetch(self, limit: int | None = None) -> list[HistoricalExample]:
        limit = self._window_size if limit is None else limit
        if limit <= 0:
            return []

        try:
            records = await asyncio.wait_for(
                asyncio.to_thread(self._store.get_recent_tickets, limit),
                timeout=self._timeout_seconds,
            )
        except Exception:
            logger.warning("Failed to get historical context (limit=%s)", limit, exc_info=True)
            return []

        examples = [
            HistoricalExample(
                text=truncate_text(record.first_message or "", self._max_chars),
                score=record.priority_score,
                band=record.priority_band,
                reasoning=record.reasoning or "No reasoning provided",
            )
            for record in list(records or [])[:limit]
        ]
        logger.debug("Retrieved %d historical examples", len(examples))
        return examples
