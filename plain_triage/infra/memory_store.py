import threading
from datetime import datetime, timedelta, timezone

from plain_triage.domain.models import AuditRecord, BandStats, summarize_band_stats
from plain_triage.domain.ports import AuditStore


def _processed_at(record: AuditRecord) -> datetime:
    return record.processed_at or datetime.min.replace(tzinfo=timezone.utc)


class InMemoryAuditStore(AuditStore):
    """
    Process-local audit store, keyed by thread id (upsert semantics).
    Recent rows are ordered by `processed_at`, newest first, like the
    Supabase store. Holds at most `max_records` rows; the least recently
    classified ticket is evicted first.
    """

    def __init__(self, max_records: int = 1000) -> None:
        if max_records <= 0:
            raise ValueError("max_records must be positive")
        self._max_records = max_records
        self._records: dict[str, AuditRecord] = {}
        self._lock = threading.Lock()

    def save_ticket(self, record: AuditRecord) -> None:
        stamped = record.model_copy(update={"processed_at": record.processed_at or datetime.now(timezone.utc)})
        with self._lock:
            # re-insert so ties on processed_at resolve to the latest save
            self._records.pop(record.thread_id, None)
            self._records[record.thread_id] = stamped
            while len(self._records) > self._max_records:
                oldest = min(self._records.values(), key=_processed_at)
                del self._records[oldest.thread_id]

    def get_recent_tickets(self, limit: int) -> list[AuditRecord]:
        with self._lock:
            records = list(self._records.values())
        return sorted(reversed(records), key=_processed_at, reverse=True)[:limit]

    def get_priority_stats(self, window_days: int) -> list[BandStats]:
        since = datetime.now(timezone.utc) - timedelta(days=window_days)
        with self._lock:
            records = [r for r in self._records.values() if r.processed_at and r.processed_at >= since]
        return summarize_band_stats([(r.priority_band, r.priority_score) for r in records])
