import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from supabase import Client, create_client

from plain_triage.core.errors import RepositoryError
from plain_triage.domain.models import AuditRecord, BandStats, PriorityBand, summarize_band_stats
from plain_triage.domain.ports import AuditStore

logger = logging.getLogger(__name__)

_RECENT_COLUMNS = "thread_id,message_id,first_message,priority_score,priority_band,reasoning,processed_at"


class SupabaseAuditStore(AuditStore):
    def __init__(self, supabase_url: str, supabase_service_role_key: str, table: str = "tickets") -> None:
        self._client: Client = create_client(supabase_url, supabase_service_role_key)
        self._table = table

    def save_ticket(self, record: AuditRecord) -> None:
        row = record.model_dump(mode="json")
        row["processed_at"] = (record.processed_at or datetime.now(timezone.utc)).isoformat()
        try:
            self._client.table(self._table).upsert(row, on_conflict="thread_id").execute()
        except Exception as e:
            logger.exception("Supabase upsert failed")
            raise RepositoryError(f"Failed to save ticket {record.thread_id} in Supabase") from e

    def get_recent_tickets(self, limit: int) -> list[AuditRecord]:
        try:
            resp = (
                self._client.table(self._table)
                .select(_RECENT_COLUMNS)
                .order("processed_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.exception("Supabase recent tickets query failed")
            raise RepositoryError("Failed to get recent tickets from Supabase") from e

        return [self._to_record(row) for row in getattr(resp, "data", None) or [] if row.get("priority_band")]

    def get_priority_stats(self, window_days: int) -> list[BandStats]:
        since = datetime.now(timezone.utc) - timedelta(days=window_days)
        try:
            resp = (
                self._client.table(self._table)
                .select("priority_band,priority_score")
                .gte("created_at", since.isoformat())
                .execute()
            )
        except Exception as e:
            logger.exception("Supabase priority stats query failed")
            raise RepositoryError("Failed to get priority stats from Supabase") from e

        rows = getattr(resp, "data", None) or []
        return summarize_band_stats(
            [(PriorityBand(row["priority_band"]), row.get("priority_score")) for row in rows if row.get("priority_band")]
        )

    @staticmethod
    def _to_record(row: dict[str, Any]) -> AuditRecord:
        return AuditRecord(
            thread_id=row["thread_id"],
            message_id=row.get("message_id"),
            first_message=row.get("first_message") or "",
            priority_score=row.get("priority_score"),
            priority_band=PriorityBand(row["priority_band"]),
            reasoning=row.get("reasoning"),
            processed_at=row.get("processed_at"),
        )
