import logging
from functools import lru_cache

from plain_triage.api.webhook import PlainWebhookHandler
from plain_triage.core.config import settings
from plain_triage.core.errors import ConfigurationError
from plain_triage.core.rules import load_rule_table
from plain_triage.domain.ports import AuditStore
from plain_triage.infra.llm_classifier import LanguageModelClassifier, build_llm
from plain_triage.infra.memory_store import InMemoryAuditStore
from plain_triage.infra.plain_client import PlainApiClient
from plain_triage.infra.supabase_repo import SupabaseAuditStore
from plain_triage.services.history import HistoricalContextProvider
from plain_triage.services.hybrid_selector import HybridPrioritySelector
from plain_triage.services.rule_evaluator import RuleEvaluator
from plain_triage.services.ticket_processor import TicketProcessorService

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_audit_store() -> AuditStore:
    if settings.supabase_url and settings.supabase_service_role_key:
        return SupabaseAuditStore(settings.supabase_url, settings.supabase_service_role_key, settings.supabase_table)
    logger.warning("Supabase is not configured; audit records are kept in memory only")
    return InMemoryAuditStore(max_records=settings.memory_store_max_records)


@lru_cache(maxsize=1)
def get_rule_evaluator() -> RuleEvaluator:
    return RuleEvaluator(load_rule_table(settings.priority_rules_path))


@lru_cache(maxsize=1)
def get_ai_classifier() -> LanguageModelClassifier:
    llm = None
    try:
        llm = build_llm(settings)
    except ConfigurationError as e:
        logger.warning("LLM provider unavailable; rules will be used instead. Reason: %s", e)

    history = HistoricalContextProvider(
        get_audit_store(),
        window_size=settings.history_window_size,
        max_chars=settings.history_max_chars,
        timeout_seconds=settings.history_timeout_seconds,
    )
    return LanguageModelClassifier(
        llm,
        history,
        provider=settings.llm_provider,
        model_name=settings.llm_model,
        timeout_seconds=settings.llm_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_plain_client() -> PlainApiClient | None:
    if not settings.plain_api_token:
        logger.warning("PLAIN_API_TOKEN is not set; priority labels will not be applied")
        return None
    return PlainApiClient(
        settings.plain_api_url,
        settings.plain_api_token,
        settings.priority_label_ids(),
        timeout_seconds=settings.plain_timeout_seconds,
    )


def get_selector() -> HybridPrioritySelector:
    return HybridPrioritySelector(
        rules=get_rule_evaluator(),
        ai=get_ai_classifier(),
        mode=settings.classifier_mode,
    )


def get_ticket_service() -> TicketProcessorService:
    return TicketProcessorService(
        selector=get_selector(),
        store=get_audit_store(),
        labeler=get_plain_client(),
        label_threshold=settings.label_confidence_threshold,
    )


def get_webhook_handler() -> PlainWebhookHandler:
    return PlainWebhookHandler(get_ticket_service(), get_plain_client())


def get_webhook_secret() -> str | None:
    return settings.plain_signature_secret
