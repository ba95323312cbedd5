import asyncio
import logging
import time
from typing import Final

from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

from plain_triage.core.config import Settings
from plain_triage.core.errors import ConfigurationError, TransportError, ValidationError
from plain_triage.domain.models import (
    ClassificationMethod,
    ClassificationResult,
    ConfidenceLevel,
    PriorityBand,
)
from plain_triage.infra.priority_prompt import build_prompt, parse_priority_response
from plain_triage.services.history import HistoricalContextProvider

logger = logging.getLogger(__name__)

_CRITICAL_KEYWORDS: Final[tuple[str, ...]] = ("down", "outage", "critical", "emergency", "broken", "crash")
_HIGH_KEYWORDS: Final[tuple[str, ...]] = ("bug", "error", "issue", "problem", "not working", "failed")
_LOW_KEYWORDS: Final[tuple[str, ...]] = ("question", "help", "how to", "feature request", "suggestion")


def build_llm(settings: Settings) -> BaseChatModel:
    provider = settings.llm_provider.lower().strip()

    if provider == "openai":
        if not settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is required for LLM_PROVIDER=openai")

        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
            api_key=settings.openai_api_key,
        )

    if provider in ("anthropic", "claude"):
        if not settings.anthropic_api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is required for LLM_PROVIDER=anthropic")

        from langchain_anthropic import ChatAnthropic

        return ChatAnthropic(
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
            api_key=settings.anthropic_api_key,
        )

    raise ConfigurationError(f"Unsupported LLM_PROVIDER: {settings.llm_provider}")


def keyword_fallback(ticket_text: str, reason: str | None = None) -> ClassificationResult:
    """Network-free classification from a small curated keyword list."""
    text = (ticket_text or "").lower()

    if any(keyword in text for keyword in _CRITICAL_KEYWORDS):
        band, score, reasoning = PriorityBand.P0, 100, "Contains critical keywords, classified as high priority"
    elif any(keyword in text for keyword in _HIGH_KEYWORDS):
        band, score, reasoning = PriorityBand.P1, 300, "Contains issue keywords, classified as medium-high priority"
    elif any(keyword in text for keyword in _LOW_KEYWORDS):
        band, score, reasoning = PriorityBand.P3, 800, "Contains general inquiry keywords, classified as low priority"
    else:
        band, score, reasoning = PriorityBand.P2, 500, "Fallback classification due to AI unavailability"

    return ClassificationResult(
        band=band,
        score=score,
        confidence=ConfidenceLevel.LOW,
        method=ClassificationMethod.KEYWORDS_FALLBACK.value,
        reasoning=reasoning,
        error=reason,
    )


class LanguageModelClassifier:
    """
    Scores a ticket with a chat model, using recent classifications as
    few-shot context. Does not retry and does not fall back: failures are
    raised for the caller to handle.
    """

    def __init__(
        self,
        llm: BaseChatModel | None,
        history: HistoricalContextProvider,
        provider: str = "openai",
        model_name: str | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._llm = llm
        self._history = history
        self.provider = provider.lower().strip()
        self._model_name = model_name
        self._timeout_seconds = timeout_seconds
        self._prompt = ChatPromptTemplate.from_messages([("human", "{prompt}")])
        self._chain = self._prompt | llm | StrOutputParser() if llm is not None else None

    def is_available(self) -> bool:
        return self._chain is not None

    async def classify(self, ticket_text: str) -> ClassificationResult:
        if not ticket_text or not ticket_text.strip():
            raise ValidationError("ticket text is empty")
        if self._chain is None:
            raise ConfigurationError("No language model configured")

        started = time.perf_counter()
        examples = await self._history.fetch()
        prompt = build_prompt(ticket_text.strip(), examples)
        logger.debug("Built classification prompt (%d chars, %d examples)", len(prompt), len(examples))

        try:
            response = await asyncio.wait_for(
                self._chain.ainvoke({"prompt": prompt}),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise TransportError(f"Language model timed out after {self._timeout_seconds}s") from e
        except Exception as e:
            raise TransportError("Language model provider failed during classification") from e

        parsed = parse_priority_response(response)
        duration_ms = (time.perf_counter() - started) * 1000

        logger.info(
            "AI classification completed: band=%s score=%d examples=%d duration=%.0fms",
            parsed.band,
            parsed.score,
            len(examples),
            duration_ms,
        )

        return ClassificationResult(
            band=parsed.band,
            score=parsed.score,
            confidence=ConfidenceLevel.HIGH,
            method=f"ai-{self.provider}",
            reasoning=parsed.reasoning or "AI-powered classification",
            model=self._model_name,
            historical_context_used=len(examples),
        )
