import asyncio
import logging
import re
import time
from typing import Final

from plain_triage.domain.models import (
    ClassificationMethod,
    ClassificationResult,
    ClassifierComparison,
    ClassifierMode,
    ConfidenceLevel,
    PriorityBand,
    Strategy,
    Ticket,
    normalized_confidence,
)
from plain_triage.domain.ports import AIClassifier
from plain_triage.infra.llm_classifier import keyword_fallback
from plain_triage.services.rule_evaluator import RuleEvaluator

logger = logging.getLogger(__name__)

SIMPLE_MESSAGE_LENGTH: Final[int] = 50
SIMPLE_QUESTION_LENGTH: Final[int] = 100
COMBINE_BELOW_CONFIDENCE: Final[float] = 0.8
RULES_WEIGHT: Final[float] = 0.7
AI_WEIGHT: Final[float] = 0.3
AGREEMENT_SCORE_DELTA: Final[int] = 100
ERROR_FALLBACK_SCORE: Final[int] = 500

_GREETING_RE: Final[re.Pattern[str]] = re.compile(r"^\s*(hi|hello|hey|thanks)\b", re.IGNORECASE)


def is_simple_case(message: str) -> bool:
    if len(message) < SIMPLE_MESSAGE_LENGTH:
        return True
    if _GREETING_RE.match(message):
        return True
    return message.count("?") == 1 and len(message) < SIMPLE_QUESTION_LENGTH


def choose_strategy(mode: ClassifierMode, ai_available: bool, message: str) -> Strategy:
    match mode:
        case ClassifierMode.RULES:
            return Strategy.RULES
        case ClassifierMode.AI:
            return Strategy.AI if ai_available else Strategy.RULES
        case ClassifierMode.COMBINED:
            return Strategy.COMBINED if ai_available else Strategy.RULES
        case ClassifierMode.HYBRID:
            if not ai_available or is_simple_case(message):
                return Strategy.RULES
            return Strategy.AI
    raise ValueError(f"Unknown classifier mode: {mode}")


def combine(rules_result: ClassificationResult, ai_result: ClassificationResult) -> ClassificationResult:
    """Blend a rule and a model result; the more confident band wins, ties go to rules."""
    rules_confidence = normalized_confidence(rules_result)
    ai_confidence = normalized_confidence(ai_result)
    winner = rules_result if rules_confidence >= ai_confidence else ai_result

    return ClassificationResult(
        band=winner.band,
        score=winner.score,
        confidence=RULES_WEIGHT * rules_confidence + AI_WEIGHT * ai_confidence,
        method=ClassificationMethod.COMBINED.value,
        reasoning=winner.reasoning,
        scores=rules_result.scores,
        model=ai_result.model,
        historical_context_used=ai_result.historical_context_used,
    )


def error_fallback(reason: str) -> ClassificationResult:
    return ClassificationResult(
        band=PriorityBand.P2,
        score=ERROR_FALLBACK_SCORE,
        confidence=ConfidenceLevel.NONE,
        method=ClassificationMethod.ERROR_FALLBACK.value,
        reasoning=f"Classification failed: {reason}",
        error=reason,
    )


class HybridPrioritySelector:
    """
    Picks rules, the language model, or both for each ticket and falls back
    when the chosen path fails. ``classify`` always returns a result.
    """

    def __init__(
        self,
        rules: RuleEvaluator,
        ai: AIClassifier,
        mode: ClassifierMode = ClassifierMode.AI,
    ) -> None:
        self._rules = rules
        self._ai = ai
        self._mode = mode

    @property
    def mode(self) -> ClassifierMode:
        return self._mode

    def ai_available(self) -> bool:
        try:
            return self._ai.is_available()
        except Exception:
            logger.exception("AI availability check failed")
            return False

    def choose_strategy(self, ticket: Ticket) -> Strategy:
        strategy = choose_strategy(self._mode, self.ai_available(), ticket.message)
        logger.debug("Ticket %s: mode=%s strategy=%s", ticket.id, self._mode, strategy)
        return strategy

    async def classify(self, ticket: Ticket) -> ClassificationResult:
        started = time.perf_counter()
        strategy = Strategy.RULES
        try:
            strategy = self.choose_strategy(ticket)
            result, fallback_used = await self._run(strategy, ticket)
        except Exception as e:
            logger.exception("Hybrid classification failed completely for ticket %s", ticket.id)
            result, fallback_used = error_fallback(str(e) or type(e).__name__), True

        result = result.model_copy(update={"strategy": strategy, "fallback_used": fallback_used})
        logger.info(
            "Hybrid classification completed for ticket %s: strategy=%s method=%s band=%s fallback=%s duration=%.0fms",
            ticket.id,
            strategy,
            result.method,
            result.band,
            fallback_used,
            (time.perf_counter() - started) * 1000,
        )
        return result

    async def _run(self, strategy: Strategy, ticket: Ticket) -> tuple[ClassificationResult, bool]:
        try:
            return await self._primary(strategy, ticket), False
        except Exception as e:
            logger.warning("Primary %s classifier failed for ticket %s; falling back. Reason: %s", strategy, ticket.id, e)
            return await self._fallback(strategy, ticket, e), True

    async def _primary(self, strategy: Strategy, ticket: Ticket) -> ClassificationResult:
        if strategy is Strategy.AI:
            return await self._ai.classify(ticket.message)
        if strategy is Strategy.COMBINED:
            return await self._combined(ticket)
        return self._rules.classify(ticket)

    async def _fallback(self, strategy: Strategy, ticket: Ticket, error: Exception) -> ClassificationResult:
        if strategy is Strategy.RULES:
            if self.ai_available():
                result = await self._ai.classify(ticket.message)
                return result.model_copy(update={"method": ClassificationMethod.AI_FALLBACK.value})
            return keyword_fallback(ticket.message, reason=str(error))

        result = self._rules.classify(ticket)
        return result.model_copy(update={"method": ClassificationMethod.RULES_FALLBACK.value, "error": str(error)})

    async def _combined(self, ticket: Ticket) -> ClassificationResult:
        rules_result = self._rules.classify(ticket)
        if normalized_confidence(rules_result) >= COMBINE_BELOW_CONFIDENCE:
            return rules_result
        ai_result = await self._ai.classify(ticket.message)
        return combine(rules_result, ai_result)

    async def compare(self, ticket: Ticket) -> ClassifierComparison | None:
        """Run both classifiers side by side for offline calibration."""
        if not self.ai_available():
            logger.warning("Cannot compare classifiers - AI not available")
            return None

        started = time.perf_counter()

        async def run_rules() -> ClassificationResult:
            return self._rules.classify(ticket)

        rules_outcome, ai_outcome = await asyncio.gather(
            run_rules(),
            self._ai.classify(ticket.message),
            return_exceptions=True,
        )

        comparison = ClassifierComparison(ticket_id=ticket.id)
        if isinstance(rules_outcome, BaseException):
            comparison.rules_error = str(rules_outcome) or type(rules_outcome).__name__
        else:
            comparison.rules = rules_outcome
        if isinstance(ai_outcome, BaseException):
            comparison.ai_error = str(ai_outcome) or type(ai_outcome).__name__
        else:
            comparison.ai = ai_outcome

        if comparison.rules is not None and comparison.ai is not None:
            comparison.band_agreement = comparison.rules.band == comparison.ai.band
            if comparison.rules.score is not None and comparison.ai.score is not None:
                comparison.score_difference = abs(comparison.rules.score - comparison.ai.score)
                comparison.agreement = (
                    comparison.band_agreement and comparison.score_difference <= AGREEMENT_SCORE_DELTA
                )

        comparison.duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "Classifier comparison for ticket %s: band_agreement=%s score_difference=%s",
            ticket.id,
            comparison.band_agreement,
            comparison.score_difference,
        )
        return comparison
