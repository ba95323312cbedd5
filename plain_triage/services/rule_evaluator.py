import logging
from datetime import datetime, timezone
from typing import Final

from plain_triage.domain.models import (
    BAND_SCORE_RANGES,
    DEFAULT_BAND,
    ClassificationMethod,
    ClassificationResult,
    PriorityBand,
    RuleSet,
    Ticket,
    TicketFacts,
)

logger = logging.getLogger(__name__)

_KEYWORD_BASE: Final[float] = 0.5
_KEYWORD_STEP: Final[float] = 0.1
_TIER_SCORE: Final[float] = 0.3
_OVERDUE_SCORE: Final[float] = 0.2


def build_facts(ticket: Ticket, now: datetime | None = None) -> TicketFacts:
    content = f"{ticket.message} {ticket.title}".strip().lower()

    age_seconds = 0.0
    if ticket.created_at is not None:
        created_at = ticket.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        current = now or datetime.now(timezone.utc)
        # clock skew can put created_at in the future
        age_seconds = max(0.0, (current - created_at).total_seconds())

    return TicketFacts(
        content=content,
        customer_tier=ticket.customer_tier.strip().lower(),
        age_seconds=age_seconds,
        content_length=len(content),
    )


def score_band(facts: TicketFacts, rules: RuleSet, band: PriorityBand) -> float:
    rule = rules.bands[band]
    matches = sum(1 for keyword in rule.keywords if keyword in facts.content)

    # the keyword part is deliberately not capped before the final min()
    keyword_score = _KEYWORD_BASE + _KEYWORD_STEP * matches if matches else 0.0
    tier_score = _TIER_SCORE if facts.customer_tier in rule.eligible_tiers else 0.0
    overdue_score = _OVERDUE_SCORE if facts.age_seconds > rule.response_threshold_seconds else 0.0

    return min(1.0, keyword_score + tier_score + overdue_score)


def rule_score(band: PriorityBand, confidence: float) -> int:
    """Place a rule confidence on the 0-1000 scale inside the band's range."""
    low, high = BAND_SCORE_RANGES[band]
    return high - round(max(0.0, min(1.0, confidence)) * (high - low))


def evaluate(facts: TicketFacts, rules: RuleSet) -> ClassificationResult:
    scores = {band: score_band(facts, rules, band) for band in PriorityBand}

    best = max(scores.values())
    if best <= 0:
        winner = DEFAULT_BAND
    else:
        # PriorityBand iterates in urgency order, so ties go to the more urgent band
        winner = next(band for band in PriorityBand if scores[band] == best)

    return ClassificationResult(
        band=winner,
        confidence=scores[winner],
        method=ClassificationMethod.RULES.value,
        score=rule_score(winner, scores[winner]),
        scores=scores,
        reasoning=_describe(facts, rules, winner, scores[winner]),
    )


def _describe(facts: TicketFacts, rules: RuleSet, band: PriorityBand, score: float) -> str:
    if score <= 0:
        return f"No rule matched; defaulted to {band.value}"

    rule = rules.bands[band]
    reasons: list[str] = []
    matched = [keyword for keyword in rule.keywords if keyword in facts.content]
    if matched:
        reasons.append(f"keywords: {', '.join(matched)}")
    if facts.customer_tier in rule.eligible_tiers:
        reasons.append(f"customer tier: {facts.customer_tier}")
    if facts.age_seconds > rule.response_threshold_seconds:
        reasons.append(f"overdue: {facts.age_seconds / 3600:.1f}h")
    return f"Rules matched {band.value} ({'; '.join(reasons)})"


class RuleEvaluator:
    def __init__(self, rules: RuleSet) -> None:
        self._rules = rules

    @property
    def rules(self) -> RuleSet:
        return self._rules

    def evaluate(self, facts: TicketFacts) -> ClassificationResult:
        return evaluate(facts, self._rules)

    def classify(self, ticket: Ticket, now: datetime | None = None) -> ClassificationResult:
        facts = build_facts(ticket, now=now)
        result = self.evaluate(facts)
        logger.debug(
            "Rules evaluation for ticket %s: band=%s confidence=%.2f scores=%s",
            ticket.id,
            result.band,
            result.confidence,
            {band.value: score for band, score in (result.scores or {}).items()},
        )
        return result
