from collections import defaultdict
from datetime import datetime
from enum import StrEnum
from typing import Final, Sequence

from pydantic import BaseModel, ConfigDict, Field


class PriorityBand(StrEnum):
    """Declaration order is urgency order: P0 is the most urgent."""

    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"


# Inclusive 0-1000 score range each band owns on the language-model scale.
BAND_SCORE_RANGES: Final[dict[PriorityBand, tuple[int, int]]] = {
    PriorityBand.P0: (0, 150),
    PriorityBand.P1: (151, 400),
    PriorityBand.P2: (401, 700),
    PriorityBand.P3: (701, 1000),
}

DEFAULT_BAND: Final[PriorityBand] = PriorityBand.P2


class ConfidenceLevel(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


CONFIDENCE_LEVEL_VALUES: Final[dict[ConfidenceLevel, float]] = {
    ConfidenceLevel.HIGH: 0.9,
    ConfidenceLevel.MEDIUM: 0.7,
    ConfidenceLevel.LOW: 0.3,
    ConfidenceLevel.NONE: 0.0,
}


class ClassifierMode(StrEnum):
    AI = "ai"
    RULES = "rules"
    HYBRID = "hybrid"
    COMBINED = "combined"


class Strategy(StrEnum):
    AI = "ai"
    RULES = "rules"
    COMBINED = "combined"


class ClassificationMethod(StrEnum):
    RULES = "rules"
    COMBINED = "combined"
    RULES_FALLBACK = "rules-fallback"
    AI_FALLBACK = "ai-fallback"
    KEYWORDS_FALLBACK = "keywords-fallback"
    ERROR_FALLBACK = "error-fallback"


class BandRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    keywords: tuple[str, ...] = ()
    eligible_tiers: frozenset[str] = frozenset()
    response_threshold_seconds: int = Field(..., ge=0)


class RuleSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    bands: dict[PriorityBand, BandRule]


class Ticket(BaseModel):
    id: str
    message: str = ""
    title: str = ""
    customer_tier: str = ""
    customer_email: str | None = None
    created_at: datetime | None = None


class TicketFacts(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    customer_tier: str
    age_seconds: float = Field(..., ge=0)
    content_length: int


class ClassificationResult(BaseModel):
    band: PriorityBand
    confidence: float | ConfidenceLevel
    method: str
    score: int | None = Field(None, ge=0, le=1000)
    reasoning: str | None = None
    scores: dict[PriorityBand, float] | None = None
    model: str | None = None
    historical_context_used: int = 0
    strategy: Strategy | None = None
    fallback_used: bool = False
    error: str | None = None


class HistoricalExample(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    score: int | None = None
    band: PriorityBand | None = None
    reasoning: str = "No reasoning provided"


class AuditRecord(BaseModel):
    thread_id: str
    message_id: str | None = None
    first_message: str
    priority_score: int | None = None
    priority_band: PriorityBand
    reasoning: str | None = None
    processed_at: datetime | None = None


class BandStats(BaseModel):
    band: PriorityBand
    count: int
    avg_score: float | None = None


class ClassifierComparison(BaseModel):
    ticket_id: str
    rules: ClassificationResult | None = None
    ai: ClassificationResult | None = None
    rules_error: str | None = None
    ai_error: str | None = None
    band_agreement: bool | None = None
    score_difference: int | None = None
    agreement: bool | None = None
    duration_ms: float = 0.0


def normalized_confidence(result: ClassificationResult) -> float:
    """Put rule floats and model categorical levels on one 0-1 axis."""
    if isinstance(result.confidence, ConfidenceLevel):
        return CONFIDENCE_LEVEL_VALUES[result.confidence]
    return max(0.0, min(1.0, float(result.confidence)))


def summarize_band_stats(rows: Sequence[tuple[PriorityBand, int | None]]) -> list[BandStats]:
    buckets: dict[PriorityBand, list[int | None]] = defaultdict(list)
    for band, score in rows:
        buckets[band].append(score)

    stats = []
    for band in PriorityBand:
        if band not in buckets:
            continue
        scores = [score for score in buckets[band] if score is not None]
        stats.append(
            BandStats(
                band=band,
                count=len(buckets[band]),
                avg_score=sum(scores) / len(scores) if scores else None,
            )
        )
    return stats
