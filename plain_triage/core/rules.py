import json
import logging
from pathlib import Path
from typing import Any, Final

from pydantic import ValidationError as PydanticValidationError

from plain_triage.core.errors import ConfigurationError
from plain_triage.domain.models import BandRule, PriorityBand, RuleSet

logger = logging.getLogger(__name__)

_ALL_TIERS: Final[frozenset[str]] = frozenset({"custom", "pro", "hobby", "trial"})

DEFAULT_RULES: Final[RuleSet] = RuleSet(
    bands={
        # Critical, immediate response
        PriorityBand.P0: BandRule(
            keywords=(
                "down",
                "outage",
                "critical",
                "emergency",
                "urgent",
                "broken",
                "crash",
                "security breach",
                "data loss",
                "payment failed",
                "cannot login",
                "site down",
                "server error",
                "production issue",
            ),
            eligible_tiers=frozenset({"custom", "pro", "hobby"}),
            response_threshold_seconds=15 * 60,
        ),
        # Same day
        PriorityBand.P1: BandRule(
            keywords=(
                "bug",
                "error",
                "issue",
                "problem",
                "not working",
                "feature request",
                "integration",
                "api",
                "billing",
                "account",
                "performance",
            ),
            eligible_tiers=_ALL_TIERS,
            response_threshold_seconds=8 * 60 * 60,
        ),
        # Next business day
        PriorityBand.P2: BandRule(
            keywords=(
                "question",
                "help",
                "how to",
                "how do i",
                "export",
                "clarification",
                "documentation",
                "training",
                "onboarding",
                "best practice",
                "recommendation",
            ),
            eligible_tiers=_ALL_TIERS,
            response_threshold_seconds=24 * 60 * 60,
        ),
        # Up to three business days
        PriorityBand.P3: BandRule(
            keywords=(
                "feedback",
                "suggestion",
                "enhancement",
                "nice to have",
                "cosmetic",
                "minor",
                "improvement",
                "general inquiry",
            ),
            eligible_tiers=_ALL_TIERS,
            response_threshold_seconds=72 * 60 * 60,
        ),
    }
)


def parse_rule_table(raw: dict[str, Any]) -> RuleSet:
    try:
        rules = RuleSet.model_validate({"bands": raw})
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid priority rule table: {e}") from e

    missing = [band.value for band in PriorityBand if band not in rules.bands]
    if missing:
        raise ConfigurationError(f"Priority rule table is missing bands: {', '.join(missing)}")

    # Matching is case-insensitive against lower-cased ticket content
    return RuleSet(
        bands={
            band: rule.model_copy(update={"keywords": tuple(k.lower() for k in rule.keywords if k.strip())})
            for band, rule in rules.bands.items()
        }
    )


def load_rule_table(path: str | None = None) -> RuleSet:
    """Return the default table, or the JSON override at ``path``."""
    if not path:
        return DEFAULT_RULES

    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read priority rule table from {path}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError("Priority rule table must be a JSON object keyed by band")

    rules = parse_rule_table(raw)
    logger.info("Loaded priority rule table from %s", path)
    return rules
