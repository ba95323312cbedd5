import logging
import re
from dataclasses import dataclass
from typing import Final, Sequence

from plain_triage.core.errors import UnparsableResponseError
from plain_triage.domain.models import BAND_SCORE_RANGES, HistoricalExample, PriorityBand

logger = logging.getLogger(__name__)


def _range(band: PriorityBand) -> str:
    low, high = BAND_SCORE_RANGES[band]
    return f"{low}-{high}"


_INSTRUCTIONS: Final[str] = (
    "You are an expert customer support triage analyst. When given the first message of a "
    "support ticket, assign an integer priority_score from 0 to 1000 and a priority_band "
    "(P0, P1, P2, P3) based on these rules:\n\n"
    f"- P0: Critical outage, company-wide or many users blocked (score: {_range(PriorityBand.P0)})\n"
    f"- P1: Major issue, multiple users impacted but workaround may exist ({_range(PriorityBand.P1)})\n"
    f"- P2: Moderate, minor feature broken or single user ({_range(PriorityBand.P2)})\n"
    f"- P3: Low, no operational impact, general question, or feature request ({_range(PriorityBand.P3)})\n\n"
    "For each ticket, output:\n"
    "- priority_score: number\n"
    "- priority_band: string (P0-P3)\n"
    "- reasoning: short explanation for your decision"
)

_REFERENCE_EXAMPLES: Final[str] = (
    "Here are some reference examples:\n\n"
    'Ticket: "The entire payments system is down for all customers."\n'
    "priority_score: 25\n"
    "priority_band: P0\n"
    "reasoning: Full outage of payments impacts all users; requires immediate attention.\n\n"
    'Ticket: "My reports page failed to load this morning, but worked later."\n'
    "priority_score: 575\n"
    "priority_band: P2\n"
    "reasoning: Intermittent minor failure, affected one user, now resolved."
)

_OUTPUT_FORMAT: Final[str] = (
    "Please provide your response in this exact format:\n"
    "priority_score: [number]\n"
    "priority_band: [P0/P1/P2/P3]\n"
    "reasoning: [short explanation]"
)


def _history_section(examples: Sequence[HistoricalExample]) -> str:
    blocks = []
    for number, example in enumerate(examples, start=1):
        blocks.append(
            f"Example {number}:\n"
            f'Ticket: "{example.text}"\n'
            f"priority_score: {example.score if example.score is not None else 'unknown'}\n"
            f"priority_band: {example.band.value if example.band else 'unknown'}\n"
            f"reasoning: {example.reasoning}"
        )
    return (
        "Here are recent ticket classifications from this system for context and consistency:\n\n"
        + "\n\n".join(blocks)
        + "\n\nPlease maintain consistency with these recent classifications while applying the priority rules."
    )


def build_prompt(ticket_text: str, examples: Sequence[HistoricalExample] = ()) -> str:
    sections = [_INSTRUCTIONS]
    if examples:
        sections.append(_history_section(examples))
    sections.append(_REFERENCE_EXAMPLES)
    sections.append(f'---\nNow evaluate this ticket:\nTicket: "{ticket_text}"\n\n{_OUTPUT_FORMAT}')
    return "\n\n".join(sections)


@dataclass(frozen=True)
class ParsedPriority:
    score: int
    band: PriorityBand
    reasoning: str | None
    clamped: bool = False


_FIELD_RE: Final[re.Pattern[str]] = re.compile(
    r"^[\s\-*#>]*\**(priority_score|priority_band|reasoning)\**\s*:\s*(.*)$", re.IGNORECASE
)
_SCORE_RE: Final[re.Pattern[str]] = re.compile(r"^-?\d+")
_BAND_RE: Final[re.Pattern[str]] = re.compile(r"^\[?\s*(P[0-3])\b", re.IGNORECASE)


def parse_priority_response(text: str) -> ParsedPriority:
    """
    Read the ``priority_score`` / ``priority_band`` / ``reasoning`` lines.

    Unknown lines are ignored; the first occurrence of each field wins.
    A score outside the band's range is clamped into it (the band is trusted).
    """
    fields: dict[str, str] = {}
    for line in (text or "").splitlines():
        match = _FIELD_RE.match(line.strip())
        if match:
            fields.setdefault(match.group(1).lower(), match.group(2).strip())

    score_match = _SCORE_RE.match(fields.get("priority_score", "").strip("[]* "))
    band_match = _BAND_RE.match(fields.get("priority_band", "").strip("* "))
    if score_match is None or band_match is None:
        raise UnparsableResponseError("Missing priority_score or priority_band in model response")

    score = int(score_match.group(0))
    if not 0 <= score <= 1000:
        raise UnparsableResponseError(f"priority_score out of range: {score}")

    band = PriorityBand(band_match.group(1).upper())
    low, high = BAND_SCORE_RANGES[band]
    clamped = max(low, min(high, score))
    if clamped != score:
        logger.warning(
            "Priority score %d does not match band %s (%d-%d), adjusting to %d",
            score,
            band,
            low,
            high,
            clamped,
        )

    return ParsedPriority(
        score=clamped,
        band=band,
        reasoning=fields.get("reasoning", "").strip("* ") or None,
        clamped=clamped != score,
    )
