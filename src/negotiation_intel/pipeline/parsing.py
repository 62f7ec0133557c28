"""
Response parsing with layered fallback.

Each tier is a small function that either returns a value or the TRY_NEXT
sentinel; `first_success` runs them in order. Tiers:

1. Parse the whole response as JSON.
2. Parse the interior of the first fenced code block.
3. Analysis only: the model-free heuristic. Counterproposals have no third
   tier and raise ResponseParseError instead.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import structlog

from negotiation_intel.exceptions import ResponseParseError
from negotiation_intel.models import (
    AnalysisResult,
    AnalysisSource,
    ChangeCategory,
    CounterproposalResponse,
    NegotiationChange,
    Recommendation,
    RiskLevel,
)
from negotiation_intel.pipeline.heuristics import build_heuristic_analysis

logger = structlog.get_logger(__name__)

FENCED_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")

VALID_CATEGORIES = {c.value for c in ChangeCategory}
VALID_RISK_LEVELS = {r.value for r in RiskLevel}
VALID_RECOMMENDATIONS = {r.value for r in Recommendation}


class _TryNext:
    """Sentinel returned by a tier that could not produce a value."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "TRY_NEXT"

    def __bool__(self) -> bool:
        return False


TRY_NEXT = _TryNext()

Attempt = Callable[[str], Any]


def first_success(attempts: Sequence[Attempt], text: str) -> Any:
    """Run attempts in order, returning the first result that is not TRY_NEXT."""
    for attempt in attempts:
        result = attempt(text)
        if result is not TRY_NEXT:
            return result
    return TRY_NEXT


# =============================================================================
# Payload Extraction
# =============================================================================


def try_parse_json(text: str) -> dict | list | None:
    """Parse text as a JSON object or array; anything else yields None."""
    try:
        result = json.loads(text.strip())
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    if isinstance(result, (dict, list)):
        return result
    return None


def direct_payload(text: str) -> Any:
    payload = try_parse_json(text)
    return TRY_NEXT if payload is None else payload


def fenced_payload(text: str) -> Any:
    match = FENCED_BLOCK_PATTERN.search(text)
    if not match:
        return TRY_NEXT
    payload = try_parse_json(match.group(1))
    return TRY_NEXT if payload is None else payload


PAYLOAD_TIERS: tuple[Attempt, ...] = (direct_payload, fenced_payload)


def _validated(extract: Attempt, accept: Callable[[Any], Any]) -> Attempt:
    """Combine a payload extractor with a validator into one tier."""

    def attempt(text: str) -> Any:
        payload = extract(text)
        if payload is TRY_NEXT:
            return TRY_NEXT
        return accept(payload)

    return attempt


def _field(obj: dict, camel: str, snake: str) -> Any:
    return obj[camel] if camel in obj else obj.get(snake)


# =============================================================================
# Analysis
# =============================================================================


@dataclass(frozen=True)
class ParsedAnalysis:
    """An analysis plus whether the model or the heuristic produced it."""

    analysis: AnalysisResult
    source: AnalysisSource


def is_valid_analysis(obj: Any) -> bool:
    """Minimum shape: string summary, risk level and recommendation."""
    if not isinstance(obj, dict):
        return False
    return (
        isinstance(obj.get("summary"), str)
        and isinstance(_field(obj, "riskLevel", "risk_level"), str)
        and isinstance(obj.get("recommendation"), str)
    )


def normalize_analysis(obj: dict) -> AnalysisResult:
    """Coerce a validated payload into an AnalysisResult, defaulting unknown enums."""
    category = obj.get("category")
    risk_level = _field(obj, "riskLevel", "risk_level")
    recommendation = obj.get("recommendation")
    flags = _field(obj, "complianceFlags", "compliance_flags")
    historical = _field(obj, "historicalContext", "historical_context")
    comparison = _field(obj, "clauseComparison", "clause_comparison")
    reason = _field(obj, "recommendationReason", "recommendation_reason")
    impact = obj.get("impact")

    return AnalysisResult(
        category=category if isinstance(category, str) and category in VALID_CATEGORIES else ChangeCategory.SUBSTANTIVE,
        risk_level=risk_level if risk_level in VALID_RISK_LEVELS else RiskLevel.MEDIUM,
        summary=obj["summary"],
        impact=impact if isinstance(impact, str) else "Impact assessment unavailable.",
        historical_context=historical if isinstance(historical, str) else None,
        clause_comparison=comparison if isinstance(comparison, str) else None,
        compliance_flags=[f for f in flags if isinstance(f, str)] if isinstance(flags, list) else [],
        recommendation=recommendation if recommendation in VALID_RECOMMENDATIONS else Recommendation.REVIEW,
        recommendation_reason=reason if isinstance(reason, str) else "No specific reasoning provided.",
    )


def _accept_analysis(payload: Any) -> Any:
    if isinstance(payload, dict) and is_valid_analysis(payload):
        return normalize_analysis(payload)
    return TRY_NEXT


ANALYSIS_TIERS: tuple[Attempt, ...] = tuple(_validated(t, _accept_analysis) for t in PAYLOAD_TIERS)


def parse_analysis_response(text: str, change: NegotiationChange) -> ParsedAnalysis:
    """Parse a single-change analysis. Never raises: the last tier is the heuristic."""
    result = first_success(ANALYSIS_TIERS, text)
    if result is not TRY_NEXT:
        return ParsedAnalysis(result, AnalysisSource.AI)

    logger.warning("analysis_response_unparseable", change_id=change.id, response_chars=len(text))
    return ParsedAnalysis(build_heuristic_analysis(change), AnalysisSource.HEURISTIC)


def _accept_array(payload: Any) -> Any:
    return payload if isinstance(payload, list) else TRY_NEXT


BATCH_TIERS: tuple[Attempt, ...] = tuple(_validated(t, _accept_array) for t in PAYLOAD_TIERS)


def _change_index(obj: dict, size: int) -> int | None:
    idx = _field(obj, "changeIndex", "change_index")
    if isinstance(idx, bool) or not isinstance(idx, int):
        return None
    if 0 <= idx < size:
        return idx
    return None


def parse_batch_response(text: str, changes: Sequence[NegotiationChange]) -> dict[int, ParsedAnalysis]:
    """
    Map a batch response back onto its input changes by zero-based index.

    Elements with a missing or out-of-range index are discarded; duplicate
    indices keep the first valid element. Every input index is present in
    the result, back-filled by the heuristic where needed.
    """
    results: dict[int, ParsedAnalysis] = {}

    elements = first_success(BATCH_TIERS, text)
    if elements is TRY_NEXT:
        logger.warning("batch_response_unparseable", changes=len(changes), response_chars=len(text))
        elements = []

    for obj in elements:
        if not isinstance(obj, dict):
            continue
        idx = _change_index(obj, len(changes))
        if idx is None or idx in results or not is_valid_analysis(obj):
            continue
        results[idx] = ParsedAnalysis(normalize_analysis(obj), AnalysisSource.AI)

    missing = [i for i in range(len(changes)) if i not in results]
    if missing and elements:
        logger.warning("batch_response_incomplete", missing_indices=missing)
    for i in missing:
        results[i] = ParsedAnalysis(build_heuristic_analysis(changes[i]), AnalysisSource.HEURISTIC)

    return results


# =============================================================================
# Counterproposals
# =============================================================================


def is_valid_counterproposal(obj: Any) -> bool:
    """Minimum shape: non-empty proposed text and rationale."""
    if not isinstance(obj, dict):
        return False
    proposed = _field(obj, "proposedText", "proposed_text")
    rationale = obj.get("rationale")
    return (
        isinstance(proposed, str)
        and bool(proposed.strip())
        and isinstance(rationale, str)
        and bool(rationale.strip())
    )


def normalize_counterproposal(obj: dict) -> CounterproposalResponse:
    def optional(camel: str, snake: str) -> str:
        value = _field(obj, camel, snake)
        return value if isinstance(value, str) else ""

    return CounterproposalResponse(
        proposed_text=_field(obj, "proposedText", "proposed_text"),
        rationale=obj["rationale"],
        changes_from_yours=optional("changesFromYours", "changes_from_yours"),
        changes_from_theirs=optional("changesFromTheirs", "changes_from_theirs"),
        preserves=optional("preserves", "preserves"),
    )


def _accept_counterproposal(payload: Any) -> Any:
    if is_valid_counterproposal(payload):
        return normalize_counterproposal(payload)
    return TRY_NEXT


COUNTERPROPOSAL_TIERS: tuple[Attempt, ...] = tuple(
    _validated(t, _accept_counterproposal) for t in PAYLOAD_TIERS
)


def parse_counterproposal_response(text: str) -> CounterproposalResponse:
    """Parse generated compromise text. Raises ResponseParseError; there is no heuristic tier."""
    result = first_success(COUNTERPROPOSAL_TIERS, text)
    if result is TRY_NEXT:
        raise ResponseParseError(
            "AI response could not be parsed as a valid counterproposal. "
            "Expected JSON with proposedText and rationale fields.",
            raw_text=text,
        )
    return result
