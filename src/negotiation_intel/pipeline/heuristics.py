"""Model-free risk classification for negotiation changes.

Backstop for every failure path in the analysis pipeline: pure, total,
and free of I/O.
"""

import re

from negotiation_intel.models import (
    AnalysisResult,
    ChangeCategory,
    NegotiationChange,
    Recommendation,
    RiskLevel,
)
from negotiation_intel.utils import enum_value

SUMMARY_PREVIEW_CHARS = 80

# Substantive risk indicators, checked in order
CURRENCY_PATTERN = re.compile(r"\$[\d,.]+|\b\d+[\d,.]*\s*(dollars|usd|eur|gbp)\b", re.IGNORECASE)
HIGH_RISK_TERMS_PATTERN = re.compile(
    r"\b(liability|liabilities|indemnity|indemnification|indemnify|termination|terminate|penalty|penalties)\b",
    re.IGNORECASE,
)
PROHIBITIVE_PATTERN = re.compile(r"\b(shall not|must not|may not|cannot|prohibited)\b", re.IGNORECASE)
PERCENTAGE_PATTERN = re.compile(r"\d+(\.\d+)?\s?%")
OBLIGATORY_PATTERN = re.compile(r"\b(shall|must|will|required to|obligated to)\b", re.IGNORECASE)

HIGH_RISK_LEVELS = {RiskLevel.HIGH.value, RiskLevel.CRITICAL.value}

_ACTION_VERBS = {
    "insert": "Added",
    "delete": "Deleted",
    "replace": "Modified",
}

_IMPACT_NOUNS = {
    "insert": "Addition",
    "delete": "Removal",
    "replace": "Modification",
}


def truncate_text(text: str, limit: int) -> str:
    """Truncate text to `limit` characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def estimate_risk_level(change: NegotiationChange) -> RiskLevel:
    """Estimate a risk level from the change's category and text."""
    if change.category == ChangeCategory.EDITORIAL:
        return RiskLevel.LOW
    if change.category == ChangeCategory.STRUCTURAL:
        return RiskLevel.MEDIUM

    text = change.combined_text
    if CURRENCY_PATTERN.search(text) or HIGH_RISK_TERMS_PATTERN.search(text):
        return RiskLevel.HIGH
    if PROHIBITIVE_PATTERN.search(text):
        return RiskLevel.HIGH
    if PERCENTAGE_PATTERN.search(text):
        return RiskLevel.MEDIUM
    if OBLIGATORY_PATTERN.search(text):
        return RiskLevel.MEDIUM
    return RiskLevel.MEDIUM


def build_heuristic_summary(change: NegotiationChange) -> str:
    """One-sentence summary from edit kind, category, section and a text preview."""
    action = _ACTION_VERBS.get(enum_value(change.change_type), "Modified")
    preview = truncate_text(change.proposed_text or change.original_text or "", SUMMARY_PREVIEW_CHARS)
    section = f' in "{change.section_heading}"' if change.section_heading else ""
    return f'{action} {enum_value(change.category)} text{section}: "{preview}"'


def build_heuristic_analysis(change: NegotiationChange) -> AnalysisResult:
    """Build a complete analysis without any model involvement."""
    risk_level = estimate_risk_level(change)
    category = enum_value(change.category)
    noun = _IMPACT_NOUNS.get(enum_value(change.change_type), "Modification")
    section = f' in "{change.section_heading}"' if change.section_heading else ""

    recommendation = Recommendation.REVIEW if risk_level.value in HIGH_RISK_LEVELS else Recommendation.ACCEPT

    return AnalysisResult(
        category=category,
        risk_level=risk_level,
        summary=build_heuristic_summary(change),
        impact=f"{noun} of {category} content{section}.",
        historical_context=None,
        clause_comparison=None,
        compliance_flags=[],
        recommendation=recommendation,
        recommendation_reason=(
            f"Heuristic analysis: {category} change with {risk_level.value} risk. "
            "AI analysis was unavailable."
        ),
    )