"""
Prompt construction for change analysis and counterproposal generation.

Every builder here is a pure function of its arguments: same change, scope,
context and limits always produce the same text.
"""

import json
from dataclasses import dataclass

from negotiation_intel.models import (
    AnalysisScope,
    ContextBundle,
    CounterproposalMode,
    NegotiationChange,
)
from negotiation_intel.pipeline.heuristics import truncate_text
from negotiation_intel.utils import enum_value

# =============================================================================
# System Instructions
# =============================================================================

ANALYSIS_SYSTEM_PROMPT = """You are a contract negotiation analyst. Given a specific change between two document versions, analyze its significance.

You MUST respond with valid JSON only (no markdown, no explanation outside JSON).

JSON schema:
{
  "category": "substantive" | "editorial" | "structural",
  "riskLevel": "low" | "medium" | "high" | "critical",
  "summary": "One-sentence description of what changed",
  "impact": "Explanation of business/legal impact",
  "historicalContext": "How this compares to past deals (if available)" | null,
  "clauseComparison": "How this differs from standard language (if available)" | null,
  "complianceFlags": ["Any policy violations"] | [],
  "recommendation": "accept" | "reject" | "counter" | "review",
  "recommendationReason": "Why this recommendation"
}"""

BATCH_ANALYSIS_SYSTEM_PROMPT = """You are a contract negotiation analyst. Given multiple changes between two document versions, analyze each one.

You MUST respond with a JSON array only (no markdown, no explanation outside JSON).
Each element must have the same schema:
{
  "changeIndex": <number (0-based index matching the input order)>,
  "category": "substantive" | "editorial" | "structural",
  "riskLevel": "low" | "medium" | "high" | "critical",
  "summary": "One-sentence description",
  "impact": "Business/legal impact",
  "historicalContext": null,
  "clauseComparison": null,
  "complianceFlags": [],
  "recommendation": "accept" | "reject" | "counter" | "review",
  "recommendationReason": "Why"
}"""

COUNTERPROPOSAL_SYSTEM_PROMPT = """You are a contract negotiation expert. Generate compromise language for a disputed clause.

You MUST respond with valid JSON only (no markdown, no explanation outside JSON).

JSON schema:
{
  "proposedText": "The compromise language",
  "rationale": "Why this compromise is appropriate",
  "changesFromYours": "What the user is conceding from their original",
  "changesFromTheirs": "What the counterparty is conceding from their proposal",
  "preserves": "Key terms preserved from the user's original"
}

Guidelines:
- The proposed text must be grammatically correct and legally reasonable.
- For monetary amounts, propose a specific middle-ground number.
- For dates or deadlines, propose a specific compromise date.
- For percentages, propose a specific middle-ground percentage.
- Keep the language professional and appropriate for a legal document.
- The rationale should explain why this compromise protects both parties."""

MODE_INSTRUCTIONS = {
    CounterproposalMode.BALANCED.value: (
        "Generate a fair compromise that splits the difference between both positions. "
        "Both sides should make roughly equal concessions. The result should be acceptable "
        "to a reasonable party on either side."
    ),
    CounterproposalMode.FAVORABLE.value: (
        "Generate language that leans toward the user's original position while making minimal "
        "acceptable concessions. Preserve the user's key protections and terms. Only concede where "
        "necessary to keep the counterparty engaged."
    ),
    CounterproposalMode.MINIMAL_CHANGE.value: (
        "Make the smallest possible modification to the counterparty's proposed text that preserves "
        "the user's key terms and protections. Keep as much of the counterparty's language as possible "
        "while re-inserting critical terms they removed or weakened."
    ),
}

SHORT_TEXT_NOTICE = "Note: The text is very short. Generate a proportionally concise compromise."


@dataclass(frozen=True)
class PromptLimits:
    """Character ceilings and list caps applied while rendering prompts."""

    max_change_text_chars: int = 2_000
    batch_item_text_chars: int = 500
    max_entities: int = 5
    max_clauses: int = 3
    max_policies: int = 5
    clause_excerpt_chars: int = 200
    reference_clause_chars: int = 500
    short_text_threshold: int = 50

    @classmethod
    def from_settings(cls, settings) -> "PromptLimits":
        return cls(
            max_change_text_chars=settings.max_change_text_chars,
            batch_item_text_chars=settings.batch_item_text_chars,
            max_entities=settings.prompt_max_entities,
            max_clauses=settings.prompt_max_clauses,
            max_policies=settings.prompt_max_policies,
            reference_clause_chars=settings.reference_clause_chars,
            short_text_threshold=settings.short_text_threshold,
        )


DEFAULT_LIMITS = PromptLimits()


# =============================================================================
# Context Blocks
# =============================================================================


def _render_entities(bundle: ContextBundle, limits: PromptLimits) -> list[str]:
    lines = ["Historical data from knowledge graph:"]
    for entity in bundle.entities[:limits.max_entities]:
        meta = ""
        if entity.metadata:
            meta = f" ({json.dumps(entity.metadata, sort_keys=True, default=str)[:100]})"
        lines.append(
            f"  - {entity.name} [{entity.entity_type}]: mentioned in "
            f"{entity.doc_count} docs, {entity.mention_count} times{meta}"
        )
    return lines


def _render_clauses(bundle: ContextBundle, limits: PromptLimits) -> list[str]:
    lines = ["Standard clauses from clause library:"]
    for match in bundle.clause_matches[:limits.max_clauses]:
        excerpt = truncate_text(match.clause.content_text, limits.clause_excerpt_chars)
        lines.append(f'  - "{match.clause.title}" (similarity: {match.similarity}%): {excerpt}')
    return lines


def _render_policies(bundle: ContextBundle, limits: PromptLimits, heading: str) -> list[str]:
    lines = [heading]
    for policy in bundle.compliance_policies[:limits.max_policies]:
        lines.append(f"  - {policy.name} [{policy.severity}]: {policy.description or policy.rule_type}")
    return lines


def _render_history(bundle: ContextBundle) -> list[str]:
    return ["Historical deal context:", bundle.historical_summary or ""]


# =============================================================================
# Analysis Prompts
# =============================================================================


def build_analysis_prompt(
    change: NegotiationChange,
    scope: AnalysisScope,
    bundle: ContextBundle,
    limits: PromptLimits = DEFAULT_LIMITS,
) -> str:
    """Build the prompt for analyzing one change with its context bundle."""
    lines = [f"Document type: {scope.document_type or 'unknown'}"]
    if change.section_heading:
        lines.append(f"Section: {change.section_heading}")

    lines.append("")
    lines.append(f"Change type: {enum_value(change.change_type)}")
    lines.append(f"Current category (heuristic): {enum_value(change.category)}")
    if change.original_text:
        lines.append(f"Previous text: {truncate_text(change.original_text, limits.max_change_text_chars)}")
    if change.proposed_text:
        lines.append(f"Proposed text: {truncate_text(change.proposed_text, limits.max_change_text_chars)}")

    if bundle.entities:
        lines.append("")
        lines.extend(_render_entities(bundle, limits))
    if bundle.clause_matches:
        lines.append("")
        lines.extend(_render_clauses(bundle, limits))
    if bundle.compliance_policies:
        lines.append("")
        lines.extend(_render_policies(bundle, limits, "Active compliance policies:"))
    if bundle.historical_summary:
        lines.append("")
        lines.extend(_render_history(bundle))

    return "\n".join(lines)


def build_batch_prompt(
    changes: list[NegotiationChange],
    scope: AnalysisScope,
    limits: PromptLimits = DEFAULT_LIMITS,
) -> str:
    """Build one prompt covering a group of changes, indexed from zero."""
    lines = [
        f"Document type: {scope.document_type or 'unknown'}",
        f"Analyze the following {len(changes)} changes:",
        "",
    ]
    for i, change in enumerate(changes):
        lines.append(f"--- Change {i} ---")
        lines.append(f"Type: {enum_value(change.change_type)} | Category (heuristic): {enum_value(change.category)}")
        if change.section_heading:
            lines.append(f"Section: {change.section_heading}")
        if change.original_text:
            lines.append(f"Previous: {truncate_text(change.original_text, limits.batch_item_text_chars)}")
        if change.proposed_text:
            lines.append(f"Proposed: {truncate_text(change.proposed_text, limits.batch_item_text_chars)}")
        lines.append("")

    return "\n".join(lines)


# =============================================================================
# Counterproposal Prompt
# =============================================================================


def build_counterproposal_prompt(
    change: NegotiationChange,
    mode: CounterproposalMode | str,
    scope: AnalysisScope,
    bundle: ContextBundle,
    limits: PromptLimits = DEFAULT_LIMITS,
) -> str:
    """Build the prompt for generating compromise text in the given mode."""
    mode_value = enum_value(mode)
    lines = [f"Mode: {mode_value}", MODE_INSTRUCTIONS[mode_value], ""]

    lines.append(f"Document type: {scope.document_type or 'unknown'}")
    if change.section_heading:
        lines.append(f"Section: {change.section_heading}")
    lines.append("")

    if change.original_text:
        lines.append("Your version (original):")
        lines.append(truncate_text(change.original_text, limits.max_change_text_chars))
        lines.append("")
    if change.proposed_text:
        lines.append("Their version (proposed):")
        lines.append(truncate_text(change.proposed_text, limits.max_change_text_chars))
        lines.append("")

    longest = max(len(change.original_text or ""), len(change.proposed_text or ""))
    if longest < limits.short_text_threshold:
        lines.append(SHORT_TEXT_NOTICE)
        lines.append("")

    top = bundle.top_clause_match
    if top is not None:
        lines.append("Your standard clause from clause library (use as reference for standard language):")
        lines.append(f'  "{top.clause.title}" (similarity: {top.similarity}%):')
        lines.append(f"  {truncate_text(top.clause.content_text, limits.reference_clause_chars)}")
        lines.append("")
    if bundle.entities:
        lines.extend(_render_entities(bundle, limits))
        lines.append("")
    if bundle.compliance_policies:
        lines.extend(
            _render_policies(
                bundle, limits, "Active compliance policies (the compromise must not violate these):"
            )
        )
        lines.append("")
    if bundle.historical_summary:
        lines.extend(_render_history(bundle))
        lines.append("")

    return "\n".join(lines)