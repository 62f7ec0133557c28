"""
Narrow interfaces to the collaborators the pipeline consumes.

Implementations may define these methods as plain (blocking) functions or
as coroutine functions; the pipeline bounds each call with a timeout either
way (see `negotiation_intel.utils.call_with_timeout`).
"""

from typing import Protocol, runtime_checkable

from negotiation_intel.models import (
    AnalysisResult,
    AnalysisScope,
    ClauseSearchResult,
    CompliancePolicy,
    ComposeResult,
    Counterproposal,
    CounterproposalDraft,
    HistoricalContext,
    NegotiationChange,
    NegotiationSession,
    RiskLevel,
    WorkspaceEntity,
)


@runtime_checkable
class TextComposer(Protocol):
    """Single text-generation capability."""

    def compose_text(
        self,
        prompt: str,
        system_instruction: str,
        max_output_tokens: int,
    ) -> ComposeResult: ...


class EntitySearch(Protocol):
    def search_entities(self, scope: AnalysisScope, term: str) -> list[WorkspaceEntity]: ...


class ClauseMatcher(Protocol):
    def find_similar_clauses(self, text: str, scope: AnalysisScope) -> ClauseSearchResult: ...


class PolicySource(Protocol):
    def get_enabled_policies(self, scope: AnalysisScope) -> list[CompliancePolicy]: ...


class HistorySource(Protocol):
    def get_historical_context(
        self,
        change: NegotiationChange,
        scope: AnalysisScope,
        counterparty_name: str,
    ) -> HistoricalContext | None: ...


class SessionLookup(Protocol):
    def get_session_by_id(self, session_id: str) -> NegotiationSession | None: ...


class ChangeStore(Protocol):
    def update_change_analysis(
        self,
        change_id: str,
        analysis: AnalysisResult,
        risk_level: RiskLevel,
    ) -> NegotiationChange | None: ...


class CounterproposalStore(Protocol):
    def create_counterproposal(self, draft: CounterproposalDraft) -> Counterproposal: ...

    def accept(self, counterproposal_id: str) -> Counterproposal | None: ...


class ClauseUsageTracker(Protocol):
    def increment_usage(self, clause_id: str) -> bool: ...
