"""
Pydantic models for the change intelligence pipeline.

- Change models for detected edits and their analysis
- Context models for knowledge-source records and context bundles
- Counterproposal models
- Result models for the public operations
"""

from negotiation_intel.models.change import (
    AnalysisResult,
    ChangeCategory,
    ChangeStatus,
    ChangeType,
    NegotiationChange,
    Recommendation,
    RiskLevel,
)
from negotiation_intel.models.context import (
    AnalysisScope,
    Clause,
    ClauseMatch,
    ClauseSearchResult,
    CompliancePolicy,
    ContextBundle,
    HistoricalContext,
    NegotiationSession,
    WorkspaceEntity,
)
from negotiation_intel.models.counterproposal import (
    Counterproposal,
    CounterproposalDraft,
    CounterproposalMode,
    CounterproposalResponse,
)
from negotiation_intel.models.results import (
    AnalysisSource,
    AnalyzeResult,
    BatchAnalyzeResult,
    ComposeResult,
    CounterproposalResult,
)

__all__ = [
    # Change models
    "AnalysisResult",
    "ChangeCategory",
    "ChangeStatus",
    "ChangeType",
    "NegotiationChange",
    "Recommendation",
    "RiskLevel",
    # Context models
    "AnalysisScope",
    "Clause",
    "ClauseMatch",
    "ClauseSearchResult",
    "CompliancePolicy",
    "ContextBundle",
    "HistoricalContext",
    "NegotiationSession",
    "WorkspaceEntity",
    # Counterproposal models
    "Counterproposal",
    "CounterproposalDraft",
    "CounterproposalMode",
    "CounterproposalResponse",
    # Result models
    "AnalysisSource",
    "AnalyzeResult",
    "BatchAnalyzeResult",
    "ComposeResult",
    "CounterproposalResult",
]
