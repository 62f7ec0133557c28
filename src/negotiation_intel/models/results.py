"""
Result models returned by the pipeline's public operations.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from negotiation_intel.models.change import AnalysisResult
from negotiation_intel.models.context import ClauseMatch
from negotiation_intel.models.counterproposal import Counterproposal


class AnalysisSource(str, Enum):
    """Where an analysis came from. Carried next to the analysis, never inside it."""

    CACHE = "cache"
    AI = "ai"
    HEURISTIC = "heuristic"


class ComposeResult(BaseModel):
    """Output of one text-generation call."""

    text: str
    provider: str
    model: str


class AnalyzeResult(BaseModel):
    """Result of analyzing one change."""

    model_config = ConfigDict(use_enum_values=True)

    change_id: str
    analysis: AnalysisResult
    source: AnalysisSource
    provider: str | None = None
    model: str | None = None

    @computed_field
    @property
    def from_cache(self) -> bool:
        return self.source == AnalysisSource.CACHE


class BatchAnalyzeResult(BaseModel):
    """Aggregate result of analyzing all changes of a round."""

    analyzed: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[AnalyzeResult] = Field(default_factory=list)
    duration_ms: int = 0
    model_calls: int = 0

    @property
    def total(self) -> int:
        return self.analyzed + self.failed + self.skipped


class CounterproposalResult(BaseModel):
    """Result of generating one counterproposal."""

    counterproposal: Counterproposal
    provider: str | None = None
    model: str | None = None
    clause_match: ClauseMatch | None = None
