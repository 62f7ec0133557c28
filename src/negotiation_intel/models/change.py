"""
Change models: one detected edit between two negotiation rounds and its analysis.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChangeType(str, Enum):
    """Kind of edit detected between rounds."""

    INSERT = "insert"
    DELETE = "delete"
    REPLACE = "replace"


class ChangeCategory(str, Enum):
    """Change category (heuristic at detection time, overwritten by AI)."""

    SUBSTANTIVE = "substantive"
    EDITORIAL = "editorial"
    STRUCTURAL = "structural"


class ChangeStatus(str, Enum):
    """Resolution status of a change."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COUNTERED = "countered"


class RiskLevel(str, Enum):
    """Risk level assigned by analysis."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Recommendation(str, Enum):
    """Recommended action for a change."""

    ACCEPT = "accept"
    REJECT = "reject"
    COUNTER = "counter"
    REVIEW = "review"


class AnalysisResult(BaseModel):
    """
    Structured analysis of a single change.

    Model-produced and heuristic results share this shape. Field aliases
    match the camelCase keys the model is asked to emit.
    """

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True)

    category: ChangeCategory
    risk_level: RiskLevel = Field(..., alias="riskLevel")
    summary: str
    impact: str
    historical_context: str | None = Field(default=None, alias="historicalContext")
    clause_comparison: str | None = Field(default=None, alias="clauseComparison")
    compliance_flags: list[str] = Field(default_factory=list, alias="complianceFlags")
    recommendation: Recommendation
    recommendation_reason: str = Field(..., alias="recommendationReason")


class NegotiationChange(BaseModel):
    """
    A single detected edit between the prior round and the proposed round.

    Offsets refer to the prior round's plain text. `risk_level` is kept
    denormalized from `ai_analysis` and must agree with it.
    """

    model_config = ConfigDict(use_enum_values=True)

    id: str
    session_id: str
    round_id: str
    change_type: ChangeType
    category: ChangeCategory = ChangeCategory.SUBSTANTIVE
    section_heading: str | None = None
    original_text: str | None = None
    proposed_text: str | None = None
    from_pos: int = Field(default=0, ge=0)
    to_pos: int = Field(default=0, ge=0)

    status: ChangeStatus = ChangeStatus.PENDING
    risk_level: RiskLevel | None = None
    ai_analysis: AnalysisResult | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode="after")
    def check_denormalized_risk(self) -> "NegotiationChange":
        """Keep risk_level in step with the stored analysis."""
        if self.to_pos < self.from_pos:
            raise ValueError("to_pos must not precede from_pos")
        if self.ai_analysis is not None:
            if self.risk_level is None:
                self.risk_level = self.ai_analysis.risk_level
            elif self.risk_level != self.ai_analysis.risk_level:
                raise ValueError(
                    f"risk_level {self.risk_level!r} disagrees with analysis "
                    f"risk level {self.ai_analysis.risk_level!r}"
                )
        return self

    @property
    def has_analysis(self) -> bool:
        return self.ai_analysis is not None

    @property
    def has_text(self) -> bool:
        return bool(self.original_text) or bool(self.proposed_text)

    @property
    def combined_text(self) -> str:
        """Original and proposed text joined for keyword scanning."""
        return f"{self.original_text or ''} {self.proposed_text or ''}"

    def with_analysis(self, analysis: AnalysisResult) -> "NegotiationChange":
        """Return a copy carrying the analysis and its denormalized risk level."""
        return self.model_copy(
            update={
                "ai_analysis": analysis,
                "risk_level": analysis.risk_level,
                "updated_at": datetime.utcnow(),
            }
        )
