"""
Context models: knowledge-source records and the per-change context bundle.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AnalysisScope(BaseModel):
    """Workspace/session scope shared by every lookup for one unit of work."""

    workspace_id: str
    session_id: str
    document_type: str | None = Field(
        default=None, description="Document type from extraction (e.g. contract, proposal)"
    )
    created_by: str | None = Field(default=None, description="User driving the request")


class NegotiationSession(BaseModel):
    """Subset of a negotiation session needed for context lookups."""

    id: str
    workspace_id: str
    title: str = ""
    counterparty_name: str = ""
    status: str = "active"


class WorkspaceEntity(BaseModel):
    """A knowledge-graph entity matched by term search."""

    id: str
    name: str
    entity_type: str
    doc_count: int = 0
    mention_count: int = 0
    aliases: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] | None = None


class Clause(BaseModel):
    """A clause-library entry."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    content_text: str = Field(..., alias="contentText")
    workspace_id: str = Field(default="", alias="workspaceId")
    category: str | None = None
    usage_count: int = Field(default=0, alias="usageCount")


class ClauseMatch(BaseModel):
    """A clause-library entry scored against some input text."""

    model_config = ConfigDict(populate_by_name=True)

    clause: Clause
    similarity: int = Field(..., ge=0, le=100)
    match_reason: str = Field(default="", alias="matchReason")

    @field_validator("similarity", mode="before")
    @classmethod
    def round_similarity(cls, v: Any) -> Any:
        """Matchers may score fractionally; the 0-100 scale is whole numbers."""
        if isinstance(v, float):
            return round(v)
        return v


class ClauseSearchResult(BaseModel):
    """Result of a clause-similarity search."""

    suggestions: list[ClauseMatch] = Field(default_factory=list)


class CompliancePolicy(BaseModel):
    """A workspace compliance policy."""

    id: str
    workspace_id: str
    name: str
    rule_type: str
    severity: str = "warning"
    description: str | None = None
    enabled: bool = True


class HistoricalContext(BaseModel):
    """Deal-history analytics for a change, rendered to a summary paragraph."""

    summary: str
    counterparty_name: str = ""
    sessions_considered: int = 0
    acceptance_rate: float | None = None
    acceptance_by_category: dict[str, float | None] = Field(default_factory=dict)


class ContextBundle(BaseModel):
    """
    Best-effort context gathered for one change.

    Ephemeral and never persisted. Every field may be empty; an empty field
    means the source had nothing or failed.
    """

    entities: list[WorkspaceEntity] = Field(default_factory=list)
    clause_matches: list[ClauseMatch] = Field(default_factory=list)
    compliance_policies: list[CompliancePolicy] = Field(default_factory=list)
    historical_summary: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (
            self.entities
            or self.clause_matches
            or self.compliance_policies
            or self.historical_summary
        )

    @property
    def top_clause_match(self) -> ClauseMatch | None:
        if not self.clause_matches:
            return None
        return max(self.clause_matches, key=lambda m: m.similarity)
