"""
Counterproposal models.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class CounterproposalMode(str, Enum):
    """How the compromise should lean."""

    BALANCED = "balanced"
    FAVORABLE = "favorable"
    MINIMAL_CHANGE = "minimal_change"


class CounterproposalDraft(BaseModel):
    """Input for persisting a newly generated counterproposal."""

    model_config = ConfigDict(use_enum_values=True)

    change_id: str
    mode: CounterproposalMode
    proposed_text: str = Field(..., min_length=1)
    rationale: str = Field(..., min_length=1)
    clause_id: str | None = None
    created_by: str


class Counterproposal(BaseModel):
    """
    A stored counterproposal.

    Created once by generation; the only later change is being marked
    accepted, which happens at most once.
    """

    model_config = ConfigDict(use_enum_values=True, frozen=True)

    id: str = Field(default_factory=lambda: f"cp_{uuid4().hex[:12]}")
    change_id: str
    mode: CounterproposalMode
    proposed_text: str
    rationale: str
    clause_id: str | None = None
    created_by: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    accepted: bool = False

    @classmethod
    def from_draft(cls, draft: CounterproposalDraft) -> "Counterproposal":
        return cls(**draft.model_dump())


class CounterproposalResponse(BaseModel):
    """Validated model output for counterproposal generation."""

    proposed_text: str = Field(..., min_length=1)
    rationale: str = Field(..., min_length=1)
    changes_from_yours: str = ""
    changes_from_theirs: str = ""
    preserves: str = ""
