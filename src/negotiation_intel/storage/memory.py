"""
In-memory collaborators.

Reference implementations of every interface the pipeline consumes, for
tests and local wiring. Methods are coroutines like the database adapters
they stand in for.
"""

import re
from datetime import datetime

import structlog

from negotiation_intel.models import (
    AnalysisResult,
    AnalysisScope,
    ChangeStatus,
    Clause,
    ClauseMatch,
    ClauseSearchResult,
    CompliancePolicy,
    Counterproposal,
    CounterproposalDraft,
    HistoricalContext,
    NegotiationChange,
    NegotiationSession,
    RiskLevel,
    WorkspaceEntity,
)
from negotiation_intel.utils import enum_value

logger = structlog.get_logger(__name__)

MIN_KEYWORD_CHARS = 3
MAX_CLAUSE_SUGGESTIONS = 5

STOPWORDS = frozenset(
    """
    the a an is are was were be been being have has had do does did will would
    could should may might shall can need must in on at to for of with by from
    as into about between through during before after above below and or but
    nor not no if then than so that this these those it its he she they we you
    i me my your his her our their which what who whom where when how all each
    any both such other
    """.split()
)

RESOLVED_STATUSES = {ChangeStatus.ACCEPTED.value, ChangeStatus.REJECTED.value, ChangeStatus.COUNTERED.value}


# =============================================================================
# Changes
# =============================================================================


class InMemoryChangeStore:
    """Changes keyed by id."""

    def __init__(self, changes: list[NegotiationChange] | None = None):
        self._changes: dict[str, NegotiationChange] = {}
        for change in changes or []:
            self.add(change)

    def add(self, change: NegotiationChange) -> None:
        self._changes[change.id] = change

    def get(self, change_id: str) -> NegotiationChange | None:
        return self._changes.get(change_id)

    def list_by_session(self, session_id: str) -> list[NegotiationChange]:
        return [c for c in self._changes.values() if c.session_id == session_id]

    async def update_change_analysis(
        self,
        change_id: str,
        analysis: AnalysisResult,
        risk_level: RiskLevel | str,
    ) -> NegotiationChange | None:
        """Store an analysis with its denormalized risk level."""
        change = self._changes.get(change_id)
        if change is None:
            return None
        if enum_value(risk_level) != enum_value(analysis.risk_level):
            raise ValueError(
                f"risk level {enum_value(risk_level)!r} disagrees with analysis "
                f"risk level {enum_value(analysis.risk_level)!r}"
            )
        updated = change.with_analysis(analysis)
        self._changes[change_id] = updated
        logger.debug("change_analysis_stored", change_id=change_id, risk_level=updated.risk_level)
        return updated

    async def update_status(
        self,
        change_id: str,
        status: ChangeStatus | str,
        resolved_by: str | None = None,
    ) -> NegotiationChange | None:
        change = self._changes.get(change_id)
        if change is None:
            return None
        resolved = enum_value(status) in RESOLVED_STATUSES
        now = datetime.utcnow()
        updated = change.model_copy(
            update={
                "status": enum_value(status),
                "resolved_by": resolved_by if resolved else None,
                "resolved_at": now if resolved else None,
                "updated_at": now,
            }
        )
        self._changes[change_id] = updated
        return updated


# =============================================================================
# Counterproposals
# =============================================================================


class InMemoryCounterproposalStore:
    """Counterproposals keyed by id."""

    def __init__(self):
        self._items: dict[str, Counterproposal] = {}

    def get(self, counterproposal_id: str) -> Counterproposal | None:
        return self._items.get(counterproposal_id)

    def get_by_change(self, change_id: str) -> list[Counterproposal]:
        items = [cp for cp in self._items.values() if cp.change_id == change_id]
        return sorted(items, key=lambda cp: cp.created_at)

    async def create_counterproposal(self, draft: CounterproposalDraft) -> Counterproposal:
        counterproposal = Counterproposal.from_draft(draft)
        self._items[counterproposal.id] = counterproposal
        return counterproposal

    async def accept(self, counterproposal_id: str) -> Counterproposal | None:
        """Mark accepted. Returns None if missing or already accepted."""
        current = self._items.get(counterproposal_id)
        if current is None or current.accepted:
            return None
        accepted = current.model_copy(update={"accepted": True})
        self._items[counterproposal_id] = accepted
        return accepted


# =============================================================================
# Knowledge base: entities, policies, sessions
# =============================================================================


class InMemoryKnowledgeBase:
    """Workspace entities, compliance policies and negotiation sessions."""

    def __init__(
        self,
        entities: dict[str, list[WorkspaceEntity]] | None = None,
        policies: list[CompliancePolicy] | None = None,
        sessions: list[NegotiationSession] | None = None,
    ):
        self._entities: dict[str, list[WorkspaceEntity]] = {k: list(v) for k, v in (entities or {}).items()}
        self._policies: list[CompliancePolicy] = list(policies or [])
        self._sessions: dict[str, NegotiationSession] = {s.id: s for s in sessions or []}

    def add_entity(self, workspace_id: str, entity: WorkspaceEntity) -> None:
        self._entities.setdefault(workspace_id, []).append(entity)

    def add_policy(self, policy: CompliancePolicy) -> None:
        self._policies.append(policy)

    def add_session(self, session: NegotiationSession) -> None:
        self._sessions[session.id] = session

    def sessions_for_counterparty(self, workspace_id: str, counterparty_name: str) -> list[NegotiationSession]:
        name = counterparty_name.strip().lower()
        return [
            s for s in self._sessions.values()
            if s.workspace_id == workspace_id and s.counterparty_name.strip().lower() == name
        ]

    async def search_entities(self, scope: AnalysisScope, term: str) -> list[WorkspaceEntity]:
        """Case-insensitive substring match on name and aliases, most mentioned first."""
        needle = term.lower()
        found = [
            e for e in self._entities.get(scope.workspace_id, [])
            if needle in e.name.lower() or any(needle in a.lower() for a in e.aliases)
        ]
        return sorted(found, key=lambda e: e.mention_count, reverse=True)

    async def get_enabled_policies(self, scope: AnalysisScope) -> list[CompliancePolicy]:
        return [p for p in self._policies if p.workspace_id == scope.workspace_id and p.enabled]

    async def get_session_by_id(self, session_id: str) -> NegotiationSession | None:
        return self._sessions.get(session_id)


# =============================================================================
# Clause library
# =============================================================================


def extract_keywords(text: str) -> set[str]:
    """Lowercased words of three or more characters, minus stopwords."""
    return {
        w for w in re.split(r"[^a-z0-9]+", text.lower())
        if len(w) >= MIN_KEYWORD_CHARS and w not in STOPWORDS
    }


def jaccard_similarity(a: set[str], b: set[str]) -> float:
    """Jaccard index of two keyword sets, 0.0 when both are empty."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


class InMemoryClauseLibrary:
    """Clause library scored by keyword overlap."""

    def __init__(self, clauses: list[Clause] | None = None):
        self._clauses: dict[str, Clause] = {c.id: c for c in clauses or []}

    def add(self, clause: Clause) -> None:
        self._clauses[clause.id] = clause

    def get(self, clause_id: str) -> Clause | None:
        return self._clauses.get(clause_id)

    async def find_similar_clauses(self, text: str, scope: AnalysisScope) -> ClauseSearchResult:
        keywords = extract_keywords(text)
        matches = []
        for clause in self._clauses.values():
            if clause.workspace_id and clause.workspace_id != scope.workspace_id:
                continue
            clause_keywords = extract_keywords(f"{clause.title} {clause.content_text}")
            score = jaccard_similarity(keywords, clause_keywords)
            if score <= 0:
                continue
            shared = sorted(keywords & clause_keywords)
            matches.append(
                ClauseMatch(
                    clause=clause,
                    similarity=round(score * 100),
                    match_reason=f"Shares {len(shared)} key terms: {', '.join(shared[:5])}",
                )
            )
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return ClauseSearchResult(suggestions=matches[:MAX_CLAUSE_SUGGESTIONS])

    async def increment_usage(self, clause_id: str) -> bool:
        clause = self._clauses.get(clause_id)
        if clause is None:
            return False
        self._clauses[clause_id] = clause.model_copy(update={"usage_count": clause.usage_count + 1})
        return True


# =============================================================================
# Deal history
# =============================================================================


def _rate(accepted: int, total: int) -> float | None:
    return accepted / total if total else None


def _percent(rate: float) -> str:
    return f"{round(rate * 100)}%"


class InMemoryDealHistory:
    """
    Acceptance analytics over past sessions with the same counterparty.

    Only resolved changes (accepted, rejected or countered) of other
    sessions count.
    """

    def __init__(self, knowledge_base: InMemoryKnowledgeBase, changes: InMemoryChangeStore):
        self.knowledge_base = knowledge_base
        self.changes = changes

    async def get_historical_context(
        self,
        change: NegotiationChange,
        scope: AnalysisScope,
        counterparty_name: str = "",
    ) -> HistoricalContext | None:
        if not counterparty_name:
            return None

        sessions = [
            s for s in self.knowledge_base.sessions_for_counterparty(scope.workspace_id, counterparty_name)
            if s.id != scope.session_id
        ]
        resolved = [
            c for s in sessions for c in self.changes.list_by_session(s.id)
            if c.status in RESOLVED_STATUSES
        ]
        if not resolved:
            return None

        by_category: dict[str, list[NegotiationChange]] = {}
        for c in resolved:
            by_category.setdefault(enum_value(c.category), []).append(c)

        overall = _rate(sum(1 for c in resolved if c.status == ChangeStatus.ACCEPTED), len(resolved))
        rates = {
            category: _rate(sum(1 for c in items if c.status == ChangeStatus.ACCEPTED), len(items))
            for category, items in by_category.items()
        }

        parts = [
            f"{len(sessions)} previous negotiation(s) with {counterparty_name}; "
            f"{len(resolved)} resolved changes, {_percent(overall)} accepted overall."
        ]
        category = enum_value(change.category)
        if rates.get(category) is not None:
            parts.append(
                f"{category.capitalize()} changes: {_percent(rates[category])} accepted "
                f"across {len(by_category[category])} past changes."
            )

        return HistoricalContext(
            summary=" ".join(parts),
            counterparty_name=counterparty_name,
            sessions_considered=len(sessions),
            acceptance_rate=overall,
            acceptance_by_category=rates,
        )
