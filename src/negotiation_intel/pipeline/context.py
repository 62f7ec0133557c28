"""
Context aggregation for change analysis and counterproposal generation.

Queries the knowledge graph, clause library, compliance policies and deal
history concurrently. Every source is isolated: a timeout or error yields an
empty contribution for that source only, and the aggregator never fails.
"""

import asyncio
import re
from collections.abc import Mapping
from typing import Any, Awaitable

import structlog

from negotiation_intel.config import Settings, get_settings
from negotiation_intel.models import (
    AnalysisScope,
    ClauseMatch,
    CompliancePolicy,
    ContextBundle,
    NegotiationChange,
    WorkspaceEntity,
)
from negotiation_intel.services.interfaces import (
    ClauseMatcher,
    EntitySearch,
    HistorySource,
    PolicySource,
    SessionLookup,
)
from negotiation_intel.utils import call_with_timeout

logger = structlog.get_logger(__name__)

MIN_TERM_CHARS = 4
_NON_TERM_CHARS = re.compile(r"[^a-zA-Z0-9\s$%]")


def extract_query_terms(text: str, max_terms: int = 10) -> list[str]:
    """
    Extract significant search terms from change text.

    Words of at least four characters, deduplicated, longest first
    (first occurrence breaks ties), capped at `max_terms`.
    """
    words = [w for w in _NON_TERM_CHARS.sub(" ", text).split() if len(w) >= MIN_TERM_CHARS]
    unique = list(dict.fromkeys(words))
    unique.sort(key=len, reverse=True)
    return unique[:max_terms]


class ContextAggregator:
    """
    Builds a best-effort ContextBundle for one change.

    Any collaborator may be None, in which case its field stays empty.
    """

    def __init__(
        self,
        entity_search: EntitySearch | None = None,
        clause_matcher: ClauseMatcher | None = None,
        policy_source: PolicySource | None = None,
        history_source: HistorySource | None = None,
        session_lookup: SessionLookup | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.entity_search = entity_search
        self.clause_matcher = clause_matcher
        self.policy_source = policy_source
        self.history_source = history_source
        self.session_lookup = session_lookup

    # =========================================================================
    # Public API
    # =========================================================================

    async def gather(
        self,
        change: NegotiationChange,
        scope: AnalysisScope,
        budget_seconds: float | None = None,
    ) -> ContextBundle:
        """Full context: entities, clause matches, policies and deal history."""
        timeout = self._timeout(budget_seconds)
        entities, clauses, policies, history = await asyncio.gather(
            self._isolated("entities", self._search_entities(change, scope, timeout), [], timeout),
            self._isolated("clauses", self._find_clauses(change, scope, timeout), [], timeout),
            self._isolated("policies", self._enabled_policies(scope, timeout), [], timeout),
            self._isolated("history", self._deal_history(change, scope, timeout), None, timeout),
        )
        bundle = ContextBundle(
            entities=entities,
            clause_matches=clauses,
            compliance_policies=policies,
            historical_summary=history,
        )
        logger.debug(
            "context_gathered",
            change_id=change.id,
            entities=len(entities),
            clause_matches=len(clauses),
            policies=len(policies),
            has_history=history is not None,
            empty=bundle.is_empty,
        )
        return bundle

    async def gather_light(
        self,
        change: NegotiationChange,
        scope: AnalysisScope,
        budget_seconds: float | None = None,
    ) -> ContextBundle:
        """Reduced context for batch items: no clause search, no deal history."""
        timeout = self._timeout(budget_seconds)
        entities, policies = await asyncio.gather(
            self._isolated("entities", self._search_entities(change, scope, timeout), [], timeout),
            self._isolated("policies", self._enabled_policies(scope, timeout), [], timeout),
        )
        bundle = ContextBundle(entities=entities, compliance_policies=policies)
        logger.debug(
            "context_gathered",
            change_id=change.id,
            entities=len(entities),
            policies=len(policies),
            empty=bundle.is_empty,
        )
        return bundle

    # =========================================================================
    # Isolation
    # =========================================================================

    def _timeout(self, budget_seconds: float | None) -> float:
        timeout = self.settings.context_query_timeout_seconds
        if budget_seconds is not None:
            timeout = max(0.0, min(timeout, budget_seconds))
        return timeout

    async def _isolated(self, source: str, work: Awaitable[Any], default: Any, timeout: float) -> Any:
        """Run one source lookup; a timeout or error becomes `default`."""
        try:
            return await asyncio.wait_for(work, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("context_source_timeout", source=source, timeout_seconds=timeout)
        except Exception as e:
            logger.warning("context_source_failed", source=source, error=str(e), error_type=type(e).__name__)
        return default

    # =========================================================================
    # Sources
    # =========================================================================

    async def _search_entities(
        self,
        change: NegotiationChange,
        scope: AnalysisScope,
        timeout: float,
    ) -> list[WorkspaceEntity]:
        if self.entity_search is None:
            return []

        terms = extract_query_terms(change.combined_text, self.settings.max_query_terms)
        limit = self.settings.max_context_entities
        entities: list[WorkspaceEntity] = []
        seen: set[str] = set()

        for term in terms[:self.settings.max_entity_search_terms]:
            found = await call_with_timeout(
                self.entity_search.search_entities, scope, term, timeout=timeout, label="entity search"
            )
            for entity in found or []:
                if entity.id not in seen:
                    seen.add(entity.id)
                    entities.append(entity)
            if len(entities) >= limit:
                break

        return entities[:limit]

    async def _find_clauses(
        self,
        change: NegotiationChange,
        scope: AnalysisScope,
        timeout: float,
    ) -> list[ClauseMatch]:
        if self.clause_matcher is None:
            return []

        text = change.proposed_text or change.original_text or ""
        if len(text) < self.settings.min_clause_search_chars:
            return []

        result = await call_with_timeout(
            self.clause_matcher.find_similar_clauses, text, scope, timeout=timeout, label="clause search"
        )
        suggestions = result.get("suggestions", []) if isinstance(result, Mapping) else result.suggestions
        matches = [
            m if isinstance(m, ClauseMatch) else ClauseMatch.model_validate(m)
            for m in suggestions or []
        ]
        floor = self.settings.clause_similarity_floor
        matches = [m for m in matches if m.similarity >= floor]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches

    async def _enabled_policies(self, scope: AnalysisScope, timeout: float) -> list[CompliancePolicy]:
        if self.policy_source is None:
            return []

        policies = await call_with_timeout(
            self.policy_source.get_enabled_policies, scope, timeout=timeout, label="policy lookup"
        )
        return [p for p in policies or [] if p.enabled]

    async def _counterparty_name(self, scope: AnalysisScope, timeout: float) -> str:
        """Session lookup for the counterparty; tolerated to fail."""
        if self.session_lookup is None:
            return ""
        try:
            session = await call_with_timeout(
                self.session_lookup.get_session_by_id, scope.session_id, timeout=timeout, label="session lookup"
            )
        except Exception as e:
            logger.warning("session_lookup_failed", session_id=scope.session_id, error=str(e))
            return ""
        return session.counterparty_name if session is not None else ""

    async def _deal_history(
        self,
        change: NegotiationChange,
        scope: AnalysisScope,
        timeout: float,
    ) -> str | None:
        if self.history_source is None:
            return None

        counterparty = await self._counterparty_name(scope, timeout)
        context = await call_with_timeout(
            self.history_source.get_historical_context,
            change,
            scope,
            counterparty,
            timeout=timeout,
            label="deal history",
        )
        if context is None:
            return None
        summary = context.get("summary") if isinstance(context, Mapping) else context.summary
        return summary or None
