"""
Pipeline Orchestrator

Wires the context aggregator, analyzer, batch scheduler and counterproposal
generator to one set of collaborators and exposes the workflow operations.
"""

import time
from typing import Callable

import structlog

from negotiation_intel.config import Settings, get_settings
from negotiation_intel.models import (
    AnalysisScope,
    AnalyzeResult,
    BatchAnalyzeResult,
    Counterproposal,
    CounterproposalMode,
    CounterproposalResult,
    NegotiationChange,
)
from negotiation_intel.pipeline.analyzer import ChangeAnalyzer
from negotiation_intel.pipeline.context import ContextAggregator
from negotiation_intel.pipeline.counterproposals import CounterproposalGenerator
from negotiation_intel.pipeline.scheduler import BatchScheduler
from negotiation_intel.services.interfaces import (
    ChangeStore,
    ClauseMatcher,
    ClauseUsageTracker,
    CounterproposalStore,
    EntitySearch,
    HistorySource,
    PolicySource,
    SessionLookup,
    TextComposer,
)
from negotiation_intel.storage import (
    InMemoryChangeStore,
    InMemoryClauseLibrary,
    InMemoryCounterproposalStore,
    InMemoryDealHistory,
    InMemoryKnowledgeBase,
)

logger = structlog.get_logger(__name__)


class NegotiationIntelligence:
    """
    Entry point for the surrounding negotiation workflow.

    Usage:
        intel = NegotiationIntelligence.in_memory()
        result = await intel.analyze_single(change, scope)
    """

    def __init__(
        self,
        composer: TextComposer,
        change_store: ChangeStore,
        counterproposal_store: CounterproposalStore,
        entity_search: EntitySearch | None = None,
        clause_matcher: ClauseMatcher | None = None,
        policy_source: PolicySource | None = None,
        history_source: HistorySource | None = None,
        session_lookup: SessionLookup | None = None,
        usage_tracker: ClauseUsageTracker | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self.aggregator = ContextAggregator(
            entity_search=entity_search,
            clause_matcher=clause_matcher,
            policy_source=policy_source,
            history_source=history_source,
            session_lookup=session_lookup,
            settings=self.settings,
        )
        self.analyzer = ChangeAnalyzer(composer, change_store, self.aggregator, self.settings)
        self.scheduler = BatchScheduler(self.analyzer, self.settings, clock=clock)
        self.generator = CounterproposalGenerator(
            composer,
            counterproposal_store,
            self.aggregator,
            usage_tracker=usage_tracker,
            settings=self.settings,
        )

    @classmethod
    def in_memory(
        cls,
        composer: TextComposer | None = None,
        settings: Settings | None = None,
    ) -> "NegotiationIntelligence":
        """
        Build an instance over fresh in-memory collaborators.

        The stores are reachable as `changes`, `counterproposals`,
        `knowledge_base`, `clause_library` and `deal_history`.
        """
        if composer is None:
            from negotiation_intel.services.llm_service import get_llm_service

            composer = get_llm_service()

        changes = InMemoryChangeStore()
        knowledge_base = InMemoryKnowledgeBase()
        clause_library = InMemoryClauseLibrary()
        deal_history = InMemoryDealHistory(knowledge_base, changes)
        counterproposals = InMemoryCounterproposalStore()

        intel = cls(
            composer=composer,
            change_store=changes,
            counterproposal_store=counterproposals,
            entity_search=knowledge_base,
            clause_matcher=clause_library,
            policy_source=knowledge_base,
            history_source=deal_history,
            session_lookup=knowledge_base,
            usage_tracker=clause_library,
            settings=settings,
        )
        intel.changes = changes
        intel.counterproposals = counterproposals
        intel.knowledge_base = knowledge_base
        intel.clause_library = clause_library
        intel.deal_history = deal_history
        return intel

    # =========================================================================
    # Workflow Operations
    # =========================================================================

    async def analyze_single(self, change: NegotiationChange, scope: AnalysisScope) -> AnalyzeResult:
        """Analyze one change. Always returns a result."""
        return await self.analyzer.analyze_single(change, scope)

    async def batch_analyze(self, changes: list[NegotiationChange], scope: AnalysisScope) -> BatchAnalyzeResult:
        """Analyze all changes of a round under the call and time budget."""
        logger.info("batch_analysis_started", session_id=scope.session_id, changes=len(changes))
        return await self.scheduler.batch_analyze(changes, scope)

    async def generate_counterproposal(
        self,
        change: NegotiationChange,
        mode: CounterproposalMode | str,
        scope: AnalysisScope,
    ) -> CounterproposalResult:
        """Generate compromise language. Failures propagate."""
        return await self.generator.generate(change, mode, scope)

    async def accept_counterproposal(self, counterproposal_id: str) -> Counterproposal:
        return await self.generator.accept(counterproposal_id)
