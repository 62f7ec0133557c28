"""
Single-change and grouped change analysis.

Analysis never fails outward: any error after the cache check degrades to
the persisted heuristic, so a change always ends up with some analysis.
"""

import asyncio
from collections.abc import Mapping
from typing import Any

import structlog

from negotiation_intel.config import Settings, get_settings
from negotiation_intel.exceptions import ModelTimeoutError, OperationTimeoutError, PersistenceError
from negotiation_intel.models import (
    AnalysisResult,
    AnalysisScope,
    AnalysisSource,
    AnalyzeResult,
    ComposeResult,
    NegotiationChange,
)
from negotiation_intel.pipeline.context import ContextAggregator
from negotiation_intel.pipeline.heuristics import build_heuristic_analysis
from negotiation_intel.pipeline.parsing import (
    ParsedAnalysis,
    parse_analysis_response,
    parse_batch_response,
)
from negotiation_intel.pipeline.prompts import (
    ANALYSIS_SYSTEM_PROMPT,
    BATCH_ANALYSIS_SYSTEM_PROMPT,
    PromptLimits,
    build_analysis_prompt,
    build_batch_prompt,
)
from negotiation_intel.services.interfaces import ChangeStore, TextComposer
from negotiation_intel.utils import call_with_timeout, invoke

logger = structlog.get_logger(__name__)


def as_compose_result(value: Any) -> ComposeResult:
    if isinstance(value, ComposeResult):
        return value
    if isinstance(value, Mapping):
        return ComposeResult.model_validate(value)
    raise TypeError(f"Text composer returned {type(value).__name__}, expected ComposeResult")


def _discard_outcome(write: asyncio.Future) -> None:
    if not write.cancelled():
        write.exception()


class ChangeAnalyzer:
    """
    Analyzes changes with the model and persists the outcome.

    Args:
        composer: Text-generation capability.
        store: Persistence for analyses.
        aggregator: Context source for prompts.
    """

    def __init__(
        self,
        composer: TextComposer,
        store: ChangeStore,
        aggregator: ContextAggregator,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.composer = composer
        self.store = store
        self.aggregator = aggregator
        self.limits = PromptLimits.from_settings(self.settings)
        self._inflight_writes: dict[str, asyncio.Future] = {}

    # =========================================================================
    # Public API
    # =========================================================================

    async def analyze_single(self, change: NegotiationChange, scope: AnalysisScope) -> AnalyzeResult:
        """Analyze one change with full context."""
        return await self._analyze(change, scope, light=False)

    async def analyze_batch_item(
        self,
        change: NegotiationChange,
        scope: AnalysisScope,
        budget_seconds: float | None = None,
    ) -> AnalyzeResult:
        """Analyze one change inside a batch, with the reduced context lookup."""
        return await self._analyze(change, scope, light=True, budget_seconds=budget_seconds)

    async def analyze_group(
        self,
        changes: list[NegotiationChange],
        scope: AnalysisScope,
    ) -> list[AnalyzeResult]:
        """
        Analyze a group of changes with a single model call.

        Results are in the order of `changes`. Elements the model omitted or
        mangled are back-filled with the heuristic.
        """
        if not changes:
            return []

        prompt = build_batch_prompt(changes, scope, self.limits)
        try:
            composed = await self._compose(prompt, BATCH_ANALYSIS_SYSTEM_PROMPT, self.settings.batch_max_tokens)
        except Exception as e:
            logger.warning(
                "group_analysis_failed",
                change_ids=[c.id for c in changes],
                error=str(e),
                error_type=type(e).__name__,
            )
            return [await self.fallback(change) for change in changes]

        parsed = parse_batch_response(composed.text, changes)
        results = []
        for i, change in enumerate(changes):
            results.append(await self._store_parsed(change, parsed[i], composed))
        return results

    def cached(self, change: NegotiationChange) -> AnalyzeResult:
        """Result for a change that already carries an analysis. No I/O."""
        return AnalyzeResult(change_id=change.id, analysis=change.ai_analysis, source=AnalysisSource.CACHE)

    async def fallback(self, change: NegotiationChange) -> AnalyzeResult:
        """
        Compute and persist the heuristic analysis. Never raises.

        When an earlier write for the change timed out, the heuristic is
        written only after that write settles, so it is the last one stored.
        """
        analysis = build_heuristic_analysis(change)
        result = AnalyzeResult(change_id=change.id, analysis=analysis, source=AnalysisSource.HEURISTIC)

        pending = self._inflight_writes.pop(change.id, None)
        if pending is not None and not await self._settled(pending):
            logger.error("heuristic_persist_skipped", change_id=change.id, reason="earlier write still in flight")
            return result

        try:
            await self._persist(change, analysis)
        except Exception as e:
            logger.error("heuristic_persist_failed", change_id=change.id, error=str(e))
        return result

    # =========================================================================
    # Internals
    # =========================================================================

    async def _analyze(
        self,
        change: NegotiationChange,
        scope: AnalysisScope,
        light: bool,
        budget_seconds: float | None = None,
    ) -> AnalyzeResult:
        if change.has_analysis:
            logger.debug("analysis_cache_hit", change_id=change.id)
            return self.cached(change)

        try:
            if light:
                bundle = await self.aggregator.gather_light(change, scope, budget_seconds)
            else:
                bundle = await self.aggregator.gather(change, scope, budget_seconds)

            prompt = build_analysis_prompt(change, scope, bundle, self.limits)
            composed = await self._compose(prompt, ANALYSIS_SYSTEM_PROMPT, self.settings.analysis_max_tokens)
            parsed = parse_analysis_response(composed.text, change)
            await self._persist(change, parsed.analysis)
        except Exception as e:
            logger.warning(
                "analysis_failed_using_heuristic",
                change_id=change.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return await self.fallback(change)

        logger.info(
            "change_analyzed",
            change_id=change.id,
            source=parsed.source.value,
            risk_level=parsed.analysis.risk_level,
            provider=composed.provider,
        )
        return self._result(change, parsed, composed)

    async def _compose(self, prompt: str, system_instruction: str, max_tokens: int) -> ComposeResult:
        composed = await call_with_timeout(
            self.composer.compose_text,
            prompt,
            system_instruction,
            max_tokens,
            timeout=self.settings.analysis_timeout_seconds,
            label="change analysis",
            timeout_error=ModelTimeoutError,
        )
        return as_compose_result(composed)

    async def _store_parsed(
        self,
        change: NegotiationChange,
        parsed: ParsedAnalysis,
        composed: ComposeResult,
    ) -> AnalyzeResult:
        try:
            await self._persist(change, parsed.analysis)
        except Exception as e:
            logger.warning("analysis_persist_failed", change_id=change.id, error=str(e))
            return await self.fallback(change)
        return self._result(change, parsed, composed)

    async def _persist(self, change: NegotiationChange, analysis: AnalysisResult) -> NegotiationChange:
        timeout = self.settings.persistence_timeout_seconds
        write = asyncio.ensure_future(
            invoke(self.store.update_change_analysis, change.id, analysis, analysis.risk_level)
        )
        try:
            updated = await asyncio.wait_for(asyncio.shield(write), timeout=timeout)
        except asyncio.TimeoutError as e:
            write.add_done_callback(_discard_outcome)
            self._inflight_writes[change.id] = write
            raise OperationTimeoutError("analysis persistence", timeout) from e
        if updated is None:
            raise PersistenceError(f"Change {change.id} not found while storing analysis")
        return updated

    async def _settled(self, write: asyncio.Future) -> bool:
        """Wait a bounded time for an in-flight write; True once it finished."""
        done, _ = await asyncio.wait({write}, timeout=self.settings.persistence_timeout_seconds)
        return bool(done)

    @staticmethod
    def _result(change: NegotiationChange, parsed: ParsedAnalysis, composed: ComposeResult) -> AnalyzeResult:
        if parsed.source == AnalysisSource.AI:
            return AnalyzeResult(
                change_id=change.id,
                analysis=parsed.analysis,
                source=parsed.source,
                provider=composed.provider,
                model=composed.model,
            )
        return AnalyzeResult(change_id=change.id, analysis=parsed.analysis, source=parsed.source)
