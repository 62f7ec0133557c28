"""
Budgeted batch analysis for all changes of one round.

Substantive changes are analyzed first, one call each, then structural
changes, then editorial changes in groups of one call per group. A joint
budget of model calls and wall-clock seconds is checked before every unit of
work; whatever is left when it runs out gets the persisted heuristic.
"""

import time
from typing import Callable

import structlog

from negotiation_intel.config import Settings, get_settings
from negotiation_intel.models import (
    AnalysisScope,
    AnalysisSource,
    AnalyzeResult,
    BatchAnalyzeResult,
    ChangeCategory,
    NegotiationChange,
)
from negotiation_intel.pipeline.analyzer import ChangeAnalyzer
from negotiation_intel.utils import chunked, enum_value

logger = structlog.get_logger(__name__)

INDIVIDUAL_BUCKETS = (ChangeCategory.SUBSTANTIVE.value, ChangeCategory.STRUCTURAL.value)
GROUPED_BUCKET = ChangeCategory.EDITORIAL.value


class BatchBudget:
    """Model-call and wall-clock budget for one batch."""

    def __init__(self, max_calls: int, max_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.max_calls = max_calls
        self.max_seconds = max_seconds
        self.calls = 0
        self._clock = clock
        self._started = clock()

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started

    @property
    def remaining_seconds(self) -> float:
        return max(0.0, self.max_seconds - self.elapsed)

    @property
    def exhausted(self) -> bool:
        return self.calls >= self.max_calls or self.elapsed >= self.max_seconds

    def consume(self) -> None:
        self.calls += 1


class BatchScheduler:
    """Runs batch analysis through a ChangeAnalyzer under a BatchBudget."""

    def __init__(
        self,
        analyzer: ChangeAnalyzer,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self.analyzer = analyzer
        self._clock = clock

    async def batch_analyze(
        self,
        changes: list[NegotiationChange],
        scope: AnalysisScope,
    ) -> BatchAnalyzeResult:
        """
        Analyze every change of a round within the configured budget.

        Every input change has a stored analysis on return, results follow
        input order, and analyzed + failed + skipped == len(changes).
        """
        started = self._clock()
        budget = BatchBudget(self.settings.batch_max_model_calls, self.settings.batch_max_seconds, self._clock)
        results: list[AnalyzeResult | None] = [None] * len(changes)

        # Partition input positions; cached changes cost nothing
        buckets: dict[str, list[int]] = {c.value: [] for c in ChangeCategory}
        for pos, change in enumerate(changes):
            if change.has_analysis:
                results[pos] = self.analyzer.cached(change)
            else:
                buckets[enum_value(change.category)].append(pos)

        for bucket in INDIVIDUAL_BUCKETS:
            for n, pos in enumerate(buckets[bucket]):
                if budget.exhausted:
                    self._log_truncated(bucket, len(buckets[bucket]) - n, budget)
                    break
                budget.consume()
                results[pos] = await self.analyzer.analyze_batch_item(
                    changes[pos], scope, budget_seconds=budget.remaining_seconds
                )

        groups = list(chunked(buckets[GROUPED_BUCKET], self.settings.editorial_group_size))
        for n, group in enumerate(groups):
            if budget.exhausted:
                self._log_truncated(GROUPED_BUCKET, sum(len(g) for g in groups[n:]), budget)
                break
            budget.consume()
            group_results = await self.analyzer.analyze_group([changes[p] for p in group], scope)
            for pos, result in zip(group, group_results):
                results[pos] = result

        for pos, result in enumerate(results):
            if result is None:
                results[pos] = await self.analyzer.fallback(changes[pos])

        batch = BatchAnalyzeResult(
            analyzed=sum(1 for r in results if r.source == AnalysisSource.AI),
            failed=sum(1 for r in results if r.source == AnalysisSource.HEURISTIC),
            skipped=sum(1 for r in results if r.source == AnalysisSource.CACHE),
            results=results,
            duration_ms=int((self._clock() - started) * 1000),
            model_calls=budget.calls,
        )
        logger.info(
            "batch_analysis_complete",
            session_id=scope.session_id,
            total=len(changes),
            analyzed=batch.analyzed,
            failed=batch.failed,
            skipped=batch.skipped,
            model_calls=batch.model_calls,
            duration_ms=batch.duration_ms,
        )
        return batch

    @staticmethod
    def _log_truncated(bucket: str, remaining: int, budget: BatchBudget) -> None:
        logger.warning(
            "batch_budget_exhausted",
            bucket=bucket,
            remaining_changes=remaining,
            model_calls=budget.calls,
            elapsed_seconds=round(budget.elapsed, 3),
        )
