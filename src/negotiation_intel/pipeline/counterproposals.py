"""
Counterproposal generation.

Unlike analysis, generation has no heuristic fallback: the output is
insertable contract language, so every failure reaches the caller.
"""

import structlog

from negotiation_intel.config import Settings, get_settings
from negotiation_intel.exceptions import (
    ModelInvocationError,
    ModelTimeoutError,
    NegotiationIntelError,
    PersistenceError,
    PreconditionError,
)
from negotiation_intel.models import (
    AnalysisScope,
    ClauseMatch,
    ComposeResult,
    ContextBundle,
    Counterproposal,
    CounterproposalDraft,
    CounterproposalMode,
    CounterproposalResponse,
    CounterproposalResult,
    NegotiationChange,
)
from negotiation_intel.pipeline.analyzer import as_compose_result
from negotiation_intel.pipeline.context import ContextAggregator
from negotiation_intel.pipeline.parsing import parse_counterproposal_response
from negotiation_intel.pipeline.prompts import (
    COUNTERPROPOSAL_SYSTEM_PROMPT,
    PromptLimits,
    build_counterproposal_prompt,
)
from negotiation_intel.services.interfaces import (
    ClauseUsageTracker,
    CounterproposalStore,
    TextComposer,
)
from negotiation_intel.utils import call_with_timeout, enum_value

logger = structlog.get_logger(__name__)

DEFAULT_AUTHOR = "system"


def build_rationale(response: CounterproposalResponse, mode: CounterproposalMode | str) -> str:
    """Combine the model's rationale with its stated concessions and the mode."""
    parts = [response.rationale]
    if response.changes_from_yours:
        parts.append(f"\nYou concede: {response.changes_from_yours}")
    if response.changes_from_theirs:
        parts.append(f"They concede: {response.changes_from_theirs}")
    if response.preserves:
        parts.append(f"Preserved: {response.preserves}")
    parts.append(f"\nMode: {enum_value(mode)}")
    return "\n".join(parts)


def parse_mode(mode: CounterproposalMode | str) -> CounterproposalMode:
    try:
        return CounterproposalMode(enum_value(mode))
    except ValueError as e:
        valid = ", ".join(m.value for m in CounterproposalMode)
        raise PreconditionError(f"Unknown counterproposal mode {mode!r}; expected one of: {valid}") from e


class CounterproposalGenerator:
    """Generates, stores and accepts compromise language for a change."""

    def __init__(
        self,
        composer: TextComposer,
        store: CounterproposalStore,
        aggregator: ContextAggregator,
        usage_tracker: ClauseUsageTracker | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.composer = composer
        self.store = store
        self.aggregator = aggregator
        self.usage_tracker = usage_tracker
        self.limits = PromptLimits.from_settings(self.settings)

    async def generate(
        self,
        change: NegotiationChange,
        mode: CounterproposalMode | str,
        scope: AnalysisScope,
    ) -> CounterproposalResult:
        """
        Generate and persist a counterproposal.

        Raises:
            PreconditionError: Unknown mode, or the change has no text.
            ModelInvocationError: The model call failed or timed out.
            ResponseParseError: The model output was not a valid counterproposal.
            PersistenceError: The counterproposal could not be stored.
        """
        mode = parse_mode(mode)
        if not change.has_text:
            raise PreconditionError(
                f"Change {change.id} has no original or proposed text to generate from"
            )

        try:
            bundle = await self.aggregator.gather(change, scope)
            prompt = build_counterproposal_prompt(change, mode, scope, bundle, self.limits)
            composed = await self._compose(prompt)
            response = parse_counterproposal_response(composed.text)

            clause_match = self._reference_clause(bundle)
            draft = CounterproposalDraft(
                change_id=change.id,
                mode=mode,
                proposed_text=response.proposed_text,
                rationale=build_rationale(response, mode),
                clause_id=clause_match.clause.id if clause_match else None,
                created_by=scope.created_by or DEFAULT_AUTHOR,
            )
            counterproposal = await self._persist(draft)
        except NegotiationIntelError as e:
            logger.error(
                "counterproposal_generation_failed",
                change_id=change.id,
                mode=mode.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.info(
            "counterproposal_generated",
            change_id=change.id,
            counterproposal_id=counterproposal.id,
            mode=mode.value,
            clause_id=counterproposal.clause_id,
            provider=composed.provider,
        )
        return CounterproposalResult(
            counterproposal=counterproposal,
            provider=composed.provider,
            model=composed.model,
            clause_match=clause_match,
        )

    async def accept(self, counterproposal_id: str) -> Counterproposal:
        """
        Mark a counterproposal accepted, exactly once.

        Bumps the referenced clause's usage counter when there is one; a
        failure there is logged and does not undo the acceptance.
        """
        try:
            accepted = await call_with_timeout(
                self.store.accept,
                counterproposal_id,
                timeout=self.settings.persistence_timeout_seconds,
                label="counterproposal acceptance",
            )
        except Exception as e:
            raise PersistenceError(f"Failed to accept counterproposal {counterproposal_id}: {e}") from e

        if accepted is None:
            raise PreconditionError(
                f"Counterproposal {counterproposal_id} does not exist or was already accepted"
            )

        if accepted.clause_id and self.usage_tracker is not None:
            try:
                await call_with_timeout(
                    self.usage_tracker.increment_usage,
                    accepted.clause_id,
                    timeout=self.settings.persistence_timeout_seconds,
                    label="clause usage update",
                )
            except Exception as e:
                logger.warning("clause_usage_increment_failed", clause_id=accepted.clause_id, error=str(e))

        logger.info("counterproposal_accepted", counterproposal_id=accepted.id, change_id=accepted.change_id)
        return accepted

    # =========================================================================
    # Internals
    # =========================================================================

    def _reference_clause(self, bundle: ContextBundle) -> ClauseMatch | None:
        top = bundle.top_clause_match
        if top is not None and top.similarity >= self.settings.clause_similarity_floor:
            return top
        return None

    async def _compose(self, prompt: str) -> ComposeResult:
        try:
            composed = await call_with_timeout(
                self.composer.compose_text,
                prompt,
                COUNTERPROPOSAL_SYSTEM_PROMPT,
                self.settings.generation_max_tokens,
                timeout=self.settings.generation_timeout_seconds,
                label="counterproposal generation",
                timeout_error=ModelTimeoutError,
            )
            return as_compose_result(composed)
        except NegotiationIntelError:
            raise
        except Exception as e:
            raise ModelInvocationError(f"Counterproposal generation failed: {e}") from e

    async def _persist(self, draft: CounterproposalDraft) -> Counterproposal:
        try:
            stored = await call_with_timeout(
                self.store.create_counterproposal,
                draft,
                timeout=self.settings.persistence_timeout_seconds,
                label="counterproposal persistence",
            )
        except Exception as e:
            raise PersistenceError(f"Failed to store counterproposal for change {draft.change_id}: {e}") from e
        if stored is None:
            raise PersistenceError(f"Counterproposal store returned nothing for change {draft.change_id}")
        return stored
