"""Tests for negotiation_intel/pipeline/analyzer.py: single-change and grouped analysis."""

import asyncio
import json
import time
from unittest.mock import MagicMock

from negotiation_intel.models import AnalysisSource, Clause, ContextBundle
from negotiation_intel.pipeline import ChangeAnalyzer
from negotiation_intel.pipeline.prompts import ANALYSIS_SYSTEM_PROMPT, BATCH_ANALYSIS_SYSTEM_PROMPT


class TestCacheHit:

    def test_cached_change_no_io(self, make_change, scope, settings, cached_analysis, fake_composer):
        composer = fake_composer()
        store = MagicMock()
        aggregator = MagicMock()
        analyzer = ChangeAnalyzer(composer, store, aggregator, settings)
        change = make_change(ai_analysis=cached_analysis)

        result = asyncio.run(analyzer.analyze_single(change, scope))

        assert result.from_cache is True
        assert result.source == "cache"
        assert result.analysis == cached_analysis
        assert composer.calls == []
        assert aggregator.method_calls == []
        assert store.method_calls == []

    def test_second_call_is_idempotent(self, make_change, scope, change_store, make_analyzer,
                                       fake_composer, analysis_payload):
        composer = fake_composer(json.dumps(analysis_payload()))
        analyzer = make_analyzer(composer)
        change = make_change()
        change_store.add(change)

        first = asyncio.run(analyzer.analyze_single(change, scope))
        stored = change_store.get(change.id)
        second = asyncio.run(analyzer.analyze_single(stored, scope))

        assert first.from_cache is False
        assert second.from_cache is True
        assert len(composer.calls) == 1
        assert second.analysis.model_dump_json() == first.analysis.model_dump_json()


class TestModelAnalysis:

    def test_success_persists_with_risk_level(self, make_change, scope, change_store, make_analyzer,
                                              fake_composer, analysis_payload):
        composer = fake_composer(json.dumps(analysis_payload()), provider="anthropic", model="claude-x")
        change = make_change()
        change_store.add(change)

        result = asyncio.run(make_analyzer(composer).analyze_single(change, scope))

        assert result.source == "ai"
        assert result.provider == "anthropic"
        assert result.model == "claude-x"
        stored = change_store.get(change.id)
        assert stored.ai_analysis == result.analysis
        assert stored.risk_level == "high"

    def test_prompt_and_limits(self, make_change, scope, change_store, make_analyzer,
                               fake_composer, analysis_payload):
        composer = fake_composer(json.dumps(analysis_payload()))
        change = make_change(section_heading="Delivery")
        change_store.add(change)

        asyncio.run(make_analyzer(composer).analyze_single(change, scope))

        call = composer.calls[0]
        assert call["system"] == ANALYSIS_SYSTEM_PROMPT
        assert call["max_tokens"] == 600
        assert "Section: Delivery" in call["prompt"]

    def test_clause_context_in_prompt(self, make_change, scope, change_store, clause_library,
                                      make_analyzer, fake_composer, analysis_payload):
        clause_library.add(Clause(id="cl-1", title="Standard Delivery",
                                  content_text="The Supplier shall deliver within 30 days."))
        composer = fake_composer(json.dumps(analysis_payload()))
        change = make_change()
        change_store.add(change)

        asyncio.run(make_analyzer(composer).analyze_single(change, scope))
        assert '"Standard Delivery"' in composer.calls[0]["prompt"]


class TestFallback:

    def test_timeout_with_indemnity_recommends_review(self, make_change, scope, settings, change_store,
                                                      make_analyzer, slow_composer):
        settings.analysis_timeout_seconds = 0.05
        composer = slow_composer()
        change = make_change(proposed_text="The Supplier shall provide indemnity for third-party claims.")
        change_store.add(change)

        result = asyncio.run(make_analyzer(composer).analyze_single(change, scope))

        assert composer.calls == 1
        assert result.from_cache is False
        assert result.source == "heuristic"
        assert result.analysis.recommendation == "review"
        assert change_store.get(change.id).ai_analysis == result.analysis

    def test_model_error(self, make_change, scope, change_store, make_analyzer, fake_composer):
        change = make_change()
        change_store.add(change)

        result = asyncio.run(make_analyzer(fake_composer(RuntimeError("503"))).analyze_single(change, scope))

        assert result.source == "heuristic"
        assert result.provider is None
        assert change_store.get(change.id).has_analysis

    def test_unparseable_response(self, make_change, scope, change_store, make_analyzer, fake_composer):
        change = make_change(category="editorial")
        change_store.add(change)

        result = asyncio.run(make_analyzer(fake_composer("No JSON here.")).analyze_single(change, scope))

        assert result.source == "heuristic"
        assert result.analysis.risk_level == "low"
        assert change_store.get(change.id).risk_level == "low"

    def test_persist_failure_falls_back(self, make_change, scope, settings, aggregator,
                                        fake_composer, analysis_payload):
        change = make_change()
        store = MagicMock()
        store.update_change_analysis.side_effect = [RuntimeError("write failed"), change]
        analyzer = ChangeAnalyzer(fake_composer(json.dumps(analysis_payload())), store, aggregator, settings)

        result = asyncio.run(analyzer.analyze_single(change, scope))

        assert result.source == "heuristic"
        assert store.update_change_analysis.call_count == 2
        heuristic_args = store.update_change_analysis.call_args_list[1].args
        assert heuristic_args[0] == change.id
        assert heuristic_args[2] == heuristic_args[1].risk_level

    def test_missing_change_still_returns_result(self, make_change, scope, make_analyzer,
                                                 fake_composer, analysis_payload):
        # Store does not know the change: every write returns None
        result = asyncio.run(
            make_analyzer(fake_composer(json.dumps(analysis_payload()))).analyze_single(make_change(), scope)
        )
        assert result.source == "heuristic"


class SlowFirstWriteStore:
    """Blocking change store whose first write outlasts the persistence timeout."""

    def __init__(self, change, delay):
        self.change = change
        self.delay = delay
        self.writes = []
        self.stored = None

    def update_change_analysis(self, change_id, analysis, risk_level):
        first = not self.writes
        self.writes.append(analysis)
        if first:
            time.sleep(self.delay)
        self.stored = analysis
        return self.change


class TestSlowPersistence:

    def test_heuristic_written_after_late_write(self, make_change, scope, settings, aggregator,
                                                fake_composer, analysis_payload):
        settings.persistence_timeout_seconds = 0.2
        change = make_change()
        store = SlowFirstWriteStore(change, delay=0.3)
        analyzer = ChangeAnalyzer(fake_composer(json.dumps(analysis_payload())), store, aggregator, settings)

        result = asyncio.run(analyzer.analyze_single(change, scope))

        assert result.source == "heuristic"
        assert len(store.writes) == 2
        assert store.stored == result.analysis

    def test_heuristic_skipped_while_write_in_flight(self, make_change, scope, settings, aggregator,
                                                     fake_composer, analysis_payload):
        settings.persistence_timeout_seconds = 0.05
        change = make_change()
        store = SlowFirstWriteStore(change, delay=0.5)
        analyzer = ChangeAnalyzer(fake_composer(json.dumps(analysis_payload())), store, aggregator, settings)

        result = asyncio.run(analyzer.analyze_single(change, scope))

        assert result.source == "heuristic"
        assert len(store.writes) == 1


class TestBatchItem:

    def test_light_context(self, make_change, scope, settings, change_store, fake_composer, analysis_payload):
        aggregator = MagicMock()

        async def light(change, scope, budget_seconds=None):
            return ContextBundle()

        aggregator.gather_light.side_effect = light
        change = make_change()
        change_store.add(change)
        analyzer = ChangeAnalyzer(fake_composer(json.dumps(analysis_payload())), change_store, aggregator, settings)

        result = asyncio.run(analyzer.analyze_batch_item(change, scope, budget_seconds=3.0))

        assert result.source == "ai"
        aggregator.gather.assert_not_called()
        assert aggregator.gather_light.call_args.args[2] == 3.0


class TestAnalyzeGroup:

    def test_single_call_for_group(self, make_change, scope, change_store, make_analyzer,
                                   fake_composer, batch_payload):
        changes = [make_change(category="editorial") for _ in range(3)]
        for c in changes:
            change_store.add(c)
        composer = fake_composer(batch_payload(3))

        results = asyncio.run(make_analyzer(composer).analyze_group(changes, scope))

        assert len(composer.calls) == 1
        assert composer.calls[0]["system"] == BATCH_ANALYSIS_SYSTEM_PROMPT
        assert composer.calls[0]["max_tokens"] == 2_000
        assert [r.change_id for r in results] == [c.id for c in changes]
        assert all(r.source == AnalysisSource.AI for r in results)
        assert all(change_store.get(c.id).has_analysis for c in changes)

    def test_partial_response_backfilled(self, make_change, scope, change_store, make_analyzer,
                                         fake_composer, batch_payload):
        changes = [make_change(category="editorial") for _ in range(3)]
        for c in changes:
            change_store.add(c)

        results = asyncio.run(make_analyzer(fake_composer(batch_payload(2))).analyze_group(changes, scope))

        assert [r.source for r in results] == ["ai", "ai", "heuristic"]
        assert results[2].provider is None

    def test_failed_call_all_heuristic(self, make_change, scope, change_store, make_analyzer, fake_composer):
        changes = [make_change(category="editorial") for _ in range(2)]
        for c in changes:
            change_store.add(c)

        results = asyncio.run(make_analyzer(fake_composer(RuntimeError("down"))).analyze_group(changes, scope))

        assert [r.source for r in results] == ["heuristic", "heuristic"]
        assert all(change_store.get(c.id).has_analysis for c in changes)

    def test_empty_group(self, scope, make_analyzer, fake_composer):
        composer = fake_composer()
        assert asyncio.run(make_analyzer(composer).analyze_group([], scope)) == []
        assert composer.calls == []
