"""Shared pytest fixtures and fakes for the negotiation intelligence test suite."""

import asyncio
import json

import pytest

from negotiation_intel.config import Settings
from negotiation_intel.models import (
    AnalysisResult,
    AnalysisScope,
    ComposeResult,
    NegotiationChange,
)
from negotiation_intel.pipeline import ChangeAnalyzer, ContextAggregator, CounterproposalGenerator
from negotiation_intel.storage import (
    InMemoryChangeStore,
    InMemoryClauseLibrary,
    InMemoryCounterproposalStore,
    InMemoryKnowledgeBase,
)


# ---------------------------------------------------------------------------
# Singleton cache clearing (autouse)
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def clear_singletons():
    """Clear all @lru_cache singletons between tests."""
    from negotiation_intel.config import get_settings
    from negotiation_intel.services.llm_service import get_llm_service

    get_settings.cache_clear()
    get_llm_service.cache_clear()
    yield
    get_settings.cache_clear()
    get_llm_service.cache_clear()


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeComposer:
    """
    Blocking text composer returning scripted responses in order.

    A response may be a string, a callable taking the prompt, or an exception
    to raise. The last response repeats once the script runs out.
    """

    def __init__(self, *responses, provider="anthropic", model="claude-test"):
        self.responses = list(responses) or ["{}"]
        self.provider = provider
        self.model = model
        self.calls = []

    def compose_text(self, prompt, system_instruction, max_output_tokens):
        self.calls.append(
            {"prompt": prompt, "system": system_instruction, "max_tokens": max_output_tokens}
        )
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(prompt)
        return ComposeResult(text=response, provider=self.provider, model=self.model)


class SlowComposer:
    """Async composer that never answers within a short timeout."""

    def __init__(self, delay=5.0):
        self.delay = delay
        self.calls = 0

    async def compose_text(self, prompt, system_instruction, max_output_tokens):
        self.calls += 1
        await asyncio.sleep(self.delay)
        return ComposeResult(text="{}", provider="anthropic", model="claude-test")


def analysis_json(**overrides):
    payload = {
        "category": "substantive",
        "riskLevel": "high",
        "summary": "Raises the liability cap.",
        "impact": "Greater exposure for the customer.",
        "historicalContext": None,
        "clauseComparison": None,
        "complianceFlags": [],
        "recommendation": "counter",
        "recommendationReason": "Cap exceeds the standard clause.",
    }
    payload.update(overrides)
    return payload


def batch_json(count, **overrides):
    return json.dumps(
        [
            analysis_json(changeIndex=i, category="editorial", riskLevel="low", recommendation="accept", **overrides)
            for i in range(count)
        ]
    )


# ---------------------------------------------------------------------------
# Settings and sample data
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    """Default settings, isolated from any local .env file."""
    return Settings(_env_file=None, anthropic_api_key="", openai_api_key="")


@pytest.fixture
def scope():
    return AnalysisScope(
        workspace_id="ws-1",
        session_id="sess-1",
        document_type="contract",
        created_by="user-1",
    )


@pytest.fixture
def make_change():
    """Factory for NegotiationChange with sensible defaults."""
    counter = {"n": 0}

    def _make(**kwargs):
        counter["n"] += 1
        defaults = {
            "id": f"chg-{counter['n']}",
            "session_id": "sess-1",
            "round_id": "round-2",
            "change_type": "replace",
            "category": "substantive",
            "original_text": "The Supplier shall deliver within 30 days.",
            "proposed_text": "The Supplier shall deliver within 60 days.",
        }
        defaults.update(kwargs)
        return NegotiationChange(**defaults)

    return _make


@pytest.fixture
def cached_analysis():
    return AnalysisResult.model_validate(analysis_json())


# ---------------------------------------------------------------------------
# Wired components
# ---------------------------------------------------------------------------

@pytest.fixture
def change_store():
    return InMemoryChangeStore()


@pytest.fixture
def knowledge_base():
    return InMemoryKnowledgeBase()


@pytest.fixture
def clause_library():
    return InMemoryClauseLibrary()


@pytest.fixture
def counterproposal_store():
    return InMemoryCounterproposalStore()


@pytest.fixture
def aggregator(settings, knowledge_base, clause_library):
    return ContextAggregator(
        entity_search=knowledge_base,
        clause_matcher=clause_library,
        policy_source=knowledge_base,
        session_lookup=knowledge_base,
        settings=settings,
    )


@pytest.fixture
def make_analyzer(settings, change_store, aggregator):
    def _make(composer, store=None):
        return ChangeAnalyzer(composer, store or change_store, aggregator, settings)

    return _make


@pytest.fixture
def make_generator(settings, counterproposal_store, aggregator, clause_library):
    def _make(composer, store=None):
        return CounterproposalGenerator(
            composer,
            store or counterproposal_store,
            aggregator,
            usage_tracker=clause_library,
            settings=settings,
        )

    return _make


# ---------------------------------------------------------------------------
# Fake and payload factories
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_composer():
    return FakeComposer


@pytest.fixture
def slow_composer():
    return SlowComposer


@pytest.fixture
def analysis_payload():
    return analysis_json


@pytest.fixture
def batch_payload():
    return batch_json
