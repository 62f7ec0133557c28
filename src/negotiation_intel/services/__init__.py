"""
Collaborator interfaces and the text-generation service.
"""

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
from negotiation_intel.services.llm_service import LLMService, get_llm_service

__all__ = [
    "ChangeStore",
    "ClauseMatcher",
    "ClauseUsageTracker",
    "CounterproposalStore",
    "EntitySearch",
    "HistorySource",
    "PolicySource",
    "SessionLookup",
    "TextComposer",
    "LLMService",
    "get_llm_service",
]
