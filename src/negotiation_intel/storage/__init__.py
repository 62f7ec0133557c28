"""
In-memory storage and knowledge-source collaborators.
"""

from negotiation_intel.storage.memory import (
    InMemoryChangeStore,
    InMemoryClauseLibrary,
    InMemoryCounterproposalStore,
    InMemoryDealHistory,
    InMemoryKnowledgeBase,
)

__all__ = [
    "InMemoryChangeStore",
    "InMemoryClauseLibrary",
    "InMemoryCounterproposalStore",
    "InMemoryDealHistory",
    "InMemoryKnowledgeBase",
]
