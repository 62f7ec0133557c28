"""
Change intelligence pipeline.

1. Context - Gather entities, clause matches, policies and deal history
2. Analysis - Model analysis per change, heuristic fallback on failure
3. Scheduling - Budgeted batch analysis for a whole round
4. Counterproposals - Mode-specific compromise language
"""

from negotiation_intel.pipeline.context import ContextAggregator, extract_query_terms
from negotiation_intel.pipeline.analyzer import ChangeAnalyzer
from negotiation_intel.pipeline.scheduler import BatchBudget, BatchScheduler
from negotiation_intel.pipeline.counterproposals import CounterproposalGenerator
from negotiation_intel.pipeline.orchestrator import NegotiationIntelligence

__all__ = [
    "ContextAggregator",
    "extract_query_terms",
    "ChangeAnalyzer",
    "BatchBudget",
    "BatchScheduler",
    "CounterproposalGenerator",
    "NegotiationIntelligence",
]
