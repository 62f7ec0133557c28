"""
Negotiation Change Intelligence

Analyzes the changes between negotiation rounds of a contract: gathers
context from the workspace knowledge sources, asks a language model for a
risk assessment with a heuristic fallback, schedules whole rounds under a
call and time budget, and drafts counterproposals.
"""

__version__ = "0.1.0"
__author__ = "Negotiation Intelligence Team"

from negotiation_intel.config import get_settings

__all__ = ["get_settings", "__version__"]
