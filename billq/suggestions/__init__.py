"""
Suggestions - turn activities into time entry suggestions.

Two stages: the rule-based matcher first, the LLM when the rules are not
confident, and a deterministic heuristic whenever the LLM fails.
"""

from billq.suggestions.engine import CheapFirstStrategy, SuggestionEngine
from billq.suggestions.heuristics import HeuristicEstimator
from billq.suggestions.models import SuggestionSource, TimeEntrySuggestion

__all__ = [
    "CheapFirstStrategy",
    "HeuristicEstimator",
    "SuggestionEngine",
    "SuggestionSource",
    "TimeEntrySuggestion",
]
