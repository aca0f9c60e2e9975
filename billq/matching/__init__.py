"""
Matching - known customer/project directory and the rule-based matcher.
"""

from billq.matching.models import KnownCustomer, KnownProject, MatchCandidate, MatchResult
from billq.matching.repository import DirectoryRepository
from billq.matching.rules import RuleBasedMatcher

__all__ = [
    "DirectoryRepository",
    "KnownCustomer",
    "KnownProject",
    "MatchCandidate",
    "MatchResult",
    "RuleBasedMatcher",
]
