"""
Deterministic fallback estimator.

Used when the LLM is disabled, unavailable, times out, or returns something
unusable. Durations come from content length; confidence is fixed and low
so the entry always lands in manual review.
"""

from __future__ import annotations

import math

from billq.activities.models import Activity, ActivityType
from billq.config import FALLBACK_CONFIDENCE
from billq.matching.models import MatchResult
from billq.preferences.models import DescriptionLength
from billq.suggestions.models import SuggestionSource, TimeEntrySuggestion

# (chars per minute, min minutes, max minutes)
EMAIL_ESTIMATE = (100, 5, 60)
DOCUMENT_ESTIMATE = (200, 15, 180)
DEFAULT_MEETING_MINUTES = 60

_CATEGORY_BY_TYPE = {
    ActivityType.CALENDAR.value: "meeting",
    ActivityType.EMAIL.value: "email",
    ActivityType.DOCUMENT.value: "documentation",
}

_DESCRIPTION_WORDS = {
    DescriptionLength.BRIEF.value: 8,
    DescriptionLength.STANDARD.value: 20,
    DescriptionLength.DETAILED.value: 60,
}


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


class HeuristicEstimator:
    """
    Length-based duration estimates:

    - email: clamp(chars / 100, 5, 60) minutes
    - calendar: the activity's own duration, else 60
    - document: clamp(chars / 200, 15, 180) minutes
    """

    def __init__(self, confidence: float = FALLBACK_CONFIDENCE):
        self.confidence = confidence

    def estimate_duration(self, activity: Activity) -> int:
        if activity.type == ActivityType.CALENDAR.value:
            return activity.duration_minutes or DEFAULT_MEETING_MINUTES

        chars_per_minute, low, high = (
            EMAIL_ESTIMATE if activity.type == ActivityType.EMAIL.value else DOCUMENT_ESTIMATE
        )
        length = len(activity.content_text())
        return _round_half_up(clamp(length / chars_per_minute, low, high))

    def category_for(self, activity: Activity) -> str:
        return _CATEGORY_BY_TYPE.get(activity.type, "other")

    def describe(
        self,
        activity: Activity,
        description_length: str = DescriptionLength.STANDARD.value,
    ) -> str:
        label = self.category_for(activity).capitalize()
        words = f"{label}: {activity.title}".split()
        limit = _DESCRIPTION_WORDS.get(description_length, 20)
        if len(words) > limit:
            return " ".join(words[:limit]) + "..."
        return " ".join(words)

    def suggest(
        self,
        activity: Activity,
        match: MatchResult | None = None,
        description_length: str = DescriptionLength.STANDARD.value,
        reason: str = "heuristic estimate",
    ) -> TimeEntrySuggestion:
        return TimeEntrySuggestion(
            source_activity_id=activity.id,
            description=self.describe(activity, description_length),
            duration_minutes=self.estimate_duration(activity),
            category=self.category_for(activity),
            confidence=self.confidence,
            decider=SuggestionSource.HEURISTIC,
            customer_name=match.customer_name if match else None,
            project_name=match.project_name if match else None,
            reason=reason,
        )
