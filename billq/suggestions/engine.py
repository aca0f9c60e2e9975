"""
Suggestion Engine - one activity in, zero or one suggestion out.

Stage 1 is the rule-based matcher (free). CheapFirstStrategy decides whether
its answer is confident enough to skip the LLM. Stage 2 asks the LLM, parses
its answer strictly, and on any failure hands over to the heuristic
estimator. LLM problems therefore only lower confidence; they never abort a
processing run.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field

from billq.activities.models import Activity
from billq.config import PROMOTIONAL_MAX_CONFIDENCE, RULE_SHORT_CIRCUIT_CONFIDENCE
from billq.errors import UpstreamUnavailable
from billq.matching.models import KnownCustomer, KnownProject, MatchResult
from billq.matching.rules import RuleBasedMatcher
from billq.observability.logging import get_logger
from billq.observability.telemetry import counter, log_event
from billq.preferences.models import DescriptionLength
from billq.suggestions.heuristics import HeuristicEstimator
from billq.suggestions.models import ExclusionKind, SuggestionSource, TimeEntrySuggestion
from billq.suggestions.parser import parse_suggestion
from billq.suggestions.prompts import build_prompt, build_system_instruction
from billq.suggestions.taxonomy import (
    PERSONAL_LABELS,
    PROMOTIONAL_LABELS,
    ClassificationPolicy,
    load_policy,
)
from billq.utils.redaction import redact_title

logger = get_logger(__name__)

CompletionFn = Callable[..., str]


def _use_llm() -> bool:
    """Check the LLM feature flag at call time, not import time."""
    return os.getenv("BILLQ_USE_LLM", "true").lower() == "true"


@dataclass
class SuggestionContext:
    """Company directory and user preferences shared by every activity in a run."""

    customers: list[KnownCustomer] = field(default_factory=list)
    projects: list[KnownProject] = field(default_factory=list)
    description_length: str = DescriptionLength.STANDARD.value


class CheapFirstStrategy:
    """
    Rules first; the rule result is accepted outright only when its
    confidence is strictly above `threshold`.
    """

    def __init__(self, threshold: float = RULE_SHORT_CIRCUIT_CONFIDENCE):
        self.threshold = threshold

    def accepts(self, match: MatchResult) -> bool:
        return match.confidence > self.threshold


class SuggestionEngine:
    def __init__(
        self,
        complete: CompletionFn | None = None,
        estimator: HeuristicEstimator | None = None,
        strategy: CheapFirstStrategy | None = None,
        policy: ClassificationPolicy | None = None,
        use_llm: bool | None = None,
    ):
        """
        Args:
            complete: LLM completion callable (prompt, system_instruction=...) -> text.
                Defaults to billq.llm.retry.call_llm.
            use_llm: Force the LLM stage on or off; None reads BILLQ_USE_LLM.
        """
        self._complete = complete
        self.estimator = estimator or HeuristicEstimator()
        self.strategy = strategy or CheapFirstStrategy()
        self.policy = policy or load_policy()
        self._use_llm = use_llm
        self._system_instruction = build_system_instruction(self.policy)

    def _llm_enabled(self) -> bool:
        return self._use_llm if self._use_llm is not None else _use_llm()

    def _call_llm(self, prompt: str) -> str:
        if self._complete is None:
            from billq.llm.retry import call_llm

            self._complete = call_llm
        return self._complete(prompt, system_instruction=self._system_instruction)

    def suggest(
        self,
        activity: Activity,
        context: SuggestionContext | None = None,
    ) -> TimeEntrySuggestion | None:
        """
        Produce at most one suggestion for an activity.

        Returns None when the LLM classifies the activity as personal or
        otherwise not work.
        """
        context = context or SuggestionContext()
        match = RuleBasedMatcher(context.customers, context.projects).match(activity)

        if self.strategy.accepts(match):
            counter("suggestions.rules_short_circuit")
            return self._from_rules(activity, match, context)

        if not self._llm_enabled():
            counter("suggestions.llm_disabled")
            return self.estimator.suggest(
                activity, match, context.description_length, reason="llm disabled"
            )

        try:
            return self._from_llm(activity, match, context)
        except UpstreamUnavailable as e:
            counter("suggestions.llm_fallback")
            logger.warning(
                "LLM suggestion failed for activity %s (%s), using heuristic: %s",
                activity.id,
                redact_title(activity.title),
                e,
            )
            return self.estimator.suggest(
                activity, match, context.description_length, reason=f"fallback: {e}"
            )

    def _from_rules(
        self,
        activity: Activity,
        match: MatchResult,
        context: SuggestionContext,
    ) -> TimeEntrySuggestion:
        return TimeEntrySuggestion(
            source_activity_id=activity.id,
            description=self.estimator.describe(activity, context.description_length),
            duration_minutes=activity.duration_minutes
            or self.estimator.estimate_duration(activity),
            category=self.estimator.category_for(activity),
            confidence=match.confidence,
            decider=SuggestionSource.RULES,
            customer_name=match.customer_name,
            project_name=match.project_name,
            reason=match.reason,
        )

    def _from_llm(
        self,
        activity: Activity,
        match: MatchResult,
        context: SuggestionContext,
    ) -> TimeEntrySuggestion | None:
        prompt = build_prompt(
            activity,
            self.policy,
            match=match,
            customers=context.customers,
            projects=context.projects,
            description_length=context.description_length,
        )

        try:
            text = self._call_llm(prompt)
        except Exception as e:
            # Any transport or SDK error degrades to the heuristic
            raise UpstreamUnavailable(f"{type(e).__name__}: {e}") from e

        parsed = parse_suggestion(text)
        if parsed is None:
            counter("suggestions.llm_excluded")
            log_event("suggestions.excluded", activity_id=activity.id, reason="empty_result")
            return None

        category = self.policy.normalize_category(parsed.category)
        if category in PERSONAL_LABELS or parsed.confidence == 0.0:
            counter("suggestions.llm_excluded")
            log_event("suggestions.excluded", activity_id=activity.id, reason="personal")
            return None

        exclusion = None
        if category in PROMOTIONAL_LABELS or parsed.confidence <= PROMOTIONAL_MAX_CONFIDENCE:
            exclusion = ExclusionKind.PROMOTIONAL
            if category in PROMOTIONAL_LABELS:
                category = "other"

        counter("suggestions.llm_success")
        return TimeEntrySuggestion(
            source_activity_id=activity.id,
            description=parsed.description,
            duration_minutes=parsed.duration_minutes,
            category=category,
            confidence=parsed.confidence,
            decider=SuggestionSource.LLM,
            customer_name=match.customer_name or parsed.customer_name,
            project_name=match.project_name,
            exclusion=exclusion,
            reason="llm classification",
        )
