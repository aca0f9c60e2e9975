"""
Policy Filter - apply a user's AI preferences to each suggestion.

Drop reasons, checked in order:
- promotional: the engine flagged marketing-grade content and the user
  skips promotional items
- domain_not_allowed: domain allow-list enabled and no participant domain on it
- participant_not_allowed: participant allow-list enabled and no participant on it
- below_threshold: the caller requires auto-approval and the suggestion
  does not reach the user's threshold

Anything else passes, annotated with whether it may be auto-approved:
confidence * 100 >= threshold AND auto-approval enabled.
"""

from __future__ import annotations

from dataclasses import dataclass

from billq.activities.models import Activity
from billq.observability.logging import get_logger
from billq.observability.telemetry import counter
from billq.preferences.models import AIPreferences
from billq.suggestions.models import ExclusionKind, TimeEntrySuggestion
from billq.utils.email import extract_domain_only, extract_email_address

logger = get_logger(__name__)


@dataclass(frozen=True)
class PolicyDecision:
    accepted: bool
    auto_approve: bool = False
    reason: str = "accepted"

    @classmethod
    def drop(cls, reason: str) -> PolicyDecision:
        return cls(accepted=False, auto_approve=False, reason=reason)


class PolicyFilter:
    def evaluate(
        self,
        suggestion: TimeEntrySuggestion,
        activity: Activity,
        preferences: AIPreferences,
        require_auto_approve: bool = False,
    ) -> PolicyDecision:
        """
        Judge one suggestion.

        Args:
            require_auto_approve: Caller only wants entries that can be
                approved without review (below-threshold ones are dropped)
        """
        decision = self._evaluate(suggestion, activity, preferences, require_auto_approve)

        if decision.accepted:
            counter("policy.accepted")
            if decision.auto_approve:
                counter("policy.auto_approve")
        else:
            counter(f"policy.dropped.{decision.reason}")
            logger.debug(
                "Dropped suggestion for activity %s: %s",
                suggestion.source_activity_id,
                decision.reason,
            )
        return decision

    def _evaluate(
        self,
        suggestion: TimeEntrySuggestion,
        activity: Activity,
        preferences: AIPreferences,
        require_auto_approve: bool,
    ) -> PolicyDecision:
        if suggestion.exclusion == ExclusionKind.PERSONAL.value:
            return PolicyDecision.drop("personal")

        promotional = suggestion.exclusion == ExclusionKind.PROMOTIONAL.value
        if promotional and preferences.skip_promotional:
            return PolicyDecision.drop("promotional")

        if not self._domains_allowed(activity, preferences):
            return PolicyDecision.drop("domain_not_allowed")

        if not self._participants_allowed(activity, preferences):
            return PolicyDecision.drop("participant_not_allowed")

        qualifies = suggestion.confidence * 100 >= preferences.confidence_threshold
        if require_auto_approve and not qualifies:
            return PolicyDecision.drop("below_threshold")

        # Promotional content kept for review is never auto-approved
        auto_approve = qualifies and preferences.auto_approve_enabled and not promotional
        return PolicyDecision(accepted=True, auto_approve=auto_approve)

    @staticmethod
    def _domains_allowed(activity: Activity, preferences: AIPreferences) -> bool:
        if not preferences.domain_filter_enabled or not preferences.allowed_domains:
            return True
        domains = {extract_domain_only(p) for p in activity.participants} - {""}
        if not domains:
            # Nothing to check (e.g. a solo document session)
            return True
        return bool(domains & set(preferences.allowed_domains))

    @staticmethod
    def _participants_allowed(activity: Activity, preferences: AIPreferences) -> bool:
        if not preferences.participant_filter_enabled or not preferences.allowed_participants:
            return True
        if not activity.participants:
            return True
        addresses = {extract_email_address(p) for p in activity.participants}
        return bool(addresses & set(preferences.allowed_participants))
