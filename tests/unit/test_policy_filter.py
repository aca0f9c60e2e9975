"""
Tests for the policy filter.

Validates:
1. Below-threshold suggestions are never auto-approved
2. Auto-approval needs confidence*100 >= threshold AND auto_approve_enabled
3. Promotional, domain and participant rules drop suggestions
"""

from __future__ import annotations

import pytest

from billq.policy.filter import PolicyFilter
from billq.preferences.models import AIPreferences
from billq.suggestions.models import ExclusionKind


def prefs(**overrides) -> AIPreferences:
    return AIPreferences(user_id="user-1", company_id="company-1", **overrides)


@pytest.fixture
def policy_filter():
    return PolicyFilter()


class TestAutoApproval:
    def test_below_threshold_stays_in_review(self, policy_filter, activity_factory, suggestion_factory):
        decision = policy_filter.evaluate(
            suggestion_factory(confidence=0.7),
            activity_factory(),
            prefs(confidence_threshold=80, auto_approve_enabled=True),
        )
        assert decision.accepted is True
        assert decision.auto_approve is False

    def test_at_threshold_with_auto_approve(self, policy_filter, activity_factory, suggestion_factory):
        decision = policy_filter.evaluate(
            suggestion_factory(confidence=0.8),
            activity_factory(),
            prefs(confidence_threshold=80, auto_approve_enabled=True),
        )
        assert decision.auto_approve is True

    def test_above_threshold_without_auto_approve(
        self, policy_filter, activity_factory, suggestion_factory
    ):
        decision = policy_filter.evaluate(
            suggestion_factory(confidence=0.95), activity_factory(), prefs()
        )
        assert decision.accepted is True
        assert decision.auto_approve is False

    def test_require_auto_approve_drops_below_threshold(
        self, policy_filter, activity_factory, suggestion_factory
    ):
        decision = policy_filter.evaluate(
            suggestion_factory(confidence=0.5),
            activity_factory(),
            prefs(),
            require_auto_approve=True,
        )
        assert decision.accepted is False
        assert decision.reason == "below_threshold"


class TestPromotional:
    def test_dropped_when_skipping(self, policy_filter, activity_factory, suggestion_factory):
        decision = policy_filter.evaluate(
            suggestion_factory(confidence=0.2, exclusion=ExclusionKind.PROMOTIONAL),
            activity_factory(),
            prefs(),
        )
        assert decision.accepted is False
        assert decision.reason == "promotional"

    def test_kept_for_review_but_never_auto_approved(
        self, policy_filter, activity_factory, suggestion_factory
    ):
        decision = policy_filter.evaluate(
            suggestion_factory(confidence=0.3, exclusion=ExclusionKind.PROMOTIONAL),
            activity_factory(),
            prefs(skip_promotional=False, auto_approve_enabled=True, confidence_threshold=0),
        )
        assert decision.accepted is True
        assert decision.auto_approve is False


class TestAllowLists:
    def test_domain_not_allowed(self, policy_filter, activity_factory, suggestion_factory):
        decision = policy_filter.evaluate(
            suggestion_factory(),
            activity_factory(participants=["x@stranger.com"]),
            prefs(domain_filter_enabled=True, allowed_domains=["@Client.com"]),
        )
        assert decision.reason == "domain_not_allowed"

    def test_domain_allowed(self, policy_filter, activity_factory, suggestion_factory):
        decision = policy_filter.evaluate(
            suggestion_factory(),
            activity_factory(participants=["x@stranger.com", "a@client.com"]),
            prefs(domain_filter_enabled=True, allowed_domains=["client.com"]),
        )
        assert decision.accepted is True

    def test_no_participants_passes_domain_filter(
        self, policy_filter, activity_factory, suggestion_factory
    ):
        decision = policy_filter.evaluate(
            suggestion_factory(),
            activity_factory(type="document", participants=[]),
            prefs(domain_filter_enabled=True, allowed_domains=["client.com"]),
        )
        assert decision.accepted is True

    def test_participant_filter(self, policy_filter, activity_factory, suggestion_factory):
        preferences = prefs(
            participant_filter_enabled=True, allowed_participants=["Boss <boss@client.com>"]
        )
        allowed = policy_filter.evaluate(
            suggestion_factory(), activity_factory(participants=["boss@client.com"]), preferences
        )
        denied = policy_filter.evaluate(
            suggestion_factory(), activity_factory(participants=["intern@client.com"]), preferences
        )
        assert allowed.accepted is True
        assert denied.reason == "participant_not_allowed"

    def test_disabled_filter_ignores_list(self, policy_filter, activity_factory, suggestion_factory):
        decision = policy_filter.evaluate(
            suggestion_factory(),
            activity_factory(participants=["x@stranger.com"]),
            prefs(domain_filter_enabled=False, allowed_domains=["client.com"]),
        )
        assert decision.accepted is True
