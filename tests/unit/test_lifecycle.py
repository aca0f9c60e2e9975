"""
Tests for the time entry lifecycle manager.

Validates:
1. Entry creation and the processed flag commit together
2. Auto-approved entries carry approved_at; others start in pending_review
3. The state machine: approved/rejected entries cannot move back or be edited
4. Ownership: other users get AccessDeniedError, unknown ids NotFoundError
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from billq.activities.normalizer import normalize_payload
from billq.activities.repository import ActivityRepository
from billq.errors import AccessDeniedError, InvalidTransitionError, NotFoundError, ValidationError
from billq.infrastructure.idempotency import content_fingerprint
from billq.policy.filter import PolicyDecision
from billq.time_entries.lifecycle import TimeEntryLifecycleManager, derive_customer_name
from billq.time_entries.repository import TimeEntryRepository

REVIEW = PolicyDecision(accepted=True, auto_approve=False)
AUTO = PolicyDecision(accepted=True, auto_approve=True)


@pytest.fixture
def stored_activity(test_db):
    def _store(title="Client Sync", user_id="user-1", **payload):
        draft = normalize_payload(
            {"title": title, "start_time": "2024-03-04T15:00:00Z", **payload},
            source="google_calendar",
        )
        fingerprint = content_fingerprint(draft.title, draft.start_time, draft.source)
        return ActivityRepository.create(user_id, "company-1", draft, fingerprint)

    return _store


@pytest.fixture
def manager():
    return TimeEntryLifecycleManager(retain_rejected=False)


@pytest.fixture
def pending_entry(stored_activity, manager, suggestion_factory):
    activity = stored_activity()
    return manager.create_from_suggestion(
        activity, suggestion_factory(source_activity_id=activity.id, confidence=0.7), REVIEW
    )


class TestCreate:
    def test_entry_and_processed_flag(self, stored_activity, manager, suggestion_factory):
        activity = stored_activity(duration_minutes=45)
        entry = manager.create_from_suggestion(
            activity, suggestion_factory(source_activity_id=activity.id, duration_minutes=45), REVIEW
        )

        assert entry.status == "pending_review"
        assert entry.approved_at is None
        assert entry.billable is True
        assert entry.ai_confidence_percent == 90
        assert entry.source_activity_ids == [activity.id]
        assert entry.duration_minutes == 45
        assert ActivityRepository.get_by_id(activity.id).processed is True
        assert TimeEntryRepository.get_by_id(entry.id) is not None

    def test_auto_approved_entry(self, stored_activity, manager, suggestion_factory):
        activity = stored_activity()
        entry = manager.create_from_suggestion(
            activity, suggestion_factory(source_activity_id=activity.id), AUTO
        )
        assert entry.status == "approved"
        assert entry.approved_at is not None

    def test_second_create_for_same_activity_is_skipped(
        self, stored_activity, manager, suggestion_factory
    ):
        activity = stored_activity()
        suggestion = suggestion_factory(source_activity_id=activity.id)

        assert manager.create_from_suggestion(activity, suggestion, REVIEW) is not None
        assert manager.create_from_suggestion(activity, suggestion, REVIEW) is None
        assert len(TimeEntryRepository.list_by_user("user-1")) == 1

    def test_mismatched_suggestion_rejected(self, stored_activity, manager, suggestion_factory):
        activity = stored_activity()
        with pytest.raises(ValidationError):
            manager.create_from_suggestion(
                activity, suggestion_factory(source_activity_id="other"), REVIEW
            )

    def test_close_without_entry(self, stored_activity, manager):
        activity = stored_activity()
        assert manager.close_without_entry(activity, "promotional") is True
        assert manager.close_without_entry(activity, "promotional") is False
        assert ActivityRepository.count_unprocessed("user-1") == 0


class TestCustomerName:
    def test_metadata_wins(self, activity_factory, suggestion_factory):
        activity = activity_factory(metadata={"customer": "Acme"}, participants=["a@client.com"])
        assert derive_customer_name(activity, suggestion_factory(customer_name="Client Co")) == "Acme"

    def test_matched_customer_next(self, activity_factory, suggestion_factory):
        activity = activity_factory(participants=["a@client.com"])
        assert (
            derive_customer_name(activity, suggestion_factory(customer_name="Client Co"))
            == "Client Co"
        )

    def test_domain_fragment_last(self, activity_factory, suggestion_factory):
        activity = activity_factory(participants=["a@client.com"])
        assert derive_customer_name(activity, suggestion_factory()) == "client"

    def test_nothing_known(self, activity_factory, suggestion_factory):
        assert derive_customer_name(activity_factory(), suggestion_factory()) is None


class TestStateMachine:
    def test_approve(self, pending_entry, manager):
        entry = manager.update_status(pending_entry.id, "approved", "user-1")
        assert entry.status == "approved"
        assert entry.approved_at is not None

    def test_approved_cannot_return_to_review(self, pending_entry, manager):
        manager.approve(pending_entry.id, "user-1")
        with pytest.raises(InvalidTransitionError):
            manager.update_status(pending_entry.id, "pending_review", "user-1")

    def test_approved_cannot_be_rejected(self, pending_entry, manager):
        manager.approve(pending_entry.id, "user-1")
        with pytest.raises(InvalidTransitionError):
            manager.reject(pending_entry.id, "user-1")

    def test_pending_to_pending_is_noop(self, pending_entry, manager):
        assert manager.update_status(pending_entry.id, "pending_review", "user-1").id == pending_entry.id

    def test_unknown_status(self, pending_entry, manager):
        with pytest.raises(ValidationError, match="unknown status"):
            manager.update_status(pending_entry.id, "archived", "user-1")

    def test_reject_deletes_by_default(self, pending_entry, manager):
        assert manager.reject(pending_entry.id, "user-1") is None
        assert TimeEntryRepository.get_by_id(pending_entry.id) is None

    def test_reject_retained_when_configured(self, pending_entry):
        manager = TimeEntryLifecycleManager(retain_rejected=True)
        entry = manager.reject(pending_entry.id, "user-1")
        assert entry.status == "rejected"
        with pytest.raises(InvalidTransitionError):
            manager.approve(pending_entry.id, "user-1")

    def test_approved_entries_cannot_be_deleted(self, pending_entry, manager):
        manager.approve(pending_entry.id, "user-1")
        with pytest.raises(InvalidTransitionError):
            manager.delete(pending_entry.id, "user-1")

    def test_delete_pending(self, pending_entry, manager):
        manager.delete(pending_entry.id, "user-1")
        assert TimeEntryRepository.get_by_id(pending_entry.id) is None

    def test_transition_message_reads_naturally(self, pending_entry, manager):
        manager.approve(pending_entry.id, "user-1")
        with pytest.raises(InvalidTransitionError, match="entry is approved and cannot be edited"):
            manager.edit(pending_entry.id, "user-1", {"summary": "changed"})


class TestConcurrentReview:
    """Another reviewer approves the entry after it was loaded but before it is removed."""

    @pytest.fixture
    def approve_after_load(self, manager, monkeypatch):
        load = manager._load_owned

        def stale_load(entry_id, user_id):
            entry = load(entry_id, user_id)
            TimeEntryLifecycleManager().approve(entry_id, user_id)
            return entry

        monkeypatch.setattr(manager, "_load_owned", stale_load)

    def test_delete_keeps_entry_approved_meanwhile(
        self, pending_entry, manager, approve_after_load
    ):
        with pytest.raises(InvalidTransitionError):
            manager.delete(pending_entry.id, "user-1")
        assert TimeEntryRepository.get_by_id(pending_entry.id).status == "approved"

    def test_reject_keeps_entry_approved_meanwhile(
        self, pending_entry, manager, approve_after_load
    ):
        with pytest.raises(InvalidTransitionError):
            manager.reject(pending_entry.id, "user-1")
        assert TimeEntryRepository.get_by_id(pending_entry.id).status == "approved"

    def test_repository_delete_respects_status(self, pending_entry, manager):
        manager.approve(pending_entry.id, "user-1")
        assert not TimeEntryRepository.delete(pending_entry.id, "user-1", ["pending_review"])
        assert TimeEntryRepository.get_by_id(pending_entry.id) is not None


class TestOwnership:
    def test_other_user_denied(self, pending_entry, manager):
        with pytest.raises(AccessDeniedError):
            manager.approve(pending_entry.id, "intruder")
        assert TimeEntryRepository.get_by_id(pending_entry.id).status == "pending_review"

    def test_unknown_entry(self, test_db, manager):
        with pytest.raises(NotFoundError):
            manager.update_status("missing", "approved", "user-1")


class TestEdit:
    def test_edit_pending(self, pending_entry, manager):
        entry = manager.edit(
            pending_entry.id,
            "user-1",
            {
                "summary": "Quarterly planning",
                "billable": False,
                "id": "ignored",
                "user_id": "intruder",
                "company_id": "company-2",
            },
        )
        assert entry.id == pending_entry.id
        assert entry.user_id == "user-1"
        assert entry.company_id == "company-1"
        assert entry.summary == "Quarterly planning"
        assert entry.billable is False

    def test_edit_times(self, pending_entry, manager):
        entry = manager.edit(
            pending_entry.id,
            "user-1",
            {"end_time": datetime(2024, 3, 4, 17, 0, tzinfo=UTC).isoformat()},
        )
        assert entry.duration_minutes == 120

    def test_end_before_start_rejected(self, pending_entry, manager):
        with pytest.raises(ValidationError, match="before"):
            manager.edit(pending_entry.id, "user-1", {"end_time": "2024-03-04T14:00:00Z"})

    def test_approved_entry_is_read_only(self, pending_entry, manager):
        manager.approve(pending_entry.id, "user-1")
        with pytest.raises(InvalidTransitionError):
            manager.edit(pending_entry.id, "user-1", {"summary": "changed"})

    def test_status_not_editable(self, pending_entry, manager):
        with pytest.raises(ValidationError, match="status"):
            manager.edit(pending_entry.id, "user-1", {"status": "approved"})

    def test_unknown_field_rejected(self, pending_entry, manager):
        with pytest.raises(ValidationError):
            manager.edit(pending_entry.id, "user-1", {"ai_confidence_percent": 100})

    def test_other_user_cannot_edit(self, pending_entry, manager):
        with pytest.raises(AccessDeniedError):
            manager.edit(pending_entry.id, "intruder", {"summary": "mine now"})
