"""
Time Entry Lifecycle Manager.

Creates entries from filtered suggestions and enforces the review state
machine. Creating an entry and marking its source activity processed happen
in one transaction: either both are stored or neither is, so a failed run
leaves the activity unprocessed for the next attempt, and the processed
flag stops a retry from creating a second entry.
"""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError as SchemaValidationError

from billq.activities.models import Activity, utc_now
from billq.activities.repository import ActivityRepository
from billq.config import RETAIN_REJECTED_ENTRIES
from billq.errors import (
    AccessDeniedError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from billq.infrastructure.database import db_transaction, is_lock_error, retry_on_db_lock
from billq.observability.logging import get_logger
from billq.observability.telemetry import counter, log_event
from billq.policy.filter import PolicyDecision
from billq.suggestions.models import TimeEntrySuggestion
from billq.time_entries.models import TimeEntry, TimeEntryEdit, TimeEntryStatus
from billq.time_entries.repository import TimeEntryRepository
from billq.utils.email import customer_fragment

logger = get_logger(__name__)

# Stripped from edit payloads before validation
IMMUTABLE_FIELDS = frozenset({"id", "user_id", "company_id"})
STATUS_FIELDS = frozenset({"status", "approved_at"})
DELETABLE_STATUSES = (TimeEntryStatus.PENDING_REVIEW, TimeEntryStatus.REJECTED)


class _ActivityAlreadyProcessed(Exception):
    """Raised inside the create transaction to roll it back."""


def derive_customer_name(activity: Activity, suggestion: TimeEntrySuggestion) -> str | None:
    """
    Best-effort customer: explicit customer/company metadata, then the matched
    customer, then the domain fragment of the first participant.
    """
    for key in ("customer", "company"):
        value = activity.metadata.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    if suggestion.customer_name:
        return suggestion.customer_name
    if activity.participants:
        return customer_fragment(activity.participants[0])
    return None


class TimeEntryLifecycleManager:
    def __init__(self, retain_rejected: bool = RETAIN_REJECTED_ENTRIES):
        """
        Args:
            retain_rejected: Keep rejected entries as terminal records instead
                of deleting them
        """
        self.retain_rejected = retain_rejected

    # --- creation ---------------------------------------------------------

    def build_entry(
        self,
        activity: Activity,
        suggestion: TimeEntrySuggestion,
        decision: PolicyDecision,
        now: datetime,
    ) -> TimeEntry:
        start = activity.start_time
        end = activity.end_time or start + timedelta(minutes=suggestion.duration_minutes)
        auto_approve = decision.auto_approve

        return TimeEntry(
            id=str(uuid.uuid4()),
            user_id=activity.user_id,
            company_id=activity.company_id,
            customer_name=derive_customer_name(activity, suggestion),
            project_name=suggestion.project_name,
            category=suggestion.category,
            start_time=start,
            end_time=end,
            summary=suggestion.description,
            billable=True,
            status=TimeEntryStatus.APPROVED if auto_approve else TimeEntryStatus.PENDING_REVIEW,
            ai_confidence_percent=suggestion.confidence_percent,
            decider=suggestion.decider,
            source_activity_ids=[activity.id],
            approved_at=now if auto_approve else None,
            created_at=now,
            updated_at=now,
        )

    @retry_on_db_lock()
    def create_from_suggestion(
        self,
        activity: Activity,
        suggestion: TimeEntrySuggestion,
        decision: PolicyDecision,
    ) -> TimeEntry | None:
        """
        Store the entry and mark its activity processed, atomically.

        Returns:
            The new entry, or None if the activity was already processed

        Raises:
            PersistenceError: Write failed; nothing was stored
        """
        if suggestion.source_activity_id != activity.id:
            raise ValidationError("suggestion does not belong to this activity")

        now = utc_now()
        entry = self.build_entry(activity, suggestion, decision, now)

        try:
            with db_transaction() as conn:
                self._claim(conn, activity, now)
                TimeEntryRepository.insert(conn, entry)
        except _ActivityAlreadyProcessed:
            counter("entries.duplicate_skipped")
            logger.info("Activity %s already processed, no entry created", activity.id)
            return None
        except sqlite3.Error as e:
            if is_lock_error(e):
                raise
            logger.error("Failed to persist time entry for activity %s: %s", activity.id, e)
            raise PersistenceError("failed to persist time entry") from e

        counter("entries.created")
        counter(f"entries.created.{entry.status}")
        log_event(
            "entries.created",
            entry_id=entry.id,
            status=entry.status,
            decider=entry.decider,
            confidence=entry.ai_confidence_percent,
        )
        return entry

    @retry_on_db_lock()
    def close_without_entry(self, activity: Activity, reason: str) -> bool:
        """
        Mark an activity processed when its suggestion was dropped or excluded.

        Returns False if it had already been processed.
        """
        try:
            with db_transaction() as conn:
                self._claim(conn, activity, utc_now())
        except _ActivityAlreadyProcessed:
            return False
        except sqlite3.Error as e:
            if is_lock_error(e):
                raise
            raise PersistenceError("failed to mark activity processed") from e

        counter(f"activities.closed.{reason}")
        return True

    @staticmethod
    def _claim(conn: sqlite3.Connection, activity: Activity, now: datetime) -> None:
        if ActivityRepository.mark_processed(conn, [activity.id], activity.user_id, now) != 1:
            raise _ActivityAlreadyProcessed(activity.id)

    # --- review -----------------------------------------------------------

    @staticmethod
    def _load_owned(entry_id: str, user_id: str) -> TimeEntry:
        entry = TimeEntryRepository.get_by_id(entry_id)
        if entry is None:
            raise NotFoundError(f"time entry {entry_id} not found")
        if entry.user_id != user_id:
            logger.warning("User %s attempted to modify entry %s they do not own", user_id, entry_id)
            counter("entries.access_denied")
            raise AccessDeniedError("time entry belongs to another user")
        return entry

    def _transition(self, entry: TimeEntry, target: TimeEntryStatus) -> TimeEntry:
        if entry.status != TimeEntryStatus.PENDING_REVIEW.value:
            raise InvalidTransitionError(
                f"entry is {entry.status} and cannot move to {target.value}"
            )

        if not TimeEntryRepository.transition(
            entry.id, TimeEntryStatus.PENDING_REVIEW, target, utc_now()
        ):
            raise InvalidTransitionError("time entry status changed concurrently")

        counter(f"entries.{target.value}")
        updated = TimeEntryRepository.get_by_id(entry.id)
        if updated is None:
            raise NotFoundError(f"time entry {entry.id} not found")
        return updated

    def approve(self, entry_id: str, user_id: str) -> TimeEntry:
        return self._transition(self._load_owned(entry_id, user_id), TimeEntryStatus.APPROVED)

    def reject(self, entry_id: str, user_id: str) -> TimeEntry | None:
        """
        Reject a pending entry.

        Returns the rejected entry when rejected entries are retained,
        otherwise None (the entry is deleted).
        """
        entry = self._load_owned(entry_id, user_id)
        if self.retain_rejected:
            return self._transition(entry, TimeEntryStatus.REJECTED)

        if entry.status != TimeEntryStatus.PENDING_REVIEW.value:
            raise InvalidTransitionError(f"entry is {entry.status} and cannot be rejected")
        if not TimeEntryRepository.delete(entry.id, user_id, [TimeEntryStatus.PENDING_REVIEW]):
            raise InvalidTransitionError("time entry status changed concurrently")
        counter("entries.rejected")
        return None

    def delete(self, entry_id: str, user_id: str) -> None:
        """Delete a pending or rejected entry; approved entries are kept."""
        entry = self._load_owned(entry_id, user_id)
        if entry.status == TimeEntryStatus.APPROVED.value:
            raise InvalidTransitionError("approved entries cannot be deleted")
        if not TimeEntryRepository.delete(entry.id, user_id, DELETABLE_STATUSES):
            raise InvalidTransitionError("time entry changed while being deleted")
        counter("entries.deleted")

    def update_status(
        self,
        entry_id: str,
        status: TimeEntryStatus | str,
        user_id: str,
    ) -> TimeEntry | None:
        try:
            target = TimeEntryStatus(status)
        except ValueError:
            raise ValidationError(f"unknown status: {status}") from None

        if target == TimeEntryStatus.APPROVED:
            return self.approve(entry_id, user_id)
        if target == TimeEntryStatus.REJECTED:
            return self.reject(entry_id, user_id)

        entry = self._load_owned(entry_id, user_id)
        if entry.status != TimeEntryStatus.PENDING_REVIEW.value:
            raise InvalidTransitionError(f"entry is {entry.status} and cannot move back to review")
        return entry

    def edit(self, entry_id: str, user_id: str, fields: dict[str, Any]) -> TimeEntry:
        """
        Edit a pending entry in place.

        id, user_id and company_id are stripped from the payload; status must
        change through update_status().
        """
        if not isinstance(fields, dict):
            raise ValidationError("edit payload must be an object")

        payload = {k: v for k, v in fields.items() if k not in IMMUTABLE_FIELDS}
        if STATUS_FIELDS & payload.keys():
            raise ValidationError("status cannot be edited; use the status operation")

        try:
            edit = TimeEntryEdit.model_validate(payload)
        except SchemaValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(part) for part in error["loc"]) or "payload"
            raise ValidationError(f"{field}: {error['msg']}") from None

        entry = self._load_owned(entry_id, user_id)
        if entry.status != TimeEntryStatus.PENDING_REVIEW.value:
            raise InvalidTransitionError(f"entry is {entry.status} and cannot be edited")

        changes = edit.model_dump(exclude_unset=True)
        if not changes:
            return entry

        try:
            TimeEntry.model_validate({**entry.model_dump(), **changes})
        except SchemaValidationError as e:
            raise ValidationError(e.errors()[0]["msg"].removeprefix("Value error, ")) from None

        columns = {
            name: value.isoformat() if isinstance(value, datetime) else value
            for name, value in changes.items()
        }
        if "billable" in columns:
            columns["billable"] = int(columns["billable"])

        if not TimeEntryRepository.update_fields(
            entry.id, columns, TimeEntryStatus.PENDING_REVIEW, utc_now()
        ):
            raise InvalidTransitionError("time entry left review while being edited")

        counter("entries.edited")
        updated = TimeEntryRepository.get_by_id(entry.id)
        if updated is None:
            raise NotFoundError(f"time entry {entry.id} not found")
        return updated
