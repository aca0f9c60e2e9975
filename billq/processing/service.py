"""Processing service - facade between API routes and the pipeline.

Flow for one user:

    ingest:  payload -> normalize -> fingerprint -> store (duplicates skipped)
    process: lease(user) -> unprocessed activities -> matcher/LLM/heuristic
             -> policy filter -> entry + processed flag (one transaction each)
             -> retention

Every operation that takes an entry id also takes the acting user id and
enforces ownership.
"""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass, field
from typing import Any

from billq.activities.models import Activity
from billq.activities.normalizer import normalize_payload, should_ingest_email
from billq.activities.repository import ActivityRepository
from billq.config import API_BATCH_SIZE_MAX, API_LIST_LIMIT_DEFAULT, API_LIST_LIMIT_MAX
from billq.errors import PersistenceError, ValidationError
from billq.infrastructure.database import is_lock_error
from billq.infrastructure.idempotency import content_fingerprint
from billq.infrastructure.locks import UserLeaseRegistry, user_leases
from billq.matching.models import KnownCustomer, KnownProject
from billq.matching.repository import DirectoryRepository
from billq.observability.logging import get_logger
from billq.observability.telemetry import counter, log_event, time_block
from billq.policy.filter import PolicyFilter
from billq.preferences.models import AIPreferences
from billq.preferences.repository import PreferencesRepository
from billq.storage.retention import enforce_retention
from billq.suggestions.engine import SuggestionContext, SuggestionEngine
from billq.time_entries.lifecycle import TimeEntryLifecycleManager
from billq.time_entries.models import TimeEntry, TimeEntryStatus
from billq.time_entries.repository import TimeEntryRepository

logger = get_logger(__name__)


@dataclass
class IngestResult:
    """Outcome of one ingestion batch."""

    created: list[Activity] = field(default_factory=list)
    duplicates: int = 0
    filtered: int = 0
    rejected: list[dict[str, Any]] = field(default_factory=list)


class ProcessingService:
    def __init__(
        self,
        engine: SuggestionEngine | None = None,
        policy_filter: PolicyFilter | None = None,
        lifecycle: TimeEntryLifecycleManager | None = None,
        leases: UserLeaseRegistry | None = None,
    ):
        self.engine = engine or SuggestionEngine()
        self.policy_filter = policy_filter or PolicyFilter()
        self.lifecycle = lifecycle or TimeEntryLifecycleManager()
        self.leases = leases or user_leases

    # --- ingestion --------------------------------------------------------

    def ingest_activities(
        self,
        user_id: str,
        company_id: str,
        source: str,
        payloads: list[dict[str, Any]],
        user_email: str | None = None,
    ) -> IngestResult:
        """
        Normalize and store a batch of raw payloads from one source.

        Invalid payloads are reported per index and do not stop the batch.
        Payloads whose fingerprint already exists for the user, including
        repeats inside this batch, are counted as duplicates.
        """
        if len(payloads) > API_BATCH_SIZE_MAX:
            raise ValidationError(f"batch exceeds {API_BATCH_SIZE_MAX} activities")

        preferences = PreferencesRepository.get_or_create(user_id, company_id)
        result = IngestResult()

        for index, payload in enumerate(payloads):
            try:
                draft = normalize_payload(payload, source=source)
                fingerprint = content_fingerprint(
                    draft.title,
                    None if draft.start_time_inferred else draft.start_time,
                    draft.source,
                )
            except ValueError as e:
                result.rejected.append({"index": index, "error": str(e)})
                continue

            if draft.type == "email" and not should_ingest_email(
                payload, user_email, preferences.only_opened_emails
            ):
                result.filtered += 1
                continue

            activity = ActivityRepository.create(user_id, company_id, draft, fingerprint)
            if activity is None:
                result.duplicates += 1
            else:
                result.created.append(activity)

        log_event(
            "activities.ingested",
            source=source,
            created=len(result.created),
            duplicates=result.duplicates,
            filtered=result.filtered,
            rejected=len(result.rejected),
        )
        return result

    def count_unprocessed(self, user_id: str) -> int:
        return ActivityRepository.count_unprocessed(user_id)

    # --- processing -------------------------------------------------------

    def process_activities(
        self,
        user_id: str,
        company_id: str,
        cancel_event: threading.Event | None = None,
        require_auto_approve: bool = False,
    ) -> list[TimeEntry]:
        """
        Turn the user's unprocessed activities into time entries.

        Each activity is its own unit of work: its entry (if any) and its
        processed flag are committed together, so cancellation or a failure
        part-way leaves earlier activities done and later ones untouched.

        Raises:
            ProcessingInProgressError: A run for this user is already active
            PersistenceError: A datastore write failed
        """
        with self.leases.hold(user_id) as lease:
            if self.count_unprocessed(user_id) == 0:
                counter("processing.nothing_to_do")
                return []

            try:
                with time_block("processing.run.latency"):
                    return self._run(user_id, company_id, lease, cancel_event, require_auto_approve)
            except sqlite3.Error as e:
                logger.error("Processing run failed for user %s: %s", user_id, e)
                raise PersistenceError("processing run could not be saved") from e

    def _run(
        self,
        user_id: str,
        company_id: str,
        lease: str,
        cancel_event: threading.Event | None,
        require_auto_approve: bool,
    ) -> list[TimeEntry]:
        preferences = PreferencesRepository.get_or_create(user_id, company_id)
        context = SuggestionContext(
            customers=DirectoryRepository.list_customers(company_id),
            projects=DirectoryRepository.list_projects(company_id),
            description_length=preferences.description_length,
        )
        activities = ActivityRepository.list_unprocessed(user_id)

        created: list[TimeEntry] = []
        dropped = 0
        for activity in activities:
            if cancel_event is not None and cancel_event.is_set():
                counter("processing.cancelled")
                logger.info(
                    "Processing cancelled for user %s after %d entries", user_id, len(created)
                )
                break

            if not self.leases.renew(user_id, lease):
                counter("processing.lease_lost")
                logger.warning(
                    "Processing lease for user %s taken over after %d entries, stopping",
                    user_id,
                    len(created),
                )
                break

            suggestion = self.engine.suggest(activity, context)
            if suggestion is None:
                self.lifecycle.close_without_entry(activity, "excluded")
                dropped += 1
                continue

            decision = self.policy_filter.evaluate(
                suggestion, activity, preferences, require_auto_approve
            )
            if not decision.accepted:
                self.lifecycle.close_without_entry(activity, decision.reason)
                dropped += 1
                continue

            entry = self.lifecycle.create_from_suggestion(activity, suggestion, decision)
            if entry is not None:
                created.append(entry)

        self._apply_retention(user_id, preferences)

        log_event(
            "processing.completed",
            activities=len(activities),
            entries=len(created),
            dropped=dropped,
        )
        return created

    @staticmethod
    def _apply_retention(user_id: str, preferences: AIPreferences) -> None:
        # Entries are already committed; a failed purge is retried by the scheduled cleanup
        try:
            enforce_retention(user_id, preferences.retention_policy)
        except sqlite3.Error as e:
            if is_lock_error(e):
                logger.warning("Retention skipped for user %s, database busy", user_id)
            else:
                logger.exception("Retention failed for user %s", user_id)
            counter("retention.failed")

    # --- time entries -----------------------------------------------------

    def list_time_entries(
        self,
        user_id: str,
        status: TimeEntryStatus | str | None = None,
        limit: int = API_LIST_LIMIT_DEFAULT,
    ) -> list[TimeEntry]:
        if status is not None:
            try:
                status = TimeEntryStatus(status)
            except ValueError:
                raise ValidationError(f"unknown status: {status}") from None
        if limit < 1:
            raise ValidationError("limit must be positive")
        return TimeEntryRepository.list_by_user(
            user_id, status=status, limit=min(limit, API_LIST_LIMIT_MAX)
        )

    def update_time_entry_status(
        self,
        entry_id: str,
        status: TimeEntryStatus | str,
        user_id: str,
    ) -> TimeEntry | None:
        return self.lifecycle.update_status(entry_id, status, user_id)

    def edit_time_entry(self, entry_id: str, fields: dict[str, Any], user_id: str) -> TimeEntry:
        return self.lifecycle.edit(entry_id, user_id, fields)

    def delete_time_entry(self, entry_id: str, user_id: str) -> None:
        self.lifecycle.delete(entry_id, user_id)

    # --- preferences & directory -----------------------------------------

    def get_preferences(self, user_id: str, company_id: str) -> AIPreferences:
        return PreferencesRepository.get_or_create(user_id, company_id)

    def update_preferences(
        self,
        user_id: str,
        company_id: str,
        fields: dict[str, Any],
    ) -> AIPreferences:
        return PreferencesRepository.update(user_id, company_id, fields)

    def add_customer(self, company_id: str, customer: KnownCustomer) -> KnownCustomer:
        return DirectoryRepository.add_customer(company_id, customer)

    def add_project(self, company_id: str, project: KnownProject) -> KnownProject:
        return DirectoryRepository.add_project(company_id, project)

    def list_directory(self, company_id: str) -> tuple[list[KnownCustomer], list[KnownProject]]:
        return (
            DirectoryRepository.list_customers(company_id),
            DirectoryRepository.list_projects(company_id),
        )
