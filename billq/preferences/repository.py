"""
Preferences Repository - the ai_preferences table.

Defaults are created by an explicit factory (create_defaults / get_or_create),
never as a hidden side effect of get(). update() validates before writing
and never resets fields the payload does not mention.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError as SchemaValidationError

from billq.activities.models import utc_now
from billq.errors import ValidationError
from billq.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from billq.observability.logging import get_logger
from billq.observability.telemetry import counter
from billq.preferences.models import (
    IMMUTABLE_FIELDS,
    AIPreferences,
    PreferencesUpdate,
)

logger = get_logger(__name__)

_COLUMNS = (
    "user_id, company_id, confidence_threshold, description_length, auto_approve_enabled, "
    "only_opened_emails, skip_promotional, domain_filter_enabled, allowed_domains, "
    "participant_filter_enabled, allowed_participants, delete_raw_after_processing, "
    "retention_days, created_at, updated_at"
)
_PLACEHOLDERS = ", ".join(f":{name.strip()}" for name in _COLUMNS.split(","))


def _first_error(e: SchemaValidationError) -> str:
    error = e.errors()[0]
    field = ".".join(str(part) for part in error["loc"]) or "payload"
    message = error["msg"].removeprefix("Value error, ")
    return f"{field}: {message}"


class PreferencesRepository:
    @staticmethod
    def get(user_id: str) -> AIPreferences | None:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM ai_preferences WHERE user_id = ?", (user_id,)
            ).fetchone()

        if not row:
            return None
        return AIPreferences.from_db_row(dict(row))

    @staticmethod
    @retry_on_db_lock()
    def create_defaults(user_id: str, company_id: str) -> AIPreferences:
        """
        Store default preferences for a user who has none.

        Concurrent first reads are safe: INSERT OR IGNORE keeps whichever row
        landed first, and the stored row is returned.
        """
        defaults = AIPreferences(user_id=user_id, company_id=company_id)
        with db_transaction() as conn:
            cursor = conn.execute(
                f"INSERT OR IGNORE INTO ai_preferences ({_COLUMNS}) VALUES ({_PLACEHOLDERS})",
                defaults.to_db_dict(),
            )
            if cursor.rowcount:
                counter("preferences.defaults_created")
                logger.info("Created default AI preferences for user %s", user_id)
            row = conn.execute(
                "SELECT * FROM ai_preferences WHERE user_id = ?", (user_id,)
            ).fetchone()

        return AIPreferences.from_db_row(dict(row))

    @staticmethod
    def get_or_create(user_id: str, company_id: str) -> AIPreferences:
        """Read preferences, creating defaults on first read."""
        existing = PreferencesRepository.get(user_id)
        if existing is not None:
            return existing
        return PreferencesRepository.create_defaults(user_id, company_id)

    @staticmethod
    @retry_on_db_lock()
    def update(user_id: str, company_id: str, fields: dict[str, Any]) -> AIPreferences:
        """
        Apply a validated partial update.

        Raises:
            ValidationError: Unknown field, threshold outside [0, 100],
                description length not brief/standard/detailed
        """
        if not isinstance(fields, dict):
            raise ValidationError("preferences payload must be an object")

        payload = {k: v for k, v in fields.items() if k not in IMMUTABLE_FIELDS}
        try:
            update = PreferencesUpdate.model_validate(payload)
        except SchemaValidationError as e:
            raise ValidationError(_first_error(e)) from None

        current = PreferencesRepository.get_or_create(user_id, company_id)
        changes = update.model_dump(exclude_unset=True, exclude={"retention_policy"})
        if update.retention_policy is not None:
            changes["retention_policy"] = current.retention_policy.model_copy(
                update=update.retention_policy.model_dump(exclude_unset=True)
            )

        try:
            merged = AIPreferences.model_validate(
                {**current.model_dump(), **changes, "updated_at": utc_now()}
            )
        except SchemaValidationError as e:
            raise ValidationError(_first_error(e)) from None

        row = merged.to_db_dict()
        assignments = ", ".join(
            f"{name} = :{name}" for name in row if name not in ("user_id", "created_at")
        )
        with db_transaction() as conn:
            conn.execute(
                f"UPDATE ai_preferences SET {assignments} WHERE user_id = :user_id",
                row,
            )

        logger.info(
            "Updated AI preferences for user %s: %s",
            user_id,
            sorted(changes),
        )
        return merged
