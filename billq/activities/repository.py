"""
Activity Repository - persistence for the activities table.

Duplicate occurrences are rejected by the UNIQUE(user_id, content_hash)
constraint; create() reports them by returning None instead of raising.
"""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime

from billq.activities.models import Activity, ActivityCreate, utc_now
from billq.errors import PersistenceError
from billq.infrastructure.database import (
    db_transaction,
    get_db_connection,
    is_lock_error,
    retry_on_db_lock,
)
from billq.observability.logging import get_logger
from billq.observability.telemetry import counter

logger = get_logger(__name__)


class ActivityRepository:
    """
    Repository for Activity storage, keyed by owner and processing state.
    """

    @staticmethod
    @retry_on_db_lock()
    def create(
        user_id: str,
        company_id: str,
        draft: ActivityCreate,
        content_hash: str,
    ) -> Activity | None:
        """
        Store a normalized activity unless its fingerprint already exists for the user.

        Returns:
            The stored Activity, or None when it duplicates an existing one

        Raises:
            PersistenceError: Datastore write failed
        """
        activity = Activity(
            id=str(uuid.uuid4()),
            user_id=user_id,
            company_id=company_id,
            type=draft.type,
            title=draft.title,
            description=draft.description,
            start_time=draft.start_time,
            end_time=draft.end_time,
            participants=draft.participants,
            duration_minutes=draft.duration_minutes,
            source=draft.source,
            metadata=draft.metadata,
            raw_payload=draft.raw_payload,
            content_hash=content_hash,
            created_at=utc_now(),
        )

        try:
            with db_transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO activities (
                        id, user_id, company_id, type, title, description,
                        start_time, end_time, participants, duration_minutes,
                        source, metadata, raw_payload, content_hash, processed,
                        processed_at, raw_purged_at, created_at
                    ) VALUES (
                        :id, :user_id, :company_id, :type, :title, :description,
                        :start_time, :end_time, :participants, :duration_minutes,
                        :source, :metadata, :raw_payload, :content_hash, :processed,
                        :processed_at, :raw_purged_at, :created_at
                    )
                    """,
                    activity.to_db_dict(),
                )
                inserted = cursor.rowcount == 1
        except sqlite3.Error as e:
            if is_lock_error(e):
                raise
            logger.error("Failed to store activity for user %s: %s", user_id, e)
            raise PersistenceError("failed to store activity") from e

        if not inserted:
            counter("activities.duplicate")
            logger.debug("Skipped duplicate activity %s for user %s", content_hash[:12], user_id)
            return None

        counter("activities.created")
        return activity

    @staticmethod
    def get_by_id(activity_id: str) -> Activity | None:
        with get_db_connection() as conn:
            row = conn.execute("SELECT * FROM activities WHERE id = ?", (activity_id,)).fetchone()

        if not row:
            return None
        return Activity.from_db_row(dict(row))

    @staticmethod
    def count_unprocessed(user_id: str) -> int:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM activities WHERE user_id = ? AND processed = 0",
                (user_id,),
            ).fetchone()
        return row[0] if row else 0

    @staticmethod
    def list_unprocessed(user_id: str, limit: int | None = None) -> list[Activity]:
        """
        Unprocessed activities for a user, oldest first.
        """
        query = (
            "SELECT * FROM activities WHERE user_id = ? AND processed = 0 "
            "ORDER BY start_time ASC, created_at ASC"
        )
        params: tuple = (user_id,)
        if limit is not None:
            query += " LIMIT ?"
            params = (user_id, limit)

        with get_db_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [Activity.from_db_row(dict(row)) for row in rows]

    @staticmethod
    def mark_processed(
        conn: sqlite3.Connection,
        activity_ids: list[str],
        user_id: str,
        processed_at: datetime,
    ) -> int:
        """
        Flip processed=0 -> 1 for the given activities inside the caller's transaction.

        Only rows owned by user_id and still unprocessed are touched; the
        returned count lets the caller detect an activity already claimed by
        an earlier run.
        """
        placeholders = ",".join("?" for _ in activity_ids)
        cursor = conn.execute(
            f"""
            UPDATE activities SET processed = 1, processed_at = ?
            WHERE user_id = ? AND processed = 0 AND id IN ({placeholders})
            """,
            (processed_at.isoformat(), user_id, *activity_ids),
        )
        return cursor.rowcount
