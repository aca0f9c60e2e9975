"""
Time Entry Repository - the time_entries table.

Status changes are conditional updates (WHERE status = expected), so two
reviewers racing on the same entry cannot both win.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from billq.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from billq.observability.logging import get_logger
from billq.time_entries.models import TimeEntry, TimeEntryStatus

logger = get_logger(__name__)

_INSERT = """
    INSERT INTO time_entries (
        id, user_id, company_id, customer_name, project_name, category,
        start_time, end_time, summary, billable, status, ai_confidence_percent,
        decider, source_activity_ids, approved_at, created_at, updated_at
    ) VALUES (
        :id, :user_id, :company_id, :customer_name, :project_name, :category,
        :start_time, :end_time, :summary, :billable, :status, :ai_confidence_percent,
        :decider, :source_activity_ids, :approved_at, :created_at, :updated_at
    )
"""


class TimeEntryRepository:
    @staticmethod
    def insert(conn: sqlite3.Connection, entry: TimeEntry) -> None:
        """Insert inside the caller's transaction."""
        conn.execute(_INSERT, entry.to_db_dict())

    @staticmethod
    def get_by_id(entry_id: str) -> TimeEntry | None:
        with get_db_connection() as conn:
            row = conn.execute("SELECT * FROM time_entries WHERE id = ?", (entry_id,)).fetchone()

        if not row:
            return None
        return TimeEntry.from_db_row(dict(row))

    @staticmethod
    def list_by_user(
        user_id: str,
        status: TimeEntryStatus | str | None = None,
        limit: int = 50,
    ) -> list[TimeEntry]:
        """Entries for a user, newest first."""
        query = "SELECT * FROM time_entries WHERE user_id = ?"
        params: list[Any] = [user_id]

        if status is not None:
            query += " AND status = ?"
            params.append(status.value if isinstance(status, TimeEntryStatus) else status)

        query += " ORDER BY start_time DESC, created_at DESC LIMIT ?"
        params.append(limit)

        with get_db_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [TimeEntry.from_db_row(dict(row)) for row in rows]

    @staticmethod
    @retry_on_db_lock()
    def transition(
        entry_id: str,
        expected: TimeEntryStatus,
        target: TimeEntryStatus,
        changed_at: datetime,
    ) -> bool:
        """
        Move an entry from `expected` to `target`; False if its status changed meanwhile.
        """
        approved_at = changed_at.isoformat() if target == TimeEntryStatus.APPROVED else None
        with db_transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE time_entries
                SET status = ?, approved_at = COALESCE(?, approved_at), updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (target.value, approved_at, changed_at.isoformat(), entry_id, expected.value),
            )
            return cursor.rowcount == 1

    @staticmethod
    @retry_on_db_lock()
    def update_fields(
        entry_id: str,
        fields: dict[str, Any],
        expected: TimeEntryStatus,
        changed_at: datetime,
    ) -> bool:
        """
        Apply column updates while the entry is still in `expected` status.

        Column names come from TimeEntryEdit, never from request keys.
        """
        assignments = ", ".join(f"{name} = :{name}" for name in fields)
        params = {
            **fields,
            "updated_at": changed_at.isoformat(),
            "entry_id": entry_id,
            "expected": expected.value,
        }
        with db_transaction() as conn:
            cursor = conn.execute(
                f"""
                UPDATE time_entries SET {assignments}, updated_at = :updated_at
                WHERE id = :entry_id AND status = :expected
                """,
                params,
            )
            return cursor.rowcount == 1

    @staticmethod
    @retry_on_db_lock()
    def delete(entry_id: str, user_id: str, statuses: Iterable[TimeEntryStatus]) -> bool:
        """Delete the entry only while its status is one of `statuses`; False otherwise."""
        allowed = [TimeEntryStatus(s).value for s in statuses]
        placeholders = ", ".join("?" * len(allowed))
        with db_transaction() as conn:
            cursor = conn.execute(
                f"DELETE FROM time_entries WHERE id = ? AND user_id = ?"
                f" AND status IN ({placeholders})",
                (entry_id, user_id, *allowed),
            )
            deleted = cursor.rowcount == 1

        if deleted:
            logger.info("Deleted time entry %s for user %s", entry_id, user_id)
        return deleted
