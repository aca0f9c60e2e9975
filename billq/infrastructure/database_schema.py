"""
BillQ schema: five tables, created with CREATE ... IF NOT EXISTS.

JSON-valued columns (participants, metadata, keywords, allow-lists,
source_activity_ids) hold serialized lists or objects. Timestamps are
ISO-8601 UTC text.
"""

from __future__ import annotations

import sqlite3
from contextlib import closing
from pathlib import Path

from billq.observability.logging import get_logger

logger = get_logger(__name__)


SCHEMA = """
        CREATE TABLE IF NOT EXISTS activities (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            company_id TEXT NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            start_time TEXT NOT NULL,
            end_time TEXT,
            participants TEXT NOT NULL DEFAULT '[]',
            duration_minutes INTEGER,
            source TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}',
            raw_payload TEXT,
            content_hash TEXT NOT NULL,
            processed INTEGER NOT NULL DEFAULT 0,
            processed_at TEXT,
            raw_purged_at TEXT,
            created_at TEXT NOT NULL,
            UNIQUE(user_id, content_hash)
        );

        CREATE INDEX IF NOT EXISTS idx_activities_user_processed
        ON activities(user_id, processed);

        CREATE TABLE IF NOT EXISTS time_entries (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            company_id TEXT NOT NULL,
            customer_name TEXT,
            project_name TEXT,
            category TEXT NOT NULL,
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            summary TEXT NOT NULL,
            billable INTEGER NOT NULL DEFAULT 1,
            status TEXT NOT NULL DEFAULT 'pending_review',
            ai_confidence_percent INTEGER NOT NULL DEFAULT 0,
            decider TEXT NOT NULL DEFAULT 'llm',
            source_activity_ids TEXT NOT NULL DEFAULT '[]',
            approved_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_time_entries_user_status
        ON time_entries(user_id, status);

        CREATE TABLE IF NOT EXISTS ai_preferences (
            user_id TEXT PRIMARY KEY,
            company_id TEXT NOT NULL,
            confidence_threshold INTEGER NOT NULL DEFAULT 80,
            description_length TEXT NOT NULL DEFAULT 'standard',
            auto_approve_enabled INTEGER NOT NULL DEFAULT 0,
            only_opened_emails INTEGER NOT NULL DEFAULT 1,
            skip_promotional INTEGER NOT NULL DEFAULT 1,
            domain_filter_enabled INTEGER NOT NULL DEFAULT 0,
            allowed_domains TEXT NOT NULL DEFAULT '[]',
            participant_filter_enabled INTEGER NOT NULL DEFAULT 0,
            allowed_participants TEXT NOT NULL DEFAULT '[]',
            delete_raw_after_processing INTEGER NOT NULL DEFAULT 1,
            retention_days INTEGER NOT NULL DEFAULT -1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS customers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id TEXT NOT NULL,
            name TEXT NOT NULL,
            domain TEXT,
            created_at TEXT NOT NULL,
            UNIQUE(company_id, name)
        );

        CREATE TABLE IF NOT EXISTS projects (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id TEXT NOT NULL,
            name TEXT NOT NULL,
            customer_name TEXT,
            keywords TEXT NOT NULL DEFAULT '[]',
            created_at TEXT NOT NULL,
            UNIQUE(company_id, name)
        );
"""

REQUIRED_COLUMNS: dict[str, tuple[str, ...]] = {
    "activities": ("id", "user_id", "content_hash", "processed"),
    "time_entries": ("id", "user_id", "status", "ai_confidence_percent"),
    "ai_preferences": ("user_id", "confidence_threshold", "retention_days"),
    "customers": ("id", "company_id", "name", "domain"),
    "projects": ("id", "company_id", "name", "keywords"),
}


def create_schema(db_path: Path) -> None:
    """Create the database file, its directory and any missing tables."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with closing(sqlite3.connect(db_path)) as conn:
        conn.executescript(SCHEMA)
    logger.info("Schema ready at %s", db_path)


def validate_schema(conn: sqlite3.Connection) -> bool:
    """
    Raises:
        ValueError: A table or one of its required columns is missing
    """
    tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
    for table, columns in REQUIRED_COLUMNS.items():
        if table not in tables:
            raise ValueError(f"Database missing table: {table}")
        # Identifiers cannot be bound; table names come from REQUIRED_COLUMNS
        present = {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}
        missing = set(columns) - present
        if missing:
            raise ValueError(f"Table '{table}' missing columns: {sorted(missing)}")
    return True
