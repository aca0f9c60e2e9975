"""Tests for the SQLite pool, transactions and lock retries"""

from __future__ import annotations

import sqlite3

import pytest

from billq.infrastructure.database import (
    db_transaction,
    get_db_connection,
    is_lock_error,
    retry_on_db_lock,
)
from billq.infrastructure.database_schema import validate_schema


def count_customers() -> int:
    with get_db_connection() as conn:
        return conn.execute("SELECT COUNT(*) FROM customers").fetchone()[0]


def insert_customer(conn, name: str) -> None:
    conn.execute(
        "INSERT INTO customers (company_id, name, created_at) VALUES (?, ?, ?)",
        ("company-1", name, "2024-03-04T00:00:00+00:00"),
    )


class TestTransactions:
    def test_commit_on_success(self, test_db):
        with db_transaction() as conn:
            insert_customer(conn, "Client Co")
        assert count_customers() == 1

    def test_rollback_on_error(self, test_db):
        with pytest.raises(RuntimeError):
            with db_transaction() as conn:
                insert_customer(conn, "Client Co")
                raise RuntimeError("boom")
        assert count_customers() == 0

    def test_connections_are_reused_after_errors(self, test_db):
        for _ in range(20):
            with pytest.raises(sqlite3.IntegrityError):
                with db_transaction() as conn:
                    insert_customer(conn, "Client Co")
                    insert_customer(conn, "Client Co")
        assert count_customers() == 0

    def test_schema_validates(self, test_db):
        with get_db_connection() as conn:
            assert validate_schema(conn) is True

    def test_missing_database_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BILLQ_DB_PATH", str(tmp_path / "absent.db"))
        with pytest.raises(FileNotFoundError):
            with get_db_connection():
                pass


class TestRetryOnDbLock:
    def test_lock_errors_are_recognised(self):
        assert is_lock_error(sqlite3.OperationalError("database is locked"))
        assert not is_lock_error(sqlite3.OperationalError("no such table: x"))
        assert not is_lock_error(sqlite3.IntegrityError("UNIQUE constraint failed"))

    def test_retries_until_success(self):
        calls = []

        @retry_on_db_lock(max_retries=3, base_delay=0, max_delay=0)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise sqlite3.OperationalError("database is locked")
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_gives_up_after_max_retries(self):
        calls = []

        @retry_on_db_lock(max_retries=2, base_delay=0, max_delay=0)
        def always_locked():
            calls.append(1)
            raise sqlite3.OperationalError("database is locked")

        with pytest.raises(sqlite3.OperationalError):
            always_locked()
        assert len(calls) == 3

    def test_other_errors_are_not_retried(self):
        calls = []

        @retry_on_db_lock(max_retries=3, base_delay=0, max_delay=0)
        def broken():
            calls.append(1)
            raise sqlite3.IntegrityError("UNIQUE constraint failed")

        with pytest.raises(sqlite3.IntegrityError):
            broken()
        assert len(calls) == 1
