"""SQLite access for BillQ.

One database file holds activities, time entries, preferences and the
customer/project directory: billq/data/billq.db, or BILLQ_DB_PATH.

Connections are opened in autocommit mode and handed out by a small
bounded pool. Reads use get_db_connection(); writes go through
db_transaction(), which takes the write lock up front with BEGIN IMMEDIATE
so two writers never deadlock upgrading a read lock. Writers that still
hit "database is locked" are retried by @retry_on_db_lock().
"""

from __future__ import annotations

import atexit
import os
import sqlite3
import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from queue import Empty, LifoQueue
from typing import Any, TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from billq.config import (
    DB_CONNECT_TIMEOUT,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
    DB_RETRY_BASE_DELAY,
    DB_RETRY_MAX,
    DB_RETRY_MAX_DELAY,
)
from billq.observability.logging import get_logger
from billq.observability.telemetry import counter

F = TypeVar("F", bound=Callable[..., Any])

DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "data" / "billq.db"

logger = get_logger(__name__)


def is_lock_error(error: BaseException) -> bool:
    """SQLITE_BUSY / "database is locked": retried by callers, never wrapped."""
    if not isinstance(error, sqlite3.OperationalError):
        return False
    message = str(error).lower()
    return "locked" in message or "busy" in message


def _log_lock_retry(state: RetryCallState) -> None:
    counter("database.lock_retry")
    logger.warning(
        "Database locked in %s (attempt %d), retrying in %.2fs",
        getattr(state.fn, "__qualname__", state.fn),
        state.attempt_number,
        state.next_action.sleep if state.next_action else 0.0,
    )


def retry_on_db_lock(
    max_retries: int = DB_RETRY_MAX,
    base_delay: float = DB_RETRY_BASE_DELAY,
    max_delay: float = DB_RETRY_MAX_DELAY,
) -> Callable[[F], F]:
    """
    Retry a write on lock contention with jittered exponential backoff.

    Usage:
        @retry_on_db_lock()
        def save(...):
            with db_transaction() as conn:
                conn.execute("INSERT INTO ...")

    Any other sqlite3 error propagates on the first attempt.
    """
    return retry(
        retry=retry_if_exception(is_lock_error),
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential_jitter(initial=base_delay, max=max_delay),
        before_sleep=_log_lock_retry,
        reraise=True,
    )


class ConnectionPool:
    """
    Up to `size` connections, created on demand and reused LIFO.

    A caller that finds every connection checked out waits up to `timeout`
    seconds for one to come back.
    """

    def __init__(self, db_path: Path, size: int = DB_POOL_SIZE, timeout: float = DB_POOL_TIMEOUT):
        self.db_path = db_path
        self.size = size
        self.timeout = timeout
        self._idle: LifoQueue[sqlite3.Connection] = LifoQueue(maxsize=size)
        self._opened = 0
        self._lock = threading.Lock()
        self._closed = False

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=DB_CONNECT_TIMEOUT,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def acquire(self) -> sqlite3.Connection:
        if self._closed:
            raise RuntimeError("connection pool is closed")

        try:
            return self._idle.get_nowait()
        except Empty:
            pass

        with self._lock:
            can_open = self._opened < self.size
            if can_open:
                self._opened += 1
        if can_open:
            try:
                return self._connect()
            except sqlite3.Error:
                with self._lock:
                    self._opened -= 1
                raise

        try:
            return self._idle.get(timeout=self.timeout)
        except Empty:
            counter("database.pool_exhausted")
            raise RuntimeError(
                f"no database connection available within {self.timeout}s (pool size {self.size})"
            ) from None

    def release(self, conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.rollback()
        if self._closed:
            conn.close()
            return
        self._idle.put_nowait(conn)

    def close(self) -> None:
        self._closed = True
        while True:
            try:
                self._idle.get_nowait().close()
            except Empty:
                break


def get_db_path() -> Path:
    """BILLQ_DB_PATH if set (read per call so tests can redirect it)."""
    if env_path := os.getenv("BILLQ_DB_PATH"):
        return Path(env_path)
    return DEFAULT_DB_PATH


@lru_cache(maxsize=1)
def get_pool() -> ConnectionPool:
    pool = ConnectionPool(get_db_path())
    atexit.register(pool.close)
    return pool


def reset_pool() -> None:
    """Close the current pool; the next access opens one against get_db_path()."""
    if get_pool.cache_info().currsize:
        get_pool().close()
    get_pool.cache_clear()


@contextmanager
def get_db_connection() -> Generator[sqlite3.Connection, None, None]:
    """
    Borrow a pooled connection for reads.

    Raises:
        FileNotFoundError: The database has not been initialised
    """
    if not get_db_path().exists():
        raise FileNotFoundError(f"Database not found: {get_db_path()} (run init_database() first)")

    pool = get_pool()
    conn = pool.acquire()
    try:
        yield conn
    finally:
        pool.release(conn)


@contextmanager
def db_transaction() -> Generator[sqlite3.Connection, None, None]:
    """
    BEGIN IMMEDIATE ... COMMIT, rolled back if the block raises.

    Usage:
        with db_transaction() as conn:
            conn.execute("UPDATE activities ...")
            conn.execute("INSERT INTO time_entries ...")
    """
    with get_db_connection() as conn:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()


def init_database() -> None:
    """Create the schema if missing (idempotent)."""
    from billq.infrastructure.database_schema import create_schema

    create_schema(get_db_path())
