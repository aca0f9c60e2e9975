"""
Per-user processing lease.

At most one processing run per user at a time: two runs would both read the
same unprocessed activities. Leases live in a TTLCache, so a run that dies
without releasing its lease blocks that user for at most the TTL. Long runs
call renew() between units of work to keep their lease alive. Runs for
different users never contend.

Usage:
    with user_leases.hold(user_id) as token:
        for activity in ...:
            user_leases.renew(user_id, token)
            ...  # suggest -> filter -> persist -> mark processed
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from cachetools import TTLCache

from billq.config import PROCESSING_LEASE_MAX_USERS, PROCESSING_LEASE_TTL_SECONDS
from billq.errors import ProcessingInProgressError
from billq.observability.logging import get_logger
from billq.observability.telemetry import counter

logger = get_logger(__name__)


class UserLeaseRegistry:
    def __init__(
        self,
        ttl_seconds: float = PROCESSING_LEASE_TTL_SECONDS,
        max_users: int = PROCESSING_LEASE_MAX_USERS,
    ):
        self._leases: TTLCache[str, str] = TTLCache(maxsize=max_users, ttl=ttl_seconds)
        self._lock = threading.Lock()

    def acquire(self, user_id: str) -> str | None:
        """Return a lease token, or None if the user already holds a live lease."""
        with self._lock:
            if user_id in self._leases:
                return None
            token = uuid.uuid4().hex
            self._leases[user_id] = token
            return token

    def renew(self, user_id: str, token: str) -> bool:
        """
        Restart the TTL of a lease still owned by `token`.

        An expired lease nobody else claimed is taken back. Returns False once
        another run holds the lease.
        """
        with self._lock:
            current = self._leases.get(user_id)
            if current not in (None, token):
                return False
            self._leases[user_id] = token
            return True

    def release(self, user_id: str, token: str) -> None:
        """Release only if `token` still owns the lease (an expired one may have been re-granted)."""
        with self._lock:
            if self._leases.get(user_id) == token:
                del self._leases[user_id]

    def is_held(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._leases

    @contextmanager
    def hold(self, user_id: str) -> Iterator[str]:
        """
        Raises:
            ProcessingInProgressError: Another run for this user is active
        """
        token = self.acquire(user_id)
        if token is None:
            counter("processing.lease_conflict")
            logger.info("Processing already running for user %s", user_id)
            raise ProcessingInProgressError("processing is already running for this user")
        try:
            yield token
        finally:
            self.release(user_id, token)


user_leases = UserLeaseRegistry()
