"""
Concurrency tests for the processing pipeline.

Validates:
1. A second run for the same user is refused while the first holds the lease
2. Runs for different users proceed in parallel
3. Concurrent ingestion of one payload stores a single activity
4. A run whose lease was taken over stops before the next activity
"""

from __future__ import annotations

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from billq.errors import ProcessingInProgressError
from billq.infrastructure.locks import UserLeaseRegistry
from billq.processing.service import ProcessingService
from billq.suggestions.engine import SuggestionEngine

ANSWER = json.dumps(
    [{"description": "Drafted report", "duration_minutes": 30, "category": "documentation", "confidence": 0.7}]
)
REPORT = {"title": "Quarterly report", "type": "document", "start_time": "2024-03-04T09:00:00Z"}


class BlockingCompletion:
    """Completion that parks the first call until released."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()

    def __call__(self, prompt, system_instruction=None, **_):
        self.started.set()
        assert self.release.wait(timeout=10)
        return ANSWER


def test_same_user_run_is_refused_while_first_is_active(test_db):
    completion = BlockingCompletion()
    service = ProcessingService(
        engine=SuggestionEngine(complete=completion, use_llm=True),
        leases=UserLeaseRegistry(),
    )
    service.ingest_activities("user-1", "company-1", "drive", [REPORT])

    with ThreadPoolExecutor(max_workers=1) as pool:
        first = pool.submit(service.process_activities, "user-1", "company-1")
        assert completion.started.wait(timeout=10)

        with pytest.raises(ProcessingInProgressError):
            service.process_activities("user-1", "company-1")

        completion.release.set()
        entries = first.result(timeout=10)

    assert len(entries) == 1
    assert len(service.list_time_entries("user-1")) == 1
    assert service.leases.is_held("user-1") is False


def test_different_users_run_in_parallel(test_db, fake_completion):
    service = ProcessingService(
        engine=SuggestionEngine(complete=fake_completion(ANSWER), use_llm=True),
        leases=UserLeaseRegistry(),
    )
    users = [f"user-{i}" for i in range(4)]
    for user_id in users:
        service.ingest_activities(user_id, "company-1", "drive", [REPORT])

    with ThreadPoolExecutor(max_workers=len(users)) as pool:
        results = list(pool.map(lambda u: service.process_activities(u, "company-1"), users))

    assert [len(entries) for entries in results] == [1, 1, 1, 1]
    for user_id in users:
        assert service.count_unprocessed(user_id) == 0


def test_concurrent_ingestion_stores_one_activity(test_db):
    service = ProcessingService(engine=SuggestionEngine(use_llm=False), leases=UserLeaseRegistry())
    # Create preferences up front so the threads only race on the activity insert
    service.get_preferences("user-1", "company-1")

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(
            pool.map(
                lambda _: service.ingest_activities("user-1", "company-1", "drive", [REPORT]),
                range(8),
            )
        )

    assert sum(len(r.created) for r in results) == 1
    assert sum(r.duplicates for r in results) == 7
    assert service.count_unprocessed("user-1") == 1


class SlowCompletion:
    """Completion that outlives the lease TTL, optionally letting another run take the lease."""

    def __init__(self, leases: UserLeaseRegistry, takeover: bool):
        self.leases = leases
        self.takeover = takeover
        self.calls = 0

    def __call__(self, prompt, system_instruction=None, **_):
        self.calls += 1
        time.sleep(0.1)
        if self.takeover:
            assert self.leases.acquire("user-1") is not None
        return ANSWER


@pytest.mark.parametrize("takeover, expected_entries", [(False, 2), (True, 1)])
def test_lease_renewed_between_activities(test_db, takeover, expected_entries):
    leases = UserLeaseRegistry(ttl_seconds=0.05)
    completion = SlowCompletion(leases, takeover)
    service = ProcessingService(
        engine=SuggestionEngine(complete=completion, use_llm=True), leases=leases
    )
    notes = {**REPORT, "title": "Design notes", "start_time": "2024-03-04T11:00:00Z"}
    service.ingest_activities("user-1", "company-1", "drive", [REPORT, notes])

    entries = service.process_activities("user-1", "company-1")

    assert len(entries) == expected_entries
    assert completion.calls == expected_entries
    assert service.count_unprocessed("user-1") == 2 - expected_entries
