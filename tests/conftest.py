"""
Pytest configuration for BillQ tests

Provides a throwaway SQLite database per test, reset telemetry, a fake LLM
completion callable, and builders for activities and suggestions.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import pytest

from billq.activities.models import Activity
from billq.infrastructure.database import init_database, reset_pool
from billq.observability.telemetry import reset_telemetry
from billq.suggestions.models import SuggestionSource, TimeEntrySuggestion


@pytest.fixture(autouse=True)
def _no_live_llm(monkeypatch):
    """Tests never reach Vertex AI unless they inject a completion callable."""
    monkeypatch.setenv("BILLQ_USE_LLM", "false")
    reset_telemetry()
    yield
    reset_telemetry()


@pytest.fixture
def test_db(tmp_path, monkeypatch):
    """Point the connection pool at a fresh database file with the full schema."""
    db_path = tmp_path / "billq_test.db"
    monkeypatch.setenv("BILLQ_DB_PATH", str(db_path))
    reset_pool()
    init_database()
    yield db_path
    reset_pool()


class FakeCompletion:
    """
    Stand-in for billq.llm.retry.call_llm.

    Returns queued responses in order (the last one repeats); an Exception
    instance in the queue is raised instead of returned.
    """

    def __init__(self, *responses: Any):
        self.responses = list(responses) or ["[]"]
        self.prompts: list[str] = []
        self.system_instructions: list[str | None] = []

    def __call__(self, prompt: str, system_instruction: str | None = None, **_: Any) -> str:
        self.prompts.append(prompt)
        self.system_instructions.append(system_instruction)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, list | dict):
            return json.dumps(response)
        return response

    @property
    def calls(self) -> int:
        return len(self.prompts)


@pytest.fixture
def fake_completion() -> Callable[..., FakeCompletion]:
    return FakeCompletion


def make_activity(**overrides: Any) -> Activity:
    data: dict[str, Any] = {
        "id": "act-1",
        "user_id": "user-1",
        "company_id": "company-1",
        "type": "calendar",
        "title": "Client Sync",
        "description": None,
        "start_time": datetime(2024, 3, 4, 15, 0, tzinfo=UTC),
        "participants": [],
        "duration_minutes": 60,
        "source": "google_calendar",
        "content_hash": "hash-1",
    }
    data.update(overrides)
    return Activity(**data)


def make_suggestion(**overrides: Any) -> TimeEntrySuggestion:
    data: dict[str, Any] = {
        "source_activity_id": "act-1",
        "description": "Client sync meeting",
        "duration_minutes": 60,
        "category": "meeting",
        "confidence": 0.9,
        "decider": SuggestionSource.LLM,
    }
    data.update(overrides)
    return TimeEntrySuggestion(**data)


@pytest.fixture
def activity_factory() -> Callable[..., Activity]:
    return make_activity


@pytest.fixture
def suggestion_factory() -> Callable[..., TimeEntrySuggestion]:
    return make_suggestion
