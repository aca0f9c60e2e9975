"""
Tests for call_llm retry behaviour.

The Vertex AI model is replaced with a scripted fake; tenacity's sleep is
disabled so retries run instantly.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from google.api_core.exceptions import InvalidArgument, ResourceExhausted, ServiceUnavailable

import billq.llm.retry as llm_retry
from billq.config import LLM_MAX_RETRIES
from billq.llm.retry import call_llm


class ScriptedModel:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def generate_content(self, prompt, generation_config=None):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(text=outcome)


@pytest.fixture
def use_model(monkeypatch):
    monkeypatch.setattr(call_llm.retry, "sleep", lambda _seconds: None)

    def _use(model):
        monkeypatch.setattr(llm_retry, "get_gemini_model", lambda system_instruction=None: model)
        return model

    return _use


def test_returns_model_text(use_model):
    model = use_model(ScriptedModel('[{"description": "x"}]'))
    assert call_llm("prompt") == '[{"description": "x"}]'
    assert model.calls == 1


def test_retries_service_unavailable(use_model):
    model = use_model(ScriptedModel(ServiceUnavailable("down"), "[]"))

    assert call_llm("prompt") == "[]"
    assert model.calls == 2


def test_rate_limit_exhausts_attempts(use_model):
    model = use_model(ScriptedModel(ResourceExhausted("quota")))

    with pytest.raises(OSError, match="rate limited"):
        call_llm("prompt")
    assert model.calls == LLM_MAX_RETRIES


def test_bad_request_is_not_retried(use_model):
    model = use_model(ScriptedModel(InvalidArgument("bad prompt")))

    with pytest.raises(InvalidArgument):
        call_llm("prompt")
    assert model.calls == 1
