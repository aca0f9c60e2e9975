"""
Suggestion models.

A TimeEntrySuggestion is ephemeral: the engine returns it, the policy
filter judges it, and only the lifecycle manager turns it into a stored
TimeEntry.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SuggestionSource(str, Enum):
    """Which stage produced the suggestion."""

    RULES = "rules"
    LLM = "llm"
    HEURISTIC = "heuristic"


class ExclusionKind(str, Enum):
    PROMOTIONAL = "promotional"
    PERSONAL = "personal"


class TimeEntrySuggestion(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    source_activity_id: str
    description: str = Field(min_length=1)
    duration_minutes: int = Field(ge=1)
    category: str
    confidence: float = Field(ge=0.0, le=1.0)
    decider: SuggestionSource
    customer_name: str | None = None
    project_name: str | None = None
    exclusion: ExclusionKind | None = None
    reason: str = ""

    @property
    def confidence_percent(self) -> int:
        return max(0, min(100, round(self.confidence * 100)))
