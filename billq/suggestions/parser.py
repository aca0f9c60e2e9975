"""
LLM response parsing.

The model is asked for a JSON array but may wrap it in code fences or prose.
extract_json() finds the first well-formed JSON array or object;
parse_suggestion() validates it against a strict schema and raises
UpstreamUnavailable on anything missing or mistyped, so the engine falls
back instead of trusting a partial answer.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictInt, StrictStr
from pydantic import ValidationError as SchemaValidationError
from pydantic import field_validator

from billq.errors import UpstreamUnavailable

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)
_DECODER = json.JSONDecoder()

MAX_DURATION_MINUTES = 24 * 60


class LLMSuggestionSchema(BaseModel):
    """One suggestion as the model must return it."""

    model_config = ConfigDict(extra="ignore")

    description: StrictStr = Field(min_length=1)
    duration_minutes: StrictInt = Field(
        ge=1,
        le=MAX_DURATION_MINUTES,
        validation_alias=AliasChoices("duration_minutes", "durationMinutes"),
    )
    category: StrictStr = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)
    customer_name: StrictStr | None = Field(
        default=None,
        validation_alias=AliasChoices("customer_name", "customerName"),
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def confidence_is_number(cls, v: Any) -> Any:
        if isinstance(v, bool) or not isinstance(v, int | float):
            raise ValueError("confidence must be a number")
        return v

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("description cannot be blank")
        return v.strip()


def extract_json(text: str) -> Any:
    """
    Return the first well-formed JSON array or object in `text`.

    Raises:
        UpstreamUnavailable: No JSON array/object could be decoded
    """
    if not text or not text.strip():
        raise UpstreamUnavailable("empty LLM response")

    cleaned = _FENCE_RE.sub("", text.strip())
    for index, char in enumerate(cleaned):
        if char not in "[{":
            continue
        try:
            value, _ = _DECODER.raw_decode(cleaned, index)
        except json.JSONDecodeError:
            continue
        return value

    raise UpstreamUnavailable("no JSON found in LLM response")


def parse_suggestion(text: str) -> LLMSuggestionSchema | None:
    """
    Parse the model's answer for one activity.

    Returns:
        The validated suggestion, or None when the model returned an empty
        array (the activity is not billable work)

    Raises:
        UpstreamUnavailable: Malformed JSON or a schema violation
    """
    data = extract_json(text)

    if isinstance(data, list):
        if not data:
            return None
        data = data[0]

    if not isinstance(data, dict):
        raise UpstreamUnavailable("LLM response is not a JSON object")

    try:
        return LLMSuggestionSchema.model_validate(data)
    except SchemaValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise UpstreamUnavailable(f"invalid LLM suggestion: {field}: {error['msg']}") from None
