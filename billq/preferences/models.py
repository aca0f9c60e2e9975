"""
AI preference models.

Defaults: threshold 80, standard descriptions, no auto-approval, only
opened emails, promotional content skipped, raw content deleted after
processing, structured data kept indefinitely.
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from billq.activities.models import parse_dt, utc_now
from billq.config import DEFAULT_CONFIDENCE_THRESHOLD
from billq.utils.email import extract_email_address

# Never writable through an update payload
IMMUTABLE_FIELDS = frozenset({"id", "user_id", "company_id", "created_at", "updated_at"})


class DescriptionLength(str, Enum):
    BRIEF = "brief"
    STANDARD = "standard"
    DETAILED = "detailed"


def _normalize_domains(values: list[str]) -> list[str]:
    return [v.strip().lower().lstrip("@") for v in values if v and v.strip()]


def _normalize_addresses(values: list[str]) -> list[str]:
    return [extract_email_address(v) for v in values if v and v.strip()]


def _parse_threshold(value: Any) -> Any:
    # Form posts send the threshold as text; bools are not thresholds
    if isinstance(value, bool):
        raise ValueError("confidence_threshold must be an integer")
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            raise ValueError("confidence_threshold must be an integer") from None
    return value


class RetentionPolicy(BaseModel):
    """retention_days = -1 keeps raw content indefinitely (unless deleted after processing)."""

    model_config = ConfigDict(extra="forbid")

    delete_raw_after_processing: bool = True
    retention_days: int = Field(default=-1, ge=-1)


class AIPreferences(BaseModel):
    """Per-user AI processing policy, created with defaults on first read."""

    model_config = ConfigDict(use_enum_values=True)

    user_id: str
    company_id: str
    confidence_threshold: int = Field(default=DEFAULT_CONFIDENCE_THRESHOLD, ge=0, le=100)
    description_length: DescriptionLength = DescriptionLength.STANDARD
    auto_approve_enabled: bool = False
    only_opened_emails: bool = True
    skip_promotional: bool = True
    domain_filter_enabled: bool = False
    allowed_domains: list[str] = Field(default_factory=list)
    participant_filter_enabled: bool = False
    allowed_participants: list[str] = Field(default_factory=list)
    retention_policy: RetentionPolicy = Field(default_factory=RetentionPolicy)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("allowed_domains")
    @classmethod
    def normalize_domains(cls, v: list[str]) -> list[str]:
        return _normalize_domains(v)

    @field_validator("allowed_participants")
    @classmethod
    def normalize_participants(cls, v: list[str]) -> list[str]:
        return _normalize_addresses(v)

    def to_db_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "company_id": self.company_id,
            "confidence_threshold": self.confidence_threshold,
            "description_length": self.description_length,
            "auto_approve_enabled": int(self.auto_approve_enabled),
            "only_opened_emails": int(self.only_opened_emails),
            "skip_promotional": int(self.skip_promotional),
            "domain_filter_enabled": int(self.domain_filter_enabled),
            "allowed_domains": json.dumps(self.allowed_domains),
            "participant_filter_enabled": int(self.participant_filter_enabled),
            "allowed_participants": json.dumps(self.allowed_participants),
            "delete_raw_after_processing": int(
                self.retention_policy.delete_raw_after_processing
            ),
            "retention_days": self.retention_policy.retention_days,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> AIPreferences:
        return cls(
            user_id=row["user_id"],
            company_id=row["company_id"],
            confidence_threshold=row["confidence_threshold"],
            description_length=DescriptionLength(row["description_length"]),
            auto_approve_enabled=bool(row["auto_approve_enabled"]),
            only_opened_emails=bool(row["only_opened_emails"]),
            skip_promotional=bool(row["skip_promotional"]),
            domain_filter_enabled=bool(row["domain_filter_enabled"]),
            allowed_domains=json.loads(row["allowed_domains"] or "[]"),
            participant_filter_enabled=bool(row["participant_filter_enabled"]),
            allowed_participants=json.loads(row["allowed_participants"] or "[]"),
            retention_policy=RetentionPolicy(
                delete_raw_after_processing=bool(row["delete_raw_after_processing"]),
                retention_days=row["retention_days"],
            ),
            created_at=parse_dt(row["created_at"]),
            updated_at=parse_dt(row["updated_at"]),
        )


class PreferencesUpdate(BaseModel):
    """
    Partial update payload. Unknown fields are rejected; immutable fields are
    stripped by the repository before validation.
    """

    model_config = ConfigDict(extra="forbid", use_enum_values=True)

    confidence_threshold: int | None = Field(default=None, ge=0, le=100)
    description_length: DescriptionLength | None = None
    auto_approve_enabled: bool | None = None
    only_opened_emails: bool | None = None
    skip_promotional: bool | None = None
    domain_filter_enabled: bool | None = None
    allowed_domains: list[str] | None = None
    participant_filter_enabled: bool | None = None
    allowed_participants: list[str] | None = None
    retention_policy: RetentionPolicy | None = None

    @field_validator("confidence_threshold", mode="before")
    @classmethod
    def parse_threshold(cls, v: Any) -> Any:
        return _parse_threshold(v)
