"""
Activity domain models.

An Activity is one normalized workplace event (calendar event, email,
document session). It is created unprocessed, flipped to processed exactly
once when its time entry (if any) is persisted, and only ever loses its
free-text fields to the retention enforcer.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def parse_dt(val: str | None) -> datetime | None:
    if val is None:
        return None
    parsed = datetime.fromisoformat(val)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class ActivityType(str, Enum):
    """Kind of workplace event."""

    CALENDAR = "calendar"
    EMAIL = "email"
    DOCUMENT = "document"


class ActivityCreate(BaseModel):
    """
    Normalizer output: a canonical activity not yet stored.

    start_time_inferred is True when the payload carried no start time and
    ingestion time was substituted; the fingerprint then ignores start_time
    so a re-sync of the same payload still deduplicates.
    """

    model_config = ConfigDict(use_enum_values=True)

    type: ActivityType
    title: str
    description: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    participants: list[str] = Field(default_factory=list)
    duration_minutes: int | None = Field(default=None, ge=1)
    source: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    raw_payload: dict[str, Any] | None = None
    start_time_inferred: bool = False

    @field_validator("title", "source")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("cannot be empty")
        return v.strip()


class Activity(BaseModel):
    """A stored activity owned by one user."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    user_id: str
    company_id: str
    type: ActivityType
    title: str
    description: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    participants: list[str] = Field(default_factory=list)
    duration_minutes: int | None = None
    source: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    raw_payload: dict[str, Any] | None = None
    content_hash: str
    processed: bool = False
    processed_at: datetime | None = None
    raw_purged_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)

    def content_text(self) -> str:
        """Free text used for keyword matching and length-based estimates."""
        return self.description or self.title

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to dict for database storage."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "company_id": self.company_id,
            "type": self.type if isinstance(self.type, str) else self.type.value,
            "title": self.title,
            "description": self.description,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "participants": json.dumps(self.participants),
            "duration_minutes": self.duration_minutes,
            "source": self.source,
            "metadata": json.dumps(self.metadata),
            "raw_payload": json.dumps(self.raw_payload) if self.raw_payload is not None else None,
            "content_hash": self.content_hash,
            "processed": int(self.processed),
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "raw_purged_at": self.raw_purged_at.isoformat() if self.raw_purged_at else None,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> Activity:
        """Create Activity from database row."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            company_id=row["company_id"],
            type=ActivityType(row["type"]),
            title=row["title"],
            description=row.get("description"),
            start_time=parse_dt(row["start_time"]),
            end_time=parse_dt(row.get("end_time")),
            participants=json.loads(row["participants"]) if row.get("participants") else [],
            duration_minutes=row.get("duration_minutes"),
            source=row["source"],
            metadata=json.loads(row["metadata"]) if row.get("metadata") else {},
            raw_payload=json.loads(row["raw_payload"]) if row.get("raw_payload") else None,
            content_hash=row["content_hash"],
            processed=bool(row["processed"]),
            processed_at=parse_dt(row.get("processed_at")),
            raw_purged_at=parse_dt(row.get("raw_purged_at")),
            created_at=parse_dt(row["created_at"]),
        )
