"""
Time entry domain models.

Status moves forward only:

    pending_review -> approved   (approved_at set)
    pending_review -> rejected   (or the entry is deleted)

Edits are allowed only while pending_review.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from billq.activities.models import parse_dt, utc_now


class TimeEntryStatus(str, Enum):
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class TimeEntry(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    # Identity
    id: str
    user_id: str
    company_id: str

    customer_name: str | None = None
    project_name: str | None = None
    category: str
    start_time: datetime
    end_time: datetime
    summary: str
    billable: bool = True
    status: TimeEntryStatus = TimeEntryStatus.PENDING_REVIEW
    ai_confidence_percent: int = Field(default=0, ge=0, le=100)
    decider: str = "llm"
    source_activity_ids: list[str] = Field(default_factory=list)
    approved_at: datetime | None = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def approved_requires_timestamp(self) -> TimeEntry:
        if self.status == TimeEntryStatus.APPROVED.value and self.approved_at is None:
            raise ValueError("approved entries must have approved_at")
        if self.end_time < self.start_time:
            raise ValueError("end_time is before start_time")
        return self

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    def to_db_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "company_id": self.company_id,
            "customer_name": self.customer_name,
            "project_name": self.project_name,
            "category": self.category,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "summary": self.summary,
            "billable": int(self.billable),
            "status": self.status,
            "ai_confidence_percent": self.ai_confidence_percent,
            "decider": self.decider,
            "source_activity_ids": json.dumps(self.source_activity_ids),
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> TimeEntry:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            company_id=row["company_id"],
            customer_name=row.get("customer_name"),
            project_name=row.get("project_name"),
            category=row["category"],
            start_time=parse_dt(row["start_time"]),
            end_time=parse_dt(row["end_time"]),
            summary=row["summary"],
            billable=bool(row["billable"]),
            status=TimeEntryStatus(row["status"]),
            ai_confidence_percent=row["ai_confidence_percent"],
            decider=row.get("decider") or "llm",
            source_activity_ids=json.loads(row["source_activity_ids"] or "[]"),
            approved_at=parse_dt(row.get("approved_at")),
            created_at=parse_dt(row["created_at"]),
            updated_at=parse_dt(row["updated_at"]),
        )


class TimeEntryEdit(BaseModel):
    """
    Fields a reviewer may change on a pending entry.

    Unknown fields are rejected; status changes go through the status
    operations, not through edits.
    """

    model_config = ConfigDict(extra="forbid")

    customer_name: str | None = None
    project_name: str | None = None
    category: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    summary: str | None = None
    billable: bool | None = None

    @field_validator("summary", "category")
    @classmethod
    def not_blank(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            raise ValueError("cannot be blank")
        return v.strip() if v is not None else None

    @field_validator("start_time", "end_time")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v
