"""
Activity ingestion endpoints.

Connectors post raw payloads from one source at a time; the service
normalizes, deduplicates and stores them for the next processing run.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator

from billq.activities.models import Activity
from billq.api.dependencies import get_processing_service
from billq.api.middleware.user_auth import AuthenticatedUser, get_current_user
from billq.config import API_BATCH_SIZE_MAX
from billq.errors import BillqError
from billq.observability.logging import get_logger
from billq.processing.service import ProcessingService

router = APIRouter(prefix="/api/activities", tags=["activities"])
logger = get_logger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================


class IngestActivitiesRequest(BaseModel):
    """A batch of raw payloads from a single source (e.g. "google_calendar")."""

    source: str
    activities: list[dict[str, Any]] = Field(max_length=API_BATCH_SIZE_MAX)

    @field_validator("source")
    @classmethod
    def source_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("source cannot be empty")
        return v.strip()


class ActivityResponse(BaseModel):
    id: str
    type: str
    title: str
    start_time: str
    end_time: str | None
    duration_minutes: int | None
    participants: list[str]
    source: str
    processed: bool

    @classmethod
    def from_activity(cls, activity: Activity) -> ActivityResponse:
        return cls(
            id=activity.id,
            type=activity.type,
            title=activity.title,
            start_time=activity.start_time.isoformat(),
            end_time=activity.end_time.isoformat() if activity.end_time else None,
            duration_minutes=activity.duration_minutes,
            participants=activity.participants,
            source=activity.source,
            processed=activity.processed,
        )


class RejectedPayload(BaseModel):
    index: int
    error: str


class IngestActivitiesResponse(BaseModel):
    created: list[ActivityResponse]
    duplicates: int
    filtered: int
    rejected: list[RejectedPayload]


class UnprocessedCountResponse(BaseModel):
    count: int


# ============================================================================
# Endpoints
# ============================================================================


@router.post("", response_model=IngestActivitiesResponse, status_code=201)
async def ingest_activities(
    request: IngestActivitiesRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
) -> IngestActivitiesResponse:
    """
    Store a batch of activities for the authenticated user.

    Invalid payloads are reported by index; the rest of the batch is kept.
    """
    try:
        result = service.ingest_activities(
            user_id=user.id,
            company_id=user.company_id,
            source=request.source,
            payloads=request.activities,
            user_email=user.email,
        )
    except BillqError:
        raise
    except Exception as e:
        logger.error("Failed to ingest activities: %s", e)
        raise HTTPException(status_code=500, detail="Failed to ingest activities") from None

    return IngestActivitiesResponse(
        created=[ActivityResponse.from_activity(a) for a in result.created],
        duplicates=result.duplicates,
        filtered=result.filtered,
        rejected=[RejectedPayload(**r) for r in result.rejected],
    )


@router.get("/unprocessed/count", response_model=UnprocessedCountResponse)
async def count_unprocessed(
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
) -> UnprocessedCountResponse:
    """Number of the user's activities waiting for the next processing run."""
    try:
        return UnprocessedCountResponse(count=service.count_unprocessed(user.id))
    except Exception as e:
        logger.error("Failed to count unprocessed activities: %s", e)
        raise HTTPException(status_code=500, detail="Failed to count activities") from None
