"""
Time entry endpoints.

Processing turns unprocessed activities into entries; the remaining
endpoints are the review surface (list, edit, approve, reject, delete).
Ownership is enforced by the service: another user's entry yields 403.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from pydantic import BaseModel

from billq.api.dependencies import get_processing_service
from billq.api.middleware.user_auth import AuthenticatedUser, get_current_user
from billq.config import API_LIST_LIMIT_DEFAULT, API_LIST_LIMIT_MAX
from billq.errors import BillqError
from billq.observability.logging import get_logger
from billq.processing.service import ProcessingService
from billq.time_entries.models import TimeEntry, TimeEntryStatus

router = APIRouter(prefix="/api/time-entries", tags=["time-entries"])
logger = get_logger(__name__)


# ============================================================================
# Request/Response Models
# ============================================================================


class TimeEntryResponse(BaseModel):
    """API response for a single time entry."""

    id: str
    customer_name: str | None
    project_name: str | None
    category: str
    start_time: str
    end_time: str
    duration_minutes: int
    summary: str
    billable: bool
    status: str
    ai_confidence_percent: int
    decider: str
    source_activity_ids: list[str]
    approved_at: str | None
    created_at: str
    updated_at: str

    @classmethod
    def from_entry(cls, entry: TimeEntry) -> TimeEntryResponse:
        return cls(
            id=entry.id,
            customer_name=entry.customer_name,
            project_name=entry.project_name,
            category=entry.category,
            start_time=entry.start_time.isoformat(),
            end_time=entry.end_time.isoformat(),
            duration_minutes=entry.duration_minutes,
            summary=entry.summary,
            billable=entry.billable,
            status=entry.status,
            ai_confidence_percent=entry.ai_confidence_percent,
            decider=entry.decider,
            source_activity_ids=entry.source_activity_ids,
            approved_at=entry.approved_at.isoformat() if entry.approved_at else None,
            created_at=entry.created_at.isoformat(),
            updated_at=entry.updated_at.isoformat(),
        )


class ProcessResponse(BaseModel):
    entries: list[TimeEntryResponse]
    count: int


class UpdateStatusRequest(BaseModel):
    status: str  # pending_review | approved | rejected


class StatusChangeResponse(BaseModel):
    """Result of a status change; entry is null when a rejection deleted it."""

    id: str
    status: str
    entry: TimeEntryResponse | None


def _status_change(entry_id: str, status: str, entry: TimeEntry | None) -> StatusChangeResponse:
    return StatusChangeResponse(
        id=entry_id,
        status=status,
        entry=TimeEntryResponse.from_entry(entry) if entry else None,
    )


def _list(
    service: ProcessingService,
    user_id: str,
    status: TimeEntryStatus | str | None,
    limit: int,
) -> list[TimeEntryResponse]:
    try:
        entries = service.list_time_entries(user_id, status=status, limit=limit)
    except BillqError:
        raise
    except Exception as e:
        logger.error("Failed to list time entries: %s", e)
        raise HTTPException(status_code=500, detail="Failed to list time entries") from None
    return [TimeEntryResponse.from_entry(e) for e in entries]


# ============================================================================
# Endpoints
# ============================================================================


@router.post("/process", response_model=ProcessResponse)
def process_activities(
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
) -> ProcessResponse:
    """
    Run the pipeline over the user's unprocessed activities.

    Declared sync so the blocking LLM calls run in the threadpool.
    Returns 409 while another run for the same user is in progress.
    """
    try:
        entries = service.process_activities(user.id, user.company_id)
    except BillqError:
        raise
    except Exception as e:
        logger.error("Processing failed for %s: %s", user, e)
        raise HTTPException(status_code=500, detail="Failed to process activities") from None

    return ProcessResponse(
        entries=[TimeEntryResponse.from_entry(e) for e in entries],
        count=len(entries),
    )


@router.get("", response_model=list[TimeEntryResponse])
async def list_time_entries(
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
    status: str | None = Query(None, description="pending_review, approved or rejected"),
    limit: int = Query(API_LIST_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
) -> list[TimeEntryResponse]:
    """List the user's entries, newest first."""
    return _list(service, user.id, status, limit)


@router.get("/pending", response_model=list[TimeEntryResponse])
async def list_pending(
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
    limit: int = Query(API_LIST_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
) -> list[TimeEntryResponse]:
    return _list(service, user.id, TimeEntryStatus.PENDING_REVIEW, limit)


@router.get("/approved", response_model=list[TimeEntryResponse])
async def list_approved(
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
    limit: int = Query(API_LIST_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
) -> list[TimeEntryResponse]:
    return _list(service, user.id, TimeEntryStatus.APPROVED, limit)


@router.patch("/{entry_id}", response_model=TimeEntryResponse)
async def edit_time_entry(
    entry_id: str,
    fields: dict[str, Any] = Body(...),
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
) -> TimeEntryResponse:
    """
    Edit a pending entry's fields (summary, times, customer, ...).

    Approved and rejected entries are read-only; status changes go through
    the status endpoints.
    """
    try:
        entry = service.edit_time_entry(entry_id, fields, user.id)
    except BillqError:
        raise
    except Exception as e:
        logger.error("Failed to edit time entry: %s", e)
        raise HTTPException(status_code=500, detail="Failed to edit time entry") from None

    logger.info("Edited time entry %s", entry_id)
    return TimeEntryResponse.from_entry(entry)


@router.patch("/{entry_id}/approve", response_model=StatusChangeResponse)
async def approve_time_entry(
    entry_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
) -> StatusChangeResponse:
    return await update_time_entry_status(
        entry_id, UpdateStatusRequest(status=TimeEntryStatus.APPROVED.value), user, service
    )


@router.patch("/{entry_id}/reject", response_model=StatusChangeResponse)
async def reject_time_entry(
    entry_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
) -> StatusChangeResponse:
    return await update_time_entry_status(
        entry_id, UpdateStatusRequest(status=TimeEntryStatus.REJECTED.value), user, service
    )


@router.put("/{entry_id}/status", response_model=StatusChangeResponse)
async def update_time_entry_status(
    entry_id: str,
    request: UpdateStatusRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
) -> StatusChangeResponse:
    """
    Move a pending entry to approved or rejected.

    Leaving approved or rejected is not possible (400).
    """
    try:
        entry = service.update_time_entry_status(entry_id, request.status, user.id)
    except BillqError:
        raise
    except Exception as e:
        logger.error("Failed to update time entry status: %s", e)
        raise HTTPException(status_code=500, detail="Failed to update status") from None

    logger.info("Updated time entry %s status to %s", entry_id, request.status)
    return _status_change(entry_id, request.status, entry)


@router.delete("/{entry_id}", status_code=204)
async def delete_time_entry(
    entry_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
) -> Response:
    """Delete a pending or rejected entry. Approved entries are kept."""
    try:
        service.delete_time_entry(entry_id, user.id)
    except BillqError:
        raise
    except Exception as e:
        logger.error("Failed to delete time entry: %s", e)
        raise HTTPException(status_code=500, detail="Failed to delete time entry") from None

    logger.info("Deleted time entry %s", entry_id)
    return Response(status_code=204)
