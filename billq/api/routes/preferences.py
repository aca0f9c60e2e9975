"""
AI preferences endpoints.

GET creates the defaults on first read; PATCH applies a validated partial
update (unknown fields are rejected, identity fields are ignored).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel

from billq.api.dependencies import get_processing_service
from billq.api.middleware.user_auth import AuthenticatedUser, get_current_user
from billq.errors import BillqError
from billq.observability.logging import get_logger
from billq.preferences.models import AIPreferences
from billq.processing.service import ProcessingService

router = APIRouter(prefix="/api/ai-preferences", tags=["preferences"])
logger = get_logger(__name__)


class RetentionPolicyResponse(BaseModel):
    delete_raw_after_processing: bool
    retention_days: int


class PreferencesResponse(BaseModel):
    confidence_threshold: int
    description_length: str
    auto_approve_enabled: bool
    only_opened_emails: bool
    skip_promotional: bool
    domain_filter_enabled: bool
    allowed_domains: list[str]
    participant_filter_enabled: bool
    allowed_participants: list[str]
    retention_policy: RetentionPolicyResponse
    updated_at: str

    @classmethod
    def from_preferences(cls, prefs: AIPreferences) -> PreferencesResponse:
        return cls(
            confidence_threshold=prefs.confidence_threshold,
            description_length=prefs.description_length,
            auto_approve_enabled=prefs.auto_approve_enabled,
            only_opened_emails=prefs.only_opened_emails,
            skip_promotional=prefs.skip_promotional,
            domain_filter_enabled=prefs.domain_filter_enabled,
            allowed_domains=prefs.allowed_domains,
            participant_filter_enabled=prefs.participant_filter_enabled,
            allowed_participants=prefs.allowed_participants,
            retention_policy=RetentionPolicyResponse(
                **prefs.retention_policy.model_dump()
            ),
            updated_at=prefs.updated_at.isoformat(),
        )


@router.get("", response_model=PreferencesResponse)
async def get_preferences(
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
) -> PreferencesResponse:
    try:
        prefs = service.get_preferences(user.id, user.company_id)
    except BillqError:
        raise
    except Exception as e:
        logger.error("Failed to load preferences: %s", e)
        raise HTTPException(status_code=500, detail="Failed to load preferences") from None
    return PreferencesResponse.from_preferences(prefs)


@router.patch("", response_model=PreferencesResponse)
async def update_preferences(
    fields: dict[str, Any] = Body(...),
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
) -> PreferencesResponse:
    """
    Update preferences.

    confidence_threshold must be an integer in [0, 100] (integer strings
    are accepted); description_length one of brief, standard, detailed.
    """
    try:
        prefs = service.update_preferences(user.id, user.company_id, fields)
    except BillqError:
        raise
    except Exception as e:
        logger.error("Failed to update preferences: %s", e)
        raise HTTPException(status_code=500, detail="Failed to update preferences") from None

    logger.info("Updated preferences for %s", user)
    return PreferencesResponse.from_preferences(prefs)
