"""
Known customers and projects of the caller's company.

The rule-based matcher reads this directory on every processing run.
Saving an existing name updates it in place.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from billq.api.dependencies import get_processing_service
from billq.api.middleware.user_auth import AuthenticatedUser, get_current_user
from billq.errors import BillqError
from billq.matching.models import KnownCustomer, KnownProject
from billq.observability.logging import get_logger
from billq.processing.service import ProcessingService

router = APIRouter(prefix="/api", tags=["directory"])
logger = get_logger(__name__)


class DirectoryResponse(BaseModel):
    customers: list[KnownCustomer]
    projects: list[KnownProject]


@router.post("/customers", response_model=KnownCustomer, status_code=201)
async def add_customer(
    customer: KnownCustomer,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
) -> KnownCustomer:
    try:
        return service.add_customer(user.company_id, customer)
    except BillqError:
        raise
    except Exception as e:
        logger.error("Failed to add customer: %s", e)
        raise HTTPException(status_code=500, detail="Failed to add customer") from None


@router.post("/projects", response_model=KnownProject, status_code=201)
async def add_project(
    project: KnownProject,
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
) -> KnownProject:
    try:
        return service.add_project(user.company_id, project)
    except BillqError:
        raise
    except Exception as e:
        logger.error("Failed to add project: %s", e)
        raise HTTPException(status_code=500, detail="Failed to add project") from None


@router.get("/directory", response_model=DirectoryResponse)
async def list_directory(
    user: AuthenticatedUser = Depends(get_current_user),
    service: ProcessingService = Depends(get_processing_service),
) -> DirectoryResponse:
    try:
        customers, projects = service.list_directory(user.company_id)
    except Exception as e:
        logger.error("Failed to list directory: %s", e)
        raise HTTPException(status_code=500, detail="Failed to list directory") from None
    return DirectoryResponse(customers=customers, projects=projects)
