"""
BillQ HTTP API.

Routers:
    /health                      liveness and readiness
    /api/activities              ingestion and unprocessed count
    /api/time-entries            processing and review
    /api/ai-preferences          per-user AI preferences
    /api/customers, /api/projects, /api/directory   company directory

Run locally with the ``billq-api`` console script.
"""

from __future__ import annotations

import os
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from billq.api.routes.activities import router as activities_router
from billq.api.routes.directory import router as directory_router
from billq.api.routes.health import router as health_router
from billq.api.routes.preferences import router as preferences_router
from billq.api.routes.time_entries import router as time_entries_router
from billq.config import APP_VERSION, is_development
from billq.errors import BillqError
from billq.infrastructure.database import init_database
from billq.observability.logging import get_logger
from billq.observability.telemetry import counter, log_event
from billq.utils.error_sanitizer import sanitize_error_message

logger = get_logger(__name__)

LOCAL_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]
IDENTITY_HEADERS = ["X-User-Id", "X-Company-Id", "X-User-Email"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    try:
        init_database()
    except sqlite3.Error as e:
        logger.critical("Database schema error: %s", e)
        raise RuntimeError(f"Database initialization failed: {e}") from e

    log_event("api.startup", version=APP_VERSION)
    yield
    log_event("api.shutdown", version=APP_VERSION)


async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Field names only; echoing the offending values could return activity content
    errors = exc.errors()
    logger.warning("Rejected %d invalid fields on %s", len(errors), request.url.path)
    counter("api.validation_errors")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Invalid request format. Please check your request and try again.",
            "error_count": len(errors),
            "invalid_fields": [str(err["loc"][-1]) for err in errors],
        },
    )


async def _domain_error(request: Request, exc: BillqError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    counter(f"api.errors.{exc.status_code}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": sanitize_error_message(str(exc), exc.status_code)},
    )


def _allowed_origins() -> list[str]:
    origins = [o.strip() for o in os.getenv("BILLQ_ALLOWED_ORIGINS", "").split(",") if o.strip()]
    if is_development():
        origins.extend(LOCAL_ORIGINS)
    return origins


def create_app() -> FastAPI:
    app = FastAPI(title="BillQ API", version=APP_VERSION, lifespan=lifespan)

    app.add_exception_handler(RequestValidationError, _invalid_request)
    app.add_exception_handler(BillqError, _domain_error)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", *IDENTITY_HEADERS],
    )

    for router in (
        health_router,
        activities_router,
        time_entries_router,
        preferences_router,
        directory_router,
    ):
        app.include_router(router)

    @app.get("/")
    def root() -> dict[str, Any]:
        return {
            "service": "BillQ API",
            "version": APP_VERSION,
            "endpoints": {
                "health": "/health",
                "activities": "/api/activities",
                "unprocessed_count": "/api/activities/unprocessed/count",
                "process": "/api/time-entries/process",
                "time_entries": "/api/time-entries",
                "preferences": "/api/ai-preferences",
                "directory": "/api/directory",
            },
        }

    return app


app = create_app()


def main() -> None:
    """Entry point for the billq-api console script."""
    import uvicorn

    from billq.config import API_HOST, API_PORT, LOG_LEVEL

    uvicorn.run("billq.api.app:app", host=API_HOST, port=API_PORT, log_level=LOG_LEVEL.lower())
