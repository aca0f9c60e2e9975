"""Liveness and readiness for the BillQ API."""

from __future__ import annotations

import os
import sqlite3
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from billq.config import APP_VERSION
from billq.infrastructure.database import get_db_connection
from billq.infrastructure.database_schema import validate_schema
from billq.observability.logging import get_logger
from billq.observability.telemetry import get_counters, get_latency_stats

router = APIRouter(tags=["health"])
logger = get_logger(__name__)


def _database_ready() -> bool:
    try:
        with get_db_connection() as conn:
            return validate_schema(conn)
    except (FileNotFoundError, ValueError, sqlite3.Error) as e:
        logger.warning("Database not ready: %s", e)
        return False


def _llm_configured() -> bool:
    # Only checks configuration; a missing project degrades suggestions to heuristics
    return bool(os.getenv("GOOGLE_CLOUD_PROJECT")) and os.getenv("BILLQ_USE_LLM", "true").lower() == "true"


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """
    Status is "degraded" only when the database is unusable. The pipeline
    keeps producing (heuristic) entries without the LLM.
    """
    database_ready = _database_ready()
    counters = get_counters()

    return {
        "status": "healthy" if database_ready else "degraded",
        "service": "BillQ API",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "database": {"ready": database_ready},
        "llm": {"configured": _llm_configured()},
        "processing": {
            "entries_created": counters.get("entries.created", 0),
            "llm_fallbacks": counters.get("suggestions.llm_fallback", 0),
            "lease_conflicts": counters.get("processing.lease_conflict", 0),
            "run_latency_ms": get_latency_stats("processing.run.latency"),
        },
    }
