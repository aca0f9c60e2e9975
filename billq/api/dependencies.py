"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from billq.processing.service import ProcessingService


@lru_cache(maxsize=1)
def get_processing_service() -> ProcessingService:
    """One service per process; tests swap it through app.dependency_overrides."""
    return ProcessingService()
