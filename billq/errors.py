"""
Error taxonomy for the processing pipeline.

Routes map these to HTTP status codes in billq.api.app. UpstreamUnavailable
never leaves the suggestion engine: it is caught there and the heuristic
estimator takes over.
"""

from __future__ import annotations


class BillqError(Exception):
    """Base class for all BillQ errors."""

    status_code: int = 500


class ValidationError(BillqError, ValueError):
    """Bad input shape or range."""

    status_code = 400


class InvalidTransitionError(ValidationError):
    """A time entry state change or edit not allowed from its current state."""


class NotFoundError(BillqError):
    """Referenced activity or entry does not exist."""

    status_code = 404


class AccessDeniedError(BillqError):
    """Caller does not own the referenced record."""

    status_code = 403


class ProcessingInProgressError(BillqError):
    """Another processing run for the same user holds the lease."""

    status_code = 409


class UpstreamUnavailable(BillqError):
    """LLM transport failure, timeout, or unusable output."""

    status_code = 502


class PersistenceError(BillqError):
    """Datastore write failed; the operation had no effect."""

    status_code = 500
