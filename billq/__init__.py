"""BillQ - turn workplace activity into reviewable billable time entries"""

from __future__ import annotations

__version__ = "1.0.0"


# Lazy imports for the processing facade
def __getattr__(name: str):
    """
    Lazy imports to avoid loading the LLM client when only importing lightweight modules.
    """
    if name == "ProcessingService":
        from billq.processing.service import ProcessingService

        return ProcessingService
    if name in ("Activity", "TimeEntry", "TimeEntryStatus"):
        from billq.activities import models as activity_models
        from billq.time_entries import models as entry_models

        if name == "Activity":
            return activity_models.Activity
        return getattr(entry_models, name)
    raise AttributeError(f"module 'billq' has no attribute {name!r}")


__all__ = ["Activity", "ProcessingService", "TimeEntry", "TimeEntryStatus", "__version__"]
