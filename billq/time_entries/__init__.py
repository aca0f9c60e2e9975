"""
Time entries - the durable, user-reviewed output of processing.
"""

from billq.time_entries.lifecycle import TimeEntryLifecycleManager
from billq.time_entries.models import TimeEntry, TimeEntryEdit, TimeEntryStatus
from billq.time_entries.repository import TimeEntryRepository

__all__ = [
    "TimeEntry",
    "TimeEntryEdit",
    "TimeEntryLifecycleManager",
    "TimeEntryRepository",
    "TimeEntryStatus",
]
