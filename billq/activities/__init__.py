"""
Activities - normalized workplace events awaiting classification.
"""

from billq.activities.models import Activity, ActivityCreate, ActivityType
from billq.activities.normalizer import normalize_payload, should_ingest_email
from billq.activities.repository import ActivityRepository

__all__ = [
    "Activity",
    "ActivityCreate",
    "ActivityRepository",
    "ActivityType",
    "normalize_payload",
    "should_ingest_email",
]
