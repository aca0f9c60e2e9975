"""
Preferences - per-user AI processing policy.
"""

from billq.preferences.models import (
    AIPreferences,
    DescriptionLength,
    PreferencesUpdate,
    RetentionPolicy,
)
from billq.preferences.repository import PreferencesRepository

__all__ = [
    "AIPreferences",
    "DescriptionLength",
    "PreferencesRepository",
    "PreferencesUpdate",
    "RetentionPolicy",
]
