"""
Classification policy: categories, confidence guidelines, inclusion and
exclusion rules. Loaded from config/billq_policy.yaml; the built-in copy
below is used when the file is missing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

import yaml

from billq.infrastructure.settings import POLICY_FILE
from billq.observability.logging import get_logger

logger = get_logger(__name__)

# Labels the LLM may use to mark content that is not billable work
PROMOTIONAL_LABELS = frozenset({"promotional", "marketing", "newsletter"})
PERSONAL_LABELS = frozenset({"personal"})

_CATEGORY_ALIASES = {
    "call": "meeting",
    "calendar": "meeting",
    "docs": "documentation",
    "document": "documentation",
    "coding": "development",
    "code_review": "review",
    "administration": "admin",
    "qa": "testing",
}

DEFAULT_POLICY = {
    "categories": [
        "meeting",
        "email",
        "documentation",
        "development",
        "design",
        "testing",
        "review",
        "admin",
        "other",
    ],
    "confidence_guidelines": [
        {"kind": "Client meeting or call", "min": 0.85, "max": 0.95},
        {"kind": "Direct customer email written by the user", "min": 0.75, "max": 0.90},
        {"kind": "Internal team meeting", "min": 0.70, "max": 0.85},
        {"kind": "Work email reply", "min": 0.60, "max": 0.80},
        {"kind": "Marketing, newsletter or promotional content", "min": 0.0, "max": 0.30},
        {"kind": "Personal content", "min": 0.0, "max": 0.0},
    ],
    "include": [
        "Meetings and calls with customers, partners or teammates about work",
        "Emails the user wrote or read that concern customer or project work",
    ],
    "exclude": [
        "Personal content - return an empty array",
        'Marketing and promotions - category "promotional", confidence at most 0.3',
    ],
    "description_length": {
        "brief": "at most 8 words",
        "standard": "one sentence of at most 20 words",
        "detailed": "two or three sentences naming the participants and the outcome",
    },
}


@dataclass(frozen=True)
class ConfidenceGuideline:
    kind: str
    min: float
    max: float


@dataclass(frozen=True)
class ClassificationPolicy:
    categories: tuple[str, ...]
    guidelines: tuple[ConfidenceGuideline, ...]
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    description_length: dict[str, str] = field(default_factory=dict)

    def normalize_category(self, label: str | None) -> str:
        """Map a free-form label onto a known category; unknown labels become 'other'."""
        if not label:
            return "other"
        key = label.strip().lower().replace(" ", "_")
        key = _CATEGORY_ALIASES.get(key, key)
        if key in self.categories or key in PROMOTIONAL_LABELS or key in PERSONAL_LABELS:
            return key
        return "other"


def _build_policy(data: dict) -> ClassificationPolicy:
    return ClassificationPolicy(
        categories=tuple(data.get("categories") or DEFAULT_POLICY["categories"]),
        guidelines=tuple(
            ConfidenceGuideline(kind=g["kind"], min=float(g["min"]), max=float(g["max"]))
            for g in data.get("confidence_guidelines") or DEFAULT_POLICY["confidence_guidelines"]
        ),
        include=tuple(data.get("include") or ()),
        exclude=tuple(data.get("exclude") or ()),
        description_length=dict(
            data.get("description_length") or DEFAULT_POLICY["description_length"]
        ),
    )


@lru_cache(maxsize=4)
def load_policy(path: Path | None = None) -> ClassificationPolicy:
    """Load the classification policy, falling back to DEFAULT_POLICY when the file is absent."""
    path = path or POLICY_FILE
    if not path.exists():
        logger.warning("Classification policy not found at %s, using built-in defaults", path)
        return _build_policy(DEFAULT_POLICY)

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    policy = _build_policy(data)
    logger.info(
        "Loaded classification policy: %d categories, %d guidelines",
        len(policy.categories),
        len(policy.guidelines),
    )
    return policy
