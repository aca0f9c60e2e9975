"""
Deduplication keys for ingested activities.

content_fingerprint() hashes (title, start_time, source) into a stable key.
The activities table enforces UNIQUE(user_id, content_hash), so a repeated
sync from the same source cannot create a second activity, and therefore
cannot create a second time entry.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from hashlib import sha256

from billq.observability.telemetry import counter, log_event


def _canonical_time(value: datetime | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def content_fingerprint(title: str, start_time: datetime | str | None, source: str) -> str:
    """
    Compute a deterministic fingerprint for an activity occurrence.

    Fields are encoded as a key-sorted JSON object, so the digest does not
    depend on argument order or on separator characters inside the title.
    Raises ValueError if title or source is missing.
    """
    missing = [name for name, val in (("title", title), ("source", source)) if not val]
    if missing:
        counter("idempotency.drops")
        log_event("idempotency.drop", missing_fields=missing)
        raise ValueError(f"fingerprint requires: {', '.join(missing)}")

    encoded = json.dumps(
        {
            "source": source.strip().lower(),
            "start_time": _canonical_time(start_time),
            "title": " ".join(title.split()),
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return sha256(encoded.encode("utf-8")).hexdigest()
