"""
Content normalizer: raw source payloads -> ActivityCreate.

Sources send calendar events (summary/start/end/attendees), email messages
(subject/snippet/from/to/labelIds) or generic activities already shaped like
an Activity. normalize_payload() maps all of them to one canonical shape and
fills defaults. It is a pure transform: no I/O, no clock reads unless `now`
is omitted.
"""

from __future__ import annotations

import json
import math
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError as SchemaValidationError

from billq.activities.models import ActivityCreate, ActivityType
from billq.errors import ValidationError
from billq.utils.email import extract_email_address

CALENDAR_SOURCES = frozenset({"calendar", "google_calendar", "outlook_calendar"})
EMAIL_SOURCES = frozenset({"email", "gmail", "outlook", "outlook_mail"})

# Reading speed for email duration estimates
WORDS_PER_MINUTE = 150


def _first(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def _parse_timestamp(value: Any, field: str) -> datetime | None:
    """Accept datetime, ISO-8601 text, epoch milliseconds, or a calendar {dateTime|date} dict."""
    if value is None:
        return None
    if isinstance(value, dict):
        value = _first(value, "dateTime", "date")
        if value is None:
            return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, int | float) or (isinstance(value, str) and value.isdigit()):
        try:
            parsed = datetime.fromtimestamp(int(value) / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            raise ValidationError(f"{field} is out of range") from None
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            raise ValidationError(f"{field} is not a valid timestamp") from None
    else:
        raise ValidationError(f"{field} is not a valid timestamp")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _participants(payload: dict[str, Any], kind: ActivityType) -> list[str]:
    raw: list[Any] = []
    if kind == ActivityType.EMAIL:
        for key in ("from", "sender"):
            if payload.get(key):
                raw.append(payload[key])
                break
        for key in ("to", "recipients", "cc"):
            value = payload.get(key)
            raw.extend(value if isinstance(value, list) else [value] if value else [])
    raw.extend(payload.get("participants") or [])
    raw.extend(payload.get("attendees") or [])

    seen: set[str] = set()
    participants: list[str] = []
    for item in raw:
        if isinstance(item, dict):
            item = item.get("email")
        address = extract_email_address(item if isinstance(item, str) else None)
        if address and address not in seen:
            seen.add(address)
            participants.append(address)
    return participants


def _detect_type(payload: dict[str, Any], source: str) -> ActivityType:
    declared = payload.get("type")
    if declared:
        try:
            return ActivityType(str(declared).lower())
        except ValueError:
            raise ValidationError(f"unsupported activity type: {declared}") from None
    if source in CALENDAR_SOURCES or "attendees" in payload:
        return ActivityType.CALENDAR
    if source in EMAIL_SOURCES or "subject" in payload:
        return ActivityType.EMAIL
    return ActivityType.DOCUMENT


def _duration(
    payload: dict[str, Any],
    kind: ActivityType,
    start: datetime,
    end: datetime | None,
) -> int | None:
    explicit = _first(payload, "duration_minutes", "durationMinutes", "duration")
    if explicit is not None:
        try:
            return max(1, int(explicit))
        except (TypeError, ValueError, OverflowError):
            raise ValidationError("duration must be a number of minutes") from None

    if end is not None:
        return max(1, math.floor((end - start).total_seconds() / 60))

    word_count = _first(payload, "word_count", "wordCount")
    if kind == ActivityType.EMAIL and word_count is not None:
        try:
            return max(1, math.ceil(int(word_count) / WORDS_PER_MINUTE))
        except (TypeError, ValueError, OverflowError):
            raise ValidationError("word_count must be a number") from None

    return None


def _metadata(payload: dict[str, Any]) -> dict[str, Any]:
    metadata = dict(payload.get("metadata") or {})
    for key in ("customer", "company"):
        if payload.get(key) and key not in metadata:
            metadata[key] = payload[key]
    if payload.get("labelIds"):
        metadata["labels"] = list(payload["labelIds"])
    return metadata


def normalize_payload(
    payload: dict[str, Any],
    source: str | None = None,
    now: datetime | None = None,
) -> ActivityCreate:
    """
    Convert one raw payload into a canonical ActivityCreate.

    Args:
        payload: Raw event from the source system
        source: Source system tag; falls back to payload["source"]
        now: Ingestion time used when the payload has no start time

    Raises:
        ValidationError: Missing title or source, bad timestamps, end before start
    """
    if not isinstance(payload, dict):
        raise ValidationError("activity payload must be an object")

    source_tag = (source or payload.get("source") or "").strip().lower()
    title = _first(payload, "title", "summary", "subject")
    if not title or not str(title).strip():
        raise ValidationError("activity title is required")
    if not source_tag:
        raise ValidationError("activity source is required")

    kind = _detect_type(payload, source_tag)

    start = _parse_timestamp(
        _first(payload, "start_time", "startTime", "start", "timestamp", "internalDate", "date"),
        "start_time",
    )
    inferred = start is None
    if start is None:
        start = now or datetime.now(UTC)

    end = _parse_timestamp(_first(payload, "end_time", "endTime", "end"), "end_time")
    if end is not None and end < start:
        raise ValidationError("end_time is before start_time")

    description = _first(payload, "description", "snippet", "body", "notes")

    try:
        return ActivityCreate(
            type=kind,
            title=str(title),
            description=str(description) if description is not None else None,
            start_time=start,
            end_time=end,
            participants=_participants(payload, kind),
            duration_minutes=_duration(payload, kind, start, end),
            source=source_tag,
            metadata=_metadata(payload),
            raw_payload=json.loads(json.dumps(payload, default=str)),
            start_time_inferred=inferred,
        )
    except SchemaValidationError as e:
        raise ValidationError(f"invalid activity payload: {e.errors()[0]['msg']}") from None


def should_ingest_email(
    payload: dict[str, Any],
    user_email: str | None,
    only_opened_emails: bool,
) -> bool:
    """
    Email ingestion filter.

    With only_opened_emails on, keep messages the user sent or has already
    opened (no UNREAD label); unread inbound mail is not evidence of work.
    """
    if not only_opened_emails:
        return True

    sender = extract_email_address(_first(payload, "from", "sender"))
    if user_email and sender == extract_email_address(user_email):
        return True

    labels = payload.get("labelIds") or (payload.get("metadata") or {}).get("labels") or []
    return "UNREAD" not in labels
