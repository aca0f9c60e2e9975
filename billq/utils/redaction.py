"""
Redaction for log lines and LLM prompts.

Activity titles and descriptions are customer data. Logs get a truncated
title plus a short hash, so the same activity can be correlated across log
lines. Prompts get the text with injection phrases neutralised.
"""

from __future__ import annotations

import re
from hashlib import sha256

_INJECTION = re.compile(
    r"""
    (ignore|disregard|forget)\s+(previous|above|all)\s+instructions?
    | new\s+instructions?:
    | (system|assistant)\s*:
    | \[/?INST\]
    | <\|im_(start|end)\|>
    """,
    re.IGNORECASE | re.VERBOSE,
)

# Characters that could close the JSON object activity data is embedded in
_STRUCTURAL = re.compile(r"[<>{}|\\]")


def _digest(value: str, length: int) -> str:
    return sha256(value.encode("utf-8")).hexdigest()[:length]


def redact(value: str | None) -> str:
    """Stable, irreversible stand-in for an identifier or email."""
    return f"hash:{_digest(value, 12)}" if value else "hash:missing"


def redact_title(title: str | None, max_length: int = 30) -> str:
    """
    "Quarterly roadmap review with Acme leadership" ->
    "Quarterly roadmap review with ... (h:7a8b9c)"
    """
    if not title:
        return "(no title)"
    visible = title if len(title) <= max_length else title[:max_length] + "..."
    return f"{visible} (h:{_digest(title, 6)})"


def sanitize_for_prompt(text: str | None, max_length: int = 500) -> str:
    """Truncate, replace injection phrases with [REDACTED], drop structural characters."""
    if not text:
        return ""
    text = _INJECTION.sub("[REDACTED]", text[:max_length])
    return _STRUCTURAL.sub("", text).strip()
