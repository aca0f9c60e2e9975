"""
Logging setup for BillQ.

Every module calls get_logger(__name__). Context passed through
``extra={...}`` is appended to the line as key=value pairs, or emitted as
JSON fields when BILLQ_LOG_FORMAT=json (log collectors on Cloud Run parse
one JSON object per line).
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Final

_TEXT_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes every LogRecord has; anything else came from `extra`
_RESERVED: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys() | {"message", "asctime"}
)

_configured = False


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RESERVED}


class ContextFormatter(logging.Formatter):
    """Human-readable lines with extra context as trailing key=value pairs."""

    def __init__(self) -> None:
        super().__init__(_TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if context:
            line += " | " + " ".join(f"{k}={v}" for k, v in sorted(context.items()))
        return line


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            **_context(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _level() -> int:
    return getattr(logging, os.getenv("BILLQ_LOG_LEVEL", "INFO").upper(), logging.INFO)


def configure_logging(force: bool = False) -> None:
    """Attach the BillQ handler to the root logger (once unless forced)."""
    global _configured
    if _configured and not force:
        return

    handler = logging.StreamHandler()
    if os.getenv("BILLQ_LOG_FORMAT", "text").lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(ContextFormatter())

    root = logging.getLogger()
    for existing in [h for h in root.handlers if getattr(h, "_billq", False)]:
        root.removeHandler(existing)
    handler._billq = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(_level())
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
