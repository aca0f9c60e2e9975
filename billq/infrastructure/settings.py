"""
Process settings read once from the environment at import time.

Values that tests override per-run (database path, LLM feature flag) are
read at call time by the modules that use them instead.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[2]

# A local .env fills in anything the real environment leaves unset
load_dotenv(REPO_ROOT / ".env")

ENV = os.getenv("BILLQ_ENV", "development")

# HTTP server (billq-api)
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
LOG_LEVEL = os.getenv("BILLQ_LOG_LEVEL", "INFO")

# Vertex AI. Without a project the engine still runs on rules and heuristics.
GOOGLE_CLOUD_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT")
GEMINI_LOCATION = os.getenv("GEMINI_LOCATION", "us-central1")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_MAX_TOKENS = int(os.getenv("GEMINI_MAX_TOKENS", "800"))
GEMINI_TEMPERATURE = float(os.getenv("GEMINI_TEMPERATURE", "0.1"))

# Category taxonomy and exclusion rules rendered into the prompt
POLICY_FILE = Path(os.getenv("BILLQ_POLICY_FILE", str(REPO_ROOT / "config" / "billq_policy.yaml")))


def is_development() -> bool:
    return ENV == "development"
