"""Centralized configuration for the BillQ backend.

Re-exports everything from billq.infrastructure.settings, then adds typed
constants for database, processing, LLM and API settings. Environment
variable overrides use safe defaults so the app starts without extra env
configuration.
"""

from __future__ import annotations

import os

from billq.infrastructure.settings import *  # noqa: F401, F403


def _env(key: str, default: str) -> str:
    return os.getenv(key, default)


def _env_flag(key: str, default: str) -> bool:
    return _env(key, default).lower() in ("1", "true", "yes")


# --- App ---
APP_VERSION: str = "1.0.0"

# --- Database ---
DB_POOL_SIZE: int = int(_env("BILLQ_DB_POOL_SIZE", "5"))
DB_POOL_TIMEOUT: float = float(_env("BILLQ_DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(_env("BILLQ_DB_CONNECT_TIMEOUT", "30.0"))
DB_RETRY_MAX: int = int(_env("BILLQ_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(_env("BILLQ_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(_env("BILLQ_DB_RETRY_MAX_DELAY", "2.0"))

# --- LLM ---
LLM_TIMEOUT_SECONDS: int = int(_env("BILLQ_LLM_TIMEOUT", "30"))
LLM_MAX_RETRIES: int = int(_env("BILLQ_LLM_MAX_RETRIES", "2"))
LLM_MAX_WORKERS: int = int(_env("BILLQ_LLM_MAX_WORKERS", "4"))
LLM_CONTENT_TRUNCATION: int = 4000

# --- Matching & suggestions ---
RULE_SHORT_CIRCUIT_CONFIDENCE: float = 0.8
RULE_DOMAIN_CONFIDENCE: float = 0.9
RULE_DOMAIN_ALTERNATIVE_CONFIDENCE: float = 0.8
RULE_KEYWORD_MAX_CONFIDENCE: float = 0.8
RULE_KEYWORD_ALTERNATIVE_MAX_CONFIDENCE: float = 0.7
RULE_KEYWORD_DIVISOR: int = 5
RULE_MAX_CANDIDATES: int = 3
FALLBACK_CONFIDENCE: float = 0.3
PROMOTIONAL_MAX_CONFIDENCE: float = 0.3

# --- Preferences ---
DEFAULT_CONFIDENCE_THRESHOLD: int = 80

# --- Processing ---
PROCESSING_LEASE_TTL_SECONDS: int = int(_env("BILLQ_PROCESSING_LEASE_TTL", "600"))
PROCESSING_LEASE_MAX_USERS: int = 10000
# False: rejecting a suggestion deletes it instead of keeping a terminal record
RETAIN_REJECTED_ENTRIES: bool = _env_flag("BILLQ_RETAIN_REJECTED_ENTRIES", "false")

# --- API ---
API_LIST_LIMIT_DEFAULT: int = 50
API_LIST_LIMIT_MAX: int = 500
API_BATCH_SIZE_MAX: int = 500
