"""
Vertex AI Gemini models for the suggestion engine.

The SDK is initialised once per process from GOOGLE_CLOUD_PROJECT and
application default credentials. The classification system instruction is
fixed per GenerativeModel, so models are cached per instruction.
"""

from __future__ import annotations

import threading
from functools import lru_cache

import vertexai
from vertexai.generative_models import GenerativeModel

from billq.infrastructure.settings import GEMINI_LOCATION, GEMINI_MODEL, GOOGLE_CLOUD_PROJECT
from billq.observability.logging import get_logger

logger = get_logger(__name__)

_init_lock = threading.Lock()
_initialized = False


class GeminiInitializationError(RuntimeError):
    """Vertex AI is not configured or refused initialisation."""


def _ensure_vertexai() -> None:
    global _initialized
    with _init_lock:
        if _initialized:
            return
        if not GOOGLE_CLOUD_PROJECT:
            raise GeminiInitializationError("GOOGLE_CLOUD_PROJECT not set")
        try:
            vertexai.init(project=GOOGLE_CLOUD_PROJECT, location=GEMINI_LOCATION)
        except Exception as e:
            raise GeminiInitializationError(f"Vertex AI init failed: {e}") from e
        _initialized = True

    logger.info(
        "Vertex AI ready: project=%s location=%s model=%s",
        GOOGLE_CLOUD_PROJECT,
        GEMINI_LOCATION,
        GEMINI_MODEL,
    )


@lru_cache(maxsize=8)
def get_gemini_model(system_instruction: str | None = None) -> GenerativeModel:
    """
    Raises:
        GeminiInitializationError: Vertex AI cannot be initialised
    """
    _ensure_vertexai()
    if system_instruction is None:
        return GenerativeModel(GEMINI_MODEL)
    return GenerativeModel(GEMINI_MODEL, system_instruction=system_instruction)
