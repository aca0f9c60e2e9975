"""Shared LLM call with timeout and retry.

call_llm() is the only blocking network call in the pipeline. Each attempt
runs on a worker thread and is abandoned after LLM_TIMEOUT_SECONDS; Vertex
AI errors are converted to builtin exception types so callers can treat
every transport failure the same way.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from google.api_core.exceptions import (
    DeadlineExceeded,
    InternalServerError,
    ResourceExhausted,
    ServiceUnavailable,
)
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from billq.config import LLM_MAX_RETRIES, LLM_MAX_WORKERS, LLM_TIMEOUT_SECONDS
from billq.infrastructure.settings import GEMINI_MAX_TOKENS, GEMINI_TEMPERATURE
from billq.llm.gemini import get_gemini_model
from billq.observability.logging import get_logger
from billq.observability.telemetry import counter, time_block

logger = get_logger(__name__)

_EXECUTOR = ThreadPoolExecutor(max_workers=LLM_MAX_WORKERS, thread_name_prefix="billq-llm")

# Vertex AI error -> (retryable builtin, counter label)
_TRANSIENT_ERRORS: dict[type[Exception], tuple[type[OSError], str]] = {
    DeadlineExceeded: (TimeoutError, "deadline_exceeded"),
    ServiceUnavailable: (ConnectionError, "service_unavailable"),
    InternalServerError: (ConnectionError, "internal_error"),
    ResourceExhausted: (OSError, "rate_limited"),
}
_TRANSIENT = tuple(_TRANSIENT_ERRORS)


def _generate(model, prompt: str, generation_config: dict) -> str:
    try:
        return model.generate_content(prompt, generation_config=generation_config).text
    except _TRANSIENT as e:
        builtin, label = next(v for k, v in _TRANSIENT_ERRORS.items() if isinstance(e, k))
        reason = label.replace("_", " ")
        counter(f"llm.{label}")
        logger.warning("LLM %s, will retry: %s", reason, e)
        raise builtin(f"LLM {reason}: {e}") from e


@retry(
    stop=stop_after_attempt(LLM_MAX_RETRIES),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((TimeoutError, ConnectionError, OSError)),
    reraise=True,
)
def call_llm(
    prompt: str,
    system_instruction: str | None = None,
    max_output_tokens: int = GEMINI_MAX_TOKENS,
    timeout: float = LLM_TIMEOUT_SECONDS,
) -> str:
    """Call the LLM with a bounded token budget, low temperature and a timeout.

    Returns:
        The model's response text (expected to contain JSON somewhere).

    Raises:
        TimeoutError: Attempt exceeded `timeout` seconds (retryable).
        ConnectionError: Service unavailable or internal error (retryable).
        OSError: Rate limited (retryable).
        Exception: Anything else (not retried, caller handles).
    """
    model = get_gemini_model(system_instruction)

    generation_config = {
        "temperature": GEMINI_TEMPERATURE,
        "max_output_tokens": max_output_tokens,
        "response_mime_type": "application/json",
    }

    counter("llm.calls")
    with time_block("llm.latency"):
        future = _EXECUTOR.submit(_generate, model, prompt, generation_config)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            future.cancel()
            counter("llm.timeout")
            logger.warning("LLM call timed out after %ss", timeout)
            raise TimeoutError(f"LLM call exceeded {timeout}s") from None
