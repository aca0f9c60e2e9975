"""
In-process telemetry for the processing pipeline.

Counters and latency samples live in a process-wide Telemetry registry;
nothing is exported to a metrics backend. The module-level helpers are what
the rest of the code calls:

    counter("policy.dropped.promotional")
    log_event("processing.completed", entries=3, dropped=1)
    with time_block("llm.latency"):
        ...
"""

from __future__ import annotations

import contextlib
import time
from collections import defaultdict, deque
from collections.abc import Iterator
from threading import Lock
from typing import Any

from billq.observability.logging import get_logger

logger = get_logger("billq.telemetry")

# Most recent samples kept per latency metric
MAX_SAMPLES = 1000


class Telemetry:
    def __init__(self, max_samples: int = MAX_SAMPLES):
        self._lock = Lock()
        self._counters: dict[str, int] = defaultdict(int)
        self._latencies: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=max_samples))

    def incr(self, name: str, amount: int = 1) -> int:
        with self._lock:
            self._counters[name] += amount
            return self._counters[name]

    def observe(self, name: str, seconds: float) -> None:
        with self._lock:
            self._latencies[name].append(seconds)

    def count(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def latency_stats(self, name: str) -> dict[str, float]:
        """count/min/max/avg/p50/p95 in milliseconds over the retained samples."""
        with self._lock:
            samples = sorted(self._latencies.get(name, ()))
        if not samples:
            return {"count": 0, "min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p95": 0.0}

        n = len(samples)
        ms = [s * 1000 for s in samples]
        return {
            "count": n,
            "min": ms[0],
            "max": ms[-1],
            "avg": sum(ms) / n,
            "p50": ms[n // 2],
            "p95": ms[min(int(n * 0.95), n - 1)],
        }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._latencies.clear()


_telemetry = Telemetry()


def log_event(event_name: str, **fields: Any) -> None:
    """Info-level structured event. Callers pass ids and counts, never activity text."""
    logger.info("event=%s", event_name, extra={"event": event_name, "fields": fields})


def counter(name: str, increment: int = 1) -> int:
    value = _telemetry.incr(name, increment)
    logger.debug("counter=%s value=%s", name, value)
    return value


def get_counter(name: str) -> int:
    return _telemetry.count(name)


def get_counters() -> dict[str, int]:
    return _telemetry.snapshot()


@contextlib.contextmanager
def time_block(metric_name: str) -> Iterator[None]:
    """Record the wall time of the block under `metric_name`, even if it raises."""
    start = time.perf_counter()
    try:
        yield
    finally:
        _telemetry.observe(metric_name, time.perf_counter() - start)


def get_latency_stats(metric_name: str) -> dict[str, float]:
    return _telemetry.latency_stats(metric_name)


def reset_telemetry() -> None:
    _telemetry.reset()
