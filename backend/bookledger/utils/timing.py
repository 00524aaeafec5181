"""Timing helpers for the read-side engines (recommendations, stats)."""
import logging
import time
from contextlib import contextmanager

logger = logging.getLogger(__name__)

# Engine calls slower than this are logged as warnings even outside DEBUG
SLOW_ENGINE_MS = 500.0


def now_ms() -> float:
    return time.perf_counter() * 1000


def _report(label: str, elapsed: float, slow_ms: float) -> None:
    if elapsed >= slow_ms:
        logger.warning("SLOW_ENGINE: %s took %.2fms", label, elapsed)
    else:
        logger.debug("%s: %.2fms", label, elapsed)


@contextmanager
def time_operation(label: str, slow_ms: float = SLOW_ENGINE_MS):
    """
    Time the wrapped block and log it under `label`.

        with time_operation(f"reading_stats user={user_id}"):
            ...
    """
    start = now_ms()
    try:
        yield
    finally:
        _report(label, now_ms() - start, slow_ms)


def log_elapsed(start_ms: float, label: str, slow_ms: float = SLOW_ENGINE_MS) -> float:
    """Log time since `start_ms` and return a fresh start mark for the next step."""
    _report(label, now_ms() - start_ms, slow_ms)
    return now_ms()
