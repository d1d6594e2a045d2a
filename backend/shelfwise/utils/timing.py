"""Timing helpers for the cover and recommendation hot paths."""
import time
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)

# Anything slower than this is logged at WARNING instead of DEBUG
SLOW_OPERATION_MS = 250.0


def now_ms() -> float:
    """Current time in milliseconds from the high-resolution counter."""
    return time.perf_counter() * 1000


def log_elapsed(
    start_ms: float,
    label: str,
    log: Optional[logging.Logger] = None,
    extra: Optional[Dict[str, Any]] = None,
    slow_ms: float = SLOW_OPERATION_MS,
) -> float:
    """
    Log the time spent since `start_ms` and return the current time.

    The elapsed milliseconds are attached to the record as `elapsed_ms`
    alongside any caller-provided `extra` fields. Returning the new
    timestamp lets callers chain steps:

        t = now_ms()
        t = log_elapsed(t, "resolve_cluster")
        t = log_elapsed(t, "fetch_recommendations")
    """
    current = now_ms()
    elapsed = current - start_ms
    target = log or logger
    fields = dict(extra or {})
    fields["elapsed_ms"] = round(elapsed, 2)
    level = logging.WARNING if elapsed >= slow_ms else logging.DEBUG
    target.log(level, "%s took %.2fms", label, elapsed, extra=fields)
    return current

