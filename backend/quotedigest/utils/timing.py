"""Timing helpers for report generation and scheduled batches."""
import time
from contextlib import contextmanager
from typing import Optional, Callable
import logging

logger = logging.getLogger(__name__)


def now_ms() -> float:
    """Current time in milliseconds from the high-resolution counter."""
    return time.perf_counter() * 1000


@contextmanager
def time_operation(label: str, log_fn: Optional[Callable[[str], None]] = None, min_ms: float = 0.0):
    """
    Log how long the wrapped block took.

    Args:
        label: What is being timed (e.g. "weekly_reports 2025-W03")
        log_fn: Logging function, logger.debug when omitted
        min_ms: Skip logging below this many milliseconds

    Example:
        with time_operation("weekly_reports", logger.info):
            report_service.generate_reports_for_period(db, period)
    """
    start = now_ms()
    try:
        yield
    finally:
        elapsed = now_ms() - start
        if elapsed >= min_ms:
            (log_fn or logger.debug)(f"{label}: {elapsed:.2f}ms")


def log_elapsed(start_ms: float, label: str, log_fn: Optional[Callable[[str], None]] = None) -> float:
    """Log the time since start_ms and return a fresh start for the next step."""
    elapsed = now_ms() - start_ms
    (log_fn or logger.debug)(f"{label}: {elapsed:.2f}ms")
    return now_ms()
