"""Monotonic timing helpers for encode jobs."""

import time


def now() -> float:
    """Get a monotonic timestamp in seconds."""
    return time.perf_counter()


def elapsed_since(start: float) -> float:
    """Get seconds elapsed since a timestamp from now(), never negative."""
    return max(0.0, time.perf_counter() - start)
