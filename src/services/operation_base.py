"""
Shared helpers for the research operations.

Run ids correlate log lines of one operation; the timer feeds the
duration reported in results.
"""

import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Generator, Optional


def create_run_id(operation: str) -> str:
    """
    Generate unique run ID for tracking.

    Returns:
        Unique run ID string in format "op_{operation}_{random_hex}"
    """
    return f"op_{operation}_{uuid.uuid4().hex[:12]}"


@dataclass
class OperationTimer:
    """Timer utility for tracking operation duration."""

    start_time: float = field(default_factory=time.perf_counter)
    end_time: Optional[float] = None

    @property
    def duration_ms(self) -> int:
        """Duration in milliseconds, measured up to now if still running."""
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return int((end - self.start_time) * 1000)

    def stop(self) -> int:
        self.end_time = time.perf_counter()
        return self.duration_ms


@contextmanager
def timed_execution() -> Generator[OperationTimer, None, None]:
    """
    Context manager for timing operation execution.

    Usage:
        with timed_execution() as timer:
            # do work
            pass
        duration_ms = timer.duration_ms
    """
    timer = OperationTimer()
    try:
        yield timer
    finally:
        timer.stop()
