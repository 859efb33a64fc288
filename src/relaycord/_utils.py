"""
Utility functions and helpers shared across relaycord modules.

These helpers are not part of the public API and may change without notice.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import override

logger = logging.getLogger(__name__)


class Clock(ABC):
    """
    Source of wall-clock time and sleeping.

    Rate-limit deadlines are absolute timestamps, so every component that
    records or waits on them must read the same clock. Injecting a Clock
    lets tests advance time deterministically instead of really sleeping.
    """

    @abstractmethod
    def now(self) -> float:
        """Return the current time in seconds."""
        pass

    @abstractmethod
    def sleep(self, seconds: float) -> None:
        """Block the calling thread for the given number of seconds."""
        pass

    def sleep_until(self, deadline: float) -> float:
        """
        Sleep until the given absolute deadline.

        Args:
            deadline: Absolute timestamp (same scale as `now()`).

        Returns:
            The number of seconds actually slept (0 if already past).
        """
        wait_time = deadline - self.now()
        if wait_time <= 0:
            return 0.0
        self.sleep(wait_time)
        return wait_time


class SystemClock(Clock):
    """Clock backed by `time.time()` and `time.sleep()`."""

    @override
    def now(self) -> float:
        return time.time()

    @override
    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


SYSTEM_CLOCK: Clock = SystemClock()


def is_timeout_exception(exc: Exception) -> bool:
    """
    Determine if an exception indicates a timeout condition.

    Checks exceptions wrapped by MaxRetriesExceededError as well.

    Args:
        exc: The exception to check.

    Returns:
        True if the exception indicates a timeout, False otherwise.
    """
    # Lazy imports to avoid circular dependencies
    import requests

    from relaycord._retry import MaxRetriesExceededError

    if isinstance(exc, (requests.Timeout, TimeoutError)):
        return True

    if isinstance(exc, MaxRetriesExceededError):
        last_exc = exc.last_exception
        if last_exc is not None:
            return is_timeout_exception(last_exc)

    return False
