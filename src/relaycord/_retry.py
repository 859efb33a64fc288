"""
Retry utilities with pluggable backoff.

Inspired by Tenacity's Retrying class, this module provides a context manager
based loop for implementing retry logic with configurable backoff and
exception classification.

Example:
    >>> from relaycord._retry import Retrying, linear_backoff
    >>> for attempt in Retrying(max_attempts=3, wait=linear_backoff(1.0)):
    ...     with attempt:
    ...         response = http_client.get(url)
    ...         if response.status_code >= 500:
    ...             raise ServerError(response.status_code)
    ...         return response.json()
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Generator
from dataclasses import dataclass

from relaycord._utils import SYSTEM_CLOCK

logger = logging.getLogger(__name__)

WaitStrategy = Callable[[int], float]


class RetryableError(Exception):
    """
    Base class for exceptions that should trigger automatic retry.

    Exceptions extending this class are retried by Retrying without being
    listed in `retry_on_exceptions`. A subclass may set `retry_after` to
    tell Retrying exactly how long to wait before the next attempt (for
    example, the delay a server asked for in a rate-limit response); when
    it is None the configured wait strategy is used.

    Example:
        >>> class MyTransientError(RetryableError):
        ...     pass
        >>>
        >>> for attempt in Retrying(max_attempts=3):
        ...     with attempt:
        ...         if some_condition:
        ...             raise MyTransientError("Temporary failure")
        ...         break  # Success
    """

    retry_after: float | None = None


class MaxRetriesExceededError(Exception):
    """
    Raised when all attempts are exhausted.

    Attributes:
        message: Human-readable error message.
        last_exception: The exception raised by the last attempt.
    """

    def __init__(self, message: str, last_exception: Exception | None = None):
        super().__init__(message)
        self.last_exception = last_exception


def linear_backoff(step: float = 1.0) -> WaitStrategy:
    """
    Return a wait strategy that sleeps `step * attempt_number` seconds.

    With step=1.0 the waits after attempts 1, 2, 3... are 1s, 2s, 3s...

    Args:
        step: Seconds added per failed attempt.
    """
    assert step >= 0, f"step must be >= 0, got {step}"
    return lambda attempt_number: step * attempt_number


@dataclass(frozen=True)
class RetryAttempt:
    """
    Metadata about the current attempt within a retry loop.

    Attributes:
        attempt_number: One-based index of the current attempt (1 = first attempt).
        max_attempts: Total number of attempts allowed.

    Example:
        >>> for attempt_ctx in Retrying(max_attempts=3):
        ...     with attempt_ctx as attempt:
        ...         print(f"Attempt {attempt.attempt_number}/{attempt.max_attempts}")
    """

    attempt_number: int
    max_attempts: int

    @property
    def is_last_attempt(self) -> bool:
        """Return True if this is the last allowed attempt."""
        return self.attempt_number >= self.max_attempts


class Retrying:
    """
    Context manager loop for retry with configurable backoff.

    Usage:
        >>> for attempt in Retrying(max_attempts=3, wait=linear_backoff(1.0)):
        ...     with attempt:
        ...         return do_request()

    Args:
        max_attempts: Total number of attempts, including the first one (default: 3).
        wait: Wait strategy mapping the failed attempt number to a delay in
            seconds (default: linear backoff of 1s per attempt).
        retry_on_exceptions: Exception types that trigger retry.
        retry_if: Optional predicate deciding whether any other exception is
            retryable. Consulted after `retry_on_exceptions`.
        skip_retry_on_exceptions: Exception types that never trigger retry.
            Takes precedence over everything else.
        sleep: Callable used to wait between attempts (default: time.sleep).
        logger_prefix: Prefix for log messages (e.g., "RestClient").

    Raises:
        MaxRetriesExceededError: When all attempts are exhausted on retryable
            errors. The last error is kept in `last_exception`.

    Note:
        - Exceptions extending RetryableError are always retried.
        - A RetryableError carrying `retry_after` overrides the wait strategy.
        - Exceptions not matching retry conditions are re-raised immediately.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        wait: WaitStrategy | None = None,
        retry_on_exceptions: tuple[type[Exception], ...] = (),
        retry_if: Callable[[Exception], bool] | None = None,
        skip_retry_on_exceptions: tuple[type[Exception], ...] = (),
        sleep: Callable[[float], None] | None = None,
        logger_prefix: str = "",
    ):
        assert max_attempts >= 1, f"max_attempts must be >= 1, got {max_attempts}"
        assert retry_on_exceptions is not None, "retry_on_exceptions cannot be None"
        assert skip_retry_on_exceptions is not None, "skip_retry_on_exceptions cannot be None"

        self.max_attempts = max_attempts
        self.wait = wait or linear_backoff(1.0)
        self.retry_on_exceptions = retry_on_exceptions
        self.retry_if = retry_if
        self.skip_retry_on_exceptions = skip_retry_on_exceptions
        self.sleep = sleep or SYSTEM_CLOCK.sleep
        self.logger_prefix = logger_prefix

        self._current_attempt = 0
        self._last_exception: Exception | None = None

    def __iter__(self) -> Generator[_RetryContext, None, None]:
        """Yield retry contexts for each attempt."""
        for attempt_number in range(1, self.max_attempts + 1):
            self._current_attempt = attempt_number
            yield _RetryContext(self, attempt_number)

    @property
    def _prefix(self) -> str:
        return f"{self.logger_prefix} | " if self.logger_prefix else ""

    def _should_retry(self, exception: Exception) -> bool:
        """
        Determine if exception should trigger a retry.

        Logic:
            1. Skip retry for exceptions in skip_retry_on_exceptions
            2. Retry if exception extends RetryableError
            3. Retry on configured exception types
            4. Otherwise ask the retry_if predicate, if any
        """
        if isinstance(exception, self.skip_retry_on_exceptions):
            return False

        if isinstance(exception, RetryableError):
            return True

        if isinstance(exception, self.retry_on_exceptions):
            return True

        if self.retry_if is not None:
            return self.retry_if(exception)

        return False

    def _calculate_wait_time(self, exception: Exception) -> float:
        """
        Calculate wait time before the next attempt.

        Uses the exception's own `retry_after` hint when present, otherwise
        the configured wait strategy for the current attempt number.
        """
        if isinstance(exception, RetryableError) and exception.retry_after is not None:
            return max(0.0, float(exception.retry_after))
        return max(0.0, float(self.wait(self._current_attempt)))

    def _handle_retry(self, exception: Exception) -> None:
        """Log, sleep and prepare for the next attempt."""
        self._last_exception = exception
        sleep_time = self._calculate_wait_time(exception)

        logger.warning(
            f"{self._prefix}Attempt {self._current_attempt}/{self.max_attempts} failed: {exception}"
        )
        logger.warning(f"{self._prefix}Retrying in {sleep_time:.2f}s...")
        self.sleep(sleep_time)

    def _handle_exhausted(self, exception: Exception) -> None:
        """
        Handle when all attempts are exhausted.

        Raises:
            MaxRetriesExceededError: Always raised with the last exception.
        """
        self._last_exception = exception
        logger.error(
            f"{self._prefix}Max attempts ({self.max_attempts}) exceeded. Last error: {exception}"
        )
        raise MaxRetriesExceededError(
            message=f"Max attempts ({self.max_attempts}) exceeded. Last error: {exception}",
            last_exception=exception,
        ) from exception


class _RetryContext:
    """
    Context for a single attempt (internal).

    On success (no exception): exits normally, caller returns or breaks
    On retryable exception: sleeps and suppresses the exception
    On non-retryable exception: re-raises it
    On exhausted attempts: raises MaxRetriesExceededError
    """

    def __init__(self, retrying: Retrying, attempt_number: int):
        self._retrying = retrying
        self.attempt_number = attempt_number

    def __enter__(self) -> RetryAttempt:
        return RetryAttempt(
            attempt_number=self.attempt_number,
            max_attempts=self._retrying.max_attempts,
        )

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> bool:
        if exc_val is None:
            return False

        # Only handle Exception, not BaseException (KeyboardInterrupt, etc.)
        if not isinstance(exc_val, Exception):
            return False

        if not self._retrying._should_retry(exc_val):
            return False

        if self.attempt_number >= self._retrying.max_attempts:
            self._retrying._handle_exhausted(exc_val)
            return False  # Never reached

        self._retrying._handle_retry(exc_val)
        return True
