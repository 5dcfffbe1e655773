"""Retry strategy with exponential backoff for appliance operations."""

import random
import threading
import time
from typing import Callable, TypeVar, Optional

import requests

from loadmaster_sync.api.errors import LoadMasterError, TransportError
from loadmaster_sync.utils.errors import (
    ErrorCategory,
    SyncError,
    TransientNetworkError,
)
from loadmaster_sync.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

# Error signatures of a connection dropped mid-transfer
TRANSIENT_SIGNATURES = ('eof', 'connection reset', 'connection aborted', 'remote end closed')


def is_transient_error(error: Exception) -> bool:
    """Default classifier: True for failures worth retrying.

    Only transport-level failures are transient. A well-formed rejection
    from the appliance is permanent no matter what its message says.

    Args:
        error: The exception raised by the operation

    Returns:
        True if the error is transient
    """
    if isinstance(error, LoadMasterError):
        return False

    if isinstance(error, (TransportError,
                          requests.exceptions.ConnectionError,
                          requests.exceptions.ChunkedEncodingError,
                          requests.exceptions.Timeout,
                          ConnectionError,
                          TimeoutError)):
        return True

    error_str = str(error).lower()
    return any(signature in error_str for signature in TRANSIENT_SIGNATURES)


class RetryExhaustedError(TransientNetworkError):
    """Every allowed attempt failed transiently."""

    def __init__(self, last_error: Exception, attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(
            f"Operation failed after {attempts} attempts: {last_error}",
            cause=last_error,
            suggestions=[
                'Check connectivity to the appliance',
                'Increase retry.max_attempts or retry.max_elapsed',
            ]
        )


class RetryCancelledError(SyncError):
    """Retries were aborted by a cancellation signal or deadline."""

    def __init__(self, message: str, last_error: Optional[Exception] = None, attempts: int = 0):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(message, category=ErrorCategory.CANCELLED, cause=last_error)


class RetryStrategy:
    """Implements exponential backoff retry strategy for transient errors."""

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay: float = 0.5,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        max_elapsed: Optional[float] = None,
        classifier: Callable[[Exception], bool] = is_transient_error
    ):
        """Initialize retry strategy.

        Args:
            max_attempts: Maximum number of attempts, including the first
            base_delay: Base delay in seconds for first retry
            max_delay: Maximum delay in seconds between retries
            exponential_base: Base for exponential backoff calculation
            jitter: Whether to add random jitter to delay
            max_elapsed: Optional bound in seconds on total time spent retrying
            classifier: Returns True for errors that should be retried
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.max_elapsed = max_elapsed
        self.classifier = classifier

    @classmethod
    def from_config(cls, config) -> 'RetryStrategy':
        """Build a strategy from a RetryConfig model."""
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            exponential_base=config.exponential_base,
            jitter=config.jitter,
            max_elapsed=config.max_elapsed,
        )

    def get_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Number of attempts already made (1 after the first failure)

        Returns:
            Delay in seconds before next retry
        """
        delay = min(
            self.base_delay * (self.exponential_base ** (attempt - 1)),
            self.max_delay
        )

        # Jitter adds up to 10% of the delay
        if self.jitter:
            delay += random.uniform(0, delay * 0.1)

        return delay

    def execute(
        self,
        operation: Callable[[], T],
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None
    ) -> T:
        """Execute a nullary operation with retry logic.

        Args:
            operation: Remote call to execute; must be safe to repeat
            cancel_event: When set, no further attempts are made
            deadline: ``time.monotonic()`` value after which no further
                attempts are made

        Returns:
            Result of the operation

        Raises:
            RetryExhaustedError: All attempts failed transiently
            RetryCancelledError: Cancelled or deadline passed between attempts
            Exception: The original error when it is permanent
        """
        started = time.monotonic()
        last_error: Optional[Exception] = None
        waiter = cancel_event or threading.Event()

        for attempt in range(1, self.max_attempts + 1):
            self._check_cancelled(cancel_event, deadline, last_error, attempt - 1)

            try:
                result = operation()
            except Exception as e:
                if not self.classifier(e):
                    logger.debug(f"Permanent error on attempt {attempt}, not retrying: {e}")
                    raise

                last_error = e
                if attempt >= self.max_attempts:
                    break

                delay = self.get_delay(attempt)
                if self.max_elapsed is not None:
                    remaining = self.max_elapsed - (time.monotonic() - started)
                    if remaining <= 0:
                        break
                    delay = min(delay, remaining)
                if deadline is not None:
                    delay = min(delay, max(deadline - time.monotonic(), 0.0))

                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} failed: "
                    f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
                )

                if delay > 0 and waiter.wait(delay) and cancel_event is not None:
                    raise RetryCancelledError(
                        f"Retry cancelled after {attempt} attempts",
                        last_error=last_error,
                        attempts=attempt
                    )
                continue

            if attempt > 1:
                logger.info(f"Operation succeeded after {attempt} attempts")
            return result

        logger.error(f"All {attempt} attempts exhausted")
        raise RetryExhaustedError(last_error, attempt)

    def _check_cancelled(
        self,
        cancel_event: Optional[threading.Event],
        deadline: Optional[float],
        last_error: Optional[Exception],
        attempts: int
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise RetryCancelledError(
                f"Retry cancelled after {attempts} attempts",
                last_error=last_error,
                attempts=attempts
            )
        if deadline is not None and attempts > 0 and time.monotonic() >= deadline:
            raise RetryCancelledError(
                f"Deadline passed after {attempts} attempts",
                last_error=last_error,
                attempts=attempts
            )
