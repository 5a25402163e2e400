"""
Retry logic with exponential backoff for remote operations.

Transient failures are retried with capped exponential backoff and
jitter; permanent failures stop at once. Backoff sleeps can be cut short
by a CancellationToken.
"""

import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from ..core.exceptions import OperationCancelledError, RetryExhaustedError
from ..core.logging import CorrelationContext, log_with_context
from .classify import is_transient


logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay, in seconds
        multiplier: Multiplier for exponential backoff
        jitter: Whether to add random jitter (±25%) to each delay
    """
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = True

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass
class RetryResult:
    """
    Result of a retry operation.

    Attributes:
        success: Whether the operation succeeded
        result: The result value if successful
        attempts: Number of attempts made
        error: The final error if failed (RetryExhaustedError when exhausted)
        exhausted: True if every attempt failed with a transient error
        error_history: List of errors from each attempt
    """
    success: bool
    result: Any = None
    attempts: int = 0
    error: Optional[Exception] = None
    exhausted: bool = False
    error_history: List[str] = field(default_factory=list)


class CancellationToken:
    """
    Cooperative cancellation with an optional deadline.

    Backoff sleeps wait on the token's event, so ``cancel()`` from another
    thread wakes a sleeping retry loop immediately.

    Args:
        timeout: Seconds from now after which the token counts as cancelled
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self.deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline (None without a deadline)."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to ``seconds``, waking early on cancel or deadline.

        Returns:
            True if the token is cancelled when the wait ends
        """
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(seconds)
        return self.is_cancelled

    def raise_if_cancelled(self, operation_name: str = "operation") -> None:
        if self.is_cancelled:
            raise OperationCancelledError(f"{operation_name} cancelled")


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate the backoff delay after a failed attempt.

    Args:
        attempt: Number of the attempt that just failed (1-based)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay = min(
        config.base_delay * (config.multiplier ** (attempt - 1)),
        config.max_delay,
    )

    # Add jitter if enabled (±25% random variation)
    if config.jitter:
        jitter_factor = 0.75 + (random.random() * 0.5)  # Range: 0.75 to 1.25
        delay *= jitter_factor

    return max(0.0, delay)


def retry_with_backoff(
    operation: Callable[[], Any],
    config: RetryConfig,
    operation_name: str = "operation",
    is_retryable: Callable[[BaseException], bool] = is_transient,
    cancel: Optional[CancellationToken] = None,
    on_attempt: Optional[Callable[[int, bool], None]] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> RetryResult:
    """
    Execute an operation with retry and exponential backoff.

    Args:
        operation: Callable to execute (should take no arguments)
        config: Retry configuration
        operation_name: Name for logging
        is_retryable: Decides whether a failure is transient
        cancel: Token checked before every attempt and backoff sleep
        on_attempt: Called with (attempt, success) after every attempt
        sleep: Sleep function used when no token is given (default: time.sleep)

    Returns:
        RetryResult with success/failure info

    Raises:
        OperationCancelledError: If the token is cancelled between attempts

    Example:
        >>> config = RetryConfig(max_retries=3)
        >>> result = retry_with_backoff(lambda: client.fetch("PROJ-1"), config)
        >>> if result.success:
        ...     print(f"Success after {result.attempts} attempts")
    """
    sleep = sleep or time.sleep
    error_history = []
    last_error: Optional[Exception] = None

    for attempt in range(1, config.max_attempts + 1):
        if cancel is not None:
            cancel.raise_if_cancelled(operation_name)

        with CorrelationContext(attempt=attempt):
            try:
                logger.debug(f"{operation_name}: attempt {attempt}/{config.max_attempts}")
                result = operation()
            except Exception as e:
                last_error = e
                error_history.append(str(e))
                if on_attempt is not None:
                    on_attempt(attempt, False)

                if not is_retryable(e):
                    log_with_context(
                        logger, logging.ERROR,
                        f"{operation_name} failed with non-retryable error: {e}",
                    )
                    return RetryResult(
                        success=False,
                        attempts=attempt,
                        error=e,
                        error_history=error_history,
                    )

                log_with_context(
                    logger, logging.WARNING,
                    f"{operation_name} failed on attempt {attempt}/{config.max_attempts}: {e}",
                )

                # Don't sleep after the last attempt
                if attempt < config.max_attempts:
                    delay = calculate_delay(attempt, config)
                    logger.debug(f"Backing off for {delay:.3f}s before retry")
                    if cancel is not None:
                        cancel.raise_if_cancelled(operation_name)
                        if cancel.wait(delay):
                            raise OperationCancelledError(
                                f"{operation_name} cancelled during backoff "
                                f"after {attempt} attempt(s)"
                            )
                    else:
                        sleep(delay)
                continue

            if on_attempt is not None:
                on_attempt(attempt, True)
            if attempt > 1:
                log_with_context(
                    logger, logging.INFO,
                    f"{operation_name} succeeded after {attempt} attempts",
                )
            return RetryResult(
                success=True,
                result=result,
                attempts=attempt,
                error_history=error_history,
            )

    # All retries exhausted
    logger.error(f"{operation_name} exhausted all {config.max_attempts} attempts")
    return RetryResult(
        success=False,
        attempts=config.max_attempts,
        error=RetryExhaustedError(
            f"{operation_name} failed after {config.max_attempts} attempts: {last_error}",
            attempts=config.max_attempts,
            last_error=last_error,
            error_history=error_history,
        ),
        exhausted=True,
        error_history=error_history,
    )
