"""
Resilient invocation of remote operations.

Every remote call goes through ResilientInvoker.invoke, which layers the
circuit breaker, retry with backoff, retry statistics and the optional
fallback used for graceful degradation.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..core.exceptions import CircuitOpenError, OperationCancelledError
from ..core.logging import CorrelationContext, log_with_context
from ..core.models import CircuitBreakerState, RetryStats
from .circuit_breaker import CircuitBreaker
from .retry import CancellationToken, RetryConfig, retry_with_backoff
from .stats import RetryStatsRegistry


logger = logging.getLogger(__name__)


VIA_PRIMARY = "primary"
VIA_FALLBACK = "fallback"


@dataclass
class InvocationResult:
    """
    Result of a resilient invocation.

    Attributes:
        value: Return value of the primary call or the fallback
        via: 'primary' or 'fallback'
        attempts: Attempts made on the primary call
    """
    value: Any
    via: str = VIA_PRIMARY
    attempts: int = 1

    @property
    def degraded(self) -> bool:
        return self.via == VIA_FALLBACK


class ResilientInvoker:
    """
    Runs remote operations under a circuit breaker and retry policy.

    Args:
        breaker: Circuit breaker shared by every operation key
        retry_config: Retry policy (defaults to RetryConfig())
        stats: Retry statistics registry
        sleep: Sleep function for backoff when no cancellation token is given

    Example:
        >>> invoker = ResilientInvoker(CircuitBreaker(InMemoryCircuitStateStore()))
        >>> result = invoker.invoke("fetch-task", client.fetch, "PROJ-1")
        >>> result.value["summary"]
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        retry_config: Optional[RetryConfig] = None,
        stats: Optional[RetryStatsRegistry] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.breaker = breaker
        self.retry_config = retry_config or RetryConfig()
        self.stats = stats or RetryStatsRegistry()
        self.sleep = sleep

    def invoke(
        self,
        operation_key: str,
        fn: Callable[..., Any],
        *args: Any,
        fallback: Optional[Callable[..., Any]] = None,
        cancel: Optional[CancellationToken] = None,
        **kwargs: Any,
    ) -> InvocationResult:
        """
        Call ``fn(*args, **kwargs)`` resiliently.

        Args:
            operation_key: Circuit/stats key (e.g. 'update-task')
            fn: The remote operation
            fallback: Called with the same arguments once retries are exhausted
            cancel: Cancellation token for backoff sleeps

        Returns:
            InvocationResult

        Raises:
            CircuitOpenError: If the circuit is open (fn is not called)
            RetryExhaustedError: If retries ran out and there is no fallback
            RemoteError: The permanent error raised by fn
            OperationCancelledError: If cancelled between attempts
        """
        with CorrelationContext(operation_key=operation_key):
            if not self.breaker.allow_request(operation_key):
                retry_after = self.breaker.retry_after(operation_key)
                log_with_context(
                    logger, logging.WARNING,
                    f"Circuit not closed for {operation_key}, call rejected",
                )
                raise CircuitOpenError(
                    f"Circuit breaker is open for {operation_key}",
                    operation_key=operation_key,
                    retry_after=retry_after,
                )

            try:
                result = retry_with_backoff(
                    lambda: fn(*args, **kwargs),
                    self.retry_config,
                    operation_name=operation_key,
                    cancel=cancel,
                    on_attempt=lambda attempt, ok: self.stats.record_attempt(
                        operation_key, attempt, ok
                    ),
                    sleep=self.sleep,
                )
            except OperationCancelledError:
                # A cancelled call says nothing about the remote
                self.breaker.release_trial(operation_key)
                raise

            if result.success:
                self.breaker.record_success(operation_key)
                return InvocationResult(
                    value=result.result, via=VIA_PRIMARY, attempts=result.attempts,
                )

            self.breaker.record_failure(operation_key)
            if not result.exhausted or fallback is None:
                raise result.error

            started = time.monotonic()
            value = fallback(*args, **kwargs)
            log_with_context(
                logger, logging.WARNING,
                f"Degraded: {operation_key} failed after {result.attempts} attempts, "
                f"fallback used ({(time.monotonic() - started) * 1000:.0f}ms)",
            )
            return InvocationResult(
                value=value, via=VIA_FALLBACK, attempts=result.attempts,
            )

    def get_circuit_status(self, operation_key: str) -> CircuitBreakerState:
        """Current circuit state for an operation key."""
        return self.breaker.get_state(operation_key)

    def get_stats(self, operation_key: str) -> RetryStats:
        """Retry statistics for an operation key."""
        return self.stats.get(operation_key)

    def reset_stats(self, operation_key: Optional[str] = None) -> None:
        self.stats.reset(operation_key)
