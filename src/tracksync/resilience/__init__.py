"""
Resilient invocation layer: retry with backoff, circuit breaker, statistics.
"""

from .classify import ErrorCategory, classify_error, is_transient, error_for_status
from .retry import (
    RetryConfig,
    RetryResult,
    CancellationToken,
    calculate_delay,
    retry_with_backoff,
)
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from .stats import RetryStatsRegistry
from .invoker import ResilientInvoker, InvocationResult, VIA_PRIMARY, VIA_FALLBACK

__all__ = [
    "ErrorCategory",
    "classify_error",
    "is_transient",
    "error_for_status",
    "RetryConfig",
    "RetryResult",
    "CancellationToken",
    "calculate_delay",
    "retry_with_backoff",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "RetryStatsRegistry",
    "ResilientInvoker",
    "InvocationResult",
    "VIA_PRIMARY",
    "VIA_FALLBACK",
]
