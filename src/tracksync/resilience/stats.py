"""
Per-operation retry statistics.

Counters are observational only; nothing in the invocation path reads
them back to make decisions.
"""

import threading
import time
from dataclasses import replace
from typing import Callable, Dict, Optional

from ..core.models import RetryStats


class RetryStatsRegistry:
    """
    Thread-safe RetryStats keyed by operation.

    Attempt 1 of a call counts as a new operation; later attempts count as
    retries.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self.clock = clock or time.time
        self._stats: Dict[str, RetryStats] = {}
        self._lock = threading.Lock()

    def record_attempt(self, operation_key: str, attempt: int, success: bool) -> None:
        with self._lock:
            stats = self._stats.setdefault(operation_key, RetryStats(operation_key))
            stats.total_attempts += 1
            if attempt == 1:
                stats.total_operations += 1
            else:
                stats.retry_count += 1
            if success:
                stats.success_count += 1
            else:
                stats.failure_count += 1
            stats.last_attempt_at = self.clock()

    def get(self, operation_key: str) -> RetryStats:
        """Return a copy of the stats for a key (zeroed if never seen)."""
        with self._lock:
            stats = self._stats.get(operation_key)
            return replace(stats) if stats else RetryStats(operation_key)

    def all(self) -> Dict[str, RetryStats]:
        with self._lock:
            return {key: replace(stats) for key, stats in self._stats.items()}

    def reset(self, operation_key: Optional[str] = None) -> None:
        """Reset one key, or every key when none is given."""
        with self._lock:
            if operation_key is None:
                self._stats.clear()
            else:
                self._stats.pop(operation_key, None)
