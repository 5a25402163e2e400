"""
Per-operation circuit breaker with persisted state.

State machine per operation key::

    closed --(failures reach threshold)--> open
    open --(reset_timeout elapsed since last failure)--> half_open
    half_open --(success)--> closed
    half_open --(failure)--> open

While half-open exactly one caller holds the trial call; everyone else is
rejected until the trial's outcome is recorded. A trial call whose outcome never
arrives (the worker died) expires after ``reset_timeout``.

Every transition is a read-modify-write through the state store's atomic
``update``, so concurrent workers (threads or processes sharing the state
file) never lose a recorded outcome.
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, List, Optional

from ..core.logging import log_with_context
from ..core.models import CircuitBreakerState, CircuitState
from ..core.stores import CircuitStateStore


logger = logging.getLogger(__name__)


@dataclass
class CircuitBreakerConfig:
    """
    Configuration for circuit breakers.

    Attributes:
        threshold: Consecutive failures that open the circuit
        reset_timeout: Seconds an open circuit waits before allowing a trial call
    """
    threshold: int = 5
    reset_timeout: float = 300.0


class CircuitBreaker:
    """
    Circuit breaker over a CircuitStateStore.

    Args:
        store: Persistent state store
        config: Threshold and reset timeout
        clock: Returns epoch seconds (injectable for tests)
    """

    def __init__(
        self,
        store: CircuitStateStore,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.store = store
        self.config = config or CircuitBreakerConfig()
        self.clock = clock or time.time

    def _reset_due(self, state: CircuitBreakerState, now: float) -> bool:
        return (
            state.state == CircuitState.OPEN
            and (state.last_failure_at is None
                 or now - state.last_failure_at >= self.config.reset_timeout)
        )

    def get_state(self, operation_key: str) -> CircuitBreakerState:
        """
        Current state of a key, applying the open -> half_open timeout.
        """
        state = self.store.load_state(operation_key)
        if not self._reset_due(state, self.clock()):
            return state

        def to_half_open(current: CircuitBreakerState) -> CircuitBreakerState:
            now = self.clock()
            if not self._reset_due(current, now):
                return current
            return replace(
                current, state=CircuitState.HALF_OPEN, trial_started_at=None, updated_at=now,
            )

        updated = self.store.update(operation_key, to_half_open)
        if updated.state == CircuitState.HALF_OPEN and state.state == CircuitState.OPEN:
            log_with_context(
                logger, logging.WARNING,
                f"Circuit for {operation_key} is half-open, allowing one trial call",
                operation_key=operation_key,
            )
        return updated

    def _trial_expired(self, state: CircuitBreakerState, now: float) -> bool:
        return (
            state.trial_started_at is None
            or now - state.trial_started_at >= self.config.reset_timeout
        )

    def allow_request(self, operation_key: str) -> bool:
        """
        Decide whether a call may go out.

        Closed circuits allow every call and open ones none. A half-open
        circuit allows one trial call: the caller that claims it gets True, every
        other caller gets False until record_success or record_failure.
        """
        state = self.get_state(operation_key)
        if state.state != CircuitState.HALF_OPEN:
            return state.state == CircuitState.CLOSED

        decision: List[bool] = []

        def claim_trial(current: CircuitBreakerState) -> CircuitBreakerState:
            now = self.clock()
            if current.state != CircuitState.HALF_OPEN:
                decision.append(current.state == CircuitState.CLOSED)
                return current
            if not self._trial_expired(current, now):
                decision.append(False)
                return current
            decision.append(True)
            return replace(current, trial_started_at=now, updated_at=now)

        self.store.update(operation_key, claim_trial)
        if not decision[0]:
            logger.debug(f"Trial call already in flight for {operation_key}, call rejected")
        return decision[0]

    def release_trial(self, operation_key: str) -> None:
        """Give up a claimed trial call without recording an outcome (e.g. on cancel)."""
        def release(current: CircuitBreakerState) -> CircuitBreakerState:
            if current.trial_started_at is None:
                return current
            return replace(current, trial_started_at=None, updated_at=self.clock())

        self.store.update(operation_key, release)

    def retry_after(self, operation_key: str) -> Optional[float]:
        """
        Seconds until a rejected caller may try again.

        For an open circuit this is the rest of the reset timeout; for a
        half-open one it is the time left before the in-flight trial call expires.
        None when calls are not being rejected.
        """
        state = self.store.load_state(operation_key)
        if state.state == CircuitState.OPEN and state.last_failure_at is not None:
            started = state.last_failure_at
        elif state.state == CircuitState.HALF_OPEN and state.trial_started_at is not None:
            started = state.trial_started_at
        else:
            return None
        return max(0.0, started + self.config.reset_timeout - self.clock())

    def record_success(self, operation_key: str) -> CircuitBreakerState:
        """Close the circuit and reset the failure count."""
        previous: List[CircuitState] = []

        def close(current: CircuitBreakerState) -> CircuitBreakerState:
            previous.append(current.state)
            if (current.state == CircuitState.CLOSED and current.failure_count == 0
                    and current.trial_started_at is None):
                return current
            return replace(
                current,
                state=CircuitState.CLOSED,
                failure_count=0,
                trial_started_at=None,
                updated_at=self.clock(),
            )

        updated = self.store.update(operation_key, close)
        if previous and previous[0] != CircuitState.CLOSED:
            log_with_context(
                logger, logging.WARNING,
                f"Circuit for {operation_key} closed after successful call",
                operation_key=operation_key,
            )
        return updated

    def record_failure(self, operation_key: str) -> CircuitBreakerState:
        """Count a failure, opening the circuit at the threshold or from half-open."""
        previous: List[CircuitState] = []

        def fail(current: CircuitBreakerState) -> CircuitBreakerState:
            previous.append(current.state)
            now = self.clock()
            failure_count = current.failure_count + 1
            if (current.state == CircuitState.HALF_OPEN
                    or failure_count >= self.config.threshold):
                new_state = CircuitState.OPEN
            else:
                new_state = current.state
            return replace(
                current,
                state=new_state,
                failure_count=failure_count,
                last_failure_at=now,
                trial_started_at=None,
                updated_at=now,
            )

        updated = self.store.update(operation_key, fail)
        if updated.state == CircuitState.OPEN and previous and previous[0] != CircuitState.OPEN:
            log_with_context(
                logger, logging.WARNING,
                f"Circuit for {operation_key} opened after {updated.failure_count} "
                f"failure(s); rejecting calls for {self.config.reset_timeout:.0f}s",
                operation_key=operation_key,
            )
        return updated
