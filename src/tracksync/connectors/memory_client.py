"""
In-memory remote client for tests and dry runs.

Provides a deterministic stand-in for the remote tracker without any
network dependencies, with failure injection for exercising retry,
circuit breaker and degradation paths.
"""

import copy
import logging
import threading
import time
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from ..core.exceptions import NotFoundError, PermanentRemoteError
from ..core.remote_client import RemoteClient


logger = logging.getLogger(__name__)


DEFAULT_TRANSITIONS = ["To Do", "In Progress", "Done", "Closed"]


class InMemoryRemoteClient(RemoteClient):
    """
    Deterministic remote client backed by a dictionary of issues.

    Features:
    - Issues keyed by entity id, holding flat remote fields
    - Queued failures per method (``fail_next``) and sticky failures
      (``fail_always``)
    - Optional simulated latency
    - Full call history for assertions

    Args:
        issues: Initial remote fields keyed by entity id
        transitions: Available transition targets per entity id
        simulate_latency_ms: Simulated latency per call in milliseconds
        clock: Returns the time stamped into ``updated`` on apply
    """

    def __init__(
        self,
        issues: Optional[Dict[str, Dict[str, Any]]] = None,
        transitions: Optional[Dict[str, List[str]]] = None,
        simulate_latency_ms: int = 0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.issues: Dict[str, Dict[str, Any]] = copy.deepcopy(issues or {})
        self.transitions: Dict[str, List[str]] = dict(transitions or {})
        self.simulate_latency_ms = simulate_latency_ms
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.request_history: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []
        self._queued_failures: Dict[str, Deque[Exception]] = defaultdict(deque)
        self._sticky_failures: Dict[str, Exception] = {}
        self._lock = threading.Lock()

        logger.debug(f"InMemoryRemoteClient initialized with {len(self.issues)} issues")

    # Failure injection

    def fail_next(self, method: str, *errors: Exception) -> None:
        """Queue errors raised by the next calls to ``method``, one per call."""
        with self._lock:
            self._queued_failures[method].extend(errors)

    def fail_always(self, method: str, error: Optional[Exception]) -> None:
        """Make every call to ``method`` raise ``error`` (None clears it)."""
        with self._lock:
            if error is None:
                self._sticky_failures.pop(method, None)
            else:
                self._sticky_failures[method] = error

    def calls(self, method: Optional[str] = None) -> List[Tuple[str, str, Optional[Dict[str, Any]]]]:
        """Recorded calls, optionally filtered by method."""
        with self._lock:
            return [c for c in self.request_history if method is None or c[0] == method]

    def _begin(self, method: str, entity_id: str, payload: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            self.request_history.append((method, entity_id, copy.deepcopy(payload)))
            error = None
            if self._queued_failures[method]:
                error = self._queued_failures[method].popleft()
            elif method in self._sticky_failures:
                error = self._sticky_failures[method]

        if self.simulate_latency_ms > 0:
            time.sleep(self.simulate_latency_ms / 1000.0)

        if error is not None:
            logger.debug(f"Simulating {type(error).__name__} for {method} {entity_id}")
            raise error

    # RemoteClient

    def fetch(self, entity_id: str) -> Dict[str, Any]:
        self._begin("fetch", entity_id)
        with self._lock:
            if entity_id not in self.issues:
                raise NotFoundError(f"Issue not found: {entity_id}", entity_id=entity_id)
            return copy.deepcopy(self.issues[entity_id])

    def apply(self, entity_id: str, field_updates: Dict[str, Any]) -> Dict[str, Any]:
        self._begin("apply", entity_id, field_updates)
        with self._lock:
            if entity_id not in self.issues:
                raise NotFoundError(f"Issue not found: {entity_id}", entity_id=entity_id)
            target = field_updates.get("status")
            if target is not None and target != self.issues[entity_id].get("status"):
                available = self.transitions.get(entity_id, DEFAULT_TRANSITIONS)
                if target not in available:
                    raise PermanentRemoteError(
                        f"Transition to '{target}' not available for {entity_id}",
                        status_code=400,
                    )
            self.issues[entity_id].update(copy.deepcopy(field_updates))
            self.issues[entity_id]["updated"] = self.clock().isoformat()
            return {"id": entity_id, "updated_fields": sorted(field_updates)}

    def list_transitions(self, entity_id: str) -> List[str]:
        self._begin("list_transitions", entity_id)
        with self._lock:
            if entity_id not in self.issues:
                raise NotFoundError(f"Issue not found: {entity_id}", entity_id=entity_id)
            return list(self.transitions.get(entity_id, DEFAULT_TRANSITIONS))

    # Helpers

    def add_issue(self, entity_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            self.issues[entity_id] = copy.deepcopy(fields)

    def reset(self) -> None:
        """Clear call history and injected failures."""
        with self._lock:
            self.request_history.clear()
            self._queued_failures.clear()
            self._sticky_failures.clear()
