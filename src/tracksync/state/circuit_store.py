"""
Circuit breaker state stores.

FileCircuitStateStore keeps every operation key in one JSON file so that
state survives restarts and is shared by processes using the same state
directory.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict

from ..core.exceptions import SyncStorageError
from ..core.models import CircuitBreakerState
from ..core.stores import CircuitStateStore
from .atomic import atomic_write_json, file_lock, read_json


logger = logging.getLogger(__name__)


class FileCircuitStateStore(CircuitStateStore):
    """
    JSON file store for circuit breaker state.

    Read-modify-write is serialised by a process-local lock plus an
    advisory ``fcntl`` lock on ``<path>.lock``; writes are atomic.

    Args:
        path: State file path (e.g. ``.tracksync/circuit-breaker.json``)
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, CircuitBreakerState]:
        data = read_json(self.path) or {}
        if not isinstance(data, dict):
            raise SyncStorageError(f"Corrupt circuit state file {self.path}")
        try:
            return {
                key: CircuitBreakerState.from_dict(value)
                for key, value in data.items()
            }
        except (KeyError, TypeError, ValueError) as e:
            raise SyncStorageError(f"Corrupt circuit state file {self.path}: {e}")

    def _write_all(self, states: Dict[str, CircuitBreakerState]) -> None:
        atomic_write_json(self.path, {key: s.to_dict() for key, s in states.items()})

    def load_state(self, operation_key: str) -> CircuitBreakerState:
        states = self._read_all()
        return states.get(operation_key) or CircuitBreakerState(operation_key)

    def save_state(self, state: CircuitBreakerState) -> None:
        self.update(state.operation_key, lambda _current: state)

    def update(
        self,
        operation_key: str,
        fn: Callable[[CircuitBreakerState], CircuitBreakerState],
    ) -> CircuitBreakerState:
        with self._lock, file_lock(self.lock_path):
            states = self._read_all()
            current = states.get(operation_key) or CircuitBreakerState(operation_key)
            updated = fn(current)
            if updated != current:
                if updated.updated_at is None:
                    updated.updated_at = time.time()
                states[operation_key] = updated
                self._write_all(states)
            return updated

    def list_states(self) -> Dict[str, CircuitBreakerState]:
        return self._read_all()


def _copy(state: CircuitBreakerState) -> CircuitBreakerState:
    return CircuitBreakerState.from_dict(state.to_dict())


class InMemoryCircuitStateStore(CircuitStateStore):
    """
    Circuit state kept in a dictionary guarded by a lock.

    States are copied in and out, so callers never hold the stored objects.
    """

    def __init__(self):
        self._states: Dict[str, CircuitBreakerState] = {}
        self._lock = threading.Lock()

    def load_state(self, operation_key: str) -> CircuitBreakerState:
        with self._lock:
            state = self._states.get(operation_key)
            return _copy(state) if state else CircuitBreakerState(operation_key)

    def save_state(self, state: CircuitBreakerState) -> None:
        with self._lock:
            self._states[state.operation_key] = _copy(state)

    def update(
        self,
        operation_key: str,
        fn: Callable[[CircuitBreakerState], CircuitBreakerState],
    ) -> CircuitBreakerState:
        with self._lock:
            current = self._states.get(operation_key) or CircuitBreakerState(operation_key)
            updated = fn(_copy(current))
            self._states[operation_key] = _copy(updated)
            return updated

    def list_states(self) -> Dict[str, CircuitBreakerState]:
        with self._lock:
            return {key: _copy(state) for key, state in self._states.items()}
