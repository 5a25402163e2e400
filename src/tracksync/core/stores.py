"""
Storage interfaces for local records, snapshots and circuit state.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from .models import CanonicalRecord, CircuitBreakerState, SyncSnapshot


class LocalStore(ABC):
    """
    Abstract base class for the local side of a sync pair.

    The local store owns the file-backed (or in-memory) canonical records.
    """

    @abstractmethod
    def read(self, entity_id: str) -> CanonicalRecord:
        """
        Read the local record for an entity.

        Raises:
            LocalRecordNotFoundError: If no record exists
        """
        pass

    @abstractmethod
    def write(self, entity_id: str, record: CanonicalRecord) -> None:
        """Persist a record, replacing any existing one."""
        pass

    @abstractmethod
    def exists(self, entity_id: str) -> bool:
        """Check whether a local record exists."""
        pass


class SnapshotStore(ABC):
    """
    Abstract base class for snapshot stores.

    Snapshots are the base of the three-way diff. ``save`` must be atomic:
    a reader sees either the previous snapshot or the new one, never a
    partial write.
    """

    @abstractmethod
    def load(self, entity_id: str) -> Optional[SyncSnapshot]:
        """
        Load the snapshot for an entity.

        Returns:
            The snapshot, or None if the entity was never synced

        Raises:
            SyncStorageError: If a stored snapshot cannot be read
        """
        pass

    @abstractmethod
    def save(self, snapshot: SyncSnapshot) -> None:
        """Atomically replace the snapshot for ``snapshot.entity_id``."""
        pass

    @abstractmethod
    def delete(self, entity_id: str) -> bool:
        """
        Delete the snapshot for an entity.

        Returns:
            True if a snapshot was deleted
        """
        pass


class CircuitStateStore(ABC):
    """
    Abstract base class for circuit breaker state stores.

    All read-modify-write sequences go through ``update`` so that two
    writers never interleave on the same operation key.
    """

    @abstractmethod
    def load_state(self, operation_key: str) -> CircuitBreakerState:
        """Load state for a key (a fresh closed state if none is stored)."""
        pass

    @abstractmethod
    def save_state(self, state: CircuitBreakerState) -> None:
        """Atomically persist state for ``state.operation_key``."""
        pass

    @abstractmethod
    def update(
        self,
        operation_key: str,
        fn: Callable[[CircuitBreakerState], CircuitBreakerState],
    ) -> CircuitBreakerState:
        """
        Atomically apply ``fn`` to the current state of a key.

        Args:
            operation_key: Operation whose state is updated
            fn: Receives the current state, returns the new state

        Returns:
            The state returned by ``fn`` (as persisted)
        """
        pass

    @abstractmethod
    def list_states(self) -> Dict[str, CircuitBreakerState]:
        """Return every stored state keyed by operation key."""
        pass
