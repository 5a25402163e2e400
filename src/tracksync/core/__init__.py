"""
Core subpackage for tracksync.

Contains models, exceptions, interfaces, and logging utilities.
"""

from .models import (
    EntityKind,
    Status,
    CanonicalRecord,
    SyncSnapshot,
    ConflictKind,
    ChangedSide,
    Side,
    FieldConflict,
    ConflictReport,
    CircuitState,
    CircuitBreakerState,
    RetryStats,
    SyncStatus,
    SyncResult,
)
from .exceptions import (
    SyncError,
    RemoteError,
    TransientRemoteError,
    RetryExhaustedError,
    PermanentRemoteError,
    NotFoundError,
    MappingError,
    ConflictUnresolved,
    CircuitOpenError,
    OperationCancelledError,
    LocalRecordNotFoundError,
    SyncStorageError,
    SyncConfigError,
)
from .remote_client import RemoteClient
from .stores import LocalStore, SnapshotStore, CircuitStateStore

__all__ = [
    # Models
    "EntityKind",
    "Status",
    "CanonicalRecord",
    "SyncSnapshot",
    "ConflictKind",
    "ChangedSide",
    "Side",
    "FieldConflict",
    "ConflictReport",
    "CircuitState",
    "CircuitBreakerState",
    "RetryStats",
    "SyncStatus",
    "SyncResult",
    # Exceptions
    "SyncError",
    "RemoteError",
    "TransientRemoteError",
    "RetryExhaustedError",
    "PermanentRemoteError",
    "NotFoundError",
    "MappingError",
    "ConflictUnresolved",
    "CircuitOpenError",
    "OperationCancelledError",
    "LocalRecordNotFoundError",
    "SyncStorageError",
    "SyncConfigError",
    # Interfaces
    "RemoteClient",
    "LocalStore",
    "SnapshotStore",
    "CircuitStateStore",
]
