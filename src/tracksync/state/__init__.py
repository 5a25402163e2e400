"""
Durable state: snapshots, circuit breaker state and local records.
"""

from .atomic import atomic_write, atomic_write_json, read_json, file_lock
from .snapshot_store import FileSnapshotStore, InMemorySnapshotStore
from .circuit_store import FileCircuitStateStore, InMemoryCircuitStateStore
from .local_store import MarkdownLocalStore, InMemoryLocalStore

__all__ = [
    "atomic_write",
    "atomic_write_json",
    "read_json",
    "file_lock",
    "FileSnapshotStore",
    "InMemorySnapshotStore",
    "FileCircuitStateStore",
    "InMemoryCircuitStateStore",
    "MarkdownLocalStore",
    "InMemoryLocalStore",
]
