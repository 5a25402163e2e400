"""
Core data models for the reconciliation core.

Defines the provider-neutral CanonicalRecord, the SyncSnapshot used as the
base for three-way diffing, conflict reports, circuit breaker state and
retry statistics.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class EntityKind(str, Enum):
    """Kind of work item being reconciled."""
    EPIC = "epic"
    TASK = "task"


class Status(str, Enum):
    """
    Canonical lifecycle status.

    Provider-specific status strings never travel past the mapping layer;
    everything downstream of it sees one of these members.
    """
    TODO = "ToDo"
    IN_PROGRESS = "InProgress"
    DONE = "Done"
    CLOSED = "Closed"

    @property
    def rank(self) -> int:
        """Lifecycle rank used by the merge heuristic (higher = more advanced)."""
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (Status.DONE, Status.CLOSED)


_STATUS_RANK = {
    Status.TODO: 0,
    Status.IN_PROGRESS: 1,
    Status.DONE: 2,
    Status.CLOSED: 3,
}


# Fields compared by the detector for every record, in report order
CORE_FIELDS = ("name", "status", "description", "assignee", "progress")


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class CanonicalRecord:
    """
    Provider-neutral representation of a work item.

    Attributes:
        id: Entity identifier shared by both sides (e.g. 'PROJ-123')
        kind: Epic or task
        name: Short title
        status: Canonical lifecycle status
        description: Free-form body text
        assignee: Display name of the assignee, None when unassigned
        progress: Completion percentage, always within [0, 100]
        custom_fields: Declared custom fields keyed by canonical name
        updated_at: Last modification time reported by the owning side
    """
    id: str
    kind: EntityKind = EntityKind.TASK
    name: str = ""
    status: Status = Status.TODO
    description: str = ""
    assignee: Optional[str] = None
    progress: int = 0
    custom_fields: Dict[str, Any] = field(default_factory=dict)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.kind = EntityKind(self.kind)
        self.status = Status(self.status)
        self.progress = max(0, min(100, int(self.progress)))
        self.updated_at = _parse_timestamp(self.updated_at)

    def get_field(self, name: str) -> Any:
        """Get a core or custom field value by canonical name."""
        if name in CORE_FIELDS or name == "updated_at":
            return getattr(self, name)
        return self.custom_fields.get(name)

    def with_updates(self, updates: Dict[str, Any]) -> "CanonicalRecord":
        """
        Return a copy with the given fields replaced.

        Keys that are not core fields are written into custom_fields.
        """
        core = {}
        custom = dict(self.custom_fields)
        for key, value in updates.items():
            if key in CORE_FIELDS or key == "updated_at":
                core[key] = value
            else:
                custom[key] = value
        return replace(self, custom_fields=custom, **core)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "status": self.status.value,
            "description": self.description,
            "assignee": self.assignee,
            "progress": self.progress,
            "custom_fields": dict(self.custom_fields),
            "updated_at": _format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanonicalRecord":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            kind=EntityKind(data.get("kind", EntityKind.TASK.value)),
            name=data.get("name", ""),
            status=Status(data.get("status", Status.TODO.value)),
            description=data.get("description") or "",
            assignee=data.get("assignee"),
            progress=data.get("progress", 0),
            custom_fields=dict(data.get("custom_fields") or {}),
            updated_at=_parse_timestamp(data.get("updated_at")),
        )


@dataclass
class SyncSnapshot:
    """
    Last mutually agreed state of an entity.

    Written only after both sides were reconciled successfully, and always
    as a whole; a snapshot is never partially updated.
    """
    entity_id: str
    last_local_state: CanonicalRecord
    last_remote_state: CanonicalRecord
    synced_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "last_local_state": self.last_local_state.to_dict(),
            "last_remote_state": self.last_remote_state.to_dict(),
            "synced_at": _format_timestamp(self.synced_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncSnapshot":
        return cls(
            entity_id=data["entity_id"],
            last_local_state=CanonicalRecord.from_dict(data["last_local_state"]),
            last_remote_state=CanonicalRecord.from_dict(data["last_remote_state"]),
            synced_at=_parse_timestamp(data.get("synced_at")),
        )


class ConflictKind(str, Enum):
    """Classification of a single field conflict."""
    FIELD_MISMATCH = "field_mismatch"
    CONCURRENT_MODIFICATION = "concurrent_modification"


class ChangedSide(str, Enum):
    """Which side moved away from the snapshot for a conflicting field."""
    LOCAL = "local"
    REMOTE = "remote"
    BOTH = "both"
    UNKNOWN = "unknown"


class Side(str, Enum):
    """One of the two reconciled records."""
    LOCAL = "local"
    REMOTE = "remote"


@dataclass
class FieldConflict:
    """A single field whose local and remote values disagree."""
    field: str
    local_value: Any
    remote_value: Any
    kind: ConflictKind = ConflictKind.FIELD_MISMATCH
    changed_side: ChangedSide = ChangedSide.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "local_value": _jsonable(self.local_value),
            "remote_value": _jsonable(self.remote_value),
            "kind": self.kind.value,
            "changed_side": self.changed_side.value,
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@dataclass
class ConflictReport:
    """
    Result of a three-way compare for one entity.

    Carries the local and remote records it was computed from so that a
    resolution strategy can build the merged record without re-reading
    either side.
    """
    entity_id: str
    conflicts: List[FieldConflict] = field(default_factory=list)
    local: Optional[CanonicalRecord] = None
    remote: Optional[CanonicalRecord] = None
    detected_at: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return not self.conflicts

    @property
    def fields(self) -> List[str]:
        return [c.field for c in self.conflicts]

    @property
    def has_concurrent_modification(self) -> bool:
        return any(c.kind == ConflictKind.CONCURRENT_MODIFICATION for c in self.conflicts)

    def get_conflict(self, field_name: str) -> Optional[FieldConflict]:
        for conflict in self.conflicts:
            if conflict.field == field_name:
                return conflict
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "local": self.local.to_dict() if self.local else None,
            "remote": self.remote.to_dict() if self.remote else None,
            "detected_at": _format_timestamp(self.detected_at),
        }


class CircuitState(str, Enum):
    """Circuit breaker state."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerState:
    """
    Persisted circuit breaker state for one operation key.

    Timestamps are epoch seconds so the state file stays trivially
    comparable across processes. ``trial_started_at`` is set while the
    single half-open trial call is in flight.
    """
    operation_key: str
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_at: Optional[float] = None
    updated_at: Optional[float] = None
    trial_started_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_key": self.operation_key,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_at": self.last_failure_at,
            "updated_at": self.updated_at,
            "trial_started_at": self.trial_started_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CircuitBreakerState":
        return cls(
            operation_key=data["operation_key"],
            state=CircuitState(data.get("state", CircuitState.CLOSED.value)),
            failure_count=int(data.get("failure_count", 0)),
            last_failure_at=data.get("last_failure_at"),
            updated_at=data.get("updated_at"),
            trial_started_at=data.get("trial_started_at"),
        )


@dataclass
class RetryStats:
    """Observational counters for one operation key."""
    operation_key: str
    total_attempts: int = 0
    total_operations: int = 0
    success_count: int = 0
    failure_count: int = 0
    retry_count: int = 0
    last_attempt_at: Optional[float] = None

    @property
    def success_rate(self) -> float:
        """Fraction of attempts that succeeded (0.0 when nothing was attempted)."""
        if not self.total_attempts:
            return 0.0
        return self.success_count / self.total_attempts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_key": self.operation_key,
            "total_attempts": self.total_attempts,
            "total_operations": self.total_operations,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "retry_count": self.retry_count,
            "last_attempt_at": self.last_attempt_at,
        }


class SyncStatus(str, Enum):
    """Outcome of one reconciliation cycle."""
    NOOP = "noop"
    SYNCED = "synced"
    DEFERRED = "deferred"
    PARTIAL = "partial"


@dataclass
class SyncResult:
    """
    Result of SyncOrchestrator.sync_entity.

    Attributes:
        entity_id: Entity that was reconciled
        status: noop, synced, deferred or partial
        report: Conflict report when divergence was found
        strategy: Strategy used for the cycle
        local_delta: Fields written to the local store
        remote_delta: Fields pushed (or queued) to the remote side
        degraded: True if the remote push only succeeded via fallback
        error: Error that made the cycle deferred or partial
        pending_side: Side that still holds the authoritative pending delta
    """
    entity_id: str
    status: SyncStatus
    report: Optional[ConflictReport] = None
    strategy: Optional[str] = None
    local_delta: Dict[str, Any] = field(default_factory=dict)
    remote_delta: Dict[str, Any] = field(default_factory=dict)
    degraded: bool = False
    error: Optional[Exception] = None
    pending_side: Optional[Side] = None

    @property
    def ok(self) -> bool:
        return self.status in (SyncStatus.NOOP, SyncStatus.SYNCED)

    def raise_for_status(self) -> None:
        """Raise the attached error if the cycle was deferred or partial."""
        if self.error is not None:
            raise self.error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "status": self.status.value,
            "strategy": self.strategy,
            "report": self.report.to_dict() if self.report else None,
            "local_delta": {k: _jsonable(v) for k, v in self.local_delta.items()},
            "remote_delta": {k: _jsonable(v) for k, v in self.remote_delta.items()},
            "degraded": self.degraded,
            "error": str(self.error) if self.error else None,
            "pending_side": self.pending_side.value if self.pending_side else None,
        }
