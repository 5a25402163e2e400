"""
Sync orchestrator: one reconciliation cycle per entity.

A cycle reads the local record, fetches and maps the remote record,
detects divergence against the last snapshot, resolves it under the chosen
strategy, pushes the remote delta through the resilient invoker, writes
the local delta, and advances the snapshot only when both sides were
reconciled through the primary path.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..conflict.audit import ConflictAuditLog
from ..conflict.detector import ConflictDetector
from ..conflict.resolution import ResolutionEngine, ResolutionResult, ResolutionStrategy
from ..core.exceptions import (
    CircuitOpenError,
    ConflictUnresolved,
    OperationCancelledError,
    PermanentRemoteError,
    RetryExhaustedError,
)
from ..core.logging import CorrelationContext, log_with_context
from ..core.models import (
    CanonicalRecord,
    CircuitBreakerState,
    ConflictReport,
    EntityKind,
    Side,
    SyncResult,
    SyncSnapshot,
    SyncStatus,
)
from ..core.remote_client import RemoteClient
from ..core.stores import LocalStore, SnapshotStore
from ..mapping.field_mapper import FieldMapper
from ..resilience.circuit_breaker import CircuitBreaker
from ..resilience.invoker import ResilientInvoker
from ..resilience.retry import CancellationToken
from ..state.circuit_store import FileCircuitStateStore
from ..state.local_store import MarkdownLocalStore
from ..state.snapshot_store import FileSnapshotStore


logger = logging.getLogger(__name__)


def fetch_key(kind: EntityKind) -> str:
    return f"fetch-{EntityKind(kind).value}"


def update_key(kind: EntityKind) -> str:
    return f"update-{EntityKind(kind).value}"


def transitions_key(kind: EntityKind) -> str:
    return f"transitions-{EntityKind(kind).value}"


class SyncOrchestrator:
    """
    Runs reconciliation cycles between a local store and a remote client.

    Args:
        local_store: Local side of the pair
        remote_client: Remote side of the pair
        snapshot_store: Last agreed states
        invoker: Resilient invoker every remote call goes through
        mapper: Field mapper (defaults to the built-in mappings)
        detector: Conflict detector (defaults to one comparing the mapper's fields)
        engine: Resolution engine
        audit_log: Conflict audit log (pending entries, history, outbox)
        queue_failed_pushes: Queue remote updates to the outbox once retries run out
        default_strategy: Strategy used when sync_entity gets none
        clock: Returns the time stamped on local writes
    """

    def __init__(
        self,
        local_store: LocalStore,
        remote_client: RemoteClient,
        snapshot_store: SnapshotStore,
        invoker: ResilientInvoker,
        mapper: Optional[FieldMapper] = None,
        detector: Optional[ConflictDetector] = None,
        engine: Optional[ResolutionEngine] = None,
        audit_log: Optional[ConflictAuditLog] = None,
        queue_failed_pushes: bool = True,
        default_strategy: str = ResolutionStrategy.MERGE.value,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.local_store = local_store
        self.remote = remote_client
        self.snapshots = snapshot_store
        self.invoker = invoker
        self.mapper = mapper or FieldMapper()
        self.detector = detector or ConflictDetector(
            custom_fields=[spec.canonical for spec in self.mapper.custom_fields]
        )
        self.audit_log = audit_log
        self.engine = engine or ResolutionEngine(audit_log=audit_log)
        self.queue_failed_pushes = queue_failed_pushes
        self.default_strategy = default_strategy
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def sync_entity(
        self,
        entity_id: str,
        strategy: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
        kind: EntityKind = EntityKind.TASK,
    ) -> SyncResult:
        """
        Run one reconciliation cycle.

        Args:
            entity_id: Entity to reconcile
            strategy: Resolution strategy (default_strategy when None)
            cancel: Cancellation token for retry backoff
            kind: Kind used to pull an entity that has no local record yet

        Returns:
            SyncResult (noop, synced, deferred or partial)

        Raises:
            RemoteError / CircuitOpenError: If the remote fetch fails (pending_side None)
            PermanentRemoteError / CircuitOpenError: If the push fails for good,
                raised after local changes were written (pending_side 'remote')
        """
        strategy = strategy.value if isinstance(strategy, ResolutionStrategy) else (
            strategy or self.default_strategy
        )
        with CorrelationContext(entity_id=entity_id, strategy=strategy):
            if not self.local_store.exists(entity_id):
                return self._pull_new(entity_id, EntityKind(kind), cancel)

            local = self.local_store.read(entity_id)
            remote = self._fetch_remote(entity_id, local.kind, cancel)
            snapshot = self.snapshots.load(entity_id)
            report = self.detector.detect(local, remote, snapshot)

            if report.is_empty:
                self.snapshots.save(SyncSnapshot(entity_id, local, remote, self.clock()))
                if self.audit_log is not None and self.audit_log.has_pending(entity_id):
                    self.audit_log.clear_pending(entity_id)
                log_with_context(logger, logging.DEBUG, f"{entity_id} already in sync")
                return SyncResult(entity_id, SyncStatus.NOOP, strategy=strategy)

            resolution = self.engine.resolve(report, strategy)
            if resolution.deferred:
                return self._deferred(report, resolution, strategy)

            return self._apply(report, resolution, strategy, cancel)

    def get_circuit_status(self, operation_key: str) -> CircuitBreakerState:
        """Current circuit breaker state for an operation key."""
        return self.invoker.get_circuit_status(operation_key)

    def _fetch_remote(
        self,
        entity_id: str,
        kind: EntityKind,
        cancel: Optional[CancellationToken],
    ) -> CanonicalRecord:
        outcome = self.invoker.invoke(
            fetch_key(kind), self.remote.fetch, entity_id, cancel=cancel,
        )
        return self.mapper.from_remote(outcome.value, entity_id, kind)

    def _pull_new(
        self,
        entity_id: str,
        kind: EntityKind,
        cancel: Optional[CancellationToken],
    ) -> SyncResult:
        remote = self._fetch_remote(entity_id, kind, cancel)
        local = remote.with_updates({"updated_at": self.clock()})
        self.local_store.write(entity_id, local)
        self.snapshots.save(SyncSnapshot(entity_id, local, remote, self.clock()))
        log_with_context(
            logger, logging.INFO, f"Pulled new entity {entity_id} from remote",
        )
        return SyncResult(
            entity_id,
            SyncStatus.SYNCED,
            local_delta={
                name: remote.get_field(name)
                for name in self.mapper.compared_fields(kind)
            },
        )

    def _deferred(
        self,
        report: ConflictReport,
        resolution: ResolutionResult,
        strategy: str,
    ) -> SyncResult:
        if self.audit_log is not None:
            self.audit_log.record_resolution(
                report.entity_id, strategy, SyncStatus.DEFERRED.value, report.fields,
            )
        error = ConflictUnresolved(
            f"{len(report.conflicts)} conflict(s) for {report.entity_id} "
            f"need manual resolution",
            entity_id=report.entity_id,
            fields=report.fields,
            audit_path=str(resolution.audit_path) if resolution.audit_path else None,
        )
        return SyncResult(
            report.entity_id,
            SyncStatus.DEFERRED,
            report=report,
            strategy=strategy,
            error=error,
        )

    def _apply(
        self,
        report: ConflictReport,
        resolution: ResolutionResult,
        strategy: str,
        cancel: Optional[CancellationToken],
    ) -> SyncResult:
        entity_id = report.entity_id
        local, remote = report.local, report.remote
        kind = local.kind

        degraded = False
        push_error: Optional[Exception] = None
        fatal_error: Optional[Exception] = None
        if resolution.remote_delta:
            try:
                degraded = self._push_remote(entity_id, kind, resolution.remote_delta, cancel)
            except RetryExhaustedError as e:
                push_error = e
            except (PermanentRemoteError, CircuitOpenError, OperationCancelledError) as e:
                fatal_error = e

        new_local = local
        if resolution.local_delta:
            new_local = resolution.merged.with_updates({"updated_at": self.clock()})
            self.local_store.write(entity_id, new_local)

        if fatal_error is not None:
            fatal_error.pending_side = Side.REMOTE.value
            self._record(entity_id, strategy, "failed", report)
            log_with_context(
                logger, logging.ERROR,
                f"Push to remote failed for {entity_id}: {fatal_error}",
            )
            raise fatal_error

        if push_error is not None or degraded:
            if push_error is not None:
                push_error.pending_side = Side.REMOTE.value
            self._record(entity_id, strategy, SyncStatus.PARTIAL.value, report)
            log_with_context(
                logger, logging.WARNING,
                f"Partial sync for {entity_id}: remote update "
                f"{'queued' if degraded else 'not applied'}",
            )
            return SyncResult(
                entity_id,
                SyncStatus.PARTIAL,
                report=report,
                strategy=strategy,
                local_delta=resolution.local_delta,
                remote_delta=resolution.remote_delta,
                degraded=degraded,
                error=push_error,
                pending_side=Side.REMOTE,
            )

        new_remote = resolution.merged.with_updates({"updated_at": remote.updated_at})
        self.snapshots.save(SyncSnapshot(entity_id, new_local, new_remote, self.clock()))
        if self.audit_log is not None:
            self.audit_log.clear_pending(entity_id)
            self.audit_log.clear_outbox(entity_id)
        self._record(entity_id, strategy, SyncStatus.SYNCED.value, report)
        log_with_context(
            logger, logging.INFO,
            f"Synced {entity_id}: pushed {sorted(resolution.remote_delta)}, "
            f"pulled {sorted(resolution.local_delta)}",
        )
        return SyncResult(
            entity_id,
            SyncStatus.SYNCED,
            report=report,
            strategy=strategy,
            local_delta=resolution.local_delta,
            remote_delta=resolution.remote_delta,
        )

    def _push_remote(
        self,
        entity_id: str,
        kind: EntityKind,
        remote_delta: Dict[str, Any],
        cancel: Optional[CancellationToken],
    ) -> bool:
        """
        Push a canonical delta to the remote side.

        Returns:
            True if the update was only queued through the fallback
        """
        field_updates = self.mapper.delta_to_remote(remote_delta, kind)
        if not field_updates:
            return False

        fallback = self._queue_update if (
            self.queue_failed_pushes and self.audit_log is not None
        ) else None

        if "status" in remote_delta:
            try:
                available = self.invoker.invoke(
                    transitions_key(kind), self.remote.list_transitions, entity_id,
                    cancel=cancel,
                ).value
            except RetryExhaustedError:
                if fallback is None:
                    raise
                fallback(entity_id, field_updates)
                return True
            target = self.mapper.status_map.to_remote(remote_delta["status"])
            if not self._transition_available(target, available):
                raise PermanentRemoteError(
                    f"Transition to '{target}' is not available for {entity_id} "
                    f"(available: {', '.join(available) or 'none'})",
                    status_code=400,
                )

        outcome = self.invoker.invoke(
            update_key(kind), self.remote.apply, entity_id, field_updates,
            fallback=fallback, cancel=cancel,
        )
        return outcome.degraded

    def _transition_available(self, target: str, available: List[str]) -> bool:
        wanted = target.casefold()
        target_status = self.mapper.status_map.from_remote(target)
        for name in available:
            folded = name.casefold()
            if folded == wanted or wanted in folded or folded in wanted:
                return True
            if (self.mapper.status_map.is_known_remote(name)
                    and self.mapper.status_map.from_remote(name) == target_status):
                return True
        return False

    def _queue_update(self, entity_id: str, field_updates: Dict[str, Any]) -> Dict[str, Any]:
        path = self.audit_log.queue_outbox(
            entity_id, field_updates, reason="remote update failed after retries",
        )
        return {"id": entity_id, "queued": str(path)}

    def _record(self, entity_id: str, strategy: str, outcome: str, report: ConflictReport) -> None:
        if self.audit_log is not None:
            self.audit_log.record_resolution(entity_id, strategy, outcome, report.fields)

    @classmethod
    def from_config(
        cls,
        config,
        remote_client: RemoteClient,
        local_store: Optional[LocalStore] = None,
    ) -> "SyncOrchestrator":
        """
        Build an orchestrator with file-backed state from a SyncConfig.

        Args:
            config: SyncConfig instance
            remote_client: Remote side of the pair
            local_store: Local store (default: MarkdownLocalStore in paths.local_dir)
        """
        state_dir = config.get_state_dir()
        mapper = config.get_field_mapper()
        audit_log = ConflictAuditLog(state_dir / "conflicts")
        breaker = CircuitBreaker(
            FileCircuitStateStore(state_dir / "circuit-breaker.json"),
            config.get_circuit_breaker_config(),
        )
        sync_config = config.get_sync_config()
        return cls(
            local_store=local_store or MarkdownLocalStore(
                config.get_local_dir(), status_map=mapper.status_map,
            ),
            remote_client=remote_client,
            snapshot_store=FileSnapshotStore(state_dir / "snapshots"),
            invoker=ResilientInvoker(breaker, config.get_retry_config()),
            mapper=mapper,
            detector=ConflictDetector(
                custom_fields=[spec.canonical for spec in mapper.custom_fields],
                window_seconds=config.get_window_seconds(),
            ),
            audit_log=audit_log,
            queue_failed_pushes=sync_config["queue_failed_pushes"],
            default_strategy=sync_config["default_strategy"],
        )
