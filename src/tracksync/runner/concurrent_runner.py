"""
Concurrent runner for reconciling many entities.

Fans independent sync cycles out over a ThreadPoolExecutor, one cycle per
entity, and collects a per-entity result or error into RunMetrics.
"""

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from ..core.models import SyncResult, SyncStatus
from ..resilience.retry import CancellationToken
from .orchestrator import SyncOrchestrator


logger = logging.getLogger(__name__)


@dataclass
class RunnerConfig:
    """
    Configuration for the concurrent runner.

    Attributes:
        max_workers: Maximum number of concurrent worker threads
        strategy: Resolution strategy for every cycle (orchestrator default if None)
    """
    max_workers: int = 4
    strategy: Optional[str] = None


@dataclass
class RunMetrics:
    """Aggregate metrics for a run."""
    run_id: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    items_processed: int = 0
    items_synced: int = 0
    items_noop: int = 0
    items_deferred: int = 0
    items_partial: int = 0
    items_failed: int = 0
    status: str = "running"

    # Per-entity outcomes
    results: Dict[str, SyncResult] = field(default_factory=dict)
    errors: Dict[str, Exception] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "status": self.status,
            "counts": {
                "processed": self.items_processed,
                "synced": self.items_synced,
                "noop": self.items_noop,
                "deferred": self.items_deferred,
                "partial": self.items_partial,
                "failed": self.items_failed,
            },
            "results": {k: r.to_dict() for k, r in self.results.items()},
            "errors": {
                k: {
                    "type": type(e).__name__,
                    "message": str(e),
                    "pending_side": getattr(e, "pending_side", None),
                }
                for k, e in self.errors.items()
            },
        }

    def summary(self) -> str:
        """Get a human-readable summary."""
        lines = [
            f"Sync Run {self.run_id}",
            f"  Duration: {(self.ended_at - self.started_at).total_seconds():.1f}s"
            if self.ended_at else "",
            f"  Processed: {self.items_processed}",
            f"    Synced: {self.items_synced}",
            f"    No-op: {self.items_noop}",
            f"    Deferred: {self.items_deferred}",
            f"    Partial: {self.items_partial}",
            f"    Failed: {self.items_failed}",
        ]
        for entity_id, error in sorted(self.errors.items()):
            lines.append(f"  ! {entity_id}: {type(error).__name__}: {error}")
        return "\n".join(line for line in lines if line)


_STATUS_COUNTERS = {
    SyncStatus.SYNCED: "items_synced",
    SyncStatus.NOOP: "items_noop",
    SyncStatus.DEFERRED: "items_deferred",
    SyncStatus.PARTIAL: "items_partial",
}


class ConcurrentSyncRunner:
    """
    Multi-worker runner for sync cycles.

    Cycles for different entities are independent; duplicate entity ids in
    one run are collapsed so an entity is never reconciled twice at once.
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        config: Optional[RunnerConfig] = None,
    ):
        """
        Initialize the concurrent runner.

        Args:
            orchestrator: Orchestrator running each cycle
            config: Runner configuration (uses defaults if not provided)
        """
        self.orchestrator = orchestrator
        self.config = config or RunnerConfig()
        self._metrics_lock = threading.Lock()

    def sync_many(
        self,
        entity_ids: Iterable[str],
        strategy: Optional[str] = None,
        max_workers: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
        run_id: Optional[str] = None,
    ) -> RunMetrics:
        """
        Reconcile many entities concurrently.

        Args:
            entity_ids: Entities to reconcile
            strategy: Resolution strategy (config strategy when None)
            max_workers: Worker threads (config max_workers when None)
            cancel: Cancellation token shared by every cycle
            run_id: Optional run identifier (auto-generated if not provided)

        Returns:
            RunMetrics with a result or an error for each entity
        """
        run_id = run_id or str(uuid.uuid4())
        strategy = strategy or self.config.strategy
        workers = max_workers or self.config.max_workers
        unique_ids = list(dict.fromkeys(entity_ids))

        logger.info(
            f"Starting sync run {run_id}: {len(unique_ids)} entities, "
            f"max_workers={workers}"
        )
        metrics = RunMetrics(run_id=run_id, started_at=datetime.now(timezone.utc))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sync-worker") as executor:
            futures = {
                executor.submit(
                    self.orchestrator.sync_entity, entity_id, strategy, cancel,
                ): entity_id
                for entity_id in unique_ids
            }
            for future in as_completed(futures):
                entity_id = futures[future]
                try:
                    result = future.result()
                except Exception as e:
                    logger.error(f"Sync failed for {entity_id}: {type(e).__name__}: {e}")
                    with self._metrics_lock:
                        metrics.errors[entity_id] = e
                        metrics.items_failed += 1
                        metrics.items_processed += 1
                    continue

                with self._metrics_lock:
                    metrics.results[entity_id] = result
                    counter = _STATUS_COUNTERS[result.status]
                    setattr(metrics, counter, getattr(metrics, counter) + 1)
                    metrics.items_processed += 1

        metrics.ended_at = datetime.now(timezone.utc)
        metrics.status = "completed" if not metrics.errors else "completed_with_errors"
        logger.info(
            f"Run complete: {run_id} processed={metrics.items_processed}, "
            f"synced={metrics.items_synced}, failed={metrics.items_failed}"
        )
        return metrics
