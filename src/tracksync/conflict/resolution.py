"""
Conflict resolution strategies.

A strategy turns a ConflictReport into resolved values for the conflicting
fields. The engine builds the merged record from them and derives the
deltas each side needs:

- ``local_delta``: fields where merged differs from local
- ``remote_delta``: fields where merged differs from remote

Resolution is deterministic: it reads no clock and uses no randomness, so
resolving the same report twice gives the same result.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from ..core.exceptions import SyncConfigError
from ..core.logging import CorrelationContext, log_with_context
from ..core.models import CanonicalRecord, ChangedSide, ConflictKind, ConflictReport, Status
from .audit import ConflictAuditLog
from .detector import normalise_value, values_equal


logger = logging.getLogger(__name__)


class ResolutionStrategy(str, Enum):
    """Built-in resolution strategies."""
    LOCAL_WINS = "local_wins"
    REMOTE_WINS = "remote_wins"
    MERGE = "merge"
    MANUAL = "manual"


# Separates the local description from the appended remote text
DESCRIPTION_MARKER = "\n\n[Jira]: "


StrategyFn = Callable[[ConflictReport], Dict[str, Any]]


@dataclass
class ResolutionResult:
    """
    Outcome of resolving one report.

    Attributes:
        entity_id: Entity the report belongs to
        strategy: Strategy name used
        merged: The agreed record (the local record unchanged when deferred)
        local_delta: Fields the local side must take
        remote_delta: Fields the remote side must take
        deferred: True when resolution was left to a human
        audit_path: Pending audit entry written for a deferred resolution
    """
    entity_id: str
    strategy: str
    merged: CanonicalRecord
    local_delta: Dict[str, Any] = field(default_factory=dict)
    remote_delta: Dict[str, Any] = field(default_factory=dict)
    deferred: bool = False
    audit_path: Optional[Path] = None

    @property
    def is_noop(self) -> bool:
        return not self.deferred and not self.local_delta and not self.remote_delta

    def as_report(self) -> ConflictReport:
        """Express the outcome as a report whose sides both equal the merged record."""
        return ConflictReport(
            entity_id=self.entity_id,
            conflicts=[],
            local=self.merged,
            remote=self.merged,
        )


def resolve_one_sided(report: ConflictReport) -> Dict[str, Any]:
    """
    Values for fields that only one side changed since the snapshot.

    Such a field is not contested: the side that moved carries the edit and
    the other side is merely stale. Concurrent modifications and fields
    whose changed side is both or unknown are left to the strategy.
    """
    resolved = {}
    for conflict in report.conflicts:
        if conflict.kind != ConflictKind.FIELD_MISMATCH:
            continue
        if conflict.changed_side == ChangedSide.LOCAL:
            resolved[conflict.field] = conflict.local_value
        elif conflict.changed_side == ChangedSide.REMOTE:
            resolved[conflict.field] = conflict.remote_value
    return resolved


def resolve_local_wins(report: ConflictReport) -> Dict[str, Any]:
    return {c.field: c.local_value for c in report.conflicts}


def resolve_remote_wins(report: ConflictReport) -> Dict[str, Any]:
    return {c.field: c.remote_value for c in report.conflicts}


def merge_description(local: Optional[str], remote: Optional[str]) -> str:
    """
    Keep the local text and append the remote text after a provenance marker.

    If the local text already ends with that remote block it is kept as is,
    which makes repeated merges stable.
    """
    local_text = normalise_value(local)
    remote_text = normalise_value(remote)
    if not local_text:
        return remote_text
    if not remote_text:
        return local_text
    block = f"{DESCRIPTION_MARKER}{remote_text}"
    if local_text.endswith(block) or local_text == remote_text:
        return local_text
    return f"{local_text}{block}"


def merge_status(local: Status, remote: Status) -> Status:
    """The more advanced lifecycle status wins."""
    local, remote = Status(local), Status(remote)
    return local if local.rank >= remote.rank else remote


def merge_assignee(local: Optional[str], remote: Optional[str]) -> Optional[str]:
    """Prefer whichever side is assigned; if both are, local wins."""
    if not normalise_value(local) and normalise_value(remote):
        return remote
    return local


def resolve_merge(report: ConflictReport) -> Dict[str, Any]:
    resolved = {}
    for conflict in report.conflicts:
        local_value, remote_value = conflict.local_value, conflict.remote_value
        if conflict.field == "progress":
            resolved["progress"] = max(local_value or 0, remote_value or 0)
        elif conflict.field == "status":
            resolved["status"] = merge_status(local_value, remote_value)
        elif conflict.field == "description":
            resolved["description"] = merge_description(local_value, remote_value)
        elif conflict.field == "assignee":
            resolved["assignee"] = merge_assignee(local_value, remote_value)
        else:
            resolved[conflict.field] = local_value
    return resolved


DEFAULT_STRATEGIES: Dict[str, StrategyFn] = {
    ResolutionStrategy.LOCAL_WINS.value: resolve_local_wins,
    ResolutionStrategy.REMOTE_WINS.value: resolve_remote_wins,
    ResolutionStrategy.MERGE.value: resolve_merge,
}


def _delta(merged: CanonicalRecord, side: CanonicalRecord, fields) -> Dict[str, Any]:
    return {
        name: merged.get_field(name)
        for name in fields
        if not values_equal(merged.get_field(name), side.get_field(name))
    }


class ResolutionEngine:
    """
    Applies a resolution strategy to a conflict report.

    Args:
        audit_log: Where manual resolutions are recorded as pending entries

    Example:
        >>> engine = ResolutionEngine()
        >>> result = engine.resolve(report, "merge")
        >>> result.remote_delta
        {'progress': 70}
    """

    def __init__(self, audit_log: Optional[ConflictAuditLog] = None):
        self.audit_log = audit_log
        self._strategies: Dict[str, StrategyFn] = dict(DEFAULT_STRATEGIES)

    def register_strategy(self, name: str, fn: StrategyFn) -> None:
        """
        Register (or replace) a strategy.

        Args:
            name: Strategy name passed to resolve()
            fn: Receives the report, returns resolved values per conflicting field
        """
        if name == ResolutionStrategy.MANUAL.value:
            raise SyncConfigError("The manual strategy cannot be replaced")
        self._strategies[name] = fn

    @property
    def strategies(self) -> list:
        return sorted(list(self._strategies) + [ResolutionStrategy.MANUAL.value])

    def resolve(
        self,
        report: ConflictReport,
        strategy: Union[ResolutionStrategy, str],
    ) -> ResolutionResult:
        """
        Resolve a report with the named strategy.

        Args:
            report: Report produced by ConflictDetector.detect
            strategy: Strategy name or ResolutionStrategy member

        Returns:
            ResolutionResult with the merged record and per-side deltas

        Raises:
            SyncConfigError: If the strategy is unknown
        """
        name = strategy.value if isinstance(strategy, ResolutionStrategy) else str(strategy)
        if name != ResolutionStrategy.MANUAL.value and name not in self._strategies:
            raise SyncConfigError(
                f"Unknown resolution strategy '{name}'. "
                f"Known: {', '.join(self.strategies)}"
            )
        if report.local is None or report.remote is None:
            raise ValueError(f"Report for {report.entity_id} carries no records to resolve")

        if report.is_empty:
            return ResolutionResult(
                entity_id=report.entity_id, strategy=name, merged=report.local,
            )

        with CorrelationContext(entity_id=report.entity_id, strategy=name):
            resolved = resolve_one_sided(report)
            contested = [c for c in report.conflicts if c.field not in resolved]
            if resolved:
                logger.debug(
                    f"Taking the changed side for {sorted(resolved)} on {report.entity_id}"
                )

            if contested:
                if name == ResolutionStrategy.MANUAL.value:
                    return self._defer(report, name)
                resolved.update(
                    self._strategies[name](replace(report, conflicts=contested))
                )
            merged = report.local.with_updates(resolved)
            result = ResolutionResult(
                entity_id=report.entity_id,
                strategy=name,
                merged=merged,
                local_delta=_delta(merged, report.local, report.fields),
                remote_delta=_delta(merged, report.remote, report.fields),
            )
            log_with_context(
                logger, logging.INFO,
                f"Resolved {len(report.conflicts)} conflict(s) for {report.entity_id}: "
                f"local_delta={sorted(result.local_delta)} "
                f"remote_delta={sorted(result.remote_delta)}",
            )
            return result

    def _defer(self, report: ConflictReport, name: str) -> ResolutionResult:
        audit_path = None
        if self.audit_log is not None:
            audit_path = self.audit_log.write_pending(report)
        log_with_context(
            logger, logging.WARNING,
            f"Manual resolution required for {report.entity_id}: "
            f"{', '.join(report.fields)}",
        )
        return ResolutionResult(
            entity_id=report.entity_id,
            strategy=name,
            merged=report.local,
            deferred=True,
            audit_path=audit_path,
        )
