"""
Three-way conflict detection between local, remote and the last snapshot.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional

from ..core.models import (
    CORE_FIELDS,
    CanonicalRecord,
    ChangedSide,
    ConflictKind,
    ConflictReport,
    FieldConflict,
    SyncSnapshot,
)


logger = logging.getLogger(__name__)


DEFAULT_WINDOW_SECONDS = 300


def normalise_value(value: Any) -> Any:
    """
    Normalise a field value for comparison.

    None and empty strings compare equal, and surrounding whitespace on
    strings is ignored.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return value


def values_equal(left: Any, right: Any) -> bool:
    return normalise_value(left) == normalise_value(right)


class ConflictDetector:
    """
    Detects field-level divergence between a local and a remote record.

    A field conflicts when its normalised local and remote values differ.
    The conflict is classified as a concurrent modification when both
    sides moved away from the snapshot (in value and in ``updated_at``)
    within ``window_seconds`` of each other; otherwise it is a plain
    field mismatch.

    Args:
        custom_fields: Custom field keys compared in addition to the core fields
        window_seconds: Maximum timestamp distance for a concurrent modification
        clock: Returns the current time (stamped on reports)
    """

    def __init__(
        self,
        custom_fields: Optional[List[str]] = None,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.fields = list(CORE_FIELDS) + [
            name for name in (custom_fields or []) if name not in CORE_FIELDS
        ]
        self.window_seconds = window_seconds
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def detect(
        self,
        local: CanonicalRecord,
        remote: CanonicalRecord,
        snapshot: Optional[SyncSnapshot] = None,
    ) -> ConflictReport:
        """
        Compare local and remote against the snapshot.

        Args:
            local: Current local record
            remote: Current remote record (already mapped to canonical form)
            snapshot: Last agreed state, or None if never synced

        Returns:
            ConflictReport; empty when every compared field agrees
        """
        local_touched = self._timestamp_changed(
            local, snapshot.last_local_state if snapshot else None
        )
        remote_touched = self._timestamp_changed(
            remote, snapshot.last_remote_state if snapshot else None
        )
        within_window = self._within_window(local, remote)

        conflicts = []
        for name in self.fields:
            local_value = local.get_field(name)
            remote_value = remote.get_field(name)
            if values_equal(local_value, remote_value):
                continue

            changed_side = self._changed_side(name, local_value, remote_value, snapshot)
            concurrent = (
                changed_side == ChangedSide.BOTH
                and local_touched
                and remote_touched
                and within_window
            )
            conflicts.append(FieldConflict(
                field=name,
                local_value=local_value,
                remote_value=remote_value,
                kind=(
                    ConflictKind.CONCURRENT_MODIFICATION if concurrent
                    else ConflictKind.FIELD_MISMATCH
                ),
                changed_side=changed_side,
            ))
            logger.debug(
                f"{local.id}: field '{name}' differs "
                f"({conflicts[-1].kind.value}, changed on {changed_side.value})"
            )

        report = ConflictReport(
            entity_id=local.id,
            conflicts=conflicts,
            local=local,
            remote=remote,
            detected_at=self.clock(),
        )
        if conflicts:
            logger.info(
                f"{local.id}: {len(conflicts)} conflicting field(s): "
                f"{', '.join(report.fields)}"
            )
        return report

    @staticmethod
    def _timestamp_changed(
        record: CanonicalRecord, base: Optional[CanonicalRecord]
    ) -> bool:
        if base is None:
            return True
        return record.updated_at != base.updated_at

    def _within_window(self, local: CanonicalRecord, remote: CanonicalRecord) -> bool:
        if local.updated_at is None or remote.updated_at is None:
            return False
        distance = abs((local.updated_at - remote.updated_at).total_seconds())
        return distance <= self.window_seconds

    @staticmethod
    def _changed_side(
        name: str,
        local_value: Any,
        remote_value: Any,
        snapshot: Optional[SyncSnapshot],
    ) -> ChangedSide:
        if snapshot is None:
            return ChangedSide.BOTH
        local_changed = not values_equal(
            local_value, snapshot.last_local_state.get_field(name)
        )
        remote_changed = not values_equal(
            remote_value, snapshot.last_remote_state.get_field(name)
        )
        if local_changed and remote_changed:
            return ChangedSide.BOTH
        if local_changed:
            return ChangedSide.LOCAL
        if remote_changed:
            return ChangedSide.REMOTE
        return ChangedSide.UNKNOWN
