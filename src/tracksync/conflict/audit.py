"""
Durable conflict audit log.

Layout under the audit directory::

    pending/<entity>.json        reports awaiting manual resolution
    resolutions.jsonl            one line per resolved conflict
    outbox/<entity>-<ts>.json    remote pushes queued by degradation
"""

import json
import logging
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.exceptions import SyncStorageError
from ..core.models import ConflictReport
from ..state.atomic import atomic_write_json, read_json


logger = logging.getLogger(__name__)


def _safe_name(entity_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", entity_id)


class ConflictAuditLog:
    """
    File-backed record of pending, resolved and queued conflicts.

    Args:
        base_dir: Directory holding the audit files
    """

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)
        self.pending_dir = self.base_dir / "pending"
        self.outbox_dir = self.base_dir / "outbox"
        self.resolutions_path = self.base_dir / "resolutions.jsonl"
        self._append_lock = threading.Lock()

    # Pending manual resolutions

    def pending_path(self, entity_id: str) -> Path:
        return self.pending_dir / f"{_safe_name(entity_id)}.json"

    def write_pending(self, report: ConflictReport) -> Path:
        """
        Store a report awaiting manual resolution.

        Rewriting the same report leaves the file content unchanged.

        Returns:
            Path of the pending entry
        """
        path = self.pending_path(report.entity_id)
        atomic_write_json(path, {"status": "pending", "report": report.to_dict()})
        logger.info(f"Conflict report for {report.entity_id} saved to {path}")
        return path

    def load_pending(self, entity_id: str) -> Optional[Dict[str, Any]]:
        return read_json(self.pending_path(entity_id))

    def has_pending(self, entity_id: str) -> bool:
        return self.pending_path(entity_id).exists()

    def list_pending(self) -> List[str]:
        """Return entity ids with a pending manual resolution."""
        if not self.pending_dir.exists():
            return []
        entity_ids = []
        for path in sorted(self.pending_dir.glob("*.json")):
            data = read_json(path) or {}
            entity_ids.append(data.get("report", {}).get("entity_id", path.stem))
        return entity_ids

    def clear_pending(self, entity_id: str) -> bool:
        """Remove the pending entry for an entity. Returns True if one existed."""
        path = self.pending_path(entity_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info(f"Cleared pending conflict for {entity_id}")
        return True

    # Resolution history

    def record_resolution(
        self,
        entity_id: str,
        strategy: str,
        outcome: str,
        fields: List[str],
    ) -> None:
        """Append one resolution to resolutions.jsonl."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "entity_id": entity_id,
            "strategy": strategy,
            "outcome": outcome,
            "fields": list(fields),
        }
        self.base_dir.mkdir(parents=True, exist_ok=True)
        try:
            with self._append_lock:
                with open(self.resolutions_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            raise SyncStorageError(f"Cannot append to {self.resolutions_path}: {e}")

    def read_resolutions(self, entity_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if not self.resolutions_path.exists():
            return []
        entries = []
        with open(self.resolutions_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                entry = json.loads(line)
                if entity_id is None or entry.get("entity_id") == entity_id:
                    entries.append(entry)
        return entries

    # Outbox of degraded pushes

    def queue_outbox(
        self,
        entity_id: str,
        field_updates: Dict[str, Any],
        reason: str = "",
    ) -> Path:
        """
        Queue remote field updates that could not be pushed.

        Returns:
            Path of the queued entry
        """
        now = datetime.now(timezone.utc)
        path = self.outbox_dir / f"{_safe_name(entity_id)}-{now.strftime('%Y%m%dT%H%M%S%f')}.json"
        atomic_write_json(path, {
            "entity_id": entity_id,
            "field_updates": field_updates,
            "reason": reason,
            "queued_at": now.isoformat(),
        })
        logger.warning(f"Queued remote update for {entity_id} to {path}")
        return path

    def list_outbox(self, entity_id: Optional[str] = None) -> List[Path]:
        if not self.outbox_dir.exists():
            return []
        if entity_id is None:
            return sorted(self.outbox_dir.glob("*.json"))
        return [
            path for path in sorted(self.outbox_dir.glob(f"{_safe_name(entity_id)}-*.json"))
            if (read_json(path) or {}).get("entity_id") == entity_id
        ]

    def clear_outbox(self, entity_id: str) -> int:
        """Remove queued entries for an entity. Returns how many were removed."""
        paths = self.list_outbox(entity_id)
        for path in paths:
            path.unlink()
        if paths:
            logger.info(f"Cleared {len(paths)} queued update(s) for {entity_id}")
        return len(paths)
