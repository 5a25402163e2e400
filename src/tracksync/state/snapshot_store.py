"""
Snapshot store implementations.

FileSnapshotStore keeps one JSON document per entity under a directory;
InMemorySnapshotStore is used by tests and dry runs.
"""

import logging
import re
import threading
from pathlib import Path
from typing import Dict, List, Optional

from ..core.exceptions import SyncStorageError
from ..core.models import SyncSnapshot
from ..core.stores import SnapshotStore
from .atomic import atomic_write_json, read_json


logger = logging.getLogger(__name__)


class FileSnapshotStore(SnapshotStore):
    """
    File-backed snapshot store.

    Layout: ``{base_dir}/{entity_id}.json``. Saves go through a temp file
    and ``os.replace``, so a crash mid-save leaves the previous snapshot
    intact.

    Args:
        base_dir: Directory holding snapshot files (created on first save)
    """

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def _path(self, entity_id: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9._-]", "_", entity_id)
        return self.base_dir / f"{safe}.json"

    def load(self, entity_id: str) -> Optional[SyncSnapshot]:
        data = read_json(self._path(entity_id))
        if data is None:
            return None
        try:
            return SyncSnapshot.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise SyncStorageError(f"Corrupt snapshot for {entity_id}: {e}")

    def save(self, snapshot: SyncSnapshot) -> None:
        path = self._path(snapshot.entity_id)
        atomic_write_json(path, snapshot.to_dict())
        logger.debug(f"Saved snapshot for {snapshot.entity_id} to {path}")

    def delete(self, entity_id: str) -> bool:
        path = self._path(entity_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list_entities(self) -> List[str]:
        if not self.base_dir.exists():
            return []
        return sorted(p.stem for p in self.base_dir.glob("*.json"))


class InMemorySnapshotStore(SnapshotStore):
    """Snapshot store kept in a dictionary (serialised to keep copies independent)."""

    def __init__(self):
        self._snapshots: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def load(self, entity_id: str) -> Optional[SyncSnapshot]:
        with self._lock:
            data = self._snapshots.get(entity_id)
        return SyncSnapshot.from_dict(data) if data else None

    def save(self, snapshot: SyncSnapshot) -> None:
        with self._lock:
            self._snapshots[snapshot.entity_id] = snapshot.to_dict()

    def delete(self, entity_id: str) -> bool:
        with self._lock:
            return self._snapshots.pop(entity_id, None) is not None
