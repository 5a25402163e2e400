"""
Local record stores.

MarkdownLocalStore reads and writes work items as markdown files with a
YAML front matter block::

    ---
    name: Implement login
    kind: task
    status: in-progress
    assignee: Ada
    progress: 40%
    updated: '2024-01-15T10:30:00+00:00'
    ---

    Description text.
"""

import logging
import re
import threading
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.exceptions import LocalRecordNotFoundError, MappingError, SyncStorageError
from ..core.models import CanonicalRecord, EntityKind
from ..core.stores import LocalStore
from ..mapping.status_map import StatusMap
from ..mapping.transforms import parse_datetime, parse_percentage
from .atomic import atomic_write


logger = logging.getLogger(__name__)


_FRONT_MATTER = re.compile(r"^---\n(.*?)\n---\n?(.*)$", re.DOTALL)

# Front matter keys owned by the canonical record; anything else is a custom field
_RESERVED_KEYS = ("id", "name", "kind", "status", "assignee", "progress", "updated")


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


class MarkdownLocalStore(LocalStore):
    """
    Markdown + YAML front matter store.

    Layout: ``{base_dir}/{entity_id}.md``. The body is the description;
    progress is written as ``N%`` and status in the local vocabulary
    (open / in-progress / completed / closed).

    Args:
        base_dir: Directory holding the record files
        status_map: Status tables for the local vocabulary
        default_kind: Kind assumed when the front matter has none
    """

    def __init__(
        self,
        base_dir: Path,
        status_map: Optional[StatusMap] = None,
        default_kind: EntityKind = EntityKind.TASK,
    ):
        self.base_dir = Path(base_dir)
        self.status_map = status_map or StatusMap()
        self.default_kind = EntityKind(default_kind)

    def _path(self, entity_id: str) -> Path:
        return self.base_dir / f"{entity_id}.md"

    def exists(self, entity_id: str) -> bool:
        return self._path(entity_id).exists()

    def read(self, entity_id: str) -> CanonicalRecord:
        path = self._path(entity_id)
        if not path.exists():
            raise LocalRecordNotFoundError(
                f"No local record for {entity_id} at {path}", entity_id=entity_id
            )
        text = path.read_text(encoding="utf-8")
        front_matter, body = self._split(text, path)
        return self._to_record(entity_id, front_matter, body)

    def _split(self, text: str, path: Path):
        if not text.startswith("---\n"):
            return {}, text
        match = _FRONT_MATTER.match(text)
        if not match:
            raise SyncStorageError(f"Invalid front matter format in {path}")
        try:
            front_matter = yaml.safe_load(match.group(1)) or {}
        except yaml.YAMLError as e:
            raise SyncStorageError(f"Invalid front matter YAML in {path}: {e}")
        if not isinstance(front_matter, dict):
            raise SyncStorageError(f"Front matter must be a mapping in {path}")
        return front_matter, match.group(2)

    def _to_record(
        self, entity_id: str, front_matter: Dict[str, Any], body: str
    ) -> CanonicalRecord:
        progress = 0
        if front_matter.get("progress") not in (None, ""):
            try:
                progress = parse_percentage(front_matter["progress"])
            except MappingError as e:
                logger.warning(f"{entity_id}: {e}; using 0%")

        updated_at = None
        if front_matter.get("updated"):
            try:
                updated_at = parse_datetime(front_matter["updated"])
            except MappingError as e:
                logger.warning(f"{entity_id}: {e}; ignoring timestamp")

        try:
            kind = EntityKind(front_matter.get("kind") or self.default_kind)
        except ValueError:
            logger.warning(f"{entity_id}: unknown kind {front_matter.get('kind')!r}")
            kind = self.default_kind

        custom = {
            key: value for key, value in front_matter.items()
            if key not in _RESERVED_KEYS
        }
        return CanonicalRecord(
            id=entity_id,
            kind=kind,
            name=str(front_matter.get("name") or ""),
            status=self.status_map.from_local(front_matter.get("status")),
            description=body.strip(),
            assignee=front_matter.get("assignee") or None,
            progress=progress,
            custom_fields=custom,
            updated_at=updated_at,
        )

    def write(self, entity_id: str, record: CanonicalRecord) -> None:
        front_matter = {
            "name": record.name,
            "kind": record.kind.value,
            "status": self.status_map.to_local(record.status),
            "assignee": record.assignee,
            "progress": f"{record.progress}%",
            "updated": record.updated_at.isoformat() if record.updated_at else None,
        }
        for key, value in record.custom_fields.items():
            if key not in _RESERVED_KEYS:
                front_matter[key] = _plain(value)
        front_matter = {k: v for k, v in front_matter.items() if v is not None}

        block = yaml.safe_dump(front_matter, sort_keys=False, allow_unicode=True).strip()
        rendered = f"---\n{block}\n---\n"
        description = (record.description or "").rstrip()
        rendered += f"\n{description}\n" if description else "\n"
        atomic_write(self._path(entity_id), rendered)
        logger.debug(f"Wrote local record {entity_id}")

    def list_entities(self) -> List[str]:
        if not self.base_dir.exists():
            return []
        return sorted(p.stem for p in self.base_dir.glob("*.md"))


class InMemoryLocalStore(LocalStore):
    """Local store kept in a dictionary, for tests and dry runs."""

    def __init__(self, records: Optional[List[CanonicalRecord]] = None):
        self._records: Dict[str, dict] = {}
        self._lock = threading.Lock()
        self.write_history: List[str] = []
        for record in records or []:
            self._records[record.id] = record.to_dict()

    def exists(self, entity_id: str) -> bool:
        with self._lock:
            return entity_id in self._records

    def read(self, entity_id: str) -> CanonicalRecord:
        with self._lock:
            data = self._records.get(entity_id)
        if data is None:
            raise LocalRecordNotFoundError(
                f"No local record for {entity_id}", entity_id=entity_id
            )
        return CanonicalRecord.from_dict(data)

    def write(self, entity_id: str, record: CanonicalRecord) -> None:
        with self._lock:
            self._records[entity_id] = record.to_dict()
            self.write_history.append(entity_id)
