"""
Atomic file helpers shared by the durable stores.
"""

import fcntl
import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from ..core.exceptions import SyncStorageError


def atomic_write(path: Path, content: str) -> None:
    """
    Write a file atomically via temp file + rename.

    The temp file lives in the target directory so that ``os.replace`` is a
    same-filesystem rename; readers see either the old or the new content.

    Raises:
        SyncStorageError: If the write or rename fails
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    except OSError as e:
        raise SyncStorageError(f"Cannot write {path}: {e}")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except Exception as e:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        if isinstance(e, OSError):
            raise SyncStorageError(f"Cannot write {path}: {e}")
        raise


def atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON atomically with sorted keys."""
    content = json.dumps(data, indent=2, sort_keys=True, default=str) + "\n"
    atomic_write(path, content)


def read_json(path: Path) -> Optional[Any]:
    """
    Read a JSON file.

    Returns:
        Parsed content, or None if the file does not exist

    Raises:
        SyncStorageError: If the file exists but is not valid JSON
    """
    path = Path(path)
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise SyncStorageError(f"Cannot read {path}: {e}")


@contextmanager
def file_lock(lock_path: Path) -> Iterator[None]:
    """
    Hold an exclusive advisory lock on a sidecar lock file.

    Serialises read-modify-write sequences across processes sharing the
    same state directory.
    """
    lock_path = Path(lock_path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock_path.touch(exist_ok=True)
    with lock_path.open("r+", encoding="utf-8") as handle:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
