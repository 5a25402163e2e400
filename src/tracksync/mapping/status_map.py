"""
Table-driven status mapping between local, canonical and remote vocabularies.

The map is total in every direction: any input string yields a canonical
Status, and every canonical Status has a remote and a local name.
"""

import logging
from typing import Dict, Iterable, Optional

from ..core.models import Status


logger = logging.getLogger(__name__)


DEFAULT_REMOTE_TO_CANONICAL: Dict[str, Status] = {
    "To Do": Status.TODO,
    "Open": Status.TODO,
    "Backlog": Status.TODO,
    "Selected for Development": Status.TODO,
    "In Progress": Status.IN_PROGRESS,
    "In Review": Status.IN_PROGRESS,
    "Code Review": Status.IN_PROGRESS,
    "Testing": Status.IN_PROGRESS,
    "Done": Status.DONE,
    "Resolved": Status.DONE,
    "Complete": Status.DONE,
    "Closed": Status.CLOSED,
    "Cancelled": Status.CLOSED,
    "Won't Do": Status.CLOSED,
    "Invalid": Status.CLOSED,
}

DEFAULT_CANONICAL_TO_REMOTE: Dict[Status, str] = {
    Status.TODO: "To Do",
    Status.IN_PROGRESS: "In Progress",
    Status.DONE: "Done",
    Status.CLOSED: "Closed",
}

# Local file vocabulary, including the aliases people actually type
DEFAULT_LOCAL_TO_CANONICAL: Dict[str, Status] = {
    "open": Status.TODO,
    "todo": Status.TODO,
    "new": Status.TODO,
    "created": Status.TODO,
    "in-progress": Status.IN_PROGRESS,
    "in_progress": Status.IN_PROGRESS,
    "active": Status.IN_PROGRESS,
    "started": Status.IN_PROGRESS,
    "working": Status.IN_PROGRESS,
    "completed": Status.DONE,
    "complete": Status.DONE,
    "done": Status.DONE,
    "finished": Status.DONE,
    "resolved": Status.DONE,
    "closed": Status.CLOSED,
    "cancelled": Status.CLOSED,
    "wont_fix": Status.CLOSED,
}

DEFAULT_CANONICAL_TO_LOCAL: Dict[Status, str] = {
    Status.TODO: "open",
    Status.IN_PROGRESS: "in-progress",
    Status.DONE: "completed",
    Status.CLOSED: "closed",
}


def _fold(name: str) -> str:
    return " ".join(str(name).split()).casefold()


class StatusMap:
    """
    Bidirectional status tables.

    Remote and local names are matched case-insensitively and with
    whitespace collapsed. Unknown names fall back to ``Status.TODO``.

    Args:
        remote_to_canonical: Overrides merged over the default remote table
        canonical_to_remote: Overrides merged over the default reverse table
        local_to_canonical: Overrides merged over the default local table
        canonical_to_local: Overrides merged over the default local reverse table
    """

    def __init__(
        self,
        remote_to_canonical: Optional[Dict[str, str]] = None,
        canonical_to_remote: Optional[Dict[str, str]] = None,
        local_to_canonical: Optional[Dict[str, str]] = None,
        canonical_to_local: Optional[Dict[str, str]] = None,
    ):
        self._remote = self._build_lookup(DEFAULT_REMOTE_TO_CANONICAL, remote_to_canonical)
        self._local = self._build_lookup(DEFAULT_LOCAL_TO_CANONICAL, local_to_canonical)
        self._to_remote = self._build_reverse(DEFAULT_CANONICAL_TO_REMOTE, canonical_to_remote)
        self._to_local = self._build_reverse(DEFAULT_CANONICAL_TO_LOCAL, canonical_to_local)

    @staticmethod
    def _build_lookup(
        defaults: Dict[str, Status], overrides: Optional[Dict[str, str]]
    ) -> Dict[str, Status]:
        table = {_fold(k): v for k, v in defaults.items()}
        for name, status in (overrides or {}).items():
            table[_fold(name)] = Status(status)
        return table

    @staticmethod
    def _build_reverse(
        defaults: Dict[Status, str], overrides: Optional[Dict[str, str]]
    ) -> Dict[Status, str]:
        table = dict(defaults)
        for status, name in (overrides or {}).items():
            table[Status(status)] = name
        return table

    def is_known_remote(self, name: Optional[str]) -> bool:
        return name is not None and _fold(name) in self._remote

    def from_remote(self, name: Optional[str]) -> Status:
        """Map a remote status name to a canonical Status (unknown -> ToDo)."""
        if isinstance(name, Status):
            return name
        if name is None:
            return Status.TODO
        return self._remote.get(_fold(name), Status.TODO)

    def to_remote(self, status: Status) -> str:
        """Map a canonical Status to the remote status name."""
        return self._to_remote[Status(status)]

    def from_local(self, name: Optional[str]) -> Status:
        """Map a local file status to a canonical Status (unknown -> ToDo)."""
        if isinstance(name, Status):
            return name
        if name is None:
            return Status.TODO
        folded = _fold(name)
        if folded in self._local:
            return self._local[folded]
        # Canonical names written by hand ("Done", "InProgress") are accepted too
        for status in Status:
            if _fold(status.value) == folded:
                return status
        logger.warning(f"Unknown local status '{name}', treating as {Status.TODO.value}")
        return Status.TODO

    def to_local(self, status: Status) -> str:
        """Map a canonical Status to the local file vocabulary."""
        return self._to_local[Status(status)]

    def remote_names(self, status: Status) -> Iterable[str]:
        """All remote names that map to a canonical Status (folded form)."""
        return [name for name, value in self._remote.items() if value == Status(status)]
