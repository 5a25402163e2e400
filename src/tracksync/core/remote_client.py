"""
Remote client interface for the project tracker.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List


class RemoteClient(ABC):
    """
    Abstract base class for remote tracker clients.

    Clients speak the remote field vocabulary (e.g. ``summary``,
    ``customfield_progress``); translation to canonical records happens in
    the mapping layer, never here.
    """

    @abstractmethod
    def fetch(self, entity_id: str) -> Dict[str, Any]:
        """
        Fetch the remote fields of an entity.

        Args:
            entity_id: Remote entity key

        Returns:
            Flat dictionary of remote field name to value

        Raises:
            NotFoundError: If the entity does not exist
            RemoteError: On any other remote failure
        """
        pass

    @abstractmethod
    def apply(self, entity_id: str, field_updates: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply field updates to a remote entity.

        Args:
            entity_id: Remote entity key
            field_updates: Remote field name to new value

        Returns:
            Acknowledgement payload

        Raises:
            RemoteError: With ``transient`` set when a retry may succeed
        """
        pass

    @abstractmethod
    def list_transitions(self, entity_id: str) -> List[str]:
        """Return the target status names currently reachable for an entity."""
        pass

    def get_name(self) -> str:
        """Return the client name/identifier."""
        return self.__class__.__name__

    def close(self) -> None:
        """Release any held resources."""
        pass
