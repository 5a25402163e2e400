"""
Custom exceptions for the reconciliation core.

Every error carries a ``pending_side`` attribute naming the side that still
holds the authoritative pending delta when the error escapes a sync cycle
(``"local"``, ``"remote"`` or None when nothing was changed).
"""

from typing import Any, List, Optional


class SyncError(Exception):
    """Base exception for all tracksync errors."""

    def __init__(self, message: str, pending_side: Optional[str] = None):
        super().__init__(message)
        self.pending_side = pending_side


class RemoteError(SyncError):
    """
    Error returned by (or while talking to) the remote tracker.

    Raised when:
    - The remote responds with an error status
    - The connection fails or times out
    - The response cannot be interpreted
    """

    transient = False

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        transient: Optional[bool] = None,
        pending_side: Optional[str] = None,
    ):
        super().__init__(message, pending_side=pending_side)
        self.status_code = status_code
        if transient is not None:
            self.transient = transient


class TransientRemoteError(RemoteError):
    """Remote failure worth retrying (timeouts, 429, 5xx)."""

    transient = True


class RetryExhaustedError(TransientRemoteError):
    """
    All retry attempts for a transient failure were used up.

    Attributes:
        attempts: Number of attempts made
        last_error: Error raised by the final attempt
        error_history: String form of every attempt's error
    """

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        last_error: Optional[BaseException] = None,
        error_history: Optional[List[str]] = None,
        pending_side: Optional[str] = None,
    ):
        status_code = getattr(last_error, "status_code", None)
        super().__init__(message, status_code=status_code, pending_side=pending_side)
        self.attempts = attempts
        self.last_error = last_error
        self.error_history = error_history or []


class PermanentRemoteError(RemoteError):
    """
    Remote failure that will not succeed on retry.

    Raised for validation, permission and configuration problems
    (400, 401, 403, 409 and similar).
    """

    transient = False


class NotFoundError(PermanentRemoteError):
    """The requested entity does not exist on the remote side."""

    def __init__(self, message: str, entity_id: Optional[str] = None, **kwargs: Any):
        kwargs.setdefault("status_code", 404)
        super().__init__(message, **kwargs)
        self.entity_id = entity_id


class MappingError(SyncError):
    """
    A value could not be transformed between representations.

    Always recovered inside the mapping layer; it never escapes a transform.
    """

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.value = value


class ConflictUnresolved(SyncError):
    """
    Divergence was found but the manual strategy deferred resolution.

    Attributes:
        entity_id: Entity with pending conflicts
        fields: Names of the conflicting fields
        audit_path: Where the pending report was written
    """

    def __init__(
        self,
        message: str,
        entity_id: Optional[str] = None,
        fields: Optional[List[str]] = None,
        audit_path: Optional[str] = None,
    ):
        super().__init__(message)
        self.entity_id = entity_id
        self.fields = fields or []
        self.audit_path = audit_path


class CircuitOpenError(SyncError):
    """A call was rejected because the operation's circuit is open."""

    def __init__(
        self,
        message: str,
        operation_key: Optional[str] = None,
        retry_after: Optional[float] = None,
        pending_side: Optional[str] = None,
    ):
        super().__init__(message, pending_side=pending_side)
        self.operation_key = operation_key
        self.retry_after = retry_after


class OperationCancelledError(SyncError):
    """The caller cancelled the operation or its deadline passed."""
    pass


class LocalRecordNotFoundError(SyncError):
    """No local record exists for the requested entity."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        super().__init__(message)
        self.entity_id = entity_id


class SyncStorageError(SyncError):
    """
    Error persisting or retrieving durable sync state.

    Raised when:
    - A snapshot or circuit state file cannot be written
    - A state file exists but is not valid JSON
    - A local record file cannot be parsed
    """
    pass


class SyncConfigError(SyncError):
    """
    Error in tracksync configuration.

    Raised when:
    - Configuration file is missing or invalid
    - A configuration value is out of its valid range
    - An unknown strategy or transform is named
    """
    pass
