"""
Conflict detection, resolution and audit.
"""

from .detector import ConflictDetector, DEFAULT_WINDOW_SECONDS
from .resolution import (
    ResolutionEngine,
    ResolutionResult,
    ResolutionStrategy,
    DESCRIPTION_MARKER,
)
from .audit import ConflictAuditLog

__all__ = [
    "ConflictDetector",
    "DEFAULT_WINDOW_SECONDS",
    "ResolutionEngine",
    "ResolutionResult",
    "ResolutionStrategy",
    "DESCRIPTION_MARKER",
    "ConflictAuditLog",
]
