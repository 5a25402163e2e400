"""
Sync orchestration and concurrent execution.
"""

from .orchestrator import SyncOrchestrator, fetch_key, update_key, transitions_key
from .concurrent_runner import ConcurrentSyncRunner, RunnerConfig, RunMetrics

__all__ = [
    "SyncOrchestrator",
    "fetch_key",
    "update_key",
    "transitions_key",
    "ConcurrentSyncRunner",
    "RunnerConfig",
    "RunMetrics",
]
