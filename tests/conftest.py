"""
Shared test fixtures and configuration for pytest.
"""

import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tracksync.conflict.audit import ConflictAuditLog
from tracksync.connectors.memory_client import InMemoryRemoteClient
from tracksync.core.models import CanonicalRecord, EntityKind, Status
from tracksync.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from tracksync.resilience.invoker import ResilientInvoker
from tracksync.resilience.retry import RetryConfig
from tracksync.runner.orchestrator import SyncOrchestrator
from tracksync.state.circuit_store import InMemoryCircuitStateStore
from tracksync.state.local_store import InMemoryLocalStore
from tracksync.state.snapshot_store import InMemorySnapshotStore


logger = logging.getLogger(__name__)


FIXED_NOW = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (file-backed state)")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


# ============================================================================
# Fixtures
# ============================================================================

class FakeClock:
    """Settable clock returning aware datetimes."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeEpochClock:
    """Settable clock returning epoch seconds (circuit breaker timing)."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def epoch_clock() -> FakeEpochClock:
    return FakeEpochClock()


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Retry policy with no backoff delay."""
    return RetryConfig(max_retries=3, base_delay=0.0, max_delay=0.0, jitter=False)


@pytest.fixture
def sample_local_record() -> CanonicalRecord:
    return CanonicalRecord(
        id="PROJ-1",
        kind=EntityKind.TASK,
        name="Implement login",
        status=Status.IN_PROGRESS,
        description="Login form with SSO",
        assignee="ada",
        progress=40,
        updated_at=FIXED_NOW - timedelta(hours=1),
    )


@pytest.fixture
def sample_remote_fields() -> dict:
    return {
        "summary": "Implement login",
        "status": "In Progress",
        "description": "Login form with SSO",
        "assignee": "ada",
        "customfield_progress": 40,
        "updated": "2024-01-15T09:00:00.000+0000",
    }


@pytest.fixture
def remote_client(sample_remote_fields, clock) -> InMemoryRemoteClient:
    return InMemoryRemoteClient(issues={"PROJ-1": sample_remote_fields}, clock=clock)


@pytest.fixture
def audit_log(tmp_path) -> ConflictAuditLog:
    return ConflictAuditLog(tmp_path / "conflicts")


@pytest.fixture
def make_orchestrator(remote_client, audit_log, fast_retry, clock, epoch_clock):
    """
    Factory building an orchestrator over in-memory stores.

    Returns a callable accepting the local records plus orchestrator
    keyword overrides.
    """
    def _make(records=(), threshold: int = 5, **kwargs) -> SyncOrchestrator:
        breaker = CircuitBreaker(
            InMemoryCircuitStateStore(),
            CircuitBreakerConfig(threshold=threshold, reset_timeout=300),
            clock=epoch_clock,
        )
        options = {
            "local_store": InMemoryLocalStore(list(records)),
            "remote_client": remote_client,
            "snapshot_store": InMemorySnapshotStore(),
            "invoker": ResilientInvoker(breaker, fast_retry),
            "audit_log": audit_log,
            "clock": clock,
        }
        options.update(kwargs)
        return SyncOrchestrator(**options)

    return _make
