"""
Unit tests for core data models.
"""

import pytest
from datetime import datetime, timezone

from tracksync.core.exceptions import ConflictUnresolved
from tracksync.core.models import (
    CanonicalRecord,
    CircuitBreakerState,
    CircuitState,
    ConflictKind,
    ConflictReport,
    EntityKind,
    FieldConflict,
    RetryStats,
    Side,
    Status,
    SyncResult,
    SyncSnapshot,
    SyncStatus,
)


class TestStatus:
    """Tests for the canonical Status enum."""

    def test_rank_orders_lifecycle(self):
        """Test that ranks increase along the lifecycle."""
        ranks = [s.rank for s in (Status.TODO, Status.IN_PROGRESS, Status.DONE, Status.CLOSED)]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == 4

    def test_terminal_statuses(self):
        """Test that only Done and Closed are terminal."""
        assert Status.DONE.is_terminal
        assert Status.CLOSED.is_terminal
        assert not Status.TODO.is_terminal
        assert not Status.IN_PROGRESS.is_terminal


class TestCanonicalRecord:
    """Tests for CanonicalRecord."""

    def test_progress_is_clamped(self):
        """Test that progress is always kept within 0-100."""
        assert CanonicalRecord(id="A", progress=150).progress == 100
        assert CanonicalRecord(id="A", progress=-5).progress == 0

    def test_coerces_enums_and_timestamps(self):
        """Test that string values are coerced to enums and datetimes."""
        record = CanonicalRecord(
            id="A", kind="epic", status="Done", updated_at="2024-01-15T10:30:00Z",
        )

        assert record.kind == EntityKind.EPIC
        assert record.status == Status.DONE
        assert record.updated_at == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_invalid_status_rejected(self):
        """Test that raw provider strings never become a status."""
        with pytest.raises(ValueError):
            CanonicalRecord(id="A", status="In Progress")

    def test_get_field_core_and_custom(self):
        """Test field lookup by canonical name."""
        record = CanonicalRecord(id="A", name="Title", custom_fields={"size": "L"})

        assert record.get_field("name") == "Title"
        assert record.get_field("size") == "L"
        assert record.get_field("missing") is None

    def test_with_updates_returns_copy(self, sample_local_record):
        """Test that with_updates leaves the original untouched."""
        updated = sample_local_record.with_updates({"progress": 70, "size": "S"})

        assert updated.progress == 70
        assert updated.custom_fields == {"size": "S"}
        assert sample_local_record.progress == 40
        assert sample_local_record.custom_fields == {}

    def test_dict_round_trip(self, sample_local_record):
        """Test to_dict/from_dict preserve every field."""
        restored = CanonicalRecord.from_dict(sample_local_record.to_dict())
        assert restored == sample_local_record


class TestSyncSnapshot:
    """Tests for SyncSnapshot."""

    def test_dict_round_trip(self, sample_local_record):
        """Test that both sides and the sync time survive serialisation."""
        synced_at = datetime(2024, 1, 15, 11, 0, tzinfo=timezone.utc)
        snapshot = SyncSnapshot("PROJ-1", sample_local_record, sample_local_record, synced_at)

        restored = SyncSnapshot.from_dict(snapshot.to_dict())

        assert restored.entity_id == "PROJ-1"
        assert restored.last_local_state == sample_local_record
        assert restored.synced_at == synced_at


class TestConflictReport:
    """Tests for ConflictReport."""

    def test_empty_report(self):
        """Test properties of a report without conflicts."""
        report = ConflictReport(entity_id="A")

        assert report.is_empty
        assert report.fields == []
        assert not report.has_concurrent_modification

    def test_fields_and_lookup(self):
        """Test field listing and per-field lookup."""
        report = ConflictReport(entity_id="A", conflicts=[
            FieldConflict("progress", 40, 70),
            FieldConflict("status", Status.DONE, Status.TODO,
                          kind=ConflictKind.CONCURRENT_MODIFICATION),
        ])

        assert report.fields == ["progress", "status"]
        assert report.get_conflict("progress").remote_value == 70
        assert report.get_conflict("name") is None
        assert report.has_concurrent_modification

    def test_to_dict_serialises_enum_values(self):
        """Test that enum values are written as plain strings."""
        report = ConflictReport(entity_id="A", conflicts=[
            FieldConflict("status", Status.DONE, Status.TODO),
        ])

        conflict = report.to_dict()["conflicts"][0]

        assert conflict["local_value"] == "Done"
        assert conflict["remote_value"] == "ToDo"
        assert conflict["kind"] == "field_mismatch"


class TestCircuitBreakerState:
    """Tests for CircuitBreakerState."""

    def test_defaults(self):
        """Test that a new state is closed with no failures."""
        state = CircuitBreakerState("update-task")

        assert state.state == CircuitState.CLOSED
        assert state.failure_count == 0
        assert state.last_failure_at is None

    def test_dict_round_trip(self):
        """Test to_dict/from_dict."""
        state = CircuitBreakerState("update-task", CircuitState.OPEN, 5, 1000.0, 1000.0)
        assert CircuitBreakerState.from_dict(state.to_dict()) == state


class TestRetryStats:
    """Tests for RetryStats."""

    def test_success_rate(self):
        """Test success rate over attempts."""
        stats = RetryStats("fetch-task", total_attempts=4, success_count=1)
        assert stats.success_rate == 0.25

    def test_success_rate_without_attempts(self):
        """Test that an unused key reports 0.0."""
        assert RetryStats("fetch-task").success_rate == 0.0


class TestSyncResult:
    """Tests for SyncResult."""

    def test_ok_statuses(self):
        """Test that only noop and synced count as ok."""
        assert SyncResult("A", SyncStatus.NOOP).ok
        assert SyncResult("A", SyncStatus.SYNCED).ok
        assert not SyncResult("A", SyncStatus.DEFERRED).ok
        assert not SyncResult("A", SyncStatus.PARTIAL).ok

    def test_raise_for_status(self):
        """Test that the attached error is raised."""
        error = ConflictUnresolved("needs a human", entity_id="A")
        result = SyncResult("A", SyncStatus.DEFERRED, error=error)

        with pytest.raises(ConflictUnresolved):
            result.raise_for_status()

    def test_raise_for_status_without_error(self):
        """Test that a clean result does not raise."""
        SyncResult("A", SyncStatus.SYNCED).raise_for_status()

    def test_to_dict(self):
        """Test serialisation of deltas and the pending side."""
        result = SyncResult(
            "A", SyncStatus.PARTIAL,
            remote_delta={"status": Status.DONE},
            pending_side=Side.REMOTE,
        )

        data = result.to_dict()

        assert data["status"] == "partial"
        assert data["remote_delta"] == {"status": "Done"}
        assert data["pending_side"] == "remote"
