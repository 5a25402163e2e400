"""
Unit tests for three-way conflict detection.
"""

import pytest
from datetime import datetime, timedelta, timezone

from tracksync.conflict.detector import ConflictDetector, normalise_value, values_equal
from tracksync.core.models import ChangedSide, ConflictKind, Status, SyncSnapshot


FIXED_NOW = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


class TestNormalisation:
    """Tests for value normalisation."""

    def test_none_equals_empty(self):
        assert values_equal(None, "")

    def test_whitespace_ignored(self):
        assert values_equal("  text ", "text")

    def test_non_strings_untouched(self):
        assert normalise_value(40) == 40
        assert not values_equal(40, 70)


class TestConflictDetector:
    """Tests for ConflictDetector."""

    @pytest.fixture
    def detector(self, clock):
        return ConflictDetector(clock=clock)

    def test_identical_records_produce_empty_report(self, detector, sample_local_record):
        """Test that local == remote yields no conflicts regardless of snapshot."""
        report = detector.detect(sample_local_record, sample_local_record)

        assert report.is_empty
        assert report.entity_id == "PROJ-1"
        assert report.detected_at == FIXED_NOW

    def test_blank_differences_are_not_conflicts(self, detector, sample_local_record):
        """Test that None vs '' and trailing whitespace do not conflict."""
        local = sample_local_record.with_updates({"assignee": None, "name": "Implement login  "})
        remote = sample_local_record.with_updates({"assignee": ""})

        assert detector.detect(local, remote).is_empty

    def test_field_mismatch_without_snapshot(self, detector, sample_local_record):
        """Test conflicts against a never-synced entity."""
        remote = sample_local_record.with_updates({
            "progress": 70,
            "updated_at": sample_local_record.updated_at + timedelta(hours=2),
        })

        report = detector.detect(sample_local_record, remote)

        assert report.fields == ["progress"]
        conflict = report.get_conflict("progress")
        assert conflict.local_value == 40
        assert conflict.remote_value == 70
        assert conflict.changed_side == ChangedSide.BOTH
        assert conflict.kind == ConflictKind.FIELD_MISMATCH

    def test_concurrent_modification_within_window(self, detector, sample_local_record):
        """Test that both sides changing within five minutes is concurrent."""
        snapshot = SyncSnapshot("PROJ-1", sample_local_record, sample_local_record)
        local = sample_local_record.with_updates({
            "status": Status.DONE,
            "updated_at": FIXED_NOW,
        })
        remote = sample_local_record.with_updates({
            "status": Status.TODO,
            "updated_at": FIXED_NOW + timedelta(minutes=2),
        })

        report = detector.detect(local, remote, snapshot)

        conflict = report.get_conflict("status")
        assert conflict.changed_side == ChangedSide.BOTH
        assert conflict.kind == ConflictKind.CONCURRENT_MODIFICATION
        assert report.has_concurrent_modification

    def test_outside_window_is_field_mismatch(self, detector, sample_local_record):
        """Test that changes far apart in time are plain mismatches."""
        snapshot = SyncSnapshot("PROJ-1", sample_local_record, sample_local_record)
        local = sample_local_record.with_updates({"status": Status.DONE, "updated_at": FIXED_NOW})
        remote = sample_local_record.with_updates({
            "status": Status.TODO,
            "updated_at": FIXED_NOW + timedelta(minutes=30),
        })

        report = detector.detect(local, remote, snapshot)

        assert report.get_conflict("status").kind == ConflictKind.FIELD_MISMATCH

    def test_window_is_configurable(self, clock, sample_local_record):
        """Test a custom window."""
        detector = ConflictDetector(window_seconds=3600, clock=clock)
        snapshot = SyncSnapshot("PROJ-1", sample_local_record, sample_local_record)
        local = sample_local_record.with_updates({"status": Status.DONE, "updated_at": FIXED_NOW})
        remote = sample_local_record.with_updates({
            "status": Status.TODO,
            "updated_at": FIXED_NOW + timedelta(minutes=30),
        })

        report = detector.detect(local, remote, snapshot)

        assert report.get_conflict("status").kind == ConflictKind.CONCURRENT_MODIFICATION

    def test_one_sided_change(self, detector, sample_local_record):
        """Test that a change on one side only is attributed to that side."""
        snapshot = SyncSnapshot("PROJ-1", sample_local_record, sample_local_record)
        remote = sample_local_record.with_updates({
            "description": "Updated upstream",
            "updated_at": FIXED_NOW,
        })

        report = detector.detect(sample_local_record, remote, snapshot)

        conflict = report.get_conflict("description")
        assert conflict.changed_side == ChangedSide.REMOTE
        assert conflict.kind == ConflictKind.FIELD_MISMATCH

    def test_local_change_against_stale_remote(self, detector, sample_local_record):
        """Test that the remote side still holding the snapshot value is not a change."""
        snapshot = SyncSnapshot("PROJ-1", sample_local_record, sample_local_record)
        local = sample_local_record.with_updates({"name": "Renamed locally", "updated_at": FIXED_NOW})

        report = detector.detect(local, sample_local_record, snapshot)

        conflict = report.get_conflict("name")
        assert conflict.changed_side == ChangedSide.LOCAL
        assert conflict.kind == ConflictKind.FIELD_MISMATCH
        assert conflict.remote_value == "Implement login"

    def test_custom_fields_compared(self, clock, sample_local_record):
        """Test that declared custom fields are part of the comparison."""
        detector = ConflictDetector(custom_fields=["size"], clock=clock)
        local = sample_local_record.with_updates({"size": "M"})
        remote = sample_local_record.with_updates({"size": "L", "team": "core"})

        report = detector.detect(local, remote)

        assert report.fields == ["size"]

    def test_report_carries_records(self, detector, sample_local_record):
        """Test that the report keeps both compared records."""
        remote = sample_local_record.with_updates({"name": "Other"})

        report = detector.detect(sample_local_record, remote)

        assert report.local is sample_local_record
        assert report.remote is remote
