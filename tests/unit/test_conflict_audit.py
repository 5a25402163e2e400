"""
Unit tests for the conflict audit log.
"""

import json

import pytest

from tracksync.conflict.audit import ConflictAuditLog
from tracksync.conflict.detector import ConflictDetector
from tracksync.core.exceptions import SyncStorageError


@pytest.fixture
def report(clock, sample_local_record):
    remote = sample_local_record.with_updates({"progress": 70})
    return ConflictDetector(clock=clock).detect(sample_local_record, remote)


class TestPendingEntries:
    """Tests for pending manual resolutions."""

    def test_write_and_load(self, audit_log, report):
        """Test that a pending report is stored and listed."""
        path = audit_log.write_pending(report)

        assert path.exists()
        entry = audit_log.load_pending("PROJ-1")
        assert entry["status"] == "pending"
        assert entry["report"]["conflicts"][0]["field"] == "progress"
        assert audit_log.list_pending() == ["PROJ-1"]

    def test_rewrite_is_stable(self, audit_log, report):
        """Test that writing the same report twice gives identical content."""
        first = audit_log.write_pending(report).read_text()
        second = audit_log.write_pending(report).read_text()
        assert first == second

    def test_clear_pending(self, audit_log, report):
        audit_log.write_pending(report)

        assert audit_log.clear_pending("PROJ-1") is True
        assert audit_log.clear_pending("PROJ-1") is False
        assert not audit_log.has_pending("PROJ-1")

    def test_entity_ids_are_sanitised(self, audit_log):
        """Test that ids never escape the pending directory."""
        path = audit_log.pending_path("../evil/ID")
        assert path.parent == audit_log.pending_dir

    def test_corrupt_pending_entry(self, audit_log):
        audit_log.pending_dir.mkdir(parents=True)
        audit_log.pending_path("PROJ-1").write_text("{not json")

        with pytest.raises(SyncStorageError):
            audit_log.load_pending("PROJ-1")


class TestResolutionHistory:
    """Tests for resolutions.jsonl."""

    def test_append_and_filter(self, audit_log):
        audit_log.record_resolution("PROJ-1", "merge", "synced", ["progress"])
        audit_log.record_resolution("PROJ-2", "manual", "deferred", ["status"])

        assert len(audit_log.read_resolutions()) == 2
        entries = audit_log.read_resolutions("PROJ-2")
        assert entries[0]["outcome"] == "deferred"
        assert entries[0]["fields"] == ["status"]

    def test_one_json_object_per_line(self, audit_log):
        audit_log.record_resolution("PROJ-1", "merge", "synced", ["progress"])

        lines = audit_log.resolutions_path.read_text().splitlines()

        assert len(lines) == 1
        assert json.loads(lines[0])["strategy"] == "merge"

    def test_empty_history(self, audit_log):
        assert audit_log.read_resolutions() == []


class TestOutbox:
    """Tests for queued remote updates."""

    def test_queue_and_list(self, audit_log):
        path = audit_log.queue_outbox("PROJ-1", {"customfield_progress": 70}, reason="timeout")

        entry = json.loads(path.read_text())
        assert entry["field_updates"] == {"customfield_progress": 70}
        assert entry["reason"] == "timeout"
        assert audit_log.list_outbox("PROJ-1") == [path]

    def test_list_filters_by_exact_entity(self, audit_log):
        """Test that PROJ-1 does not pick up PROJ-12's entries."""
        audit_log.queue_outbox("PROJ-12", {"summary": "x"})
        own = audit_log.queue_outbox("PROJ-1", {"summary": "y"})

        assert audit_log.list_outbox("PROJ-1") == [own]
        assert len(audit_log.list_outbox()) == 2

    def test_clear_outbox(self, audit_log):
        audit_log.queue_outbox("PROJ-1", {"summary": "x"})
        audit_log.queue_outbox("PROJ-2", {"summary": "y"})

        assert audit_log.clear_outbox("PROJ-1") == 1
        assert audit_log.list_outbox("PROJ-1") == []
        assert len(audit_log.list_outbox()) == 1

    def test_missing_directory(self, tmp_path):
        assert ConflictAuditLog(tmp_path / "nowhere").list_outbox() == []
