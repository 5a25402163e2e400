"""
Unit tests for the markdown local store.
"""

import pytest
from datetime import datetime, timezone

import yaml

from tracksync.core.exceptions import LocalRecordNotFoundError, SyncStorageError
from tracksync.core.models import CanonicalRecord, EntityKind, Status
from tracksync.state.local_store import InMemoryLocalStore, MarkdownLocalStore


SAMPLE_FILE = """---
name: Implement login
kind: task
status: in-progress
assignee: ada
progress: 40%
updated: '2024-01-15T09:30:00+00:00'
size: M
---

Login form with SSO
"""


class TestMarkdownLocalStore:
    """Tests for MarkdownLocalStore."""

    @pytest.fixture
    def store(self, tmp_path):
        return MarkdownLocalStore(tmp_path)

    def test_read(self, store, tmp_path):
        (tmp_path / "PROJ-1.md").write_text(SAMPLE_FILE)

        record = store.read("PROJ-1")

        assert record.id == "PROJ-1"
        assert record.name == "Implement login"
        assert record.status == Status.IN_PROGRESS
        assert record.progress == 40
        assert record.description == "Login form with SSO"
        assert record.updated_at == datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)
        assert record.custom_fields == {"size": "M"}

    def test_write_then_read(self, store, sample_local_record):
        record = sample_local_record.with_updates({"size": "L"})

        store.write("PROJ-1", record)

        assert store.read("PROJ-1") == record

    def test_written_front_matter_uses_local_vocabulary(self, store, tmp_path, sample_local_record):
        store.write("PROJ-1", sample_local_record.with_updates({"status": Status.DONE}))

        text = (tmp_path / "PROJ-1.md").read_text()
        front_matter = yaml.safe_load(text.split("---")[1])

        assert front_matter["status"] == "completed"
        assert front_matter["progress"] == "40%"
        assert text.endswith("Login form with SSO\n")

    def test_unassigned_is_omitted(self, store, tmp_path):
        store.write("PROJ-2", CanonicalRecord(id="PROJ-2", name="Unassigned"))

        text = (tmp_path / "PROJ-2.md").read_text()

        assert "assignee" not in text
        assert store.read("PROJ-2").assignee is None

    def test_malformed_progress_defaults_to_zero(self, store, tmp_path):
        (tmp_path / "PROJ-3.md").write_text("---\nname: X\nprogress: lots\n---\n")
        assert store.read("PROJ-3").progress == 0

    def test_missing_front_matter(self, store, tmp_path):
        (tmp_path / "PROJ-4.md").write_text("Just a body\n")

        record = store.read("PROJ-4")

        assert record.description == "Just a body"
        assert record.status == Status.TODO

    def test_default_kind(self, tmp_path):
        (tmp_path / "EPIC-1.md").write_text("---\nname: Auth\n---\n")
        store = MarkdownLocalStore(tmp_path, default_kind=EntityKind.EPIC)

        assert store.read("EPIC-1").kind == EntityKind.EPIC

    def test_invalid_yaml(self, store, tmp_path):
        (tmp_path / "PROJ-5.md").write_text("---\nname: [unclosed\n---\n")

        with pytest.raises(SyncStorageError):
            store.read("PROJ-5")

    def test_missing_record(self, store):
        assert not store.exists("PROJ-404")
        with pytest.raises(LocalRecordNotFoundError):
            store.read("PROJ-404")

    def test_list_entities(self, store, sample_local_record):
        store.write("PROJ-2", sample_local_record)
        store.write("PROJ-1", sample_local_record)

        assert store.list_entities() == ["PROJ-1", "PROJ-2"]


class TestInMemoryLocalStore:
    """Tests for InMemoryLocalStore."""

    def test_write_history(self, sample_local_record):
        store = InMemoryLocalStore([sample_local_record])

        store.write("PROJ-1", sample_local_record.with_updates({"progress": 70}))

        assert store.read("PROJ-1").progress == 70
        assert store.write_history == ["PROJ-1"]
