"""
Unit tests for the status map.
"""

import pytest

from tracksync.core.models import Status
from tracksync.mapping.status_map import StatusMap


class TestStatusMap:
    """Tests for StatusMap."""

    @pytest.mark.parametrize("name,expected", [
        ("To Do", Status.TODO),
        ("in progress", Status.IN_PROGRESS),
        ("  Code   Review ", Status.IN_PROGRESS),
        ("RESOLVED", Status.DONE),
        ("Won't Do", Status.CLOSED),
    ])
    def test_from_remote(self, name, expected):
        """Test case- and whitespace-insensitive remote lookup."""
        assert StatusMap().from_remote(name) == expected

    def test_unknown_remote_falls_back_to_todo(self):
        """Test that the remote direction is total."""
        status_map = StatusMap()
        assert status_map.from_remote("Awaiting Legal") == Status.TODO
        assert status_map.from_remote(None) == Status.TODO
        assert not status_map.is_known_remote("Awaiting Legal")

    def test_every_status_has_remote_and_local_name(self):
        """Test that the reverse tables are total."""
        status_map = StatusMap()
        for status in Status:
            assert status_map.to_remote(status)
            assert status_map.to_local(status)

    def test_local_aliases(self):
        """Test local vocabulary and aliases."""
        status_map = StatusMap()
        assert status_map.from_local("in-progress") == Status.IN_PROGRESS
        assert status_map.from_local("completed") == Status.DONE
        assert status_map.from_local("InProgress") == Status.IN_PROGRESS
        assert status_map.from_local("someday") == Status.TODO

    def test_overrides_merge_over_defaults(self):
        """Test that configured overrides extend the tables."""
        status_map = StatusMap(
            remote_to_canonical={"Blocked": "InProgress"},
            canonical_to_remote={"Done": "Shipped"},
        )

        assert status_map.from_remote("Blocked") == Status.IN_PROGRESS
        assert status_map.from_remote("To Do") == Status.TODO
        assert status_map.to_remote(Status.DONE) == "Shipped"

    def test_invalid_override_rejected(self):
        """Test that overrides must name canonical statuses."""
        with pytest.raises(ValueError):
            StatusMap(remote_to_canonical={"Blocked": "Paused"})

    def test_remote_names(self):
        """Test listing the remote names of a status."""
        assert "resolved" in StatusMap().remote_names(Status.DONE)
