"""Tests for the workspace directory."""

from datetime import timedelta

import pytest

from titan.common.exceptions.exceptions import ValidationError
from titan.messaging.enums import WorkspaceStatus
from titan.messaging.exceptions import WorkspaceNotFoundError
from titan.messaging.models import Message, Workspace
from titan.messaging.value_objects import ActorSnapshot
from titan.messaging.workspace_directory import WorkspaceDirectory
from titan.utils.datetime_utils import utc_now


@pytest.fixture
def directory() -> WorkspaceDirectory:
    now = utc_now()
    directory = WorkspaceDirectory()
    directory.register(Workspace(id="ws-1", name="Acme Coffee", unread_count=0, last_message="Invoice sent",
                                 last_message_at=now - timedelta(hours=1)))
    directory.register(Workspace(id="ws-2", name="Bloom Florist", unread_count=5, status=WorkspaceStatus.AT_RISK,
                                 last_message_at=now - timedelta(hours=3)))
    directory.register(Workspace(id="ws-3", name="Cedar Dental", unread_count=2, pinned=True,
                                 last_message_at=now - timedelta(days=2)))
    directory.register(Workspace(id="ws-4", name="Dune Surf", unread_count=0, status=WorkspaceStatus.PAUSED,
                                 last_message_at=now))
    return directory


def _ids(workspaces):
    return [w.id for w in workspaces]


class TestListing:

    def test_sort_pinned_then_unread_then_recency(self, directory):
        assert _ids(directory.list()) == ["ws-3", "ws-2", "ws-4", "ws-1"]

    def test_search_matches_name_or_last_message(self, directory):
        assert _ids(directory.list(search="BLOOM")) == ["ws-2"]
        assert _ids(directory.list(search="invoice")) == ["ws-1"]
        assert directory.list(search="nothing like this") == []

    @pytest.mark.parametrize("status_filter,expected", [
        ("all", ["ws-3", "ws-2", "ws-4", "ws-1"]),
        ("pinned", ["ws-3"]),
        ("at-risk", ["ws-2"]),
        (WorkspaceStatus.PAUSED, ["ws-4"]),
        ("churning", []),
    ])
    def test_status_filter(self, directory, status_filter, expected):
        assert _ids(directory.list(status_filter=status_filter)) == expected

    def test_unknown_filter_is_rejected(self, directory):
        with pytest.raises(ValidationError):
            directory.list(status_filter="vip")

    def test_archived_excluded_by_default(self, directory):
        directory.archive("ws-4")

        assert "ws-4" not in _ids(directory.list())
        assert "ws-4" in _ids(directory.list(include_archived=True))

    def test_badges(self, directory):
        badges = directory.badges()

        assert badges.total == 4
        assert badges.pinned == 1
        assert badges.unread == 7
        assert badges.by_status[WorkspaceStatus.ACTIVE] == 2
        assert badges.by_status[WorkspaceStatus.CHURNING] == 0


class TestMutations:

    def test_record_activity_updates_preview_and_unread(self, directory):
        sender = ActorSnapshot(id="u-1", name="Dana")
        message = Message(id="srv-1", channel_id="ch-1", sender=sender, content="New logo\nattached")

        directory.record_activity("ws-1", message)

        workspace = directory.get("ws-1")
        assert workspace.last_message == "New logo attached"
        assert workspace.last_message_at == message.created_at
        assert workspace.unread_count == 1
        assert _ids(directory.list())[1] == "ws-2"

    def test_mark_read(self, directory):
        directory.mark_read("ws-2")
        assert directory.get("ws-2").unread_count == 0

    @pytest.mark.parametrize("score", [-1, 101])
    def test_health_out_of_range(self, directory, score):
        with pytest.raises(ValidationError):
            directory.set_health("ws-1", score)
        assert directory.get("ws-1").health_score == 100

    def test_health_status_and_pin(self, directory):
        directory.set_health("ws-1", 42)
        directory.set_status("ws-1", WorkspaceStatus.CHURNING)
        directory.set_pinned("ws-1", True)

        workspace = directory.get("ws-1")
        assert (workspace.health_score, workspace.status, workspace.pinned) == (42, WorkspaceStatus.CHURNING, True)

    def test_unknown_workspace(self, directory):
        with pytest.raises(WorkspaceNotFoundError):
            directory.get("ws-missing")
