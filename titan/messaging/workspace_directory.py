# =============================================================================
# File: titan/messaging/workspace_directory.py
# Description: Workspace listing, filtering, sorting and activity counters
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from titan.common.exceptions.exceptions import ValidationError
from titan.messaging.enums import WorkspaceStatus
from titan.messaging.exceptions import WorkspaceNotFoundError
from titan.messaging.models import Message, Workspace

log = logging.getLogger("titan.messaging.directory")

PINNED_FILTER = "pinned"
ALL_FILTER = "all"

# Longest last-message preview kept on a workspace
PREVIEW_LENGTH = 120

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class DirectoryBadges(BaseModel):
    """Counters shown next to the workspace list filters"""
    total: int = 0
    pinned: int = 0
    unread: int = 0
    by_status: Dict[WorkspaceStatus, int] = Field(default_factory=dict)


class WorkspaceDirectory:
    """In-memory index of the workspaces the current session can see"""

    def __init__(self):
        self._workspaces: Dict[str, Workspace] = {}

    def register(self, workspace: Workspace) -> Workspace:
        self._workspaces[workspace.id] = workspace
        return workspace

    def get(self, workspace_id: str) -> Workspace:
        workspace = self._workspaces.get(workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError(workspace_id)
        return workspace

    def find(self, workspace_id: str) -> Optional[Workspace]:
        return self._workspaces.get(workspace_id)

    def list(
            self,
            search: Optional[str] = None,
            status_filter: Union[str, WorkspaceStatus] = ALL_FILTER,
            include_archived: bool = False,
    ) -> List[Workspace]:
        """
        Filter and sort workspaces.

        Args:
            search: Case-insensitive match on name or last message text
            status_filter: "all", "pinned", or a WorkspaceStatus value
            include_archived: Include archived workspaces

        Returns:
            Pinned first, then most unread, then most recent activity
        """
        if isinstance(status_filter, WorkspaceStatus):
            status_filter = status_filter.value
        if status_filter not in (ALL_FILTER, PINNED_FILTER):
            try:
                status_filter = WorkspaceStatus(status_filter).value
            except ValueError:
                raise ValidationError(f"Unknown workspace filter: {status_filter}")

        needle = search.strip().casefold() if search else ""
        result = []
        for workspace in self._workspaces.values():
            if workspace.is_archived and not include_archived:
                continue
            if status_filter == PINNED_FILTER and not workspace.pinned:
                continue
            if status_filter not in (ALL_FILTER, PINNED_FILTER) and workspace.status.value != status_filter:
                continue
            if needle and needle not in workspace.name.casefold() and needle not in workspace.last_message.casefold():
                continue
            result.append(workspace)

        result.sort(key=lambda w: (
            not w.pinned,
            -w.unread_count,
            -(w.last_message_at or _EPOCH).timestamp(),
        ))
        return result

    def badges(self) -> DirectoryBadges:
        badges = DirectoryBadges(by_status={status: 0 for status in WorkspaceStatus})
        for workspace in self._workspaces.values():
            if workspace.is_archived:
                continue
            badges.total += 1
            badges.by_status[workspace.status] += 1
            badges.unread += workspace.unread_count
            if workspace.pinned:
                badges.pinned += 1
        return badges

    # =========================================================================
    # Mutations
    # =========================================================================

    def record_activity(self, workspace_id: str, message: Message, count_unread: bool = True) -> Workspace:
        """A message arrived in one of the workspace's channels"""
        workspace = self.get(workspace_id)
        preview = message.content.replace("\n", " ").strip()
        if not preview and message.attachments:
            preview = f"📎 {message.attachments[0].name}"
        workspace.last_message = preview[:PREVIEW_LENGTH]
        workspace.last_message_at = message.created_at
        if count_unread:
            workspace.unread_count += 1
        return workspace

    def mark_read(self, workspace_id: str) -> Workspace:
        workspace = self.get(workspace_id)
        workspace.unread_count = 0
        return workspace

    def set_health(self, workspace_id: str, score: int) -> Workspace:
        if not 0 <= score <= 100:
            raise ValidationError(f"Health score must be between 0 and 100, got {score}")
        workspace = self.get(workspace_id)
        workspace.health_score = score
        return workspace

    def set_status(self, workspace_id: str, status: WorkspaceStatus) -> Workspace:
        workspace = self.get(workspace_id)
        if workspace.status != status:
            log.info(f"Workspace {workspace.name} status: {workspace.status.value} -> {status.value}")
            workspace.status = status
        return workspace

    def set_pinned(self, workspace_id: str, pinned: bool) -> Workspace:
        workspace = self.get(workspace_id)
        workspace.pinned = pinned
        return workspace

    def archive(self, workspace_id: str) -> Workspace:
        workspace = self.get(workspace_id)
        workspace.is_archived = True
        return workspace
