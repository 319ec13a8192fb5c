# =============================================================================
# File: titan/messaging/channel_registry.py
# Description: Channel lifecycle, naming rules and memberships
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict

from titan.common.exceptions.exceptions import NotFoundError, ValidationError
from titan.config.messaging_config import MessagingConfig, get_messaging_config
from titan.messaging.enums import ActorRole, ChannelKind, ChannelPrivacy, ChannelRole, FeedEventKind
from titan.messaging.exceptions import (
    ChannelNameConflictError,
    ChannelNotFoundError,
    InsufficientPermissionsError,
    LastChannelAdminError,
)
from titan.messaging.membership_gate import can_manage, require_manage
from titan.messaging.message_store import MessageStore
from titan.messaging.models import Channel, ChannelMembership
from titan.messaging.records import MembershipRecord
from titan.messaging.value_objects import ActorSnapshot

log = logging.getLogger("titan.messaging.channels")

# Created for every workspace, in display order
SYSTEM_CHANNEL_KINDS = (
    ChannelKind.GENERAL,
    ChannelKind.DELIVERABLES,
    ChannelKind.BOOST_REQUESTS,
    ChannelKind.BILLING,
    ChannelKind.INTERNAL,
)

SYSTEM_CHANNEL_DESCRIPTIONS: Dict[ChannelKind, str] = {
    ChannelKind.GENERAL: "General discussion",
    ChannelKind.DELIVERABLES: "Deliverable requests and reviews",
    ChannelKind.BOOST_REQUESTS: "Paid boost campaign requests",
    ChannelKind.BILLING: "Invoices, wallet and package usage",
    ChannelKind.INTERNAL: "Team-only notes (hidden from the client)",
}


class ChannelPatch(BaseModel):
    """Fields an update may change; None means unchanged"""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    description: Optional[str] = None
    privacy: Optional[ChannelPrivacy] = None


def _name_key(name: str) -> str:
    return name.strip().casefold()


class ChannelRegistry:
    """Owns every channel and its membership list"""

    def __init__(
            self,
            config: Optional[MessagingConfig] = None,
            message_store: Optional[MessageStore] = None,
    ):
        self.config = config or get_messaging_config()
        self._store = message_store
        self._channels: Dict[str, Channel] = {}

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, channel_id: str) -> Channel:
        channel = self._channels.get(channel_id)
        if channel is None:
            raise ChannelNotFoundError(channel_id)
        return channel

    def find(self, channel_id: str) -> Optional[Channel]:
        return self._channels.get(channel_id)

    def list_channels(self, workspace_id: str, include_archived: bool = False) -> List[Channel]:
        return [
            channel for channel in self._channels.values()
            if channel.workspace_id == workspace_id and (include_archived or not channel.is_archived)
        ]

    def _check_name_free(self, workspace_id: str, name: str, exclude_id: Optional[str] = None) -> None:
        key = _name_key(name)
        for channel in self.list_channels(workspace_id):
            if channel.id != exclude_id and _name_key(channel.name) == key:
                raise ChannelNameConflictError(workspace_id, name.strip())

    def _can_administer(self, actor: ActorSnapshot, channel: Channel) -> bool:
        member = channel.get_member(actor.id)
        return can_manage(actor, channel) or (member is not None and member.role == ChannelRole.ADMIN)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create_channel(
            self,
            workspace_id: str,
            name: str,
            kind: ChannelKind,
            privacy: ChannelPrivacy,
            creator: ActorSnapshot,
            initial_member_ids: Optional[Iterable[str]] = None,
            description: str = "",
    ) -> Channel:
        """
        Create a channel.

        The creator becomes the channel admin. Initial members join as
        plain members.

        Raises:
            ValidationError: empty name, or name already used by a live
                channel in the workspace (case-insensitive)
            PermissionError: client actor while client channel creation
                is disabled
        """
        if creator.is_client and not self.config.client_can_create_channels:
            raise InsufficientPermissionsError(creator.id, "create channels")
        return self._create(workspace_id, name, kind, privacy, creator, initial_member_ids, description)

    def _create(
            self,
            workspace_id: str,
            name: str,
            kind: ChannelKind,
            privacy: ChannelPrivacy,
            creator: ActorSnapshot,
            initial_member_ids: Optional[Iterable[str]],
            description: str,
    ) -> Channel:
        name = name.strip()
        if not name:
            raise ValidationError("Channel name cannot be empty")
        self._check_name_free(workspace_id, name)

        channel = Channel(
            workspace_id=workspace_id,
            name=name,
            kind=kind,
            privacy=privacy,
            description=description,
            created_by=creator.id,
        )
        channel.members.append(ChannelMembership(
            channel_id=channel.id,
            actor_id=creator.id,
            role=ChannelRole.ADMIN,
            added_by=creator.id,
        ))
        for actor_id in initial_member_ids or ():
            if not channel.is_member(actor_id):
                channel.members.append(ChannelMembership(
                    channel_id=channel.id,
                    actor_id=actor_id,
                    role=ChannelRole.MEMBER,
                    added_by=creator.id,
                ))

        self._channels[channel.id] = channel
        log.info(f"Channel created: {channel.name} ({channel.kind.value}, {channel.privacy.value}) "
                 f"in workspace {workspace_id}")
        return channel

    def provision_workspace(self, workspace_id: str, creator: ActorSnapshot) -> List[Channel]:
        """Create any missing system channels for a workspace"""
        existing = {c.kind for c in self.list_channels(workspace_id, include_archived=True)}
        created = []
        for kind in SYSTEM_CHANNEL_KINDS:
            if kind in existing:
                continue
            created.append(self._create(
                workspace_id,
                kind.value,
                kind,
                ChannelPrivacy.OPEN,
                creator,
                None,
                SYSTEM_CHANNEL_DESCRIPTIONS[kind],
            ))
        return created

    def update_channel(
            self,
            channel_id: str,
            patch: Union[ChannelPatch, Dict[str, Any]],
            actor: ActorSnapshot,
    ) -> Channel:
        channel = self.get(channel_id)
        if not isinstance(patch, ChannelPatch):
            patch = ChannelPatch.model_validate(patch)

        if channel.is_system:
            if patch.privacy is not None and patch.privacy != channel.privacy:
                raise InsufficientPermissionsError(actor.id, "change privacy of a system channel")
            if actor.role != ActorRole.ADMIN:
                raise InsufficientPermissionsError(actor.id, "edit a system channel")
        elif not self._can_administer(actor, channel):
            raise InsufficientPermissionsError(actor.id, f"edit channel {channel.id}")

        new_name = None
        if patch.name is not None:
            new_name = patch.name.strip()
            if not new_name:
                raise ValidationError("Channel name cannot be empty")
            if _name_key(new_name) != _name_key(channel.name):
                self._check_name_free(channel.workspace_id, new_name, exclude_id=channel.id)

        if new_name is not None:
            channel.name = new_name
        if patch.description is not None:
            channel.description = patch.description
        if patch.privacy is not None:
            channel.privacy = patch.privacy
        return channel

    def archive_channel(self, channel_id: str, actor: ActorSnapshot) -> Channel:
        channel = self.get(channel_id)
        if not self._can_administer(actor, channel):
            raise InsufficientPermissionsError(actor.id, f"archive channel {channel.id}")
        if not channel.is_archived:
            channel.is_archived = True
            log.info(f"Channel archived: {channel.name} ({channel.id})")
        return channel

    def restore_channel(self, channel_id: str, actor: ActorSnapshot) -> Channel:
        channel = self.get(channel_id)
        if not self._can_administer(actor, channel):
            raise InsufficientPermissionsError(actor.id, f"restore channel {channel.id}")
        if channel.is_archived:
            self._check_name_free(channel.workspace_id, channel.name, exclude_id=channel.id)
            channel.is_archived = False
            log.info(f"Channel restored: {channel.name} ({channel.id})")
        return channel

    def delete_channel(self, channel_id: str, actor: ActorSnapshot) -> None:
        """Hard delete; takes the channel's messages and memberships with it"""
        channel = self.get(channel_id)
        if channel.is_system:
            raise InsufficientPermissionsError(actor.id, "delete a system channel")
        require_manage(actor, channel)

        purged = self._store.purge_channel(channel_id) if self._store is not None else 0
        del self._channels[channel_id]
        log.info(f"Channel deleted: {channel.name} ({channel.id}), {purged} message(s) removed")

    # =========================================================================
    # Membership
    # =========================================================================

    def add_member(
            self,
            channel_id: str,
            actor_id: str,
            role: ChannelRole = ChannelRole.MEMBER,
            added_by: Optional[str] = None,
    ) -> ChannelMembership:
        channel = self.get(channel_id)
        existing = channel.get_member(actor_id)
        if existing is not None:
            return existing
        membership = ChannelMembership(channel_id=channel_id, actor_id=actor_id, role=role, added_by=added_by)
        channel.members.append(membership)
        return membership

    def remove_member(self, channel_id: str, actor_id: str) -> bool:
        channel = self.get(channel_id)
        member = channel.get_member(actor_id)
        if member is None:
            return False
        if member.role == ChannelRole.ADMIN and channel.admin_ids() == [actor_id]:
            raise LastChannelAdminError(channel_id, actor_id)
        channel.members = [m for m in channel.members if m.actor_id != actor_id]
        return True

    def _require_member(self, channel: Channel, actor_id: str) -> ChannelMembership:
        member = channel.get_member(actor_id)
        if member is None:
            raise NotFoundError(f"Actor {actor_id} is not a member of channel {channel.id}")
        return member

    def set_member_role(self, channel_id: str, actor_id: str, role: ChannelRole) -> ChannelMembership:
        """Promote or demote a member; the last admin cannot be demoted"""
        channel = self.get(channel_id)
        member = self._require_member(channel, actor_id)
        if member.role == ChannelRole.ADMIN and role != ChannelRole.ADMIN and channel.admin_ids() == [actor_id]:
            raise LastChannelAdminError(channel_id, actor_id)
        member.role = role
        return member

    def set_muted(self, channel_id: str, actor_id: str, muted: bool) -> ChannelMembership:
        channel = self.get(channel_id)
        member = self._require_member(channel, actor_id)
        member.muted = muted
        return member

    # =========================================================================
    # Unread counters
    # =========================================================================

    def bump_unread(self, channel_id: str, count: int = 1) -> int:
        channel = self.get(channel_id)
        channel.unread_count += count
        return channel.unread_count

    def mark_read(self, channel_id: str) -> None:
        self.get(channel_id).unread_count = 0

    def record_last_message(self, channel_id: str, preview: str, at: datetime) -> None:
        channel = self.find(channel_id)
        if channel is not None:
            channel.last_message = preview
            channel.last_message_at = at

    # =========================================================================
    # Change feed folding
    # =========================================================================

    def apply_membership_record(self, kind: FeedEventKind, record: MembershipRecord) -> None:
        """Authoritative membership change; no policy checks"""
        channel = self.find(record.channel_id)
        if channel is None:
            log.debug(f"Membership change for unknown channel {record.channel_id} ignored")
            return

        if kind == FeedEventKind.DELETE:
            channel.members = [m for m in channel.members if m.actor_id != record.user_profile_id]
            return

        member = channel.get_member(record.user_profile_id)
        if member is None:
            channel.members.append(ChannelMembership(
                channel_id=channel.id,
                actor_id=record.user_profile_id,
                role=record.role_in_channel,
                muted=record.is_muted,
                added_by=record.added_by,
            ))
        else:
            member.role = record.role_in_channel
            member.muted = record.is_muted
