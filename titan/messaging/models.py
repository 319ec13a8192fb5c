# =============================================================================
# File: titan/messaging/models.py
# Description: Messaging domain records held in memory by the store,
#              registry and directory
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Set

from pydantic import Field, computed_field

from titan.common.base.base_model import BaseRecord
from titan.messaging.enums import (
    ChannelKind,
    ChannelPrivacy,
    ChannelRole,
    MessageStatus,
    MessageType,
    WorkspaceStatus,
)
from titan.messaging.value_objects import (
    ActorSnapshot,
    Attachment,
    ForwardRef,
    ReplyRef,
    SystemTag,
)
from titan.utils.datetime_utils import utc_now
from titan.utils.uuid_utils import generate_uuid_str, is_temp_id


class Workspace(BaseRecord):
    """Top-level client scope (one per client)"""
    id: str
    client_id: Optional[str] = None  # Billing client; falls back to the workspace id
    name: str
    logo: str = ""
    status: WorkspaceStatus = WorkspaceStatus.ACTIVE
    health_score: int = Field(default=100, ge=0, le=100)
    pinned: bool = False
    unread_count: int = Field(default=0, ge=0)
    package_usage: float = Field(default=0.0, ge=0)  # percentage
    last_message: str = ""
    last_message_at: Optional[datetime] = None
    is_archived: bool = False

    @property
    def billing_client_id(self) -> str:
        return self.client_id or self.id


class ChannelMembership(BaseRecord):
    """A member of a channel"""
    channel_id: str
    actor_id: str
    role: ChannelRole = ChannelRole.MEMBER
    muted: bool = False
    added_by: Optional[str] = None
    joined_at: datetime = Field(default_factory=utc_now)


class Channel(BaseRecord):
    """A conversation stream inside a workspace"""
    id: str = Field(default_factory=generate_uuid_str)
    workspace_id: str
    name: str
    kind: ChannelKind = ChannelKind.CUSTOM
    privacy: ChannelPrivacy = ChannelPrivacy.OPEN
    description: str = ""
    unread_count: int = Field(default=0, ge=0)
    members: List[ChannelMembership] = Field(default_factory=list)
    is_archived: bool = False
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None

    @property
    def is_system(self) -> bool:
        return self.kind.is_system

    @property
    def is_internal(self) -> bool:
        return self.kind == ChannelKind.INTERNAL

    def get_member(self, actor_id: str) -> Optional[ChannelMembership]:
        for member in self.members:
            if member.actor_id == actor_id:
                return member
        return None

    def is_member(self, actor_id: str) -> bool:
        return self.get_member(actor_id) is not None

    def admin_ids(self) -> List[str]:
        return [m.actor_id for m in self.members if m.role == ChannelRole.ADMIN]


class Reaction(BaseRecord):
    """One emoji on one message; count is always the size of the actor set"""
    emoji: str
    message_id: str
    actor_ids: Set[str] = Field(default_factory=set)

    @computed_field
    @property
    def count(self) -> int:
        return len(self.actor_ids)


class Message(BaseRecord):
    """A message in a channel timeline (optimistic or server-confirmed)"""
    id: str
    channel_id: str
    sender: ActorSnapshot
    content: str
    created_at: datetime = Field(default_factory=utc_now)
    status: MessageStatus = MessageStatus.SENDING
    message_type: MessageType = MessageType.TEXT

    # Edits
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    original_content: Optional[str] = None

    # Delete-for-everyone tombstone (per-actor hiding lives in the overlay store)
    deleted_for_everyone: bool = False

    # Pins
    is_pinned: bool = False
    pinned_at: Optional[datetime] = None
    pinned_by: Optional[str] = None

    # References
    reply_to: Optional[ReplyRef] = None
    forwarded_from: Optional[ForwardRef] = None
    thread_parent_id: Optional[str] = None
    attachments: List[Attachment] = Field(default_factory=list)

    # System messages
    is_system_message: bool = False
    tag: Optional[SystemTag] = None

    # Reconciliation bookkeeping
    client_temp_id: Optional[str] = None
    failure_reason: Optional[str] = None

    reactions: Dict[str, Reaction] = Field(default_factory=dict)

    @property
    def is_confirmed(self) -> bool:
        """True once the id is server-assigned"""
        return not is_temp_id(self.id)

    def reaction_list(self) -> List[Reaction]:
        return list(self.reactions.values())


class Draft(BaseRecord):
    """Unsent composer text, one per (actor, channel)"""
    channel_id: str
    actor_id: str
    content: str
    reply_to_id: Optional[str] = None
    updated_at: datetime = Field(default_factory=utc_now)
