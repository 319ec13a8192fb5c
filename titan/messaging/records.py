# =============================================================================
# File: titan/messaging/records.py
# Description: Persisted record shapes exchanged with the persistence service
#              and the change feed (row-shaped, snake_case, flat sender fields)
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from titan.messaging.enums import (
    ActorRole,
    ChannelRole,
    FeedEventKind,
    FeedTable,
    MessageStatus,
    MessageType,
)
from titan.messaging.models import Message
from titan.messaging.value_objects import (
    ActorSnapshot,
    Attachment,
    BoostTag,
    DeliverableTag,
    ForwardRef,
    ReplyRef,
)
from titan.utils.datetime_utils import parse_timestamp_robust, utc_now


class _Row(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",  # Rows carry columns this core does not use
    )


class MessageEnvelope(_Row):
    """What the delivery pipeline hands to MessagePersistencePort.send_message"""
    channel_id: str
    sender_id: str
    sender_name: str
    sender_avatar: str = ""
    sender_role: ActorRole
    content: str
    message_type: MessageType = MessageType.TEXT
    reply_to_id: Optional[str] = None
    reply_to_sender: Optional[str] = None
    reply_to_content: Optional[str] = None
    forwarded_from_id: Optional[str] = None
    forwarded_from_channel: Optional[str] = None
    forwarded_from_sender: Optional[str] = None
    thread_parent_id: Optional[str] = None
    attachments: List[Attachment] = Field(default_factory=list)
    is_system_message: bool = False
    boost_tag: Optional[BoostTag] = None
    deliverable_tag: Optional[DeliverableTag] = None
    client_temp_id: Optional[str] = None

    @classmethod
    def from_message(cls, message: Message) -> "MessageEnvelope":
        return cls(
            channel_id=message.channel_id,
            sender_id=message.sender.id,
            sender_name=message.sender.name,
            sender_avatar=message.sender.avatar,
            sender_role=message.sender.role,
            content=message.content,
            message_type=message.message_type,
            reply_to_id=message.reply_to.message_id if message.reply_to else None,
            reply_to_sender=message.reply_to.sender_name if message.reply_to else None,
            reply_to_content=message.reply_to.content if message.reply_to else None,
            forwarded_from_id=message.forwarded_from.message_id if message.forwarded_from else None,
            forwarded_from_channel=message.forwarded_from.channel_name if message.forwarded_from else None,
            forwarded_from_sender=message.forwarded_from.sender_name if message.forwarded_from else None,
            thread_parent_id=message.thread_parent_id,
            attachments=list(message.attachments),
            is_system_message=message.is_system_message,
            boost_tag=message.tag if isinstance(message.tag, BoostTag) else None,
            deliverable_tag=message.tag if isinstance(message.tag, DeliverableTag) else None,
            client_temp_id=message.client_temp_id,
        )


class MessageRecord(MessageEnvelope):
    """A persisted message row, as delivered by the change feed"""
    id: str
    sender_role: ActorRole = ActorRole.CLIENT
    sender_name: str = "Unknown"
    content: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    status: MessageStatus = MessageStatus.SENT
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    original_content: Optional[str] = None
    is_deleted: bool = False
    deleted_for_everyone: bool = False
    is_pinned: bool = False
    pinned_at: Optional[datetime] = None
    pinned_by: Optional[str] = None

    @field_validator("created_at", "edited_at", "pinned_at", mode="before")
    @classmethod
    def _parse_ts(cls, v: Any) -> Any:
        if v is None or isinstance(v, datetime):
            return v
        return parse_timestamp_robust(v, fallback=None) or v

    @field_validator("sender_role", mode="before")
    @classmethod
    def _default_role(cls, v: Any) -> Any:
        return v or ActorRole.CLIENT

    def to_message(self) -> Message:
        reply_to = None
        if self.reply_to_id:
            reply_to = ReplyRef(
                message_id=self.reply_to_id,
                sender_name=self.reply_to_sender or "",
                content=self.reply_to_content or "",
            )
        forwarded_from = None
        if self.forwarded_from_id:
            forwarded_from = ForwardRef(
                message_id=self.forwarded_from_id,
                channel_name=self.forwarded_from_channel or "",
                sender_name=self.forwarded_from_sender or "",
            )
        return Message(
            id=self.id,
            channel_id=self.channel_id,
            sender=ActorSnapshot(
                id=self.sender_id,
                name=self.sender_name,
                avatar=self.sender_avatar,
                role=self.sender_role,
            ),
            content=self.content,
            created_at=self.created_at,
            status=self.status,
            message_type=self.message_type,
            is_edited=self.is_edited,
            edited_at=self.edited_at,
            original_content=self.original_content,
            deleted_for_everyone=self.deleted_for_everyone or self.is_deleted,
            is_pinned=self.is_pinned,
            pinned_at=self.pinned_at,
            pinned_by=self.pinned_by,
            reply_to=reply_to,
            forwarded_from=forwarded_from,
            thread_parent_id=self.thread_parent_id,
            attachments=list(self.attachments),
            is_system_message=self.is_system_message,
            tag=self.boost_tag or self.deliverable_tag,
            client_temp_id=self.client_temp_id,
        )


class ReactionRecord(_Row):
    """A persisted reaction row: the full actor set for one (message, emoji)"""
    message_id: str
    emoji: str
    user_ids: List[str] = Field(default_factory=list)


class MembershipRecord(_Row):
    """A persisted channel membership row"""
    channel_id: str
    user_profile_id: str
    role_in_channel: ChannelRole = ChannelRole.MEMBER
    is_muted: bool = False
    added_by: Optional[str] = None


class FeedEvent(_Row):
    """
    One change-feed notification.

    `new` holds the row after the change (INSERT/UPDATE); `old` holds the
    row before it (DELETE).
    """
    event_type: FeedEventKind = Field(alias="eventType")
    table: FeedTable
    channel_id: Optional[str] = None
    new: Dict[str, Any] = Field(default_factory=dict)
    old: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Results returned by external services
# =============================================================================

class SendResult(_Row):
    """Server-assigned identity of a persisted message"""
    id: str


class UploadedFile(_Row):
    """Result of MessagePersistencePort.upload_file"""
    url: str
    name: str
    mime_type: str
    size: int = 0


class CreatedRecord(_Row):
    """Identity of a record created by an external business service"""
    id: str
