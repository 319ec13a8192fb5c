# =============================================================================
# File: titan/messaging/message_store.py
# Description: Per-channel message timelines with optimistic sends and
#              reconciliation of server-confirmed state
# =============================================================================

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from titan.common.exceptions.exceptions import ValidationError
from titan.config.messaging_config import DeletePermission, MessagingConfig, get_messaging_config
from titan.messaging.enums import AttachmentKind, MessageStatus, MessageType
from titan.messaging.exceptions import (
    EditWindowExpiredError,
    InsufficientPermissionsError,
    InvalidStatusTransitionError,
    MessageNotConfirmedError,
    MessageNotFoundError,
    MessageTombstonedError,
)
from titan.messaging.models import Message
from titan.messaging.overlay import ActorOverlayStore
from titan.messaging.value_objects import ActorSnapshot, Attachment, ForwardRef, ReplyRef, SystemTag
from titan.utils.datetime_utils import utc_now
from titan.utils.uuid_utils import generate_temp_id

log = logging.getLogger("titan.messaging.store")

# SENDING and FAILED share rank 0; they only move into each other via fail/retry
_STATUS_RANK: Dict[MessageStatus, int] = {
    MessageStatus.SENDING: 0,
    MessageStatus.FAILED: 0,
    MessageStatus.SENT: 1,
    MessageStatus.DELIVERED: 2,
    MessageStatus.READ: 3,
}

# Fields each revertible operation owns
EDIT_FIELDS = ("content", "is_edited", "edited_at", "original_content")
PIN_FIELDS = ("is_pinned", "pinned_at", "pinned_by")
TOMBSTONE_FIELDS = ("deleted_for_everyone", "content", "attachments") + PIN_FIELDS

_ATTACHMENT_MESSAGE_TYPES: Dict[AttachmentKind, MessageType] = {
    AttachmentKind.IMAGE: MessageType.IMAGE,
    AttachmentKind.VIDEO: MessageType.VIDEO,
    AttachmentKind.VOICE: MessageType.VOICE,
    AttachmentKind.DOCUMENT: MessageType.FILE,
}


def is_legal_transition(current: MessageStatus, requested: MessageStatus) -> bool:
    """Status moves forward only; FAILED is entered from SENDING and left via retry"""
    if requested == MessageStatus.FAILED:
        return current == MessageStatus.SENDING
    if requested == MessageStatus.SENDING:
        return current == MessageStatus.FAILED
    if current == MessageStatus.FAILED:
        return False
    return _STATUS_RANK[requested] > _STATUS_RANK[current]


class _Timeline:
    """One channel's ordered messages plus the id alias table"""

    def __init__(self, channel_id: str):
        self.channel_id = channel_id
        self.order: List[Message] = []
        # temp id and server id both resolve to the same record
        self.aliases: Dict[str, Message] = {}

    def append(self, message: Message) -> None:
        self.order.append(message)
        self.aliases[message.id] = message

    def insert_by_time(self, message: Message) -> None:
        """Insert after every message that is not newer; nothing already present moves"""
        position = len(self.order)
        while position > 0 and self.order[position - 1].created_at > message.created_at:
            position -= 1
        self.order.insert(position, message)
        self.aliases[message.id] = message

    def remove(self, message: Message) -> None:
        self.order = [m for m in self.order if m is not message]
        for key in [k for k, v in self.aliases.items() if v is message]:
            del self.aliases[key]


class MessageStore:
    """
    Holds every loaded message, one ordered timeline per channel.

    All mutations are synchronous. Remote persistence is driven by the
    delivery pipeline and the messaging service, which call back into
    confirm_send / fail_send / restore when the remote call settles.
    """

    def __init__(
            self,
            config: Optional[MessagingConfig] = None,
            overlay: Optional[ActorOverlayStore] = None,
    ):
        self.config = config or get_messaging_config()
        self.overlay = overlay or ActorOverlayStore()
        self._timelines: Dict[str, _Timeline] = {}
        # message id (temp or server) -> channel id
        self._channel_index: Dict[str, str] = {}

    # =========================================================================
    # Lookup
    # =========================================================================

    def _timeline(self, channel_id: str) -> _Timeline:
        timeline = self._timelines.get(channel_id)
        if timeline is None:
            timeline = _Timeline(channel_id)
            self._timelines[channel_id] = timeline
        return timeline

    def _locate(self, message_id: str) -> Tuple[_Timeline, Message]:
        channel_id = self._channel_index.get(message_id)
        if channel_id is not None:
            timeline = self._timelines.get(channel_id)
            if timeline is not None:
                message = timeline.aliases.get(message_id)
                if message is not None:
                    return timeline, message
        raise MessageNotFoundError(message_id)

    def _index(self, timeline: _Timeline, message_id: str) -> None:
        self._channel_index[message_id] = timeline.channel_id

    def find(self, message_id: str) -> Optional[Message]:
        try:
            return self._locate(message_id)[1]
        except MessageNotFoundError:
            return None

    def get(self, message_id: str) -> Message:
        return self._locate(message_id)[1]

    def messages(self, channel_id: str) -> List[Message]:
        timeline = self._timelines.get(channel_id)
        return list(timeline.order) if timeline else []

    def visible_messages(self, channel_id: str, actor_id: str) -> List[Message]:
        """Timeline minus messages the actor deleted for themselves"""
        hidden = self.overlay.hidden_ids(actor_id)
        return [m for m in self.messages(channel_id) if m.id not in hidden]

    def pinned_messages(self, channel_id: str) -> List[Message]:
        pinned = [m for m in self.messages(channel_id) if m.is_pinned]
        return sorted(pinned, key=lambda m: m.created_at)

    def saved_messages(self, actor_id: str) -> List[Message]:
        """Saved messages that are still loaded, most recently saved first"""
        result = []
        for message_id in self.overlay.saved_ids(actor_id):
            message = self.find(message_id)
            if message is not None:
                result.append(message)
        return result

    def is_saved(self, message_id: str, actor_id: str) -> bool:
        return self.overlay.is_saved(actor_id, message_id)

    def search(self, channel_id: str, actor_id: str, query: str) -> List[Message]:
        """Case-insensitive substring match over what the actor can see"""
        needle = query.strip().casefold()
        if not needle:
            return []
        return [
            m for m in self.visible_messages(channel_id, actor_id)
            if not m.deleted_for_everyone and needle in m.content.casefold()
        ]

    def thread_replies(self, parent_id: str) -> List[Message]:
        """Replies in a thread, oldest first"""
        parent = self.get(parent_id)
        replies = [m for m in self.messages(parent.channel_id) if m.thread_parent_id == parent.id]
        return sorted(replies, key=lambda m: m.created_at)

    def thread_reply_count(self, parent_id: str) -> int:
        return len(self.thread_replies(parent_id))

    # =========================================================================
    # Validation helpers
    # =========================================================================

    def _validate_content(self, content: str, has_attachments: bool = False) -> None:
        if not content.strip() and not has_attachments:
            raise ValidationError("Message content cannot be empty")
        if len(content) > self.config.max_content_length:
            raise ValidationError(
                f"Message content exceeds {self.config.max_content_length} characters"
            )

    def _move_status(self, message: Message, requested: MessageStatus, strict: bool = True) -> bool:
        current = message.status
        if current == requested:
            return False
        if is_legal_transition(current, requested):
            message.status = requested
            return True
        if strict:
            raise InvalidStatusTransitionError(message.id, current.value, requested.value)
        log.debug(f"Ignoring status {requested.value} for message {message.id} (at {current.value})")
        return False

    def _tombstone(self, message: Message) -> None:
        message.deleted_for_everyone = True
        message.content = self.config.tombstone_text
        message.attachments = []
        message.reactions = {}
        message.is_pinned = False
        message.pinned_at = None
        message.pinned_by = None

    # =========================================================================
    # Sending
    # =========================================================================

    def send_optimistic(
            self,
            channel_id: str,
            actor: ActorSnapshot,
            content: str,
            reply_to: Optional[ReplyRef] = None,
            attachments: Optional[List[Attachment]] = None,
            *,
            tag: Optional[SystemTag] = None,
            is_system_message: bool = False,
            forwarded_from: Optional[ForwardRef] = None,
            thread_parent_id: Optional[str] = None,
    ) -> Message:
        """Append a `sending` message under a temporary id and return it"""
        attachments = list(attachments or [])
        self._validate_content(content, has_attachments=bool(attachments))

        if is_system_message:
            message_type = MessageType.SYSTEM
        elif attachments:
            message_type = _ATTACHMENT_MESSAGE_TYPES[attachments[0].kind]
        else:
            message_type = MessageType.TEXT

        temp_id = generate_temp_id()
        message = Message(
            id=temp_id,
            channel_id=channel_id,
            sender=actor,
            content=content,
            status=MessageStatus.SENDING,
            message_type=message_type,
            reply_to=reply_to,
            forwarded_from=forwarded_from,
            thread_parent_id=thread_parent_id,
            attachments=attachments,
            is_system_message=is_system_message,
            tag=tag,
            client_temp_id=temp_id,
        )
        timeline = self._timeline(channel_id)
        timeline.append(message)
        self._index(timeline, temp_id)
        return message

    def confirm_send(self, temp_id: str, server_id: str) -> Message:
        """
        The optimistic message takes its server id in place and becomes `sent`.

        If the change feed already delivered the echo under server_id, the
        echo entry is dropped so the optimistic entry keeps its position.
        """
        timeline, message = self._locate(temp_id)
        if message.id == server_id:
            return message

        echo = timeline.aliases.get(server_id)
        if echo is not None and echo is not message:
            timeline.remove(echo)
            self._merge_echo(message, echo)
            log.debug(f"Dropped early echo {server_id} in favour of optimistic {temp_id}")

        old_id = message.id
        message.id = server_id
        for reaction in message.reactions.values():
            reaction.message_id = server_id
        self._move_status(message, MessageStatus.SENT, strict=False)
        message.failure_reason = None
        timeline.aliases[server_id] = message
        self._index(timeline, server_id)
        self.overlay.rekey(old_id, server_id)

        log.info(f"Message confirmed: {temp_id} -> {server_id} (channel {timeline.channel_id})")
        return message

    def _merge_echo(self, message: Message, echo: Message) -> None:
        """Keep what the server already knew about the message"""
        if any(a.url for a in echo.attachments):
            message.attachments = list(echo.attachments)
        if is_legal_transition(message.status, echo.status) and echo.status != MessageStatus.FAILED:
            message.status = echo.status
        for emoji, reaction in echo.reactions.items():
            if emoji in message.reactions:
                message.reactions[emoji].actor_ids |= reaction.actor_ids
            else:
                message.reactions[emoji] = reaction

    def mark_delivered(self, message_id: str) -> bool:
        return self._move_status(self.get(message_id), MessageStatus.DELIVERED, strict=False)

    def mark_read(self, message_id: str) -> bool:
        return self._move_status(self.get(message_id), MessageStatus.READ, strict=False)

    def fail_send(self, temp_id: str, reason: str) -> Message:
        _, message = self._locate(temp_id)
        self._move_status(message, MessageStatus.FAILED)
        message.failure_reason = reason
        log.warning(f"Message {temp_id} failed: {reason}")
        return message

    def retry(self, temp_id: str) -> Message:
        """Move a failed message back to `sending` under a fresh temp id"""
        timeline, message = self._locate(temp_id)
        if message.status != MessageStatus.FAILED:
            raise InvalidStatusTransitionError(message.id, message.status.value, MessageStatus.SENDING.value)

        old_id = message.id
        new_id = generate_temp_id()
        message.id = new_id
        message.client_temp_id = new_id
        message.failure_reason = None
        self._move_status(message, MessageStatus.SENDING)

        timeline.aliases.pop(old_id, None)
        self._channel_index.pop(old_id, None)
        timeline.aliases[new_id] = message
        self._index(timeline, new_id)
        self.overlay.rekey(old_id, new_id)
        return message

    # =========================================================================
    # Reconciliation (authoritative state from the change feed)
    # =========================================================================

    def reconcile_incoming(self, incoming: Message) -> Optional[Message]:
        """
        Fold a persisted message into its timeline.

        Returns the appended message, or None when the message was already
        present or matched a local optimistic send (which it then confirms).
        """
        timeline = self._timeline(incoming.channel_id)

        if incoming.id in timeline.aliases:
            log.debug(f"Incoming message {incoming.id} already present")
            return None

        if incoming.client_temp_id:
            local = timeline.aliases.get(incoming.client_temp_id)
            if local is not None and not local.is_confirmed:
                self.confirm_send(incoming.client_temp_id, incoming.id)
                return None

        timeline.insert_by_time(incoming)
        self._index(timeline, incoming.id)
        return incoming

    def apply_update(self, incoming: Message) -> Optional[Message]:
        """Fold an authoritative edit, delete, pin or status change"""
        message = self.find(incoming.id)
        if message is None and incoming.client_temp_id:
            message = self.find(incoming.client_temp_id)
        if message is None:
            log.debug(f"Update for unknown message {incoming.id} ignored")
            return None

        if message.deleted_for_everyone:
            return message
        if incoming.deleted_for_everyone:
            self._tombstone(message)
            return message

        if incoming.content != message.content or incoming.is_edited:
            if incoming.is_edited and not message.is_edited:
                message.original_content = incoming.original_content or message.content
            message.content = incoming.content
            message.is_edited = message.is_edited or incoming.is_edited
            message.edited_at = incoming.edited_at or message.edited_at

        message.is_pinned = incoming.is_pinned
        message.pinned_at = incoming.pinned_at if incoming.is_pinned else None
        message.pinned_by = incoming.pinned_by if incoming.is_pinned else None

        if incoming.attachments:
            message.attachments = list(incoming.attachments)
        if incoming.tag is not None:
            message.tag = incoming.tag

        self._move_status(message, incoming.status, strict=False)
        return message

    def apply_delete(self, message_id: str) -> bool:
        """The row was removed server-side; drop it from its timeline"""
        try:
            timeline, message = self._locate(message_id)
        except MessageNotFoundError:
            return False
        timeline.remove(message)
        ids = {message.id, message_id}
        if message.client_temp_id:
            ids.add(message.client_temp_id)
        for key in ids:
            self._channel_index.pop(key, None)
        self.overlay.forget(ids)
        return True

    # =========================================================================
    # Actor operations
    # =========================================================================

    def edit(
            self,
            message_id: str,
            new_content: str,
            actor: ActorSnapshot,
            edit_window_seconds: Optional[int] = None,
    ) -> Message:
        message = self.get(message_id)

        if message.deleted_for_everyone:
            raise MessageTombstonedError(message.id)
        if message.is_system_message:
            raise InsufficientPermissionsError(actor.id, "edit system messages")
        if actor.id != message.sender.id and not (self.config.managers_can_edit and actor.is_manager):
            raise InsufficientPermissionsError(actor.id, f"edit message {message.id}")

        window = self.config.edit_window_seconds if edit_window_seconds is None else edit_window_seconds
        # A zero window disables the limit
        if window and utc_now() - message.created_at > timedelta(seconds=window):
            raise EditWindowExpiredError(message.id, window)

        if not message.is_confirmed:
            raise MessageNotConfirmedError(message.id)
        self._validate_content(new_content)

        if new_content == message.content:
            return message
        if not message.is_edited:
            message.original_content = message.content
        message.content = new_content
        message.is_edited = True
        message.edited_at = utc_now()
        return message

    def can_delete_for_everyone(self, message: Message, actor: ActorSnapshot) -> bool:
        policy = self.config.delete_permission
        if policy == DeletePermission.NONE:
            return False
        if policy == DeletePermission.ADMIN:
            return actor.is_manager
        return actor.id == message.sender.id or actor.is_manager

    def delete(self, message_id: str, for_everyone: bool, actor: ActorSnapshot) -> Message:
        message = self.get(message_id)

        if not for_everyone:
            self.overlay.hide(actor.id, message.id)
            return message

        if message.deleted_for_everyone:
            raise MessageTombstonedError(message.id)
        if not self.can_delete_for_everyone(message, actor):
            raise InsufficientPermissionsError(actor.id, f"delete message {message.id} for everyone")
        if not message.is_confirmed:
            raise MessageNotConfirmedError(message.id)

        self._tombstone(message)
        return message

    def pin(self, message_id: str, actor: ActorSnapshot) -> Message:
        message = self.get(message_id)
        if message.deleted_for_everyone:
            raise MessageTombstonedError(message.id)
        if not message.is_confirmed:
            raise MessageNotConfirmedError(message.id)
        if not message.is_pinned:
            message.is_pinned = True
            message.pinned_at = utc_now()
            message.pinned_by = actor.id
        return message

    def unpin(self, message_id: str) -> Message:
        message = self.get(message_id)
        message.is_pinned = False
        message.pinned_at = None
        message.pinned_by = None
        return message

    def save(self, message_id: str, actor_id: str) -> None:
        message = self.get(message_id)
        self.overlay.save(actor_id, message.id)

    def unsave(self, message_id: str, actor_id: str) -> None:
        message = self.get(message_id)
        self.overlay.unsave(actor_id, message.id)

    def forward(
            self,
            message_id: str,
            target_channel_id: str,
            actor: ActorSnapshot,
            source_channel_name: str,
    ) -> Message:
        """Optimistic copy in the target channel; the original is untouched"""
        source = self.get(message_id)
        if source.deleted_for_everyone:
            raise MessageTombstonedError(source.id)
        if not source.is_confirmed:
            raise MessageNotConfirmedError(source.id)

        return self.send_optimistic(
            target_channel_id,
            actor,
            source.content,
            attachments=list(source.attachments),
            forwarded_from=ForwardRef(
                message_id=source.id,
                channel_name=source_channel_name,
                sender_name=source.sender.name,
            ),
        )

    # =========================================================================
    # Revert support
    # =========================================================================

    def snapshot_for_revert(self, message_id: str) -> Message:
        """Deep copy of the message, to restore if a remote call fails"""
        return self.get(message_id).model_copy(deep=True)

    def restore(
            self,
            snapshot: Message,
            fields: Tuple[str, ...] = EDIT_FIELDS,
            undo_tombstone: bool = False,
    ) -> Optional[Message]:
        """
        Put the given fields of a message back to a previous snapshot.

        Only the fields owned by the failed operation are touched, so feed
        updates and other actors' changes made in the meantime survive.
        Reactions are never reverted. A tombstoned message stays a
        tombstone unless the failed operation was the delete itself.
        """
        message = self.find(snapshot.id)
        if message is None:
            return None
        if message.deleted_for_everyone and not undo_tombstone:
            log.info(f"Message {message.id} was deleted meanwhile; revert skipped")
            return None
        for field in fields:
            setattr(message, field, getattr(snapshot, field))
        return message

    def restore_deleted(self, snapshot: Message) -> Optional[Message]:
        """Undo a local delete-for-everyone whose remote call failed"""
        message = self.restore(snapshot, TOMBSTONE_FIELDS, undo_tombstone=True)
        if message is not None:
            for emoji, reaction in snapshot.reactions.items():
                message.reactions.setdefault(emoji, reaction)
        return message

    # =========================================================================
    # Maintenance
    # =========================================================================

    def purge_channel(self, channel_id: str) -> int:
        """Drop a channel's timeline (channel deleted)"""
        timeline = self._timelines.pop(channel_id, None)
        if timeline is None:
            return 0
        ids = set(timeline.aliases)
        for message_id in ids:
            self._channel_index.pop(message_id, None)
        self.overlay.forget(ids)
        self.overlay.forget_channel(channel_id)
        log.info(f"Purged {len(timeline.order)} message(s) of channel {channel_id}")
        return len(timeline.order)
