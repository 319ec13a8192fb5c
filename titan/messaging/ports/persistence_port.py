# =============================================================================
# File: titan/messaging/ports/persistence_port.py
# Description: Port interface for message persistence and file storage
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from typing import Protocol, runtime_checkable, TYPE_CHECKING

if TYPE_CHECKING:
    from titan.messaging.models import Draft
    from titan.messaging.records import MessageEnvelope, SendResult, UploadedFile
    from titan.messaging.value_objects import ActorSnapshot, FileUpload


@runtime_checkable
class MessagePersistencePort(Protocol):
    """
    Port: Message Persistence

    Defined by: Messaging Domain
    Implemented by: the persistence service adapter (in-memory fake in tests)

    Every method raises TransportError (or a subclass) on failure. The
    messaging core treats these calls as remote and runs them off the
    synchronous mutation path.
    """

    # =========================================================================
    # Messages
    # =========================================================================

    async def send_message(self, envelope: 'MessageEnvelope') -> 'SendResult':
        """
        Persist a new message.

        Args:
            envelope: Flat message row, carrying client_temp_id so the
                change feed echo can be matched to the optimistic copy

        Returns:
            SendResult with the server-assigned id
        """
        ...

    async def edit_message(self, message_id: str, content: str) -> None:
        ...

    async def delete_message(self, message_id: str, for_everyone: bool) -> None:
        ...

    async def forward_message(
        self,
        message_id: str,
        target_channel_id: str,
        actor: 'ActorSnapshot',
        source_channel_name: str,
    ) -> 'SendResult':
        """Persist a copy of an existing message into another channel"""
        ...

    # =========================================================================
    # Pins
    # =========================================================================

    async def pin_message(self, message_id: str, channel_id: str, actor_id: str) -> None:
        ...

    async def unpin_message(self, message_id: str) -> None:
        ...

    # =========================================================================
    # Reactions
    # =========================================================================

    async def add_reaction(self, message_id: str, emoji: str, actor_id: str) -> None:
        ...

    async def remove_reaction(self, message_id: str, emoji: str, actor_id: str) -> None:
        ...

    # =========================================================================
    # Saved messages (per actor)
    # =========================================================================

    async def save_message(self, message_id: str, actor_id: str) -> None:
        ...

    async def unsave_message(self, message_id: str, actor_id: str) -> None:
        ...

    # =========================================================================
    # Read receipts
    # =========================================================================

    async def mark_read(self, message_id: str, reader_id: str, channel_id: str) -> None:
        """Upsert one reader's receipt for a message"""
        ...

    async def mark_channel_read(self, channel_id: str, reader_id: str) -> None:
        """Receipts for every message in the channel the reader has not read yet"""
        ...

    # =========================================================================
    # Drafts (per actor and channel)
    # =========================================================================

    async def save_draft(self, draft: 'Draft') -> None:
        ...

    async def delete_draft(self, channel_id: str, actor_id: str) -> None:
        ...

    # =========================================================================
    # Files
    # =========================================================================

    async def upload_file(self, upload: 'FileUpload', channel_id: str) -> 'UploadedFile':
        """
        Store a file blob.

        Returns:
            UploadedFile with the public url
        """
        ...
