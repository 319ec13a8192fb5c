# =============================================================================
# File: titan/services/messaging_service.py
# Description: Messaging facade - actor operations with optimistic local
#              state and background persistence
# =============================================================================

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from titan.common.base.base_model import BaseEvent
from titan.common.exceptions.exceptions import NotFoundError, TransportError, ValidationError
from titan.config.logging_config import get_logger
from titan.config.messaging_config import MessagingConfig, get_messaging_config
from titan.config.reliability_config import ReliabilityConfig, RetryConfig, get_reliability_config
from titan.core.background_tasks import BackgroundTasks
from titan.infra.reliability.retry import retry_async, retry_on
from titan.messaging import membership_gate
from titan.messaging.channel_registry import ChannelRegistry
from titan.messaging.delivery import DeliveryPipeline
from titan.messaging.enums import ChannelKind, ChannelPrivacy
from titan.messaging.exceptions import (
    InsufficientPermissionsError,
    MessageNotConfirmedError,
    MessageTombstonedError,
)
from titan.messaging.failures import FailureListener, FailureReporter, OperationFailure
from titan.messaging.feed_adapter import RealtimeFeedAdapter
from titan.messaging.message_store import EDIT_FIELDS, PIN_FIELDS, MessageStore
from titan.messaging.models import Channel, Draft, Message, Workspace
from titan.messaging.overlay import ActorOverlayStore
from titan.messaging.ports.business_ports import CampaignDeliverablePort, WalletPackagePort
from titan.messaging.ports.change_feed_port import ChangeFeedPort
from titan.messaging.ports.identity_port import IdentityPort
from titan.messaging.ports.persistence_port import MessagePersistencePort
from titan.messaging.reactions import ReactionAggregator
from titan.messaging.system_messages import SystemMessageGenerator
from titan.messaging.value_objects import ActorSnapshot, FileUpload, ReadReceipt, ReplyRef
from titan.messaging.workspace_directory import WorkspaceDirectory

log = get_logger("titan.services.messaging")

# Longest reply snapshot kept on a message
REPLY_SNIPPET_LENGTH = 200


class MessagingService:
    """
    Entry point for everything an actor does in a workspace.

    Every call takes the acting user explicitly. Local state changes
    synchronously and is returned immediately; the matching remote call
    runs as a tracked background task. When that call fails the change is
    either marked failed (sends), retried (reactions) or reverted (edits,
    deletes, pins, saves), and an OperationFailure is reported.
    """

    def __init__(
            self,
            persistence: MessagePersistencePort,
            feed: ChangeFeedPort,
            campaigns: CampaignDeliverablePort,
            wallet: WalletPackagePort,
            identity: Optional[IdentityPort] = None,
            config: Optional[MessagingConfig] = None,
            reliability: Optional[ReliabilityConfig] = None,
    ):
        self.config = config or get_messaging_config()
        reliability = reliability or get_reliability_config()

        self._persistence = persistence
        self._identity = identity

        self.tasks = BackgroundTasks("messaging")
        self.failures = FailureReporter()
        self.overlay = ActorOverlayStore()
        self.store = MessageStore(self.config, self.overlay)
        self.reactions = ReactionAggregator(self.store)
        self.channels = ChannelRegistry(self.config, self.store)
        self.directory = WorkspaceDirectory()
        self.delivery = DeliveryPipeline(self.store, persistence, self.tasks, self.failures, self.config)
        self.feed = RealtimeFeedAdapter(feed, self.store, self.reactions, self.channels, self.directory, self.config)
        self.system_messages = SystemMessageGenerator(
            self.store,
            self.delivery,
            self.tasks,
            campaigns,
            wallet,
            directory=self.directory,
            failures=self.failures,
            config=self.config,
            reliability=reliability,
        )

        self._reaction_retry: RetryConfig = reliability.reaction_retry.model_copy(update={
            "retry_condition": retry_on(TransportError),
        })

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def on_failure(self, listener: FailureListener) -> None:
        self.failures.add_listener(listener)

    @property
    def failure_history(self) -> List[OperationFailure]:
        return self.failures.history

    async def drain(self) -> None:
        """Wait for queued feed events and every background call to settle"""
        while True:
            await self.feed.drain()
            await self.tasks.drain()
            if self.tasks.pending == 0:
                return

    async def close(self) -> None:
        await self.feed.close()
        await self.tasks.drain()
        log.info("Messaging service closed")

    async def resolve_actor(self, actor_id: str) -> ActorSnapshot:
        if self._identity is None:
            raise NotFoundError(f"No identity provider configured to resolve actor {actor_id}")
        return await self._identity.get_actor(actor_id)

    # =========================================================================
    # Workspaces and channels
    # =========================================================================

    def register_workspace(self, workspace: Workspace, creator: ActorSnapshot) -> List[Channel]:
        """Add a workspace to the directory and make sure its system channels exist"""
        self.directory.register(workspace)
        return self.channels.provision_workspace(workspace.id, creator)

    def list_channels(self, workspace_id: str, actor: ActorSnapshot, include_archived: bool = False) -> List[Channel]:
        return membership_gate.visible_channels(
            actor,
            self.channels.list_channels(workspace_id, include_archived=True),
            include_archived=include_archived,
        )

    def create_channel(
            self,
            workspace_id: str,
            name: str,
            actor: ActorSnapshot,
            kind: ChannelKind = ChannelKind.CUSTOM,
            privacy: ChannelPrivacy = ChannelPrivacy.OPEN,
            member_ids: Optional[List[str]] = None,
            description: str = "",
    ) -> Channel:
        self.directory.get(workspace_id)
        return self.channels.create_channel(
            workspace_id, name, kind, privacy, actor, member_ids, description=description
        )

    def open_channel(self, channel_id: str, actor: ActorSnapshot) -> List[Message]:
        """Switch the live subscription to a channel and return what the actor sees"""
        channel = self.channels.get(channel_id)
        membership_gate.require_view(actor, channel)
        self.feed.activate(channel_id)
        self.channels.mark_read(channel_id)
        return self.store.visible_messages(channel_id, actor.id)

    def close_channel(self) -> None:
        self.feed.deactivate()

    def messages(self, channel_id: str, actor: ActorSnapshot) -> List[Message]:
        membership_gate.require_view(actor, self.channels.get(channel_id))
        return self.store.visible_messages(channel_id, actor.id)

    def pinned_messages(self, channel_id: str, actor: ActorSnapshot) -> List[Message]:
        membership_gate.require_view(actor, self.channels.get(channel_id))
        return self.store.pinned_messages(channel_id)

    def saved_messages(self, actor: ActorSnapshot) -> List[Message]:
        return self.store.saved_messages(actor.id)

    # =========================================================================
    # Sending
    # =========================================================================

    def send_message(
            self,
            channel_id: str,
            actor: ActorSnapshot,
            content: str,
            reply_to_id: Optional[str] = None,
            files: Optional[List[FileUpload]] = None,
    ) -> Message:
        channel = self.channels.get(channel_id)
        membership_gate.require_post(actor, channel)

        reply_to = None
        if reply_to_id is not None:
            target = self.store.get(reply_to_id)
            reply_to = ReplyRef(
                message_id=target.id,
                sender_name=target.sender.name,
                content=target.content[:REPLY_SNIPPET_LENGTH],
            )

        files = list(files or [])
        message = self.store.send_optimistic(
            channel_id,
            actor,
            content,
            reply_to=reply_to,
            attachments=[f.to_pending_attachment() for f in files],
        )
        self._record_activity(channel, message)
        self.delivery.submit(message, files)
        return message

    def retry_message(self, temp_id: str, actor: ActorSnapshot) -> Message:
        message = self.store.get(temp_id)
        if message.sender.id != actor.id:
            raise InsufficientPermissionsError(actor.id, f"retry message {temp_id}")
        return self.delivery.retry(temp_id)

    def forward_message(self, message_id: str, target_channel_id: str, actor: ActorSnapshot) -> Message:
        source = self.store.get(message_id)
        source_channel = self.channels.get(source.channel_id)
        target_channel = self.channels.get(target_channel_id)
        membership_gate.require_view(actor, source_channel)
        membership_gate.require_post(actor, target_channel)

        message = self.store.forward(message_id, target_channel_id, actor, source_channel.name)
        self._record_activity(target_channel, message)
        self.delivery.submit(message)
        return message

    def acknowledge_delivery(self, message_id: str) -> bool:
        return self.delivery.acknowledge(message_id)

    def handle_business_event(self, payload: Union[Dict[str, Any], BaseEvent]) -> Message:
        """Generate the system message for a boost or deliverable request"""
        message = self.system_messages.handle(payload)
        channel = self.channels.find(message.channel_id)
        if channel is not None:
            self._record_activity(channel, message)
        return message

    def _require_view_message(self, message_id: str, actor: ActorSnapshot) -> Message:
        message = self.store.get(message_id)
        membership_gate.require_view(actor, self.channels.get(message.channel_id))
        return message

    def _record_activity(self, channel: Channel, message: Message) -> None:
        self.channels.record_last_message(channel.id, message.content, message.created_at)
        if self.directory.find(channel.workspace_id) is not None:
            self.directory.record_activity(channel.workspace_id, message, count_unread=False)

    # =========================================================================
    # Reactions
    # =========================================================================

    def toggle_reaction(self, message_id: str, emoji: str, actor: ActorSnapshot) -> bool:
        message = self._require_view_message(message_id, actor)
        if not message.is_confirmed:
            raise MessageNotConfirmedError(message.id)

        added = self.reactions.toggle(message.id, emoji, actor.id)
        call = self._persistence.add_reaction if added else self._persistence.remove_reaction
        self._run_remote(
            "reaction",
            lambda: retry_async(
                call, message.id, emoji, actor.id,
                retry_config=self._reaction_retry,
                context=f"reaction {emoji} on {message.id}",
            ),
            message=message,
            actor=actor,
        )
        return added

    # =========================================================================
    # Edit / delete / pin / save
    # =========================================================================

    def edit_message(self, message_id: str, new_content: str, actor: ActorSnapshot) -> Message:
        self._require_view_message(message_id, actor)
        snapshot = self.store.snapshot_for_revert(message_id)
        message = self.store.edit(message_id, new_content, actor)
        if message.content != snapshot.content:
            self._run_remote(
                "edit",
                lambda: self._persistence.edit_message(message.id, new_content),
                message=message,
                actor=actor,
                revert=lambda: self.store.restore(snapshot, EDIT_FIELDS),
            )
        return message

    def delete_message(self, message_id: str, actor: ActorSnapshot, for_everyone: bool = False) -> Message:
        self._require_view_message(message_id, actor)
        if not for_everyone:
            message = self.store.delete(message_id, False, actor)
            if not message.is_confirmed:
                return message
            self._run_remote(
                "delete",
                lambda: self._persistence.delete_message(message.id, False),
                message=message,
                actor=actor,
                revert=lambda: self.overlay.unhide(actor.id, message.id),
            )
            return message

        snapshot = self.store.snapshot_for_revert(message_id)
        message = self.store.delete(message_id, True, actor)
        self._run_remote(
            "delete",
            lambda: self._persistence.delete_message(message.id, True),
            message=message,
            actor=actor,
            revert=lambda: self.store.restore_deleted(snapshot),
        )
        return message

    def pin_message(self, message_id: str, actor: ActorSnapshot) -> Message:
        message = self._require_view_message(message_id, actor)
        if message.is_pinned:
            return message
        snapshot = self.store.snapshot_for_revert(message_id)
        self.store.pin(message_id, actor)
        self._run_remote(
            "pin",
            lambda: self._persistence.pin_message(message.id, message.channel_id, actor.id),
            message=message,
            actor=actor,
            revert=lambda: self.store.restore(snapshot, PIN_FIELDS),
        )
        return message

    def unpin_message(self, message_id: str, actor: ActorSnapshot) -> Message:
        message = self._require_view_message(message_id, actor)
        if not message.is_pinned:
            return message
        snapshot = self.store.snapshot_for_revert(message_id)
        self.store.unpin(message_id)
        self._run_remote(
            "unpin",
            lambda: self._persistence.unpin_message(message.id),
            message=message,
            actor=actor,
            revert=lambda: self.store.restore(snapshot, PIN_FIELDS),
        )
        return message

    def save_message(self, message_id: str, actor: ActorSnapshot) -> None:
        message = self._require_view_message(message_id, actor)
        if not message.is_confirmed:
            raise MessageNotConfirmedError(message.id)
        if self.store.is_saved(message.id, actor.id):
            return
        self.store.save(message.id, actor.id)
        self._run_remote(
            "save",
            lambda: self._persistence.save_message(message.id, actor.id),
            message=message,
            actor=actor,
            revert=lambda: self.overlay.unsave(actor.id, message.id),
        )

    def unsave_message(self, message_id: str, actor: ActorSnapshot) -> None:
        message = self.store.get(message_id)
        if not self.store.is_saved(message.id, actor.id):
            return
        self.store.unsave(message.id, actor.id)
        self._run_remote(
            "unsave",
            lambda: self._persistence.unsave_message(message.id, actor.id),
            message=message,
            actor=actor,
            revert=lambda: self.overlay.save(actor.id, message.id),
        )

    # =========================================================================
    # Search and threads
    # =========================================================================

    def search_messages(self, channel_id: str, query: str, actor: ActorSnapshot) -> List[Message]:
        membership_gate.require_view(actor, self.channels.get(channel_id))
        return self.store.search(channel_id, actor.id, query)

    def send_thread_reply(
            self,
            parent_id: str,
            actor: ActorSnapshot,
            content: str,
            files: Optional[List[FileUpload]] = None,
    ) -> Message:
        """Reply inside a thread; the reply is sent like any other message"""
        parent = self.store.get(parent_id)
        channel = self.channels.get(parent.channel_id)
        membership_gate.require_post(actor, channel)
        if parent.deleted_for_everyone:
            raise MessageTombstonedError(parent.id)
        if not parent.is_confirmed:
            raise MessageNotConfirmedError(parent.id)
        if parent.thread_parent_id is not None:
            raise ValidationError(f"Message {parent.id} is itself a thread reply")

        files = list(files or [])
        message = self.store.send_optimistic(
            channel.id,
            actor,
            content,
            attachments=[f.to_pending_attachment() for f in files],
            thread_parent_id=parent.id,
        )
        self._record_activity(channel, message)
        self.delivery.submit(message, files)
        return message

    def thread_replies(self, parent_id: str, actor: ActorSnapshot) -> List[Message]:
        self._require_view_message(parent_id, actor)
        hidden = self.overlay.hidden_ids(actor.id)
        return [m for m in self.store.thread_replies(parent_id) if m.id not in hidden]

    def thread_reply_count(self, parent_id: str, actor: ActorSnapshot) -> int:
        self._require_view_message(parent_id, actor)
        return self.store.thread_reply_count(parent_id)

    # =========================================================================
    # Read receipts
    # =========================================================================

    def mark_message_read(self, message_id: str, actor: ActorSnapshot) -> bool:
        """
        Record that the actor read a message.

        Returns False when there was nothing to record: the actor sent the
        message, it is not confirmed yet, or they already read it.
        """
        message = self._require_view_message(message_id, actor)
        if message.sender.id == actor.id or not message.is_confirmed:
            return False
        if not self.overlay.mark_read(actor.id, message.id):
            return False
        self.store.mark_read(message.id)
        self._run_remote(
            "read",
            lambda: self._persistence.mark_read(message.id, actor.id, message.channel_id),
            message=message,
            actor=actor,
            revert=lambda: self.overlay.unmark_read(actor.id, message.id),
        )
        return True

    def mark_channel_read(self, channel_id: str, actor: ActorSnapshot) -> int:
        """Read receipts for every confirmed message from someone else; returns how many were new"""
        channel = self.channels.get(channel_id)
        membership_gate.require_view(actor, channel)
        self.channels.mark_read(channel_id)

        marked = []
        for message in self.store.visible_messages(channel_id, actor.id):
            if message.sender.id == actor.id or not message.is_confirmed:
                continue
            if self.overlay.mark_read(actor.id, message.id):
                self.store.mark_read(message.id)
                marked.append(message.id)

        if marked:
            def revert() -> None:
                for message_id in marked:
                    self.overlay.unmark_read(actor.id, message_id)

            self._run_remote(
                "read_channel",
                lambda: self._persistence.mark_channel_read(channel_id, actor.id),
                channel_id=channel_id,
                actor=actor,
                revert=revert,
            )
        return len(marked)

    def read_receipts(self, message_id: str, actor: ActorSnapshot) -> List[ReadReceipt]:
        self._require_view_message(message_id, actor)
        return self.overlay.read_receipts(message_id)

    # =========================================================================
    # Drafts
    # =========================================================================

    def save_draft(
            self,
            channel_id: str,
            actor: ActorSnapshot,
            content: str,
            reply_to_id: Optional[str] = None,
    ) -> Optional[Draft]:
        """Keep the actor's unsent text for a channel; blank text clears it"""
        membership_gate.require_view(actor, self.channels.get(channel_id))
        if not content.strip():
            self.delete_draft(channel_id, actor)
            return None

        draft = Draft(channel_id=channel_id, actor_id=actor.id, content=content, reply_to_id=reply_to_id)
        self.overlay.save_draft(draft)
        self._run_remote(
            "draft",
            lambda: self._persistence.save_draft(draft),
            channel_id=channel_id,
            actor=actor,
        )
        return draft

    def get_draft(self, channel_id: str, actor: ActorSnapshot) -> Optional[Draft]:
        return self.overlay.get_draft(actor.id, channel_id)

    def delete_draft(self, channel_id: str, actor: ActorSnapshot) -> None:
        if self.overlay.delete_draft(actor.id, channel_id) is None:
            return
        self._run_remote(
            "draft",
            lambda: self._persistence.delete_draft(channel_id, actor.id),
            channel_id=channel_id,
            actor=actor,
        )

    # =========================================================================
    # Remote calls
    # =========================================================================

    def _run_remote(
            self,
            operation: str,
            call: Callable[[], Awaitable[Any]],
            *,
            actor: ActorSnapshot,
            message: Optional[Message] = None,
            channel_id: Optional[str] = None,
            revert: Optional[Callable[[], Any]] = None,
    ) -> None:
        message_id = message.id if message is not None else None
        channel_id = message.channel_id if message is not None else channel_id

        async def runner() -> None:
            try:
                await call()
            except TransportError as e:
                if revert is not None:
                    revert()
                    log.info(f"Reverted {operation} on {message_id or channel_id} after remote failure")
                self.failures.report(
                    operation,
                    e,
                    message_id=message_id,
                    channel_id=channel_id,
                    actor_id=actor.id,
                    reverted=revert is not None,
                )

        self.tasks.spawn(runner(), name=f"{operation}-{message_id or channel_id}")
