# =============================================================================
# File: titan/messaging/feed_adapter.py
# Description: Routes change-feed notifications for the active channel
#              into the message store, reactions and channel registry
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from titan.common.exceptions.exceptions import TitanException
from titan.config.messaging_config import MessagingConfig, get_messaging_config
from titan.infra.metrics.messaging_metrics import feed_events, feed_events_backlogged
from titan.messaging.channel_registry import ChannelRegistry
from titan.messaging.enums import FeedEventKind, FeedTable
from titan.messaging.message_store import MessageStore
from titan.messaging.ports.change_feed_port import ChangeFeedPort, Unsubscribe
from titan.messaging.reactions import ReactionAggregator
from titan.messaging.records import FeedEvent, MembershipRecord, MessageRecord, ReactionRecord
from titan.messaging.workspace_directory import WorkspaceDirectory

log = logging.getLogger("titan.messaging.feed")

# Queued after unsubscribing; the worker exits once it reaches it
_STOP = object()

_TABLES = {table.value for table in FeedTable}


class MalformedFeedEvent(ValueError):
    pass


def _table_label(payload: Any) -> str:
    table = payload.get("table") if isinstance(payload, dict) else None
    return table if table in _TABLES else "unknown"


class RealtimeFeedAdapter:
    """
    Keeps at most one change-feed subscription: the active channel's.

    Notifications are queued and applied one at a time by a worker task,
    so a channel's events are folded in the order they were received.
    Switching channels unsubscribes first, then lets the old worker finish
    what it already queued.
    """

    def __init__(
            self,
            feed: ChangeFeedPort,
            store: MessageStore,
            reactions: ReactionAggregator,
            registry: Optional[ChannelRegistry] = None,
            directory: Optional[WorkspaceDirectory] = None,
            config: Optional[MessagingConfig] = None,
    ):
        self._feed = feed
        self._store = store
        self._reactions = reactions
        self._registry = registry
        self._directory = directory
        self.config = config or get_messaging_config()

        self._active_channel_id: Optional[str] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._queue: Optional[asyncio.Queue] = None
        self._overflow: Deque[Any] = deque()
        self._worker: Optional[asyncio.Task] = None
        self._workers: Set[asyncio.Task] = set()

    @property
    def active_channel_id(self) -> Optional[str]:
        return self._active_channel_id

    # =========================================================================
    # Subscription lifecycle
    # =========================================================================

    def activate(self, channel_id: str) -> None:
        """Subscribe to a channel, replacing any previous subscription"""
        if channel_id == self._active_channel_id:
            return
        previous = self._active_channel_id
        self.deactivate()

        queue: asyncio.Queue = asyncio.Queue(maxsize=self.config.feed_queue_maxsize)
        overflow: Deque[Any] = deque()

        def on_event(payload: Dict[str, Any]) -> None:
            self._enqueue(channel_id, queue, overflow, payload)

        self._unsubscribe = self._feed.subscribe(channel_id, on_event)
        self._queue = queue
        self._overflow = overflow
        self._worker = asyncio.get_running_loop().create_task(
            self._run(channel_id, queue), name=f"feed-{channel_id}"
        )
        self._workers.add(self._worker)
        self._worker.add_done_callback(self._workers.discard)
        self._active_channel_id = channel_id
        log.info(f"Feed subscription switched: {previous or '-'} -> {channel_id}")

    def deactivate(self) -> None:
        """Drop the subscription; queued events are still applied"""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._queue is not None:
            self._enqueue(self._active_channel_id, self._queue, self._overflow, _STOP)
            self._queue = None
            self._overflow = deque()
        self._worker = None
        self._active_channel_id = None

    def _enqueue(self, channel_id: str, queue: asyncio.Queue, overflow: Deque[Any], item: Any) -> None:
        """
        Queue an item for the channel worker without blocking the feed callback.

        When the queue is full the item waits in the overflow backlog, which
        a single pump task moves into the queue in arrival order. Nothing is
        ever dropped.
        """
        if not overflow:
            try:
                queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                pass
        overflow.append(item)
        if item is not _STOP:
            feed_events_backlogged.inc()
        if len(overflow) == 1:
            log.warning(f"Feed queue full for channel {channel_id}; backlogging events")
            task = asyncio.get_running_loop().create_task(self._pump(queue, overflow))
            self._workers.add(task)
            task.add_done_callback(self._workers.discard)

    @staticmethod
    async def _pump(queue: asyncio.Queue, overflow: Deque[Any]) -> None:
        while overflow:
            await queue.put(overflow[0])
            overflow.popleft()

    async def drain(self) -> None:
        """Wait until the active worker has applied everything received so far"""
        while self._queue is not None:
            queue, overflow = self._queue, self._overflow
            await queue.join()
            if not overflow:
                return
            await asyncio.sleep(0)

    async def close(self) -> None:
        self.deactivate()
        while self._workers:
            await asyncio.gather(*list(self._workers), return_exceptions=True)

    # =========================================================================
    # Worker
    # =========================================================================

    async def _run(self, channel_id: str, queue: asyncio.Queue) -> None:
        while True:
            payload = await queue.get()
            if payload is _STOP:
                queue.task_done()
                return
            table = _table_label(payload)
            try:
                self.dispatch(channel_id, payload)
                feed_events.labels(table=table, result="applied").inc()
            except (PydanticValidationError, MalformedFeedEvent) as e:
                feed_events.labels(table=table, result="malformed").inc()
                log.warning(f"Malformed feed payload on channel {channel_id} skipped: {e}")
            except TitanException as e:
                feed_events.labels(table=table, result="rejected").inc()
                log.warning(f"Feed event on channel {channel_id} could not be applied: {e}")
            except Exception as e:
                feed_events.labels(table=table, result="error").inc()
                log.error(f"Unexpected error applying feed event on channel {channel_id}: {e}", exc_info=True)
            finally:
                queue.task_done()

    def dispatch(self, channel_id: str, payload: Dict[str, Any]) -> None:
        """Apply one raw notification"""
        event = FeedEvent.model_validate(payload)
        if event.channel_id is not None and event.channel_id != channel_id:
            log.debug(f"Event for channel {event.channel_id} on {channel_id} subscription ignored")
            return

        if event.table == FeedTable.MESSAGES:
            self._apply_message(channel_id, event)
        elif event.table == FeedTable.REACTIONS:
            self._apply_reaction(event)
        elif event.table == FeedTable.MEMBERSHIPS:
            if self._registry is not None:
                record = MembershipRecord.model_validate(event.old if event.event_type == FeedEventKind.DELETE else event.new)
                self._registry.apply_membership_record(event.event_type, record)

    def _apply_message(self, channel_id: str, event: FeedEvent) -> None:
        if event.event_type == FeedEventKind.DELETE:
            message_id = event.old.get("id")
            if not message_id:
                raise MalformedFeedEvent("message DELETE without old.id")
            self._store.apply_delete(str(message_id))
            return

        record = MessageRecord.model_validate(event.new)
        if record.channel_id != channel_id:
            log.debug(f"Message {record.id} for channel {record.channel_id} ignored on {channel_id}")
            return
        message = record.to_message()

        if event.event_type == FeedEventKind.UPDATE:
            self._store.apply_update(message)
            return

        appended = self._store.reconcile_incoming(message)
        if appended is None:
            return
        if self._registry is not None:
            channel = self._registry.find(channel_id)
            if channel is not None:
                self._registry.record_last_message(channel_id, appended.content, appended.created_at)
                if self._directory is not None and self._directory.find(channel.workspace_id) is not None:
                    self._directory.record_activity(channel.workspace_id, appended, count_unread=False)

    def _apply_reaction(self, event: FeedEvent) -> None:
        if event.event_type == FeedEventKind.DELETE:
            record = ReactionRecord.model_validate(event.old)
            self._reactions.apply_removal(record.message_id, record.emoji)
            return
        record = ReactionRecord.model_validate(event.new)
        self._reactions.apply_snapshot(record.message_id, record.emoji, record.user_ids)
