# =============================================================================
# File: titan/infra/change_feed/memory_feed.py
# Description: In-process change feed implementing ChangeFeedPort, for
#              local wiring and tests
# =============================================================================

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from titan.messaging.enums import FeedEventKind, FeedTable
from titan.messaging.ports.change_feed_port import FeedCallback, Unsubscribe

log = logging.getLogger("titan.change_feed.memory")


class InMemoryChangeFeed:
    """
    Synchronous pub/sub keyed by channel id.

    publish() invokes every subscriber callback inline, in subscription
    order, which matches how a realtime client hands notifications to the
    event loop.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[FeedCallback]] = {}

    def subscribe(self, channel_id: str, on_event: FeedCallback) -> Unsubscribe:
        callbacks = self._subscribers.setdefault(channel_id, [])
        callbacks.append(on_event)
        log.debug(f"Subscribed to channel {channel_id} ({len(callbacks)} subscriber(s))")

        def unsubscribe() -> None:
            current = self._subscribers.get(channel_id, [])
            if on_event in current:
                current.remove(on_event)
                log.debug(f"Unsubscribed from channel {channel_id}")
            if not current:
                self._subscribers.pop(channel_id, None)

        return unsubscribe

    def subscriber_count(self, channel_id: str) -> int:
        return len(self._subscribers.get(channel_id, []))

    def publish(self, channel_id: str, payload: Dict[str, Any]) -> int:
        """Deliver a raw payload; returns the number of subscribers reached"""
        callbacks = list(self._subscribers.get(channel_id, []))
        for callback in callbacks:
            callback(payload)
        return len(callbacks)

    def publish_change(
            self,
            channel_id: str,
            table: FeedTable,
            kind: FeedEventKind,
            new: Optional[BaseModel] = None,
            old: Optional[BaseModel] = None,
    ) -> int:
        """Build a notification from record models and publish it"""
        payload = {
            "eventType": kind.value,
            "table": table.value,
            "channel_id": channel_id,
            "new": new.model_dump(mode="json") if new is not None else {},
            "old": old.model_dump(mode="json") if old is not None else {},
        }
        return self.publish(channel_id, payload)
