# =============================================================================
# File: titan/messaging/ports/change_feed_port.py
# Description: Port interface for the per-channel change feed
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from typing import Any, Callable, Dict, Protocol, runtime_checkable

# Raw notification payload, parsed by the feed adapter
FeedCallback = Callable[[Dict[str, Any]], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class ChangeFeedPort(Protocol):
    """
    Port: Change Feed

    Implemented by: InMemoryChangeFeed (titan/infra/change_feed/memory_feed.py)

    Delivers insert/update/delete notifications for the messages,
    reactions and memberships of one channel. Callbacks are invoked on the
    event loop thread and must not block.
    """

    def subscribe(self, channel_id: str, on_event: FeedCallback) -> Unsubscribe:
        """
        Start receiving notifications for a channel.

        Returns:
            Callable that cancels the subscription (safe to call twice)
        """
        ...
