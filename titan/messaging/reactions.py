# =============================================================================
# File: titan/messaging/reactions.py
# Description: Emoji reaction sets on messages
# =============================================================================

import logging
import threading
from typing import Iterable, List

from titan.messaging.exceptions import MessageTombstonedError
from titan.messaging.message_store import MessageStore
from titan.messaging.models import Reaction

log = logging.getLogger("titan.messaging.reactions")


class ReactionAggregator:
    """
    Maintains the per-(message, emoji) actor sets on messages held by the
    store. Every mutation happens under one lock so toggles by different
    actors interleave without losing either change.
    """

    def __init__(self, store: MessageStore):
        self._store = store
        self._lock = threading.Lock()

    def toggle(self, message_id: str, emoji: str, actor_id: str) -> bool:
        """
        Add the actor's reaction, or remove it if already present.

        Returns:
            True if the reaction was added, False if it was removed
        """
        with self._lock:
            message = self._store.get(message_id)
            if message.deleted_for_everyone:
                raise MessageTombstonedError(message.id)

            reaction = message.reactions.get(emoji)
            if reaction is not None and actor_id in reaction.actor_ids:
                reaction.actor_ids.discard(actor_id)
                if not reaction.actor_ids:
                    del message.reactions[emoji]
                return False

            if reaction is None:
                message.reactions[emoji] = Reaction(
                    emoji=emoji,
                    message_id=message.id,
                    actor_ids={actor_id},
                )
            else:
                reaction.actor_ids.add(actor_id)
            return True

    def apply_snapshot(self, message_id: str, emoji: str, actor_ids: Iterable[str]) -> None:
        """Replace one emoji's actor set with the authoritative one"""
        with self._lock:
            message = self._store.find(message_id)
            if message is None or message.deleted_for_everyone:
                log.debug(f"Reaction snapshot for unavailable message {message_id} ignored")
                return
            actors = set(actor_ids)
            if not actors:
                message.reactions.pop(emoji, None)
                return
            message.reactions[emoji] = Reaction(emoji=emoji, message_id=message.id, actor_ids=actors)

    def apply_removal(self, message_id: str, emoji: str) -> None:
        with self._lock:
            message = self._store.find(message_id)
            if message is not None:
                message.reactions.pop(emoji, None)

    def reactions_for(self, message_id: str) -> List[Reaction]:
        with self._lock:
            message = self._store.get(message_id)
            return [reaction.model_copy(deep=True) for reaction in message.reactions.values()]
