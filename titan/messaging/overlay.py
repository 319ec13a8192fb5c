# =============================================================================
# File: titan/messaging/overlay.py
# Description: Per-actor message state (saved, hidden, read receipts,
#              drafts) kept outside the shared message record
# =============================================================================

from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from titan.messaging.models import Draft
from titan.messaging.value_objects import ReadReceipt
from titan.utils.datetime_utils import utc_now


class ActorOverlayStore:
    """
    Saved and hidden flags and read receipts keyed by (actor, message),
    plus composer drafts keyed by (actor, channel).

    One actor saving, hiding or reading a message never changes what
    another actor sees, so none of this can live on the message itself.
    """

    def __init__(self):
        self._saved: Dict[str, Dict[str, datetime]] = {}  # actor -> message -> saved_at
        self._hidden: Dict[str, Set[str]] = {}  # actor -> messages
        self._receipts: Dict[str, Dict[str, datetime]] = {}  # message -> reader -> read_at
        self._drafts: Dict[Tuple[str, str], Draft] = {}  # (actor, channel) -> draft

    # Saved

    def save(self, actor_id: str, message_id: str, saved_at: Optional[datetime] = None) -> None:
        self._saved.setdefault(actor_id, {}).setdefault(message_id, saved_at or utc_now())

    def unsave(self, actor_id: str, message_id: str) -> None:
        self._saved.get(actor_id, {}).pop(message_id, None)

    def is_saved(self, actor_id: str, message_id: str) -> bool:
        return message_id in self._saved.get(actor_id, {})

    def saved_ids(self, actor_id: str) -> List[str]:
        """Saved message ids, most recently saved first"""
        entries = self._saved.get(actor_id, {})
        return sorted(entries, key=entries.__getitem__, reverse=True)

    # Hidden

    def hide(self, actor_id: str, message_id: str) -> None:
        self._hidden.setdefault(actor_id, set()).add(message_id)

    def unhide(self, actor_id: str, message_id: str) -> None:
        self._hidden.get(actor_id, set()).discard(message_id)

    def is_hidden(self, actor_id: str, message_id: str) -> bool:
        return message_id in self._hidden.get(actor_id, set())

    def hidden_ids(self, actor_id: str) -> Set[str]:
        return set(self._hidden.get(actor_id, set()))

    # Read receipts

    def mark_read(self, actor_id: str, message_id: str, read_at: Optional[datetime] = None) -> bool:
        """Record a receipt; False if this reader already had one"""
        readers = self._receipts.setdefault(message_id, {})
        if actor_id in readers:
            return False
        readers[actor_id] = read_at or utc_now()
        return True

    def unmark_read(self, actor_id: str, message_id: str) -> None:
        self._receipts.get(message_id, {}).pop(actor_id, None)

    def has_read(self, actor_id: str, message_id: str) -> bool:
        return actor_id in self._receipts.get(message_id, {})

    def read_receipts(self, message_id: str) -> List[ReadReceipt]:
        """Receipts for a message, most recent first"""
        readers = self._receipts.get(message_id, {})
        receipts = [ReadReceipt(reader_id=reader, read_at=at) for reader, at in readers.items()]
        return sorted(receipts, key=lambda r: r.read_at, reverse=True)

    # Drafts

    def save_draft(self, draft: Draft) -> None:
        self._drafts[(draft.actor_id, draft.channel_id)] = draft

    def get_draft(self, actor_id: str, channel_id: str) -> Optional[Draft]:
        return self._drafts.get((actor_id, channel_id))

    def delete_draft(self, actor_id: str, channel_id: str) -> Optional[Draft]:
        return self._drafts.pop((actor_id, channel_id), None)

    def forget_channel(self, channel_id: str) -> None:
        for key in [k for k in self._drafts if k[1] == channel_id]:
            del self._drafts[key]

    # Maintenance

    def rekey(self, old_id: str, new_id: str) -> None:
        """Move flags from a temporary id to the server-assigned id"""
        for entries in self._saved.values():
            if old_id in entries:
                entries[new_id] = entries.pop(old_id)
        for hidden in self._hidden.values():
            if old_id in hidden:
                hidden.discard(old_id)
                hidden.add(new_id)

    def forget(self, message_ids: Set[str]) -> None:
        for entries in self._saved.values():
            for message_id in message_ids & set(entries):
                del entries[message_id]
        for hidden in self._hidden.values():
            hidden -= message_ids
        for message_id in message_ids:
            self._receipts.pop(message_id, None)
