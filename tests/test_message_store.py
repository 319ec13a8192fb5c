"""Tests for the message store.

Validates:
1. Optimistic send, confirmation in place and the alias table
2. Idempotent reconciliation, including the echo-before-confirm race
3. Forward-only status transitions, failure and retry
4. Edit rules (ownership, window, tombstones, confirmation)
5. Delete-for-everyone policy and per-actor hiding
6. Pins, saves, forwards and feed folding
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from titan.common.exceptions.exceptions import InvariantError
from titan.common.exceptions.exceptions import PermissionError as TitanPermissionError
from titan.common.exceptions.exceptions import ValidationError
from titan.config.messaging_config import DeletePermission, MessagingConfig
from titan.messaging.enums import ActorRole, AttachmentKind, MessageStatus, MessageType
from titan.messaging.exceptions import (
    EditWindowExpiredError,
    InvalidStatusTransitionError,
    MessageNotConfirmedError,
    MessageNotFoundError,
    MessageTombstonedError,
)
from titan.messaging.message_store import EDIT_FIELDS, PIN_FIELDS, MessageStore, is_legal_transition
from titan.messaging.models import Draft, Message, Reaction
from titan.messaging.value_objects import ActorSnapshot, Attachment, BoostTag, ReplyRef
from titan.utils.datetime_utils import utc_now
from titan.utils.uuid_utils import is_temp_id

CHANNEL = "ch-general"


def _confirmed(store: MessageStore, actor: ActorSnapshot, content: str, server_id: str) -> Message:
    message = store.send_optimistic(CHANNEL, actor, content)
    return store.confirm_send(message.id, server_id)


def _server_message(server_id: str, actor: ActorSnapshot, content: str, **kwargs) -> Message:
    kwargs.setdefault("status", MessageStatus.SENT)
    return Message(id=server_id, channel_id=CHANNEL, sender=actor, content=content, **kwargs)


# ── Optimistic send and confirmation ─────────────────────────────────


class TestOptimisticSend:

    def test_send_returns_sending_message_with_temp_id(self, store, client_actor):
        message = store.send_optimistic(CHANNEL, client_actor, "Hello")

        assert is_temp_id(message.id)
        assert message.status == MessageStatus.SENDING
        assert message.client_temp_id == message.id
        assert message.message_type == MessageType.TEXT
        assert store.messages(CHANNEL) == [message]

    def test_confirm_keeps_position_and_moves_to_sent(self, store, client_actor, manager):
        first = store.send_optimistic(CHANNEL, client_actor, "first")
        second = store.send_optimistic(CHANNEL, manager, "second")
        temp_id = first.id

        store.confirm_send(temp_id, "srv-1")

        assert [m.id for m in store.messages(CHANNEL)] == ["srv-1", second.id]
        assert first.status == MessageStatus.SENT
        assert store.get("srv-1") is first
        assert store.get(temp_id) is first  # alias still resolves

    def test_empty_message_is_rejected(self, store, client_actor):
        with pytest.raises(ValidationError):
            store.send_optimistic(CHANNEL, client_actor, "   ")
        assert store.messages(CHANNEL) == []

    def test_attachment_only_message_is_allowed(self, store, client_actor):
        attachment = Attachment(name="logo.png", kind=AttachmentKind.IMAGE, mime_type="image/png")

        message = store.send_optimistic(CHANNEL, client_actor, "", attachments=[attachment])

        assert message.message_type == MessageType.IMAGE
        assert message.attachments[0].url is None

    def test_content_longer_than_limit_is_rejected(self, client_actor):
        store = MessageStore(MessagingConfig(max_content_length=5))
        with pytest.raises(ValidationError):
            store.send_optimistic(CHANNEL, client_actor, "too long")

    def test_get_unknown_message_raises(self, store):
        with pytest.raises(MessageNotFoundError):
            store.get("nope")
        assert store.find("nope") is None


# ── Reconciliation ───────────────────────────────────────────────────


class TestReconciliation:

    def test_reconcile_is_idempotent(self, store, manager):
        incoming = _server_message("srv-9", manager, "from server")

        assert store.reconcile_incoming(incoming) is not None
        assert store.reconcile_incoming(incoming.model_copy()) is None

        assert len(store.messages(CHANNEL)) == 1

    def test_echo_of_own_send_is_not_duplicated(self, store, client_actor):
        local = store.send_optimistic(CHANNEL, client_actor, "hi")
        store.confirm_send(local.id, "srv-1")

        store.reconcile_incoming(_server_message("srv-1", client_actor, "hi"))

        assert len(store.messages(CHANNEL)) == 1

    def test_echo_carrying_temp_id_confirms_the_optimistic_message(self, store, client_actor):
        local = store.send_optimistic(CHANNEL, client_actor, "hi")
        temp_id = local.id

        result = store.reconcile_incoming(_server_message("srv-1", client_actor, "hi", client_temp_id=temp_id))

        assert result is None
        assert local.id == "srv-1"
        assert local.status == MessageStatus.SENT
        # The late confirmation from the send call is a no-op
        store.confirm_send(temp_id, "srv-1")
        assert [m.id for m in store.messages(CHANNEL)] == ["srv-1"]

    def test_echo_before_confirm_is_dropped_and_optimistic_keeps_position(self, store, client_actor, manager):
        local = store.send_optimistic(CHANNEL, client_actor, "mine")
        store.reconcile_incoming(_server_message("srv-2", manager, "theirs"))
        store.reconcile_incoming(_server_message("srv-1", client_actor, "mine"))
        assert len(store.messages(CHANNEL)) == 3

        store.confirm_send(local.id, "srv-1")

        messages = store.messages(CHANNEL)
        assert [m.id for m in messages] == ["srv-1", "srv-2"]
        assert messages[0] is local

    def test_backfilled_message_is_placed_by_time_without_moving_others(self, store, manager):
        now = utc_now()
        store.reconcile_incoming(_server_message("srv-2", manager, "later", created_at=now))
        store.reconcile_incoming(_server_message("srv-1", manager, "earlier", created_at=now - timedelta(minutes=5)))

        assert [m.id for m in store.messages(CHANNEL)] == ["srv-1", "srv-2"]


# ── Status ───────────────────────────────────────────────────────────


class TestStatus:

    @pytest.mark.parametrize("current,requested,legal", [
        (MessageStatus.SENDING, MessageStatus.SENT, True),
        (MessageStatus.SENT, MessageStatus.DELIVERED, True),
        (MessageStatus.DELIVERED, MessageStatus.READ, True),
        (MessageStatus.SENDING, MessageStatus.READ, True),
        (MessageStatus.SENDING, MessageStatus.FAILED, True),
        (MessageStatus.FAILED, MessageStatus.SENDING, True),
        (MessageStatus.READ, MessageStatus.DELIVERED, False),
        (MessageStatus.DELIVERED, MessageStatus.SENT, False),
        (MessageStatus.SENT, MessageStatus.FAILED, False),
        (MessageStatus.FAILED, MessageStatus.SENT, False),
        (MessageStatus.SENT, MessageStatus.SENDING, False),
    ])
    def test_transition_table(self, current, requested, legal):
        assert is_legal_transition(current, requested) is legal

    def test_status_never_moves_backwards(self, store, client_actor):
        message = _confirmed(store, client_actor, "hi", "srv-1")

        assert store.mark_read("srv-1") is True
        assert store.mark_delivered("srv-1") is False

        assert message.status == MessageStatus.READ

    def test_fail_send_records_reason(self, store, client_actor):
        message = store.send_optimistic(CHANNEL, client_actor, "hi")

        store.fail_send(message.id, "network down")

        assert message.status == MessageStatus.FAILED
        assert message.failure_reason == "network down"

    def test_fail_after_confirm_is_rejected(self, store, client_actor):
        message = store.send_optimistic(CHANNEL, client_actor, "hi")
        temp_id = message.id
        store.confirm_send(temp_id, "srv-1")

        with pytest.raises(InvalidStatusTransitionError):
            store.fail_send(temp_id, "late failure")
        assert message.status == MessageStatus.SENT

    def test_retry_preserves_content_and_issues_new_temp_id(self, store, client_actor):
        reply = ReplyRef(message_id="srv-0", sender_name="Sam", content="question?")
        attachment = Attachment(name="brief.pdf", mime_type="application/pdf")
        tag = BoostTag(platform="Meta", budget=Decimal("50"), duration="7d")
        message = store.send_optimistic(CHANNEL, client_actor, "answer", reply_to=reply, attachments=[attachment], tag=tag)
        old_id = message.id
        store.fail_send(old_id, "timeout")

        retried = store.retry(old_id)

        assert retried is message
        assert retried.id != old_id and is_temp_id(retried.id)
        assert retried.client_temp_id == retried.id
        assert retried.status == MessageStatus.SENDING
        assert retried.failure_reason is None
        assert (retried.content, retried.reply_to, retried.attachments, retried.tag) == ("answer", reply, [attachment], tag)
        assert store.find(old_id) is None

    def test_retry_requires_failed_message(self, store, client_actor):
        message = store.send_optimistic(CHANNEL, client_actor, "hi")
        with pytest.raises(InvalidStatusTransitionError):
            store.retry(message.id)


# ── Edit ─────────────────────────────────────────────────────────────


class TestEdit:

    def test_author_edit_keeps_original_content(self, store, client_actor):
        message = _confirmed(store, client_actor, "v1", "srv-1")

        store.edit("srv-1", "v2", client_actor)
        store.edit("srv-1", "v3", client_actor)

        assert message.content == "v3"
        assert message.is_edited is True
        assert message.edited_at is not None
        assert message.original_content == "v1"

    def test_other_actor_cannot_edit(self, store, client_actor, designer):
        _confirmed(store, client_actor, "v1", "srv-1")
        with pytest.raises(TitanPermissionError):
            store.edit("srv-1", "hacked", designer)

    def test_manager_edit_follows_policy(self, client_actor, manager):
        store = MessageStore(MessagingConfig(managers_can_edit=True))
        message = _confirmed(store, client_actor, "typo", "srv-1")

        store.edit("srv-1", "fixed", manager)

        assert message.content == "fixed"

    def test_edit_window_elapsed(self, store, client_actor):
        message = _confirmed(store, client_actor, "v1", "srv-1")
        message.created_at = utc_now() - timedelta(seconds=901)

        with pytest.raises(EditWindowExpiredError):
            store.edit("srv-1", "v2", client_actor)
        assert message.content == "v1"

    def test_explicit_window_overrides_config(self, store, client_actor):
        message = _confirmed(store, client_actor, "v1", "srv-1")
        message.created_at = utc_now() - timedelta(seconds=30)

        with pytest.raises(EditWindowExpiredError):
            store.edit("srv-1", "v2", client_actor, edit_window_seconds=10)

    def test_unconfirmed_message_cannot_be_edited(self, store, client_actor):
        message = store.send_optimistic(CHANNEL, client_actor, "v1")
        with pytest.raises(MessageNotConfirmedError):
            store.edit(message.id, "v2", client_actor)

    def test_system_message_cannot_be_edited(self, store, admin):
        message = store.send_optimistic(CHANNEL, admin, "🚀 boost", is_system_message=True)
        store.confirm_send(message.id, "srv-1")
        with pytest.raises(TitanPermissionError):
            store.edit("srv-1", "changed", admin)

    def test_empty_edit_is_rejected(self, store, client_actor):
        _confirmed(store, client_actor, "v1", "srv-1")
        with pytest.raises(ValidationError):
            store.edit("srv-1", "  ", client_actor)


# ── Delete ───────────────────────────────────────────────────────────


class TestDelete:

    def test_delete_for_everyone_tombstones(self, store, client_actor, config):
        message = _confirmed(store, client_actor, "secret", "srv-1")
        message.is_pinned = True

        store.delete("srv-1", True, client_actor)

        assert message.deleted_for_everyone is True
        assert message.content == config.tombstone_text
        assert message.is_pinned is False

    def test_tombstone_is_immutable(self, store, client_actor, manager):
        _confirmed(store, client_actor, "secret", "srv-1")
        store.delete("srv-1", True, client_actor)

        with pytest.raises(MessageTombstonedError):
            store.edit("srv-1", "undo", client_actor)
        with pytest.raises(MessageTombstonedError):
            store.pin("srv-1", manager)
        with pytest.raises(MessageTombstonedError):
            store.delete("srv-1", True, client_actor)
        with pytest.raises(MessageTombstonedError):
            store.forward("srv-1", "ch-other", manager, "general")

        store.apply_update(_server_message("srv-1", client_actor, "resurrected"))
        assert store.get("srv-1").deleted_for_everyone is True
        assert store.get("srv-1").content == "🗑️ This message was deleted"

    def test_tombstone_errors_are_invariant_errors(self, store, client_actor):
        _confirmed(store, client_actor, "x", "srv-1")
        store.delete("srv-1", True, client_actor)
        with pytest.raises(InvariantError):
            store.edit("srv-1", "y", client_actor)

    @pytest.mark.parametrize("policy,actor_name,allowed", [
        (DeletePermission.AUTHOR, "client_actor", True),
        (DeletePermission.AUTHOR, "designer", False),
        (DeletePermission.AUTHOR, "manager", True),
        (DeletePermission.ADMIN, "client_actor", False),
        (DeletePermission.ADMIN, "admin", True),
        (DeletePermission.NONE, "client_actor", False),
        (DeletePermission.NONE, "admin", False),
    ])
    def test_delete_for_everyone_policy(self, request, client_actor, policy, actor_name, allowed):
        store = MessageStore(MessagingConfig(delete_permission=policy))
        message = _confirmed(store, client_actor, "hello", "srv-1")
        actor = request.getfixturevalue(actor_name)

        if allowed:
            store.delete("srv-1", True, actor)
            assert message.deleted_for_everyone is True
        else:
            with pytest.raises(TitanPermissionError):
                store.delete("srv-1", True, actor)
            assert message.deleted_for_everyone is False

    def test_delete_for_me_hides_only_for_that_actor(self, store, client_actor, manager):
        message = _confirmed(store, client_actor, "hello", "srv-1")

        store.delete("srv-1", False, manager)

        assert store.visible_messages(CHANNEL, manager.id) == []
        assert store.visible_messages(CHANNEL, client_actor.id) == [message]
        assert message.deleted_for_everyone is False


# ── Pins, saves, forwards ────────────────────────────────────────────


class TestPinsSavesForwards:

    def test_pinned_messages_in_timestamp_order(self, store, client_actor, manager):
        older = _confirmed(store, client_actor, "older", "srv-1")
        newer = _confirmed(store, client_actor, "newer", "srv-2")
        older.created_at = utc_now() - timedelta(minutes=10)

        store.pin("srv-2", manager)
        store.pin("srv-1", manager)

        assert store.pinned_messages(CHANNEL) == [older, newer]
        assert newer.pinned_by == manager.id

        store.unpin("srv-2")
        assert store.pinned_messages(CHANNEL) == [older]

    def test_pin_requires_confirmed_message(self, store, client_actor):
        message = store.send_optimistic(CHANNEL, client_actor, "hi")
        with pytest.raises(MessageNotConfirmedError):
            store.pin(message.id, client_actor)

    def test_saved_flag_is_per_actor_and_follows_confirmation(self, store, client_actor, manager):
        message = store.send_optimistic(CHANNEL, client_actor, "keep this")
        store.save(message.id, manager.id)

        store.confirm_send(message.id, "srv-1")

        assert store.is_saved("srv-1", manager.id)
        assert not store.is_saved("srv-1", client_actor.id)
        assert store.saved_messages(manager.id) == [message]

        store.unsave("srv-1", manager.id)
        assert store.saved_messages(manager.id) == []

    def test_forward_creates_optimistic_copy_with_reference(self, store, client_actor, manager):
        original = _confirmed(store, client_actor, "brief attached", "srv-1")

        copy = store.forward("srv-1", "ch-deliverables", manager, "general")

        assert copy.channel_id == "ch-deliverables"
        assert copy.status == MessageStatus.SENDING
        assert copy.content == "brief attached"
        assert copy.sender == manager
        assert copy.forwarded_from.message_id == "srv-1"
        assert copy.forwarded_from.channel_name == "general"
        assert copy.forwarded_from.sender_name == client_actor.name
        assert original.content == "brief attached"
        assert store.messages(CHANNEL) == [original]


# ── Feed folding and maintenance ─────────────────────────────────────


class TestFeedFolding:

    def test_apply_update_folds_edit_and_pin(self, store, client_actor):
        message = _confirmed(store, client_actor, "v1", "srv-1")

        store.apply_update(_server_message(
            "srv-1", client_actor, "v2",
            is_edited=True, is_pinned=True, pinned_by="u-manager",
        ))

        assert message.content == "v2"
        assert message.original_content == "v1"
        assert message.is_pinned is True
        assert message.pinned_by == "u-manager"

    def test_apply_update_status_is_forward_only(self, store, client_actor):
        message = _confirmed(store, client_actor, "v1", "srv-1")
        store.mark_read("srv-1")

        store.apply_update(_server_message("srv-1", client_actor, "v1", status=MessageStatus.DELIVERED))

        assert message.status == MessageStatus.READ

    def test_apply_update_tombstones(self, store, client_actor, config):
        message = _confirmed(store, client_actor, "v1", "srv-1")

        store.apply_update(_server_message("srv-1", client_actor, "v1", deleted_for_everyone=True))

        assert message.deleted_for_everyone is True
        assert message.content == config.tombstone_text

    def test_apply_delete_removes_message(self, store, client_actor):
        _confirmed(store, client_actor, "v1", "srv-1")

        assert store.apply_delete("srv-1") is True
        assert store.apply_delete("srv-1") is False
        assert store.messages(CHANNEL) == []

    def test_snapshot_and_restore(self, store, client_actor):
        message = _confirmed(store, client_actor, "v1", "srv-1")
        snapshot = store.snapshot_for_revert("srv-1")

        store.edit("srv-1", "v2", client_actor)
        store.restore(snapshot)

        assert message.content == "v1"
        assert message.is_edited is False

    def test_restore_only_touches_given_fields(self, store, client_actor, manager):
        message = _confirmed(store, client_actor, "v1", "srv-1")
        snapshot = store.snapshot_for_revert("srv-1")

        store.pin("srv-1", manager)
        store.edit("srv-1", "v2", client_actor)
        store.restore(snapshot, PIN_FIELDS)

        assert message.is_pinned is False
        assert message.content == "v2"

    def test_restore_leaves_tombstones_alone(self, store, client_actor, config):
        message = _confirmed(store, client_actor, "v1", "srv-1")
        snapshot = store.snapshot_for_revert("srv-1")

        store.edit("srv-1", "v2", client_actor)
        store.apply_update(_server_message("srv-1", client_actor, "v2", deleted_for_everyone=True))

        assert store.restore(snapshot, EDIT_FIELDS) is None
        assert message.deleted_for_everyone is True
        assert message.content == config.tombstone_text

    def test_restore_deleted(self, store, client_actor):
        message = _confirmed(store, client_actor, "v1", "srv-1")
        message.reactions["👍"] = Reaction(emoji="👍", message_id="srv-1", actor_ids={"u-manager"})
        snapshot = store.snapshot_for_revert("srv-1")

        store.delete("srv-1", True, client_actor)
        store.restore_deleted(snapshot)

        assert message.deleted_for_everyone is False
        assert message.content == "v1"
        assert message.reactions["👍"].count == 1

    def test_purge_channel(self, store, client_actor, manager):
        _confirmed(store, client_actor, "a", "srv-1")
        store.save("srv-1", manager.id)
        store.overlay.mark_read(manager.id, "srv-1")
        store.overlay.save_draft(Draft(channel_id=CHANNEL, actor_id=manager.id, content="half"))

        assert store.purge_channel(CHANNEL) == 1
        assert store.messages(CHANNEL) == []
        assert store.find("srv-1") is None
        assert not store.is_saved("srv-1", manager.id)
        assert store.overlay.read_receipts("srv-1") == []
        assert store.overlay.get_draft(manager.id, CHANNEL) is None

    def test_role_snapshot_is_kept_on_message(self, store):
        buyer = ActorSnapshot(id="u-buyer", name="Mo", role=ActorRole.MEDIA_BUYER)
        message = store.send_optimistic(CHANNEL, buyer, "campaign is live")
        assert message.sender.role == ActorRole.MEDIA_BUYER


# ── Search and threads ───────────────────────────────────────────────


class TestSearchAndThreads:

    def test_search_is_case_insensitive_and_per_actor(self, store, client_actor, manager):
        _confirmed(store, client_actor, "Logo draft attached", "srv-1")
        _confirmed(store, manager, "New LOGO colours", "srv-2")
        _confirmed(store, client_actor, "Invoice question", "srv-3")
        store.delete("srv-2", False, client_actor)

        assert [m.id for m in store.search(CHANNEL, manager.id, "logo")] == ["srv-1", "srv-2"]
        assert [m.id for m in store.search(CHANNEL, client_actor.id, "logo")] == ["srv-1"]
        assert store.search(CHANNEL, manager.id, "   ") == []

    def test_search_skips_tombstones(self, store, client_actor, manager):
        _confirmed(store, client_actor, "Logo draft attached", "srv-1")
        store.delete("srv-1", True, client_actor)

        assert store.search(CHANNEL, manager.id, "deleted") == []

    def test_thread_replies(self, store, client_actor, manager):
        parent = _confirmed(store, client_actor, "Which logo?", "srv-1")
        first = store.send_optimistic(CHANNEL, manager, "Option B", thread_parent_id=parent.id)
        second = store.send_optimistic(CHANNEL, client_actor, "Agreed", thread_parent_id=parent.id)
        store.send_optimistic(CHANNEL, client_actor, "Unrelated")

        assert store.thread_replies("srv-1") == [first, second]
        assert store.thread_reply_count("srv-1") == 2
        assert store.thread_reply_count(first.id) == 0
