"""Tests for the reaction aggregator."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from titan.messaging.exceptions import MessageTombstonedError
from titan.messaging.reactions import ReactionAggregator

CHANNEL = "ch-general"


@pytest.fixture
def message(store, client_actor):
    message = store.send_optimistic(CHANNEL, client_actor, "Launch is live!")
    return store.confirm_send(message.id, "srv-1")


@pytest.fixture
def reactions(store) -> ReactionAggregator:
    return ReactionAggregator(store)


class TestToggle:

    def test_toggle_twice_restores_original_state(self, reactions, message):
        assert reactions.toggle("srv-1", "🔥", "u-1") is True
        assert message.reactions["🔥"].count == 1

        assert reactions.toggle("srv-1", "🔥", "u-1") is False
        assert "🔥" not in message.reactions

    def test_actor_counted_once_per_emoji(self, reactions, message):
        reactions.toggle("srv-1", "👍", "u-1")
        reactions.toggle("srv-1", "👍", "u-2")
        reactions.toggle("srv-1", "❤️", "u-1")

        assert message.reactions["👍"].actor_ids == {"u-1", "u-2"}
        assert message.reactions["👍"].count == 2
        assert message.reactions["❤️"].count == 1

    def test_removing_one_actor_keeps_others(self, reactions, message):
        reactions.toggle("srv-1", "👍", "u-1")
        reactions.toggle("srv-1", "👍", "u-2")

        reactions.toggle("srv-1", "👍", "u-1")

        assert message.reactions["👍"].actor_ids == {"u-2"}

    def test_tombstoned_message_rejects_reactions(self, store, reactions, message, client_actor):
        store.delete("srv-1", True, client_actor)
        with pytest.raises(MessageTombstonedError):
            reactions.toggle("srv-1", "👍", "u-1")

    def test_concurrent_toggles_by_different_actors_are_all_kept(self, reactions, message):
        actors = [f"u-{i}" for i in range(64)]

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda a: reactions.toggle("srv-1", "🎉", a), actors))

        assert all(results)
        assert message.reactions["🎉"].count == len(actors)
        assert message.reactions["🎉"].actor_ids == set(actors)


class TestFeedFolding:

    def test_snapshot_replaces_actor_set(self, reactions, message):
        reactions.toggle("srv-1", "👍", "u-1")

        reactions.apply_snapshot("srv-1", "👍", ["u-2", "u-3"])

        assert message.reactions["👍"].actor_ids == {"u-2", "u-3"}

    def test_empty_snapshot_drops_entry(self, reactions, message):
        reactions.toggle("srv-1", "👍", "u-1")

        reactions.apply_snapshot("srv-1", "👍", [])

        assert message.reactions == {}

    def test_removal_and_unknown_message(self, reactions, message):
        reactions.toggle("srv-1", "👍", "u-1")

        reactions.apply_removal("srv-1", "👍")
        reactions.apply_snapshot("srv-unknown", "👍", ["u-1"])

        assert reactions.reactions_for("srv-1") == []

    def test_reactions_for_returns_copies(self, reactions, message):
        reactions.toggle("srv-1", "👍", "u-1")

        listed = reactions.reactions_for("srv-1")
        listed[0].actor_ids.add("u-intruder")

        assert message.reactions["👍"].actor_ids == {"u-1"}
