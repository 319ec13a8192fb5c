# =============================================================================
# File: titan/messaging/membership_gate.py
# Description: Channel visibility and management predicates
# =============================================================================

from typing import Iterable, List

from titan.messaging.enums import ChannelPrivacy
from titan.messaging.exceptions import ChannelArchivedError, InsufficientPermissionsError
from titan.messaging.models import Channel
from titan.messaging.value_objects import ActorSnapshot


def can_view(actor: ActorSnapshot, channel: Channel) -> bool:
    """Internal channels are hidden from clients; everything else is visible"""
    return not channel.is_internal or not actor.is_client


def can_manage(actor: ActorSnapshot, channel: Channel) -> bool:
    return actor.is_manager


def can_post(actor: ActorSnapshot, channel: Channel) -> bool:
    if not can_view(actor, channel) or channel.is_archived:
        return False
    if channel.privacy == ChannelPrivacy.CLOSED:
        return channel.is_member(actor.id) or can_manage(actor, channel)
    return True


def visible_channels(
        actor: ActorSnapshot,
        channels: Iterable[Channel],
        include_archived: bool = False,
) -> List[Channel]:
    """Channels the actor may see, in input order"""
    return [
        channel for channel in channels
        if can_view(actor, channel) and (include_archived or not channel.is_archived)
    ]


# =============================================================================
# Raising variants
# =============================================================================

def require_view(actor: ActorSnapshot, channel: Channel) -> None:
    if not can_view(actor, channel):
        raise InsufficientPermissionsError(actor.id, f"view channel {channel.id}")


def require_manage(actor: ActorSnapshot, channel: Channel) -> None:
    if not can_manage(actor, channel):
        raise InsufficientPermissionsError(actor.id, f"manage channel {channel.id}")


def require_post(actor: ActorSnapshot, channel: Channel) -> None:
    if channel.is_archived:
        raise ChannelArchivedError(channel.id)
    if not can_post(actor, channel):
        raise InsufficientPermissionsError(actor.id, f"post in channel {channel.id}")
