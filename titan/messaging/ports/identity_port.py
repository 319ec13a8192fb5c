# =============================================================================
# File: titan/messaging/ports/identity_port.py
# Description: Port interface for resolving actors
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from typing import Protocol, runtime_checkable, TYPE_CHECKING

if TYPE_CHECKING:
    from titan.messaging.value_objects import ActorSnapshot


@runtime_checkable
class IdentityPort(Protocol):
    """
    Port: Identity

    Authentication is external; this only maps an authenticated actor id
    to the snapshot the messaging core stamps onto messages.
    """

    async def get_actor(self, actor_id: str) -> 'ActorSnapshot':
        ...
