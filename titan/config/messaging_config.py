# =============================================================================
# File: titan/config/messaging_config.py
# Description: Messaging rules - edit/delete policy, system sender identity,
#              delivery acknowledgment and feed settings
# =============================================================================

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from titan.common.base.base_config import BaseConfig


class DeletePermission(str, Enum):
    """Who may delete a message for everyone"""
    ADMIN = "admin"    # Managers/admins only
    AUTHOR = "author"  # Message author, plus managers/admins
    NONE = "none"      # Nobody; only per-actor hiding is allowed


class MessagingConfig(BaseConfig):
    """
    Messaging rules, read from MESSAGING_* environment variables.

    These are the policy inputs the Message Store and Channel Registry
    consult; nothing here is hardcoded in the domain modules.
    """

    model_config = SettingsConfigDict(
        **{**BaseConfig.model_config, "env_prefix": "MESSAGING_"},
    )

    # Edit / delete policy
    edit_window_seconds: int = Field(default=900, ge=0, description="How long after sending a message may be edited")
    managers_can_edit: bool = Field(default=False, description="Admins/managers may edit other actors' messages")
    delete_permission: DeletePermission = DeletePermission.AUTHOR
    tombstone_text: str = "🗑️ This message was deleted"
    max_content_length: int = Field(default=10_000, gt=0)

    # Channel policy
    client_can_create_channels: bool = False

    # System sender identity
    system_sender_id: str = "system"
    system_sender_name: str = "TITAN AI"
    system_sender_avatar: str = "AI"

    # Delivery acknowledgment (stand-in until the transport emits real acks)
    simulate_delivery_ack: bool = True
    delivery_ack_delay_ms: int = Field(default=500, ge=0)

    # Business side effects
    auto_deduct_on_create: bool = True

    # Change feed
    feed_queue_maxsize: int = Field(default=1000, ge=0)


@lru_cache(maxsize=1)
def get_messaging_config() -> MessagingConfig:
    """Get messaging configuration singleton"""
    return MessagingConfig()
