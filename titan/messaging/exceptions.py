# =============================================================================
# File: titan/messaging/exceptions.py
# Description: Messaging domain exceptions
# =============================================================================

from titan.common.exceptions.exceptions import (
    InvariantError,
    NotFoundError,
    PermissionError,
    TransportError,
    ValidationError,
)


class WorkspaceNotFoundError(NotFoundError):
    """Workspace not found"""
    def __init__(self, workspace_id: str):
        super().__init__(f"Workspace not found: {workspace_id}")
        self.workspace_id = workspace_id


class ChannelNotFoundError(NotFoundError):
    """Channel not found"""
    def __init__(self, channel_id: str):
        super().__init__(f"Channel not found: {channel_id}")
        self.channel_id = channel_id


class MessageNotFoundError(NotFoundError):
    """Message not found"""
    def __init__(self, message_id: str):
        super().__init__(f"Message not found: {message_id}")
        self.message_id = message_id


class ChannelNameConflictError(ValidationError):
    """Another live channel in the workspace already uses this name"""
    def __init__(self, workspace_id: str, name: str):
        super().__init__(f"Channel name '{name}' already exists in workspace {workspace_id}")
        self.workspace_id = workspace_id
        self.name = name


class InsufficientPermissionsError(PermissionError):
    """Actor does not have sufficient permissions"""
    def __init__(self, actor_id: str, action: str):
        super().__init__(f"Actor {actor_id} does not have permission to {action}")
        self.actor_id = actor_id
        self.action = action


class EditWindowExpiredError(PermissionError):
    """The message is older than the configured edit window"""
    def __init__(self, message_id: str, window_seconds: int):
        super().__init__(f"Message {message_id} can no longer be edited (window: {window_seconds}s)")
        self.message_id = message_id
        self.window_seconds = window_seconds


class LastChannelAdminError(InvariantError):
    """Removing or demoting this member would leave the channel without an admin"""
    def __init__(self, channel_id: str, actor_id: str):
        super().__init__(
            f"Actor {actor_id} is the last admin of channel {channel_id}; assign another admin first"
        )
        self.channel_id = channel_id
        self.actor_id = actor_id


class MessageTombstonedError(InvariantError):
    """Message was deleted for everyone and can no longer change"""
    def __init__(self, message_id: str):
        super().__init__(f"Message {message_id} was deleted for everyone")
        self.message_id = message_id


class InvalidStatusTransitionError(InvariantError):
    """Message status would move backwards"""
    def __init__(self, message_id: str, current: str, requested: str):
        super().__init__(f"Message {message_id}: cannot move status from {current} to {requested}")
        self.message_id = message_id
        self.current = current
        self.requested = requested


class MessageNotConfirmedError(InvariantError):
    """Operation needs a server-confirmed message"""
    def __init__(self, message_id: str):
        super().__init__(f"Message {message_id} has not been confirmed by the server yet")
        self.message_id = message_id


class ChannelArchivedError(InvariantError):
    """Channel is archived and read-only"""
    def __init__(self, channel_id: str):
        super().__init__(f"Channel {channel_id} is archived")
        self.channel_id = channel_id


class InsufficientFundsError(TransportError):
    """Wallet balance does not cover the debit"""
    def __init__(self, client_id: str, amount: str):
        super().__init__(f"Insufficient funds for client {client_id} (requested {amount})")
        self.client_id = client_id
        self.amount = amount
