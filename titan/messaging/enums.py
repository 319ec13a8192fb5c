# =============================================================================
# File: titan/messaging/enums.py
# Description: Messaging domain enumerations
# =============================================================================

from enum import Enum


class ActorRole(str, Enum):
    """Platform roles supplied by the identity provider"""
    ADMIN = "admin"
    MANAGER = "manager"
    DESIGNER = "designer"
    MEDIA_BUYER = "media-buyer"
    CLIENT = "client"


class WorkspaceStatus(str, Enum):
    """Client workspace health status"""
    ACTIVE = "active"
    PAUSED = "paused"
    AT_RISK = "at-risk"
    CHURNING = "churning"


class ChannelKind(str, Enum):
    """Channel kinds; every kind except CUSTOM is a system channel"""
    GENERAL = "general"
    DELIVERABLES = "deliverables"
    BOOST_REQUESTS = "boost-requests"
    BILLING = "billing"
    INTERNAL = "internal"
    CUSTOM = "custom"

    @property
    def is_system(self) -> bool:
        return self is not ChannelKind.CUSTOM


class ChannelPrivacy(str, Enum):
    """Open channels are readable by the workspace; closed ones list members"""
    OPEN = "open"
    CLOSED = "closed"


class ChannelRole(str, Enum):
    """Role of a member inside a channel"""
    MEMBER = "member"
    ADMIN = "admin"


class MessageType(str, Enum):
    """Types of messages"""
    TEXT = "text"
    VOICE = "voice"
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"
    SYSTEM = "system"


class MessageStatus(str, Enum):
    """Message delivery status"""
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class AttachmentKind(str, Enum):
    """Attachment display kinds"""
    IMAGE = "image"
    DOCUMENT = "document"
    VIDEO = "video"
    VOICE = "voice"


class BoostStatus(str, Enum):
    """Lifecycle of a boost (paid campaign) request"""
    REQUESTED = "requested"
    APPROVED = "approved"
    LIVE = "live"
    COMPLETED = "completed"
    REJECTED = "rejected"


class DeliverableType(str, Enum):
    """Deliverable categories billed against a client package"""
    DESIGN = "design"
    VIDEO = "video"
    CONTENT = "content"
    SEO = "seo"
    ADS = "ads"
    SOCIAL = "social"
    APPROVAL = "approval"


class DeliverableStatus(str, Enum):
    """Lifecycle of a deliverable"""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    REVIEW = "review"
    APPROVED = "approved"
    DELIVERED = "delivered"


class FeedEventKind(str, Enum):
    """Change-feed operation"""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class FeedTable(str, Enum):
    """Change-feed source table"""
    MESSAGES = "messages"
    REACTIONS = "message_reactions"
    MEMBERSHIPS = "channel_members"
