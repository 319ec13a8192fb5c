# =============================================================================
# File: titan/messaging/value_objects.py
# Description: Messaging value objects - immutable snapshots embedded in
#              messages (sender, reply, forward, attachments, system tags)
# =============================================================================

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import Field

from titan.common.base.base_model import ValueObject
from titan.messaging.enums import (
    ActorRole,
    AttachmentKind,
    BoostStatus,
    DeliverableStatus,
    DeliverableType,
)
from titan.utils.uuid_utils import generate_generic_id


class ActorSnapshot(ValueObject):
    """
    Value Object: who is acting, as supplied by the identity provider.

    Passed explicitly into every store and registry call instead of
    relying on an ambient "current user".
    """
    id: str
    name: str
    avatar: str = ""
    role: ActorRole = ActorRole.CLIENT

    @property
    def is_client(self) -> bool:
        return self.role == ActorRole.CLIENT

    @property
    def is_manager(self) -> bool:
        """Admins and managers can manage channels"""
        return self.role in (ActorRole.ADMIN, ActorRole.MANAGER)


class ReplyRef(ValueObject):
    """Snapshot of the message being replied to"""
    message_id: str
    sender_name: str
    content: str


class ForwardRef(ValueObject):
    """Where a forwarded message came from"""
    message_id: str
    channel_name: str
    sender_name: str


class ReadReceipt(ValueObject):
    """One reader having read one message"""
    reader_id: str
    read_at: datetime


class Attachment(ValueObject):
    """A file attached to a message; url is None until the upload completes"""
    id: str = Field(default_factory=lambda: generate_generic_id("file"))
    name: str
    kind: AttachmentKind = AttachmentKind.DOCUMENT
    mime_type: str = "application/octet-stream"
    size: int = Field(default=0, ge=0)
    url: Optional[str] = None

    @staticmethod
    def kind_for_mime(mime_type: str) -> AttachmentKind:
        if mime_type.startswith("image/"):
            return AttachmentKind.IMAGE
        if mime_type.startswith("video/"):
            return AttachmentKind.VIDEO
        if mime_type.startswith("audio/"):
            return AttachmentKind.VOICE
        return AttachmentKind.DOCUMENT


class FileUpload(ValueObject):
    """A blob handed to a send; kept with the message so a failed send can retry"""
    name: str
    mime_type: str = "application/octet-stream"
    data: bytes = Field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    def to_pending_attachment(self) -> Attachment:
        return Attachment(
            name=self.name,
            kind=Attachment.kind_for_mime(self.mime_type),
            mime_type=self.mime_type,
            size=self.size,
        )


# =============================================================================
# System Tags (discriminated union on `kind`)
# =============================================================================

class BoostTag(ValueObject):
    """Terms of a boost request at the time it was announced"""
    kind: Literal["boost"] = "boost"
    id: str = Field(default_factory=lambda: generate_generic_id("boost"))
    platform: str
    budget: Decimal = Field(ge=0)
    duration: str
    goal: Optional[str] = None
    status: BoostStatus = BoostStatus.REQUESTED


class DeliverableTag(ValueObject):
    """Deliverable that was requested and billed against the package"""
    kind: Literal["deliverable"] = "deliverable"
    id: str = Field(default_factory=lambda: generate_generic_id("del"))
    type: DeliverableType
    label: str
    status: DeliverableStatus = DeliverableStatus.PENDING
    package_deducted: bool = False


SystemTag = Annotated[Union[BoostTag, DeliverableTag], Field(discriminator="kind")]
