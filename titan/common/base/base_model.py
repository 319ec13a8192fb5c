# =============================================================================
# File: titan/common/base/base_model.py
# Description: Base Pydantic models for domain events and records
# =============================================================================

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Final
from pydantic import BaseModel, Field, ConfigDict

# Default schema version for events if not overridden by specific event types
_DEFAULT_DOMAIN_EVENT_VERSION: Final[int] = 1


class BaseEvent(BaseModel):
    """
    Base Pydantic model for all domain events.
    Ensures common metadata fields are present in every event.
    """
    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: str  # To be overridden by Literal in specific event types
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = Field(default=_DEFAULT_DOMAIN_EVENT_VERSION, description="Version of this event model's schema")

    model_config = ConfigDict(
        frozen=True,  # Events are immutable facts
        from_attributes=True,
        populate_by_name=True,
        extra='allow'  # Unknown fields from newer producers are kept, not rejected
    )


class BaseRecord(BaseModel):
    """Base for mutable read-side records (workspaces, channels, messages)"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        validate_assignment=True,
    )


class ValueObject(BaseModel):
    """Base for immutable snapshots embedded in records"""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
    )
