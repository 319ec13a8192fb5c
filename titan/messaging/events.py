# =============================================================================
# File: titan/messaging/events.py
# Description: Business events that produce system messages
# =============================================================================

from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional

from pydantic import Field

from titan.common.base.base_model import BaseEvent
from titan.infra.event_bus.event_decorators import domain_event
from titan.messaging.enums import DeliverableType


# =============================================================================
# Business Action Events
# =============================================================================

@domain_event(category="business")
class BoostSubmitted(BaseEvent):
    """A client or manager submitted a paid boost (ad campaign) request"""
    event_type: Literal["BoostSubmitted"] = "BoostSubmitted"
    workspace_id: str
    channel_id: str
    platform: str
    budget: Decimal = Field(ge=0)  # daily budget
    duration: str  # e.g. "14d"
    goal: str
    target_audience: Optional[str] = None


@domain_event(category="business")
class DeliverableRequested(BaseEvent):
    """A deliverable was requested against the client package"""
    event_type: Literal["DeliverableRequested"] = "DeliverableRequested"
    workspace_id: str
    channel_id: str
    type: DeliverableType
    title: Optional[str] = None
