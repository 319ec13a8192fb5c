# =============================================================================
# File: titan/messaging/system_messages.py
# Description: System messages generated by business actions (boost
#              requests, deliverable requests) and their side effects
# =============================================================================

from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from titan.common.base.base_model import BaseEvent
from titan.common.exceptions.exceptions import TitanException, TransportError, ValidationError
from titan.config.messaging_config import MessagingConfig, get_messaging_config
from titan.config.reliability_config import ReliabilityConfig, RetryConfig, get_reliability_config
from titan.core.background_tasks import BackgroundTasks
from titan.infra.event_bus.event_decorators import get_event_class
from titan.infra.reliability.retry import retry_async, retry_on
from titan.messaging.delivery import DeliveryPipeline
from titan.messaging.enums import ActorRole, DeliverableStatus, DeliverableType
from titan.messaging.events import BoostSubmitted, DeliverableRequested
from titan.messaging.exceptions import InsufficientFundsError
from titan.messaging.failures import FailureReporter
from titan.messaging.message_store import MessageStore
from titan.messaging.models import Message
from titan.messaging.ports.business_ports import CampaignDeliverablePort, WalletPackagePort
from titan.messaging.value_objects import ActorSnapshot, BoostTag, DeliverableTag
from titan.messaging.workspace_directory import WorkspaceDirectory

log = logging.getLogger("titan.messaging.system")

DEFAULT_BOOST_DAYS = 30

DELIVERABLE_LABELS: Dict[DeliverableType, str] = {
    DeliverableType.DESIGN: "Design Task",
    DeliverableType.VIDEO: "Video Production",
    DeliverableType.APPROVAL: "Approval Request",
    DeliverableType.CONTENT: "Content Creation",
    DeliverableType.SEO: "SEO Task",
    DeliverableType.ADS: "Ad Creative",
    DeliverableType.SOCIAL: "Social Media Post",
}

_DURATION_RE = re.compile(r"^\s*(\d+)\s*d\s*$", re.IGNORECASE)


def parse_duration_days(duration: str) -> int:
    """'14d' -> 14; anything unparseable counts as 30 days"""
    match = _DURATION_RE.match(duration or "")
    if not match or int(match.group(1)) == 0:
        return DEFAULT_BOOST_DAYS
    return int(match.group(1))


def format_amount(amount: Decimal) -> str:
    """50 -> '50', 12.50 -> '12.5'"""
    return f"{amount.normalize():f}"


def boost_content(event: BoostSubmitted, total: Decimal) -> str:
    return (
        "🚀 New Boost Campaign Created!\n\n"
        f"Platform: {event.platform}\n"
        f"Goal: {event.goal}\n"
        f"Daily Budget: ${format_amount(event.budget)}\n"
        f"Duration: {event.duration}\n"
        f"Total Budget: ${format_amount(total)}\n\n"
        "Media Buyer has been notified. Wallet deducted."
    )


def deliverable_content(deliverable_type: DeliverableType) -> str:
    return f"📦 New {DELIVERABLE_LABELS.get(deliverable_type, 'Deliverable')} created. Package usage has been deducted."


class SystemMessageGenerator:
    """
    Turns business events into system messages.

    The message is appended optimistically before anything remote happens.
    Campaign, wallet and package calls then run in the background, and the
    message itself goes out through the delivery pipeline. Nothing that
    fails afterwards removes the message; failures are reported instead.
    """

    def __init__(
            self,
            store: MessageStore,
            delivery: DeliveryPipeline,
            tasks: BackgroundTasks,
            campaigns: CampaignDeliverablePort,
            wallet: WalletPackagePort,
            directory: Optional[WorkspaceDirectory] = None,
            failures: Optional[FailureReporter] = None,
            config: Optional[MessagingConfig] = None,
            reliability: Optional[ReliabilityConfig] = None,
    ):
        self._store = store
        self._delivery = delivery
        self._tasks = tasks
        self._campaigns = campaigns
        self._wallet = wallet
        self._directory = directory
        self._failures = failures or FailureReporter()
        self.config = config or get_messaging_config()

        base_retry = (reliability or get_reliability_config()).downstream_retry
        self._retry: RetryConfig = base_retry.model_copy(update={
            "retry_condition": retry_on(TransportError, exclude=(InsufficientFundsError,)),
        })

    @property
    def system_actor(self) -> ActorSnapshot:
        return ActorSnapshot(
            id=self.config.system_sender_id,
            name=self.config.system_sender_name,
            avatar=self.config.system_sender_avatar,
            role=ActorRole.ADMIN,
        )

    def handle(self, payload: Union[Dict[str, Any], BaseEvent]) -> Message:
        """Resolve a raw business event by event_type and generate its message"""
        event = payload
        if not isinstance(payload, BaseEvent):
            event_type = payload.get("event_type")
            event_class = get_event_class(event_type) if event_type else None
            if event_class is None:
                raise ValidationError(f"Unknown business event: {event_type}")
            try:
                event = event_class.model_validate(payload)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid {event_type} payload: {e}") from e

        if isinstance(event, BoostSubmitted):
            return self.on_boost_submitted(event)
        if isinstance(event, DeliverableRequested):
            return self.on_deliverable_requested(event)
        raise ValidationError(f"No system message for event {event.event_type}")

    def _client_id(self, workspace_id: str) -> str:
        workspace = self._directory.find(workspace_id) if self._directory else None
        return workspace.billing_client_id if workspace else workspace_id

    def _workspace_name(self, workspace_id: str) -> str:
        workspace = self._directory.find(workspace_id) if self._directory else None
        return workspace.name if workspace else workspace_id

    # =========================================================================
    # Boost requests
    # =========================================================================

    def on_boost_submitted(self, event: BoostSubmitted) -> Message:
        days = parse_duration_days(event.duration)
        total = event.budget * days
        tag = BoostTag(
            platform=event.platform,
            budget=event.budget,
            duration=event.duration,
            goal=event.goal,
        )
        message = self._store.send_optimistic(
            event.channel_id,
            self.system_actor,
            boost_content(event, total),
            tag=tag,
            is_system_message=True,
        )
        self._tasks.spawn(self._run_boost(event, total, message.id), name=f"boost-{tag.id}")
        return message

    async def _run_boost(self, event: BoostSubmitted, total: Decimal, temp_id: str) -> None:
        try:
            await self._boost_side_effects(event, total, temp_id)
        except Exception as e:
            log.exception(f"Unexpected error in boost side effects for message {temp_id}")
            self._report("boost", e, event.channel_id, temp_id)
        finally:
            self._submit(temp_id)

    async def _boost_side_effects(self, event: BoostSubmitted, total: Decimal, temp_id: str) -> None:
        client_id = self._client_id(event.workspace_id)
        campaign = None
        try:
            campaign = await retry_async(
                self._campaigns.create_campaign,
                client_id,
                event.platform,
                total,
                event.goal,
                event.target_audience,
                event.duration,
                retry_config=self._retry,
                context="boost.create_campaign",
            )
            log.info(f"Boost campaign created for client {client_id}: {campaign.id}")
        except TitanException as e:
            self._report("boost.create_campaign", e, event.channel_id, temp_id)

        if campaign is not None:
            try:
                await retry_async(
                    self._wallet.debit,
                    client_id,
                    total,
                    f"Boost Campaign: {event.platform} - {event.goal}",
                    "campaign",
                    campaign.id,
                    retry_config=self._retry,
                    context="boost.debit",
                )
            except InsufficientFundsError as e:
                log.warning(f"Wallet debit skipped for client {client_id}: {e}")
                self._report("boost.debit", e, event.channel_id, temp_id)
            except TitanException as e:
                self._report("boost.debit", e, event.channel_id, temp_id)

    # =========================================================================
    # Deliverable requests
    # =========================================================================

    def on_deliverable_requested(self, event: DeliverableRequested) -> Message:
        label = DELIVERABLE_LABELS.get(event.type, "New Deliverable")
        tag = DeliverableTag(
            type=event.type,
            label=f"{label} — {self._workspace_name(event.workspace_id)}",
            package_deducted=self.config.auto_deduct_on_create,
        )
        message = self._store.send_optimistic(
            event.channel_id,
            self.system_actor,
            deliverable_content(event.type),
            tag=tag,
            is_system_message=True,
        )
        self._tasks.spawn(self._run_deliverable(event, tag, message.id), name=f"deliverable-{tag.id}")
        return message

    async def _run_deliverable(self, event: DeliverableRequested, tag: DeliverableTag, temp_id: str) -> None:
        try:
            await self._deliverable_side_effects(event, tag, temp_id)
        except Exception as e:
            log.exception(f"Unexpected error in deliverable side effects for message {temp_id}")
            self._report("deliverable", e, event.channel_id, temp_id)
        finally:
            self._submit(temp_id)

    async def _deliverable_side_effects(self, event: DeliverableRequested, tag: DeliverableTag, temp_id: str) -> None:
        client_id = self._client_id(event.workspace_id)
        deliverable = None
        try:
            deliverable = await retry_async(
                self._campaigns.create_deliverable,
                client_id,
                event.title or tag.label,
                event.type.value,
                DeliverableStatus.PENDING.value,
                retry_config=self._retry,
                context="deliverable.create",
            )
            log.info(f"Deliverable created for client {client_id}: {deliverable.id}")
        except TitanException as e:
            self._report("deliverable.create", e, event.channel_id, temp_id)

        if deliverable is not None and self.config.auto_deduct_on_create:
            try:
                await retry_async(
                    self._wallet.deduct_usage,
                    client_id,
                    event.type.value,
                    1,
                    "deliverable",
                    deliverable.id,
                    retry_config=self._retry,
                    context="deliverable.deduct_usage",
                )
            except TitanException as e:
                self._report("deliverable.deduct_usage", e, event.channel_id, temp_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _submit(self, temp_id: str) -> None:
        message = self._store.find(temp_id)
        if message is None:
            log.debug(f"System message {temp_id} no longer loaded; not sending")
            return
        self._delivery.submit(message)

    def _report(self, operation: str, error: Exception, channel_id: str, message_id: str) -> None:
        self._failures.report(
            operation,
            error,
            message_id=message_id,
            channel_id=channel_id,
            actor_id=self.config.system_sender_id,
        )
