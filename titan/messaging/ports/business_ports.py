# =============================================================================
# File: titan/messaging/ports/business_ports.py
# Description: Port interfaces for the business services that system
#              messages trigger (campaigns, deliverables, wallet, package)
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol, runtime_checkable, TYPE_CHECKING

if TYPE_CHECKING:
    from titan.messaging.records import CreatedRecord


@runtime_checkable
class CampaignDeliverablePort(Protocol):
    """
    Port: Campaigns and Deliverables

    Creates the business records behind boost and deliverable system
    messages. Raises TransportError on failure.
    """

    async def create_campaign(
        self,
        client_id: str,
        platform: str,
        budget: Decimal,
        goal: str,
        audience: Optional[str],
        duration: str,
    ) -> 'CreatedRecord':
        """
        Create an ad campaign.

        Args:
            client_id: Billing client
            platform: Ad platform name
            budget: Total campaign budget (daily budget x days)
            goal: Campaign goal
            audience: Optional target audience
            duration: Duration as entered, e.g. "14d"
        """
        ...

    async def create_deliverable(
        self,
        client_id: str,
        title: str,
        type: str,
        status: str,
    ) -> 'CreatedRecord':
        ...


@runtime_checkable
class WalletPackagePort(Protocol):
    """
    Port: Wallet and Package Usage

    debit() raises InsufficientFundsError when the balance does not cover
    the amount; that case is not retried.
    """

    async def debit(
        self,
        client_id: str,
        amount: Decimal,
        memo: str,
        ref_type: str,
        ref_id: str,
    ) -> None:
        ...

    async def deduct_usage(
        self,
        client_id: str,
        category: str,
        quantity: int,
        ref_type: str,
        ref_id: str,
    ) -> None:
        """Consume package units for a deliverable category"""
        ...
