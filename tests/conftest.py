"""Pytest configuration and shared fixtures.

Run with:
    pytest tests/                          # Run all tests
    pytest tests/test_message_store.py -v  # Run specific test file
"""

from decimal import Decimal

import pytest

from tests.fakes.fake_business_adapters import FakeCampaignAdapter, FakeIdentityAdapter, FakeWalletAdapter
from tests.fakes.fake_persistence_adapter import FakePersistenceAdapter
from titan.config.messaging_config import MessagingConfig
from titan.config.reliability_config import ReliabilityConfig, RetryConfig
from titan.infra.change_feed.memory_feed import InMemoryChangeFeed
from titan.messaging.enums import ActorRole
from titan.messaging.message_store import MessageStore
from titan.messaging.models import Workspace
from titan.messaging.value_objects import ActorSnapshot
from titan.services.messaging_service import MessagingService


# ── Actors ───────────────────────────────────────────────────────────


@pytest.fixture
def client_actor() -> ActorSnapshot:
    return ActorSnapshot(id="u-client", name="Dana Client", avatar="DC", role=ActorRole.CLIENT)


@pytest.fixture
def manager() -> ActorSnapshot:
    return ActorSnapshot(id="u-manager", name="Sam Manager", avatar="SM", role=ActorRole.MANAGER)


@pytest.fixture
def admin() -> ActorSnapshot:
    return ActorSnapshot(id="u-admin", name="Alex Admin", avatar="AA", role=ActorRole.ADMIN)


@pytest.fixture
def designer() -> ActorSnapshot:
    return ActorSnapshot(id="u-designer", name="Kim Designer", avatar="KD", role=ActorRole.DESIGNER)


# ── Configuration ────────────────────────────────────────────────────


@pytest.fixture
def config() -> MessagingConfig:
    """No simulated ack delay, so drain() never sleeps."""
    return MessagingConfig(simulate_delivery_ack=False, delivery_ack_delay_ms=0)


@pytest.fixture
def fast_retry() -> RetryConfig:
    return RetryConfig(max_attempts=3, initial_delay_ms=1, max_delay_ms=2, jitter=False)


@pytest.fixture
def reliability(fast_retry) -> ReliabilityConfig:
    return ReliabilityConfig(downstream_retry=fast_retry, reaction_retry=fast_retry)


# ── Components ───────────────────────────────────────────────────────


@pytest.fixture
def store(config) -> MessageStore:
    return MessageStore(config)


@pytest.fixture
def change_feed() -> InMemoryChangeFeed:
    return InMemoryChangeFeed()


@pytest.fixture
def persistence() -> FakePersistenceAdapter:
    return FakePersistenceAdapter()


@pytest.fixture
def campaigns() -> FakeCampaignAdapter:
    return FakeCampaignAdapter()


@pytest.fixture
def wallet() -> FakeWalletAdapter:
    return FakeWalletAdapter(balances={"client-acme": Decimal("10000")})


@pytest.fixture
def identity(client_actor, manager, admin, designer) -> FakeIdentityAdapter:
    return FakeIdentityAdapter([client_actor, manager, admin, designer])


@pytest.fixture
def workspace() -> Workspace:
    return Workspace(id="ws-acme", client_id="client-acme", name="Acme Coffee")


@pytest.fixture
def service(persistence, change_feed, campaigns, wallet, identity, config, reliability, workspace, admin):
    service = MessagingService(
        persistence=persistence,
        feed=change_feed,
        campaigns=campaigns,
        wallet=wallet,
        identity=identity,
        config=config,
        reliability=reliability,
    )
    service.register_workspace(workspace, admin)
    return service


@pytest.fixture
def general(service, workspace):
    """The workspace's #general channel."""
    return next(c for c in service.channels.list_channels(workspace.id) if c.name == "general")
