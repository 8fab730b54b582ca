"""Shared fixtures for evenntz_coordinator tests."""

from __future__ import annotations

import pytest
from pytest_metadata.plugin import metadata_key
from stellar_sdk import Keypair

from evenntz_coordinator.coordinator.analytics import AnalyticsAggregator
from evenntz_coordinator.coordinator.publication import PublicationCoordinator
from evenntz_coordinator.coordinator.tickets import TicketLifecycleCoordinator
from evenntz_coordinator.models.config import CoordinatorConfig, RetryConfig
from evenntz_coordinator.stellar.gateway import LedgerGateway
from evenntz_coordinator.storage.sqlite import SQLiteMetadataStore

from tests.mocks import MockLedgerClient, MockMetadataStore, MockUploader

TEST_SECRET = "SBWVJTD3F5ETMVWCNI7MM4HUAPUSCUXXMUEJZJTPRWRJGXW2BF4SVQTK"
TEST_KEYPAIR = Keypair.from_secret(TEST_SECRET)
TEST_PUBLIC = TEST_KEYPAIR.public_key

FACTORY_ID = "CACBN6G2EPPLAQORDB3LXN3SULGVYBAETFZTNYTNDQ77B7JFRIBT66V2"
EVENT_ADDRESS = "CCEDYFIHUCJFITWEOT7BWUO2HBQQ72L244ZXQ4YNOC6FYRDN3MKDQFK7"
TICKET_ADDRESS = "CTICKETCONTRACTFOREVENTCCEDYFIHUCJFITWEOT7BWUO2HBQQ72L"


# ── Report metadata ──────────────────────────────────────────────


def pytest_configure(config):
    """Add network info to the report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["Network"] = "mocked Soroban ledger"
    meta["Factory Contract"] = FACTORY_ID
    meta["Organizer Account"] = TEST_PUBLIC


def make_test_config(**overrides) -> CoordinatorConfig:
    """Build a CoordinatorConfig suitable for testing."""
    defaults = dict(
        confirmation_timeout=5.0,
        poll_interval=0.01,
        rpc_url="https://soroban-testnet.stellar.org",
        network_passphrase="Test SDF Network ; September 2015",
        factory_contract_id=FACTORY_ID,
        keypair_secret=TEST_SECRET,
        db_path=":memory:",
        retry=RetryConfig(base_delay=0.0, max_delay=0.0),
    )
    defaults.update(overrides)
    return CoordinatorConfig(**defaults)


def seed_event(
    ledger: MockLedgerClient,
    address: str = EVENT_ADDRESS,
    *,
    kind: int = 1,
    price: int = 1000,
    sold: int = 10,
    burned: int = 4,
    ticket: str = TICKET_ADDRESS,
) -> None:
    """Stage the contract state of one event and its ticket contract."""
    ledger.set_read(address, "event_name", "Rooftop Jazz")
    ledger.set_read(address, "event_type", kind)
    ledger.set_read(address, "ticket_price", price)
    ledger.set_read(address, "owner", TEST_PUBLIC)
    ledger.set_read(address, "is_active", True)
    ledger.set_read(address, "max_tickets", 50)
    ledger.set_read(address, "ticket_contract", ticket)
    ledger.set_read(ticket, "next_token_id", sold)
    ledger.set_read(ticket, "burned_tickets_count", burned)


@pytest.fixture
def test_config():
    """Default CoordinatorConfig for tests."""
    return make_test_config()


@pytest.fixture
def retry():
    return RetryConfig(base_delay=0.0, max_delay=0.0)


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteMetadataStore."""
    s = SQLiteMetadataStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def ledger():
    return MockLedgerClient()


@pytest.fixture
def uploader():
    return MockUploader()


@pytest.fixture
def metadata_store():
    return MockMetadataStore()


@pytest.fixture
def gateway(ledger):
    """Gateway over the mock ledger with the test keypair attached."""
    return LedgerGateway(ledger, FACTORY_ID, TEST_KEYPAIR)


@pytest.fixture
def publication(gateway, uploader, metadata_store, store, retry):
    """Publication saga over mocks, journaling to the in-memory SQLite store."""
    return PublicationCoordinator(
        gateway, uploader, metadata_store,
        journal=store, retry=retry, confirmation_timeout=5.0,
    )


@pytest.fixture
def tickets(gateway, retry):
    return TicketLifecycleCoordinator(gateway, retry=retry, confirmation_timeout=5.0)


@pytest.fixture
def analytics(gateway):
    return AnalyticsAggregator(gateway)
