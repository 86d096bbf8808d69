"""
API Test Layer Configuration

HTTP contract tests for the campaign and credit FastAPI apps.
- Requests go through httpx.AsyncClient over ASGITransport, in-process
- The module-level ``factory`` of each app is replaced by one wired to the
  in-memory store and mocks from tests/component/mocks
- Lifespan is not run, so no PostgreSQL / NATS / Redis is needed

Usage:
    pytest tests/api -v                    # Run all API tests
    pytest tests/api -v -k "webhook"       # Run webhook API tests
    pytest tests/api -v --tb=short         # Short traceback
"""

import os
import sys
from types import SimpleNamespace
from typing import Dict, Optional

import httpx
import pytest
import pytest_asyncio

# Add project root
sys.path.insert(
    0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
)

from core.config import get_settings
from microservices.campaign_service import main as campaign_main
from microservices.campaign_service.campaign_service import CampaignService
from microservices.campaign_service.events.publishers import CampaignEventPublisher
from microservices.campaign_service.finalizer import CampaignFinalizer
from microservices.campaign_service.reconciliation import DeliveryReconciler, InboundMessageHandler
from microservices.campaign_service.scheduler import CampaignScheduler
from microservices.credit_service import main as credit_main
from microservices.credit_service.credit_service import CreditService
from tests.component.mocks import (
    InMemoryPlatformStore,
    MockCampaignRepository,
    MockCreditRepository,
    MockEventBus,
    MockStatsCache,
    MockTaskDispatcher,
)
from tests.contracts.campaign.data_contract import CampaignTestDataFactory
from tests.contracts.credit.data_contract import CreditTestDataFactory

WEBHOOK_SECRET = "api-test-webhook-secret"


# =============================================================================
# Configuration
# =============================================================================


class APITestConfig:
    """API test configuration"""

    BASE_URL = "http://testserver"
    TEST_USER_ID = "usr_api_test"

    @staticmethod
    def headers(owner_id: Optional[str], user_id: Optional[str] = TEST_USER_ID) -> Dict[str, str]:
        """Gateway identity headers"""
        headers = {}
        if user_id:
            headers["X-User-ID"] = user_id
        if owner_id:
            headers["X-Organization-ID"] = owner_id
        return headers


@pytest.fixture(scope="session")
def api_config():
    """Provide API test configuration"""
    return APITestConfig()


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


# =============================================================================
# In-memory wiring
# =============================================================================


@pytest.fixture
def store():
    return InMemoryPlatformStore()


@pytest.fixture
def event_bus():
    return MockEventBus()


@pytest.fixture
def dispatch_queue():
    return MockTaskDispatcher()


@pytest.fixture
def data_factory():
    return CampaignTestDataFactory


@pytest.fixture
def credit_factory():
    return CreditTestDataFactory


@pytest.fixture
def ledger(store, event_bus):
    return CreditService(repository=MockCreditRepository(store), event_bus=event_bus)


@pytest.fixture
def campaign_factory(store, event_bus, dispatch_queue, ledger):
    """Stand-in for CampaignServiceFactory exposing what the routes use"""
    repository = MockCampaignRepository(store)
    cache = MockStatsCache()
    publisher = CampaignEventPublisher(event_bus)
    finalizer = CampaignFinalizer(repository, cache, publisher)
    service = CampaignService(
        repository=repository,
        ledger=ledger,
        dispatcher=dispatch_queue,
        scheduler=CampaignScheduler(MockTaskDispatcher()),
        finalizer=finalizer,
        cache=cache,
        publisher=publisher,
        system_owner_id="system",
    )
    return SimpleNamespace(
        service=service,
        repository=repository,
        reconciler=DeliveryReconciler(repository, finalizer, publisher),
        inbound_handler=InboundMessageHandler(repository, publisher, default_country_code="30"),
        nats_client=None,
        dispatch_queue=dispatch_queue,
        cache=None,
    )


@pytest.fixture
def credit_service_factory(store, ledger):
    """Stand-in for CreditServiceFactory"""
    return SimpleNamespace(
        service=ledger,
        repository=ledger.repository,
        nats_client=None,
    )


# =============================================================================
# HTTP Clients
# =============================================================================


@pytest_asyncio.fixture
async def campaign_client(campaign_factory, monkeypatch, api_config, webhook_secret):
    """Async client for the campaign app"""
    monkeypatch.setattr(campaign_main, "factory", campaign_factory)
    monkeypatch.setattr(get_settings().webhook, "secret", webhook_secret)

    transport = httpx.ASGITransport(app=campaign_main.app)
    async with httpx.AsyncClient(transport=transport, base_url=api_config.BASE_URL) as client:
        yield client


@pytest_asyncio.fixture
async def credit_client(credit_service_factory, monkeypatch, api_config):
    """Async client for the credit app"""
    monkeypatch.setattr(credit_main, "factory", credit_service_factory)

    transport = httpx.ASGITransport(app=credit_main.app)
    async with httpx.AsyncClient(transport=transport, base_url=api_config.BASE_URL) as client:
        yield client


# =============================================================================
# Seeded Owners
# =============================================================================


@pytest.fixture
def seeded_owner(store, data_factory):
    """An owner with a template, three contacts and 100 credits"""
    owner_id = data_factory.make_owner_id()
    template = store.add_template(
        data_factory.make_template(owner_id, text="Hi {{firstName}}, 20% off this week only!")
    )
    contacts = store.add_contacts(data_factory.make_contacts(owner_id, 3))
    store.set_balance(owner_id, 100)
    return SimpleNamespace(owner_id=owner_id, template=template, contacts=contacts)


@pytest.fixture
def owner_headers(api_config, seeded_owner):
    return api_config.headers(seeded_owner.owner_id)
