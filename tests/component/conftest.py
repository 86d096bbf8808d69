"""
Component Test Layer Configuration

Wires the real services (CreditService, CampaignService, dispatch worker,
reconciler, finalizer, sweeper) to the in-memory store and mocks in
tests/component/mocks.

Usage:
    pytest tests/component -v
    pytest tests/component/campaign -v
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pytest

from core.config import SweepConfig
from microservices.campaign_service.campaign_service import CampaignService
from microservices.campaign_service.dispatch_worker import MessageDispatchWorker
from microservices.campaign_service.events.publishers import CampaignEventPublisher
from microservices.campaign_service.finalizer import CampaignFinalizer
from microservices.campaign_service.models import Contact, MessageTemplate
from microservices.campaign_service.protocols import ProviderError
from microservices.campaign_service.reconciliation import DeliveryReconciler, InboundMessageHandler
from microservices.campaign_service.scheduler import CampaignScheduler
from microservices.campaign_service.sweeper import QueuedMessageSweeper
from microservices.credit_service.credit_service import CreditService
from tests.component.mocks import (
    InMemoryPlatformStore,
    MockCampaignRepository,
    MockCreditRepository,
    MockEventBus,
    MockSmsProvider,
    MockStatsCache,
    MockTaskDispatcher,
)
from tests.contracts.campaign.data_contract import CampaignTestDataFactory
from tests.contracts.credit.data_contract import CreditTestDataFactory

SYSTEM_OWNER_ID = "system"
DEFAULT_SENDER = "SHOP"
MAX_ATTEMPTS = 3


# =============================================================================
# Infrastructure Mocks
# =============================================================================


@pytest.fixture
def store():
    return InMemoryPlatformStore()


@pytest.fixture
def credit_repository(store):
    return MockCreditRepository(store)


@pytest.fixture
def campaign_repository(store):
    return MockCampaignRepository(store)


@pytest.fixture
def event_bus():
    return MockEventBus()


@pytest.fixture
def dispatch_queue():
    return MockTaskDispatcher()


@pytest.fixture
def schedule_queue():
    return MockTaskDispatcher()


@pytest.fixture
def cache():
    return MockStatsCache()


@pytest.fixture
def provider():
    return MockSmsProvider()


@pytest.fixture
def data_factory():
    return CampaignTestDataFactory


@pytest.fixture
def credit_factory():
    return CreditTestDataFactory


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def ledger(credit_repository, event_bus):
    return CreditService(repository=credit_repository, event_bus=event_bus)


@pytest.fixture
def publisher(event_bus):
    return CampaignEventPublisher(event_bus)


@pytest.fixture
def finalizer(campaign_repository, cache, publisher):
    return CampaignFinalizer(campaign_repository, cache, publisher)


@pytest.fixture
def reconciler(campaign_repository, finalizer, publisher):
    return DeliveryReconciler(campaign_repository, finalizer, publisher)


@pytest.fixture
def inbound_handler(campaign_repository, publisher):
    return InboundMessageHandler(campaign_repository, publisher, default_country_code="30")


@pytest.fixture
def campaign_service(campaign_repository, ledger, dispatch_queue, schedule_queue, finalizer, cache, publisher):
    return CampaignService(
        repository=campaign_repository,
        ledger=ledger,
        dispatcher=dispatch_queue,
        scheduler=CampaignScheduler(schedule_queue),
        finalizer=finalizer,
        cache=cache,
        publisher=publisher,
        system_owner_id=SYSTEM_OWNER_ID,
        preview_sample_size=2,
        stats_cache_ttl=30,
    )


@pytest.fixture
def dispatch_worker(campaign_repository, ledger, provider, reconciler, finalizer, publisher):
    return MessageDispatchWorker(
        repository=campaign_repository,
        ledger=ledger,
        provider=provider,
        reconciler=reconciler,
        finalizer=finalizer,
        publisher=publisher,
        default_sender=DEFAULT_SENDER,
        lease_seconds=60,
        max_attempts=MAX_ATTEMPTS,
    )


@pytest.fixture
def sweeper(campaign_repository, dispatch_queue, finalizer):
    return QueuedMessageSweeper(
        campaign_repository,
        dispatch_queue,
        finalizer,
        SweepConfig(interval_seconds=1, idle_seconds=0, batch_size=100),
    )


# =============================================================================
# Seeded Tenants
# =============================================================================


@dataclass
class Tenant:
    """An owner with a template, contacts and (optionally) a list"""
    owner_id: str
    template: MessageTemplate
    contacts: List[Contact] = field(default_factory=list)
    list_id: Optional[str] = None


@pytest.fixture
def make_tenant(store):
    """Seed an owner: make_tenant(contacts=3, balance=100, with_list=False)"""

    def _make(
        contacts: int = 3,
        balance: int = 100,
        with_list: bool = False,
        template_text: str = "Hi {{firstName}}, 20% off this week only!",
        **contact_overrides,
    ) -> Tenant:
        owner_id = CampaignTestDataFactory.make_owner_id()
        template = store.add_template(CampaignTestDataFactory.make_template(owner_id, text=template_text))
        list_id = store.add_list(CampaignTestDataFactory.make_list_id(), owner_id) if with_list else None
        seeded = store.add_contacts(
            CampaignTestDataFactory.make_contacts(owner_id, contacts, **contact_overrides),
            list_id=list_id,
        )
        store.set_balance(owner_id, balance)
        return Tenant(owner_id=owner_id, template=template, contacts=seeded, list_id=list_id)

    return _make


@pytest.fixture
def drain_dispatch(dispatch_queue, dispatch_worker):
    """
    Run every pending dispatch task once through the worker.

    Retryable failures are collected instead of raised, as the task queue
    would schedule a retry.
    """

    async def _drain() -> Dict[str, object]:
        outcomes: Dict[str, object] = {}
        for task_id, payload in dispatch_queue.take().items():
            try:
                outcomes[task_id] = await dispatch_worker.handle_task(task_id, payload)
            except ProviderError as e:
                outcomes[task_id] = e
        return outcomes

    return _drain

