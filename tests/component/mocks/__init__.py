"""
Component Test Mocks

Shared mock implementations for component testing.
These mocks replace real I/O dependencies (database, NATS, Redis, HTTP).
"""

from .db_mock import InMemoryPlatformStore, MockCampaignRepository, MockCreditRepository
from .http_mock import MockSmsProvider
from .nats_mock import MockEventBus
from .queue_mock import MockStatsCache, MockTaskDispatcher

__all__ = [
    "InMemoryPlatformStore",
    "MockCampaignRepository",
    "MockCreditRepository",
    "MockSmsProvider",
    "MockEventBus",
    "MockStatsCache",
    "MockTaskDispatcher",
]
