"""
Campaign Service Factory

Factory for creating campaign service instances with proper dependency injection.
This is the ONLY module that imports concrete implementations.

The same factory backs the HTTP API and the background worker process; the
credit ledger shares the campaign service's connection pool so the enqueue
debit joins the campaign transaction.
"""

import logging
from typing import Optional

from core.cache import RedisCache
from core.config import PlatformConfig, get_settings
from core.nats_client import NATSEventBus
from core.postgres_client import PostgresClient
from core.task_queue import JetStreamTaskDispatcher
from microservices.credit_service.credit_service import CreditService
from microservices.credit_service.factory import create_credit_service

from .campaign_repository import CampaignRepository
from .campaign_service import CampaignService
from .clients.sms_provider_client import MittoClient
from .dispatch_worker import MessageDispatchWorker
from .events.publishers import CampaignEventPublisher
from .finalizer import CampaignFinalizer
from .reconciliation import DeliveryReconciler, InboundMessageHandler
from .scheduler import CampaignScheduler
from .sweeper import QueuedMessageSweeper

logger = logging.getLogger(__name__)

DISPATCH_QUEUE = "dispatch"
SCHEDULE_QUEUE = "schedule"


class CampaignServiceFactory:
    """Factory for creating campaign service components"""

    def __init__(self, config: Optional[PlatformConfig] = None):
        self.config = config or get_settings()
        self._db: Optional[PostgresClient] = None
        self._repository: Optional[CampaignRepository] = None
        self._ledger: Optional[CreditService] = None
        self._nats_client: Optional[NATSEventBus] = None
        self._dispatch_queue: Optional[JetStreamTaskDispatcher] = None
        self._schedule_queue: Optional[JetStreamTaskDispatcher] = None
        self._cache: Optional[RedisCache] = None
        self._provider: Optional[MittoClient] = None
        self._event_publisher: Optional[CampaignEventPublisher] = None
        self._finalizer: Optional[CampaignFinalizer] = None
        self._reconciler: Optional[DeliveryReconciler] = None
        self._inbound_handler: Optional[InboundMessageHandler] = None
        self._service: Optional[CampaignService] = None
        self._dispatch_worker: Optional[MessageDispatchWorker] = None
        self._sweeper: Optional[QueuedMessageSweeper] = None

    async def initialize(self) -> None:
        """Initialize all components"""
        logger.info("Initializing Campaign Service components...")

        # Initialize repository
        self._db = PostgresClient("campaign_service", config=self.config.infrastructure)
        self._repository = CampaignRepository(self._db)
        await self._repository.initialize()

        # Initialize NATS client and task queues
        try:
            self._nats_client = NATSEventBus(
                service_name="campaign_service",
                url=self.config.infrastructure.nats_url,
            )
            await self._nats_client.connect()
            logger.info("NATS client connected")
        except Exception as e:
            logger.warning(f"NATS client initialization failed: {e}")
            self._nats_client = None

        if self._nats_client:
            try:
                self._dispatch_queue = JetStreamTaskDispatcher(
                    self._nats_client, DISPATCH_QUEUE, self.config.queue
                )
                await self._dispatch_queue.initialize()
                self._schedule_queue = JetStreamTaskDispatcher(
                    self._nats_client,
                    SCHEDULE_QUEUE,
                    self.config.queue,
                    clear_cancellation_on_enqueue=True,
                )
                await self._schedule_queue.initialize()
            except Exception as e:
                logger.warning(f"Task queue initialization failed, dispatch degraded: {e}")
                self._dispatch_queue = None
                self._schedule_queue = None

        # Cache (failure tolerant)
        self._cache = RedisCache(
            url=self.config.infrastructure.redis_url,
            enabled=self.config.infrastructure.redis_enabled,
        )
        await self._cache.initialize()

        self._ledger = create_credit_service(self._db, event_bus=self._nats_client)
        self._provider = MittoClient(self.config.provider)
        self._event_publisher = CampaignEventPublisher(self._nats_client)
        self._finalizer = CampaignFinalizer(self._repository, self._cache, self._event_publisher)
        self._reconciler = DeliveryReconciler(
            self._repository,
            self._finalizer,
            self._event_publisher,
            provider=self.config.webhook.provider,
        )
        self._inbound_handler = InboundMessageHandler(
            self._repository,
            self._event_publisher,
            default_country_code=self.config.webhook.default_country_code,
            provider=self.config.webhook.provider,
        )

        # Initialize main service
        self._service = CampaignService(
            repository=self._repository,
            ledger=self._ledger,
            dispatcher=self._dispatch_queue,
            scheduler=CampaignScheduler(self._schedule_queue),
            finalizer=self._finalizer,
            cache=self._cache,
            publisher=self._event_publisher,
            system_owner_id=self.config.system_owner_id,
            preview_sample_size=self.config.preview_sample_size,
            stats_cache_ttl=self.config.stats_cache_ttl_seconds,
        )

        self._dispatch_worker = MessageDispatchWorker(
            repository=self._repository,
            ledger=self._ledger,
            provider=self._provider,
            reconciler=self._reconciler,
            finalizer=self._finalizer,
            publisher=self._event_publisher,
            default_sender=self.config.provider.default_sender,
            lease_seconds=self.config.sweep.dispatch_lease_seconds,
            max_attempts=self.config.queue.attempts,
        )

        if self._dispatch_queue:
            self._sweeper = QueuedMessageSweeper(
                self._repository, self._dispatch_queue, self._finalizer, self.config.sweep
            )

        logger.info("Campaign Service components initialized")

    async def close(self) -> None:
        """Close all components"""
        logger.info("Closing Campaign Service components...")

        if self._provider:
            await self._provider.close()

        if self._cache:
            await self._cache.close()

        if self._nats_client:
            await self._nats_client.close()

        if self._repository:
            await self._repository.close()

        if self._db:
            await self._db.close()

        logger.info("Campaign Service components closed")

    @property
    def repository(self) -> CampaignRepository:
        """Get campaign repository"""
        if not self._repository:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._repository

    @property
    def service(self) -> CampaignService:
        """Get campaign service"""
        if not self._service:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._service

    @property
    def reconciler(self) -> DeliveryReconciler:
        """Get delivery reconciler"""
        if not self._reconciler:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._reconciler

    @property
    def inbound_handler(self) -> InboundMessageHandler:
        """Get inbound message handler"""
        if not self._inbound_handler:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._inbound_handler

    @property
    def dispatch_worker(self) -> MessageDispatchWorker:
        """Get dispatch task handler"""
        if not self._dispatch_worker:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._dispatch_worker

    @property
    def sweeper(self) -> Optional[QueuedMessageSweeper]:
        """Get sweeper (None without a dispatch queue)"""
        return self._sweeper

    @property
    def dispatch_queue(self) -> Optional[JetStreamTaskDispatcher]:
        return self._dispatch_queue

    @property
    def schedule_queue(self) -> Optional[JetStreamTaskDispatcher]:
        return self._schedule_queue

    @property
    def cache(self) -> Optional[RedisCache]:
        return self._cache

    @property
    def nats_client(self) -> Optional[NATSEventBus]:
        """Get NATS client"""
        return self._nats_client

    @property
    def event_publisher(self) -> Optional[CampaignEventPublisher]:
        """Get event publisher"""
        return self._event_publisher


# Global factory instance
_factory: Optional[CampaignServiceFactory] = None


async def get_factory() -> CampaignServiceFactory:
    """Get or create factory instance"""
    global _factory
    if _factory is None:
        _factory = CampaignServiceFactory()
        await _factory.initialize()
    return _factory


async def close_factory() -> None:
    """Close factory instance"""
    global _factory
    if _factory:
        await _factory.close()
        _factory = None


__all__ = [
    "CampaignServiceFactory",
    "get_factory",
    "close_factory",
    "DISPATCH_QUEUE",
    "SCHEDULE_QUEUE",
]
