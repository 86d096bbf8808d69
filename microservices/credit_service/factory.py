"""
Credit Service Factory

Factory for creating credit service instances with proper dependency injection.
This is the ONLY module that imports concrete implementations.
"""

import logging
from typing import Optional

from core.config import PlatformConfig, get_settings
from core.nats_client import NATSEventBus
from core.postgres_client import PostgresClient

from .credit_repository import CreditRepository
from .credit_service import CreditService

logger = logging.getLogger(__name__)


def create_credit_service(
    db: PostgresClient,
    event_bus: Optional[NATSEventBus] = None,
) -> CreditService:
    """
    Create CreditService on an existing PostgreSQL client

    Other services (campaign enqueue) use this to obtain a ledger that shares
    their connection pool, so a debit can join their transaction.

    Args:
        db: Initialized or uninitialized PostgreSQL client
        event_bus: Optional event bus for event publishing

    Returns:
        CreditService instance
    """
    repository = CreditRepository(db)
    return CreditService(repository=repository, event_bus=event_bus)


class CreditServiceFactory:
    """Factory for creating credit service components"""

    def __init__(self, config: Optional[PlatformConfig] = None):
        self.config = config or get_settings()
        self._db: Optional[PostgresClient] = None
        self._repository: Optional[CreditRepository] = None
        self._service: Optional[CreditService] = None
        self._nats_client: Optional[NATSEventBus] = None

    async def initialize(self) -> None:
        """Initialize all components"""
        logger.info("Initializing Credit Service components...")

        self._db = PostgresClient("credit_service", config=self.config.infrastructure)
        self._repository = CreditRepository(self._db)
        await self._repository.initialize()

        # NATS is optional; the ledger works without events
        try:
            self._nats_client = NATSEventBus(
                service_name="credit_service",
                url=self.config.infrastructure.nats_url,
            )
            await self._nats_client.connect()
            logger.info("NATS client connected")
        except Exception as e:
            logger.warning(f"NATS client initialization failed: {e}")
            self._nats_client = None

        self._service = CreditService(
            repository=self._repository,
            event_bus=self._nats_client,
        )

        logger.info("Credit Service components initialized")

    async def close(self) -> None:
        """Close all components"""
        logger.info("Closing Credit Service components...")

        if self._nats_client:
            await self._nats_client.close()

        if self._db:
            await self._db.close()

        logger.info("Credit Service components closed")

    @property
    def repository(self) -> CreditRepository:
        """Get credit repository"""
        if not self._repository:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._repository

    @property
    def service(self) -> CreditService:
        """Get credit service"""
        if not self._service:
            raise RuntimeError("Factory not initialized. Call initialize() first.")
        return self._service

    @property
    def nats_client(self) -> Optional[NATSEventBus]:
        """Get NATS client"""
        return self._nats_client


# Global factory instance
_factory: Optional[CreditServiceFactory] = None


async def get_factory() -> CreditServiceFactory:
    """Get or create factory instance"""
    global _factory
    if _factory is None:
        _factory = CreditServiceFactory()
        await _factory.initialize()
    return _factory


async def close_factory() -> None:
    """Close factory instance"""
    global _factory
    if _factory:
        await _factory.close()
        _factory = None


__all__ = [
    "create_credit_service",
    "CreditServiceFactory",
    "get_factory",
    "close_factory",
]
