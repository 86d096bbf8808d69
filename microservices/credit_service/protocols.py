"""
Credit Service Protocols

Defines interfaces for dependency injection and testing.
Following the protocol-based architecture pattern.
"""

from typing import Any, AsyncContextManager, Dict, List, Optional, Protocol, Tuple

from .models import (
    CreditPackage,
    CreditTransaction,
    CreditTransactionType,
    LedgerEntryResult,
    Purchase,
    Wallet,
)


# ====================
# Repository Protocol
# ====================


class CreditRepositoryProtocol(Protocol):
    """Protocol for credit ledger data repository"""

    async def initialize(self) -> None:
        """Initialize repository connection"""
        ...

    async def close(self) -> None:
        """Close repository connection"""
        ...

    async def health_check(self) -> bool:
        """Check repository health"""
        ...

    def transaction(self) -> AsyncContextManager[Any]:
        """Open a unit of work; yields a connection handle"""
        ...

    async def apply_entry(
        self,
        owner_id: str,
        transaction_type: CreditTransactionType,
        amount: int,
        reason: Optional[str] = None,
        campaign_id: Optional[str] = None,
        message_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        conn: Any = None,
    ) -> LedgerEntryResult:
        """
        Atomically lock the wallet, check sufficiency, update the balance and
        append the ledger entry. Raises InsufficientCreditsError for debits
        that would make the balance negative.
        """
        ...

    async def get_wallet(self, owner_id: str, conn: Any = None) -> Wallet:
        """Get wallet, creating an empty one on first access"""
        ...

    async def list_transactions(
        self, owner_id: str, limit: int = 10, offset: int = 0
    ) -> Tuple[List[CreditTransaction], int]:
        """List ledger entries newest first with total count"""
        ...

    async def list_packages(self, active_only: bool = True) -> List[CreditPackage]:
        """List credit packages ordered by units"""
        ...

    async def get_package(self, package_id: str) -> Optional[CreditPackage]:
        """Get credit package by ID"""
        ...

    async def create_purchase(self, purchase: Purchase, conn: Any = None) -> Purchase:
        """Record a package purchase"""
        ...


# ====================
# Event Bus Protocol
# ====================


class EventBusProtocol(Protocol):
    """Protocol for event bus operations"""

    async def publish_event(self, event: Any) -> bool:
        """Publish an event to the event bus"""
        ...

    async def close(self) -> None:
        """Close event bus connection"""
        ...


# ====================
# Custom Exceptions
# ====================


class CreditServiceError(Exception):
    """Base exception for credit service errors"""
    pass


class InvalidAmountError(CreditServiceError):
    """Raised when an amount is not a positive integer"""

    def __init__(self, message: str, amount: Any = None):
        super().__init__(message)
        self.amount = amount


class InsufficientCreditsError(CreditServiceError):
    """Raised when a debit would make the balance negative"""

    def __init__(
        self,
        message: str,
        available: Optional[int] = None,
        required: Optional[int] = None,
    ):
        super().__init__(message)
        self.available = available
        self.required = required


class CreditPackageNotFoundError(CreditServiceError):
    """Raised when a credit package is missing or inactive"""
    pass


__all__ = [
    "CreditRepositoryProtocol",
    "EventBusProtocol",
    "CreditServiceError",
    "InvalidAmountError",
    "InsufficientCreditsError",
    "CreditPackageNotFoundError",
]
