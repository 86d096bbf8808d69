"""
Credit Service - Business Logic Layer

The credit ledger: one integer wallet per owner, mutated only through
credit / debit / refund, each of which appends an immutable ledger entry
with the post-balance snapshot in the same atomic unit.

Rules:
- Amounts are positive integers
- A debit never drives the balance below zero (InsufficientCreditsError)
- A refund is a credit tagged as such; refunds keyed by an idempotency key
  are applied at most once per owner
- Package purchases record the purchase and credit its units together
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.nats_client import EventType, ServiceSource, create_event

from .models import (
    BalanceResponse,
    CreditPackage,
    CreditTransactionType,
    LedgerEntryResult,
    Purchase,
    PurchaseResponse,
    PurchaseStatus,
    TransactionListResponse,
)
from .protocols import (
    CreditPackageNotFoundError,
    CreditRepositoryProtocol,
    EventBusProtocol,
    InvalidAmountError,
)

logger = logging.getLogger(__name__)


class CreditService:
    """
    Credit Service - Core business logic

    Ledger operations accept an optional ``conn`` so that callers (the
    campaign enqueue transaction) can debit inside their own unit of work.
    Events are only published for standalone operations; a caller that owns
    the transaction is responsible for announcing its own outcome.
    """

    MAX_PAGE_SIZE = 100

    def __init__(
        self,
        repository: CreditRepositoryProtocol,
        event_bus: Optional[EventBusProtocol] = None,
    ):
        """
        Initialize credit service with dependencies.

        Args:
            repository: Credit repository for data access
            event_bus: Event bus for publishing events (optional)
        """
        self.repository = repository
        self.event_bus = event_bus

    # ====================
    # Ledger Operations
    # ====================

    async def credit(
        self,
        owner_id: str,
        amount: int,
        reason: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        conn: Any = None,
    ) -> LedgerEntryResult:
        """
        Increase an owner's balance.

        Raises:
            InvalidAmountError: amount is not a positive integer
        """
        self._validate_amount(amount)
        result = await self.repository.apply_entry(
            owner_id=owner_id,
            transaction_type=CreditTransactionType.CREDIT,
            amount=amount,
            reason=reason,
            meta=meta,
            conn=conn,
        )
        logger.info(f"Credited {amount} to {owner_id}, balance={result.balance}")

        if conn is None:
            await self._publish_event(EventType.CREDIT_CREDITED, result)
        return result

    async def debit(
        self,
        owner_id: str,
        amount: int,
        reason: Optional[str] = None,
        campaign_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        conn: Any = None,
    ) -> LedgerEntryResult:
        """
        Decrease an owner's balance if sufficient.

        The wallet row is locked for the duration of the check and the
        update, so concurrent debits for one owner serialize.

        Raises:
            InvalidAmountError: amount is not a positive integer
            InsufficientCreditsError: balance - amount would be negative;
                nothing is written
        """
        self._validate_amount(amount)
        result = await self.repository.apply_entry(
            owner_id=owner_id,
            transaction_type=CreditTransactionType.DEBIT,
            amount=amount,
            reason=reason,
            campaign_id=campaign_id,
            meta=meta,
            conn=conn,
        )
        logger.info(f"Debited {amount} from {owner_id}, balance={result.balance}")

        if conn is None:
            await self._publish_event(EventType.CREDIT_DEBITED, result)
        return result

    async def refund(
        self,
        owner_id: str,
        amount: int,
        reason: Optional[str] = None,
        campaign_id: Optional[str] = None,
        message_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        conn: Any = None,
    ) -> LedgerEntryResult:
        """
        Return credits to an owner.

        With an ``idempotency_key`` a repeated refund returns the original
        entry (``applied=False``) and leaves the balance untouched.
        """
        self._validate_amount(amount)
        result = await self.repository.apply_entry(
            owner_id=owner_id,
            transaction_type=CreditTransactionType.REFUND,
            amount=amount,
            reason=reason,
            campaign_id=campaign_id,
            message_id=message_id,
            meta=meta,
            idempotency_key=idempotency_key,
            conn=conn,
        )

        if not result.applied:
            logger.info(f"Refund {idempotency_key} already applied for {owner_id}")
            return result

        logger.info(f"Refunded {amount} to {owner_id} ({reason}), balance={result.balance}")
        if conn is None:
            await self._publish_event(EventType.CREDIT_REFUNDED, result)
        return result

    def _validate_amount(self, amount: Any) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(f"Amount must be a positive integer, got {amount!r}", amount=amount)

    # ====================
    # Queries
    # ====================

    async def get_balance(self, owner_id: str) -> BalanceResponse:
        """Current balance; the wallet is created on first access"""
        wallet = await self.repository.get_wallet(owner_id)
        return BalanceResponse(owner_id=owner_id, balance=wallet.balance)

    async def list_transactions(
        self, owner_id: str, page: int = 1, page_size: int = 10
    ) -> TransactionListResponse:
        """Paginated ledger entries, newest first"""
        page = max(1, page)
        page_size = min(self.MAX_PAGE_SIZE, max(1, page_size))

        items, total = await self.repository.list_transactions(
            owner_id, limit=page_size, offset=(page - 1) * page_size
        )
        return TransactionListResponse(page=page, page_size=page_size, total=total, items=items)

    async def list_packages(self) -> List[CreditPackage]:
        """Active credit packages ordered by units"""
        return await self.repository.list_packages(active_only=True)

    # ====================
    # Purchases
    # ====================

    async def purchase_package(self, owner_id: str, package_id: str) -> PurchaseResponse:
        """
        Buy a credit package.

        The purchase record and the credit entry are written in one
        transaction.

        Raises:
            CreditPackageNotFoundError: package missing or inactive
        """
        package = await self.repository.get_package(package_id)
        if not package or not package.active:
            raise CreditPackageNotFoundError(f"Credit package not found: {package_id}")

        purchase = Purchase(
            purchase_id=f"pur_{uuid.uuid4().hex[:16]}",
            owner_id=owner_id,
            package_id=package.package_id,
            units=package.units,
            price_cents=package.price_cents,
            status=PurchaseStatus.PAID,
            created_at=datetime.now(timezone.utc),
        )

        async with self.repository.transaction() as conn:
            purchase = await self.repository.create_purchase(purchase, conn=conn)
            result = await self.repository.apply_entry(
                owner_id=owner_id,
                transaction_type=CreditTransactionType.CREDIT,
                amount=package.units,
                reason=f"purchase:{package.name}",
                meta={"package_id": package.package_id, "purchase_id": purchase.purchase_id},
                conn=conn,
            )

        logger.info(f"Owner {owner_id} purchased package {package.name} ({package.units} credits)")
        await self._publish_event(
            EventType.CREDIT_PURCHASED,
            result,
            extra={"package_id": package.package_id, "purchase_id": purchase.purchase_id},
        )

        return PurchaseResponse(
            purchase=purchase,
            credited=package.units,
            balance=result.balance,
            transaction=result.transaction,
        )

    # ====================
    # Health Check
    # ====================

    async def health_check(self) -> Dict[str, Any]:
        """Check service health"""
        db_healthy = await self.repository.health_check()
        return {
            "status": "healthy" if db_healthy else "degraded",
            "database": "connected" if db_healthy else "disconnected",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # ====================
    # Event Publishing
    # ====================

    async def _publish_event(
        self,
        event_type: EventType,
        result: LedgerEntryResult,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish a ledger event; failures are logged, never raised"""
        if not self.event_bus:
            return

        txn = result.transaction
        try:
            event = create_event(
                event_type=event_type,
                source=ServiceSource.CREDIT_SERVICE,
                data={
                    "owner_id": txn.owner_id,
                    "transaction_id": txn.transaction_id,
                    "amount": txn.amount,
                    "balance_after": result.balance,
                    "reason": txn.reason,
                    "campaign_id": txn.campaign_id,
                    "message_id": txn.message_id,
                    **(extra or {}),
                },
            )
            await self.event_bus.publish_event(event)
        except Exception as e:
            logger.warning(f"Failed to publish event {event_type.value}: {e}")


__all__ = ["CreditService"]
