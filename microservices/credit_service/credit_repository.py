"""
Credit Repository - Data access layer for the credit ledger

PostgreSQL (asyncpg) storage for wallets, credit transactions, packages and
purchases. Every balance change goes through ``apply_entry`` which locks the
owner's wallet row (SELECT ... FOR UPDATE) so the sufficiency check, the
balance update and the ledger insert are never interleaved with another
operation on the same wallet.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import asyncpg

from core.postgres_client import PostgresClient
from .models import (
    CreditPackage,
    CreditTransaction,
    CreditTransactionType,
    LedgerEntryResult,
    Purchase,
    PurchaseStatus,
    Wallet,
)
from .protocols import InsufficientCreditsError

logger = logging.getLogger(__name__)


class CreditRepository:
    """Credit ledger repository - PostgreSQL (asyncpg)"""

    def __init__(self, db: PostgresClient):
        self.db = db
        self.schema = "sms"

        # Table names
        self.wallets_table = "wallets"
        self.transactions_table = "credit_transactions"
        self.packages_table = "credit_packages"
        self.purchases_table = "purchases"

    async def initialize(self):
        """Initialize database connection"""
        await self.db.initialize()
        logger.info("Credit repository initialized with PostgreSQL")

    async def close(self):
        """Close database connection"""
        logger.info("Credit repository closed")

    async def health_check(self) -> bool:
        """Check repository health"""
        return await self.db.health_check()

    def transaction(self):
        """Unit of work spanning several repository calls"""
        return self.db.transaction()

    # ====================
    # Ledger
    # ====================

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
        conn: Optional[asyncpg.Connection] = None,
    ) -> LedgerEntryResult:
        """Apply one ledger entry atomically (savepoint when conn is given)"""
        try:
            async with self.db.transaction(conn) as c:
                await c.execute(
                    f'''
                    INSERT INTO {self.schema}.{self.wallets_table} (owner_id, balance, created_at, updated_at)
                    VALUES ($1, 0, NOW(), NOW())
                    ON CONFLICT (owner_id) DO NOTHING
                    ''',
                    owner_id,
                )
                balance = await c.fetchval(
                    f'''
                    SELECT balance FROM {self.schema}.{self.wallets_table}
                    WHERE owner_id = $1
                    FOR UPDATE
                    ''',
                    owner_id,
                )

                # Checked under the wallet lock so concurrent retries serialize
                if idempotency_key:
                    existing = await self._find_by_key(c, owner_id, idempotency_key)
                    if existing:
                        logger.info(
                            f"Ledger entry {idempotency_key} for owner {owner_id} already applied"
                        )
                        return LedgerEntryResult(balance=balance, transaction=existing, applied=False)

                new_balance = balance + transaction_type.sign * amount
                if new_balance < 0:
                    raise InsufficientCreditsError(
                        "Insufficient credits",
                        available=balance,
                        required=amount,
                    )

                await c.execute(
                    f'''
                    UPDATE {self.schema}.{self.wallets_table}
                    SET balance = $2, updated_at = NOW()
                    WHERE owner_id = $1
                    ''',
                    owner_id,
                    new_balance,
                )

                row = await c.fetchrow(
                    f'''
                    INSERT INTO {self.schema}.{self.transactions_table} (
                        transaction_id, owner_id, transaction_type, amount, balance_after,
                        reason, campaign_id, message_id, idempotency_key, meta, created_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                    RETURNING *
                    ''',
                    f"cred_txn_{uuid.uuid4().hex[:20]}",
                    owner_id,
                    transaction_type.value,
                    amount,
                    new_balance,
                    reason,
                    campaign_id,
                    message_id,
                    idempotency_key,
                    meta or {},
                    datetime.now(timezone.utc),
                )

                return LedgerEntryResult(
                    balance=new_balance,
                    transaction=self._row_to_transaction(dict(row)),
                )

        except asyncpg.UniqueViolationError:
            # Lost a race on the idempotency key; the savepoint was rolled back
            existing = await self._find_by_key(conn, owner_id, idempotency_key)
            if existing is None:
                raise
            wallet = await self.get_wallet(owner_id, conn=conn)
            return LedgerEntryResult(balance=wallet.balance, transaction=existing, applied=False)

    async def _find_by_key(
        self, conn: Optional[asyncpg.Connection], owner_id: str, idempotency_key: str
    ) -> Optional[CreditTransaction]:
        row = await self.db.query_row(
            f'''
            SELECT * FROM {self.schema}.{self.transactions_table}
            WHERE owner_id = $1 AND idempotency_key = $2
            ''',
            [owner_id, idempotency_key],
            conn=conn,
        )
        return self._row_to_transaction(row) if row else None

    async def get_wallet(self, owner_id: str, conn: Optional[asyncpg.Connection] = None) -> Wallet:
        """Get wallet, creating an empty one on first access"""
        try:
            row = await self.db.query_row(
                f'''
                INSERT INTO {self.schema}.{self.wallets_table} (owner_id, balance, created_at, updated_at)
                VALUES ($1, 0, NOW(), NOW())
                ON CONFLICT (owner_id) DO UPDATE SET owner_id = EXCLUDED.owner_id
                RETURNING *
                ''',
                [owner_id],
                conn=conn,
            )
            return Wallet(**row)

        except Exception as e:
            logger.error(f"Error getting wallet for {owner_id}: {e}", exc_info=True)
            raise

    async def list_transactions(
        self, owner_id: str, limit: int = 10, offset: int = 0
    ) -> Tuple[List[CreditTransaction], int]:
        """List ledger entries newest first with total count"""
        try:
            total = await self.db.query_value(
                f"SELECT COUNT(*) FROM {self.schema}.{self.transactions_table} WHERE owner_id = $1",
                [owner_id],
            )
            rows = await self.db.query(
                f'''
                SELECT * FROM {self.schema}.{self.transactions_table}
                WHERE owner_id = $1
                ORDER BY created_at DESC, transaction_id DESC
                LIMIT $2 OFFSET $3
                ''',
                [owner_id, limit, offset],
            )
            return [self._row_to_transaction(r) for r in rows], int(total or 0)

        except Exception as e:
            logger.error(f"Error listing transactions for {owner_id}: {e}", exc_info=True)
            raise

    # ====================
    # Packages & Purchases
    # ====================

    async def list_packages(self, active_only: bool = True) -> List[CreditPackage]:
        """List credit packages ordered by units"""
        query = f"SELECT * FROM {self.schema}.{self.packages_table}"
        if active_only:
            query += " WHERE active = TRUE"
        query += " ORDER BY units ASC"

        rows = await self.db.query(query)
        return [CreditPackage(**r) for r in rows]

    async def get_package(self, package_id: str) -> Optional[CreditPackage]:
        """Get credit package by ID"""
        row = await self.db.query_row(
            f"SELECT * FROM {self.schema}.{self.packages_table} WHERE package_id = $1",
            [package_id],
        )
        return CreditPackage(**row) if row else None

    async def create_purchase(
        self, purchase: Purchase, conn: Optional[asyncpg.Connection] = None
    ) -> Purchase:
        """Record a package purchase"""
        try:
            row = await self.db.query_row(
                f'''
                INSERT INTO {self.schema}.{self.purchases_table} (
                    purchase_id, owner_id, package_id, units, price_cents, status, created_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING *
                ''',
                [
                    purchase.purchase_id,
                    purchase.owner_id,
                    purchase.package_id,
                    purchase.units,
                    purchase.price_cents,
                    purchase.status.value,
                    purchase.created_at or datetime.now(timezone.utc),
                ],
                conn=conn,
            )
            return Purchase(**{**row, "status": PurchaseStatus(row["status"])})

        except Exception as e:
            logger.error(f"Error creating purchase: {e}", exc_info=True)
            raise

    # ====================
    # Row Mapping
    # ====================

    def _row_to_transaction(self, row: Dict[str, Any]) -> CreditTransaction:
        return CreditTransaction(
            transaction_id=row["transaction_id"],
            owner_id=row["owner_id"],
            transaction_type=CreditTransactionType(row["transaction_type"]),
            amount=row["amount"],
            balance_after=row["balance_after"],
            reason=row.get("reason"),
            campaign_id=row.get("campaign_id"),
            message_id=row.get("message_id"),
            idempotency_key=row.get("idempotency_key"),
            meta=row.get("meta") or {},
            created_at=row.get("created_at"),
        )


__all__ = ["CreditRepository"]
