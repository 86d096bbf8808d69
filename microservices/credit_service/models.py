"""
Credit Service Data Models

Wallets, append-only credit transactions, credit packages and purchases.
One wallet per owner; balances are whole credit units and never negative.
"""

from enum import Enum
from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel, Field


# ====================
# Enumerations
# ====================

class CreditTransactionType(str, Enum):
    """Ledger entry type"""
    CREDIT = "credit"
    DEBIT = "debit"
    REFUND = "refund"

    @property
    def sign(self) -> int:
        """Direction applied to the wallet balance"""
        return -1 if self is CreditTransactionType.DEBIT else 1


class PurchaseStatus(str, Enum):
    """Purchase payment status"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


# ====================
# Core Models
# ====================

class Wallet(BaseModel):
    """Per-owner credit balance"""
    owner_id: str
    balance: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CreditTransaction(BaseModel):
    """Immutable ledger entry"""
    transaction_id: str
    owner_id: str
    transaction_type: CreditTransactionType
    amount: int = Field(..., gt=0)
    balance_after: int = Field(..., ge=0)
    reason: Optional[str] = None
    campaign_id: Optional[str] = None
    message_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    @property
    def signed_amount(self) -> int:
        return self.transaction_type.sign * self.amount


class LedgerEntryResult(BaseModel):
    """Outcome of a ledger operation"""
    balance: int
    transaction: CreditTransaction
    applied: bool = True


class CreditPackage(BaseModel):
    """Purchasable bundle of credit units"""
    package_id: str
    name: str
    units: int = Field(..., gt=0)
    price_cents: int = Field(..., ge=0)
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Purchase(BaseModel):
    """Record of a package purchase"""
    purchase_id: str
    owner_id: str
    package_id: str
    units: int
    price_cents: int
    status: PurchaseStatus = PurchaseStatus.PAID
    created_at: Optional[datetime] = None


# ====================
# Request Models
# ====================

class PurchaseRequest(BaseModel):
    """Request to buy a credit package"""
    package_id: str = Field(..., min_length=1)


# ====================
# Response Models
# ====================

class BalanceResponse(BaseModel):
    """Current wallet balance"""
    owner_id: str
    balance: int


class TransactionListResponse(BaseModel):
    """Paginated ledger entries, newest first"""
    page: int
    page_size: int
    total: int
    items: List[CreditTransaction] = Field(default_factory=list)


class PurchaseResponse(BaseModel):
    """Result of a package purchase"""
    ok: bool = True
    purchase: Purchase
    credited: int
    balance: int
    transaction: CreditTransaction


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    port: int
    version: str
    dependencies: Dict[str, str] = Field(default_factory=dict)


class ReadinessResponse(BaseModel):
    """Readiness check response"""
    ready: bool
    checks: Dict[str, bool] = Field(default_factory=dict)
    details: Dict[str, str] = Field(default_factory=dict)


class LivenessResponse(BaseModel):
    """Liveness check response"""
    alive: bool
    uptime_seconds: float


__all__ = [
    # Enums
    "CreditTransactionType",
    "PurchaseStatus",
    # Models
    "Wallet",
    "CreditTransaction",
    "LedgerEntryResult",
    "CreditPackage",
    "Purchase",
    # Requests / responses
    "PurchaseRequest",
    "BalanceResponse",
    "TransactionListResponse",
    "PurchaseResponse",
    "HealthResponse",
    "ReadinessResponse",
    "LivenessResponse",
]
