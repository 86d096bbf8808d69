"""
Credit Service Contracts

Test data factory for credit_service: owner ids, ledger amounts,
idempotency keys and credit packages.
"""

from .data_contract import CreditTestDataFactory

__all__ = ["CreditTestDataFactory"]
