"""
Credit Service

Prepaid credit ledger for the SMS platform.

Features:
- One wallet per owner, balance never negative
- Append-only credit / debit / refund entries with balance snapshots
- Row-locked debits so concurrent spends for one owner serialize
- Idempotent refunds keyed per owner
- Credit packages and purchases
"""

__version__ = "1.0.0"
