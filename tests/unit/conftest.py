"""
Unit Test Layer Configuration

Pure functions, models and small clients; no database, queue or network.

Structure:
    tests/unit/
    ├── campaign/    SMS helpers, DLR parsing, webhook auth, models, provider client
    ├── credit/      Ledger amount rules, paging, event publishing
    └── core/        Task queue worker and rate limiter

Usage:
    pytest tests/unit -v                 # All unit tests
    pytest tests/unit -m unit -v         # By marker
"""
import os
import sys

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
