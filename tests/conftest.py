"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers:
    - api/        : HTTP contract tests (FastAPI app, in-memory factory)
    - integration/: Repository tests against a real PostgreSQL (skipped without one)
    - component/  : Service tests with in-memory repositories and mocks
    - unit/       : Pure functions, models and small clients, no I/O
"""
import os
import sys

import pytest

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

# Keep test runs independent of a developer's .env
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("WEBHOOK_SECRET", "test-webhook-secret")


# =============================================================================
# Test Configuration
# =============================================================================


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: pure unit tests")
    config.addinivalue_line("markers", "component: service tests with mocked dependencies")
    config.addinivalue_line("markers", "integration: tests against real infrastructure")
    config.addinivalue_line("markers", "api: HTTP contract tests")
    config.addinivalue_line("markers", "requires_db: needs a reachable PostgreSQL")
