#!/usr/bin/env python3
"""
Core Module for the SMS platform microservices

Shared infrastructure used by every service:

COMPONENTS:
    - config/: dataclass configuration loaded from the environment
    - postgres_client.py: asyncpg pool wrapper with transaction helpers
    - nats_client.py: NATS JetStream event bus
    - task_queue.py: JetStream task dispatcher and worker
    - cache.py: failure-tolerant Redis cache
    - logging_setup.py: logging configuration

USAGE:
    from core.config import get_settings
    from core.postgres_client import get_postgres_client

    settings = get_settings()
    db = await get_postgres_client("campaign_service")
"""
