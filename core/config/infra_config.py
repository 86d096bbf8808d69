#!/usr/bin/env python3
"""Infrastructure services configuration

Endpoints for the backing services used by the SMS platform, all reached
through native drivers (asyncpg, redis, nats-py).
"""
import os
from dataclasses import dataclass

def _bool(val: str) -> bool:
    return val.lower() in ("true", "1", "yes")

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass
class InfraConfig:
    """Infrastructure service endpoints"""

    # ===========================================
    # PostgreSQL (native asyncpg - port 5432)
    # ===========================================
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "postgres"
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_pool_min: int = 1
    postgres_pool_max: int = 10

    # ===========================================
    # Redis (native - port 6379)
    # ===========================================
    redis_url: str = "redis://localhost:6379/0"
    redis_enabled: bool = True

    # ===========================================
    # NATS (native - port 4222)
    # ===========================================
    nats_url: str = "nats://localhost:4222"

    @classmethod
    def from_env(cls) -> 'InfraConfig':
        """Load infrastructure config from environment"""
        nats_url = os.getenv("NATS_URL")
        if not nats_url:
            nats_host = os.getenv("NATS_HOST", "localhost")
            nats_port = _int(os.getenv("NATS_PORT", "4222"), 4222)
            nats_url = f"nats://{nats_host}:{nats_port}"

        return cls(
            # PostgreSQL
            postgres_host=os.getenv("POSTGRES_HOST", "localhost"),
            postgres_port=_int(os.getenv("POSTGRES_PORT", "5432"), 5432),
            postgres_db=os.getenv("POSTGRES_DB", "postgres"),
            postgres_user=os.getenv("POSTGRES_USER", "postgres"),
            postgres_password=os.getenv("POSTGRES_PASSWORD", "postgres"),
            postgres_pool_min=_int(os.getenv("POSTGRES_POOL_MIN", "1"), 1),
            postgres_pool_max=_int(os.getenv("POSTGRES_POOL_MAX", "10"), 10),

            # Redis
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            redis_enabled=_bool(os.getenv("REDIS_ENABLED", "true")),

            # NATS
            nats_url=nats_url,
        )
