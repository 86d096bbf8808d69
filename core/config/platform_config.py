#!/usr/bin/env python3
"""SMS platform main configuration

Combines all sub-configs with the platform-wide settings shared by the
credit and campaign services.
"""
import os
from dataclasses import dataclass, field

from .infra_config import InfraConfig
from .logging_config import LoggingConfig
from .messaging_config import ProviderConfig, QueueConfig, SweepConfig, WebhookConfig


def _bool(val: str) -> bool:
    return val.lower() in ("true", "1", "yes")

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default


@dataclass
class PlatformConfig:
    """Main SMS platform configuration with all sub-configs"""

    # Environment
    environment: str = "development"
    debug: bool = False

    # Default service settings (each microservice overrides the port)
    default_host: str = "0.0.0.0"
    default_port: int = 8000

    # Owner whose message templates are visible to every tenant
    system_owner_id: str = "system"

    # Preview / stats
    preview_sample_size: int = 10
    stats_cache_ttl_seconds: int = 30

    # Sub-configurations
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    infrastructure: InfraConfig = field(default_factory=InfraConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)

    @classmethod
    def from_env(cls) -> 'PlatformConfig':
        """Load complete configuration from environment"""
        env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
        return cls(
            environment=env,
            debug=_bool(os.getenv("DEBUG", "true" if env == "development" else "false")),

            default_host=os.getenv("HOST", "0.0.0.0"),
            default_port=_int(os.getenv("PORT", "8000"), 8000),

            system_owner_id=os.getenv("SYSTEM_OWNER_ID", "system"),

            preview_sample_size=_int(os.getenv("PREVIEW_SAMPLE_SIZE", "10"), 10),
            stats_cache_ttl_seconds=_int(os.getenv("STATS_CACHE_TTL_SECONDS", "30"), 30),

            # Load sub-configs
            logging=LoggingConfig.from_env(),
            infrastructure=InfraConfig.from_env(),
            queue=QueueConfig.from_env(),
            provider=ProviderConfig.from_env(),
            webhook=WebhookConfig.from_env(),
            sweep=SweepConfig.from_env(),
        )
