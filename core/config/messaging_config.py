#!/usr/bin/env python3
"""Messaging pipeline configuration

Task queue, SMS provider, webhook and sweep settings for the campaign
delivery pipeline.
"""
import os
from dataclasses import dataclass
from typing import Optional

def _bool(val: str) -> bool:
    return val.lower() in ("true", "1", "yes")

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default


@dataclass
class QueueConfig:
    """Task queue (JetStream) settings"""
    attempts: int = 5
    backoff_ms: int = 3000
    rate_max: int = 20
    rate_duration_ms: int = 1000
    disabled: bool = False

    worker_concurrency: int = 5
    scheduler_concurrency: int = 2

    stream_name: str = "sms-tasks"
    subject_prefix: str = "sms.tasks"
    cancel_bucket: str = "sms-task-cancellations"
    cancel_ttl_seconds: int = 90 * 24 * 3600
    duplicate_window_seconds: int = 120
    ack_wait_seconds: int = 60

    @classmethod
    def from_env(cls) -> 'QueueConfig':
        return cls(
            attempts=_int(os.getenv("QUEUE_ATTEMPTS", "5"), 5),
            backoff_ms=_int(os.getenv("QUEUE_BACKOFF_MS", "3000"), 3000),
            rate_max=_int(os.getenv("QUEUE_RATE_MAX", "20"), 20),
            rate_duration_ms=_int(os.getenv("QUEUE_RATE_DURATION_MS", "1000"), 1000),
            disabled=_bool(os.getenv("QUEUE_DISABLED", "false")),
            worker_concurrency=_int(os.getenv("WORKER_CONCURRENCY", "5"), 5),
            scheduler_concurrency=_int(os.getenv("SCHEDULER_CONCURRENCY", "2"), 2),
            stream_name=os.getenv("QUEUE_STREAM_NAME", "sms-tasks"),
            subject_prefix=os.getenv("QUEUE_SUBJECT_PREFIX", "sms.tasks"),
            cancel_bucket=os.getenv("QUEUE_CANCEL_BUCKET", "sms-task-cancellations"),
            cancel_ttl_seconds=_int(os.getenv("QUEUE_CANCEL_TTL_SECONDS", "7776000"), 7776000),
            duplicate_window_seconds=_int(os.getenv("QUEUE_DUPLICATE_WINDOW_SECONDS", "120"), 120),
            ack_wait_seconds=_int(os.getenv("QUEUE_ACK_WAIT_SECONDS", "60"), 60),
        )


@dataclass
class ProviderConfig:
    """SMS provider (Mitto) settings"""
    api_base: str = "https://messaging.mittoapi.com"
    api_key: Optional[str] = None
    traffic_account_id: Optional[str] = None
    default_sender: Optional[str] = None
    timeout_seconds: float = 15.0

    @classmethod
    def from_env(cls) -> 'ProviderConfig':
        return cls(
            api_base=os.getenv("MITTO_API_BASE", "https://messaging.mittoapi.com").rstrip("/"),
            api_key=os.getenv("MITTO_API_KEY"),
            traffic_account_id=os.getenv("SMS_TRAFFIC_ACCOUNT_ID"),
            default_sender=os.getenv("MITTO_SENDER"),
            timeout_seconds=_float(os.getenv("MITTO_TIMEOUT_SECONDS", "15"), 15.0),
        )


@dataclass
class WebhookConfig:
    """Inbound webhook settings"""
    secret: str = ""
    provider: str = "mitto"
    default_country_code: str = "30"

    @classmethod
    def from_env(cls) -> 'WebhookConfig':
        return cls(
            secret=os.getenv("WEBHOOK_SECRET", ""),
            provider=os.getenv("WEBHOOK_PROVIDER", "mitto"),
            default_country_code=os.getenv("DEFAULT_COUNTRY_CODE", "30").lstrip("+"),
        )


@dataclass
class SweepConfig:
    """Idle queued-message sweep settings"""
    enabled: bool = True
    interval_seconds: int = 60
    idle_seconds: int = 300
    batch_size: int = 500
    dispatch_lease_seconds: int = 60

    @classmethod
    def from_env(cls) -> 'SweepConfig':
        return cls(
            enabled=_bool(os.getenv("SWEEP_ENABLED", "true")),
            interval_seconds=_int(os.getenv("SWEEP_INTERVAL_SECONDS", "60"), 60),
            idle_seconds=_int(os.getenv("SWEEP_IDLE_SECONDS", "300"), 300),
            batch_size=_int(os.getenv("SWEEP_BATCH_SIZE", "500"), 500),
            dispatch_lease_seconds=_int(os.getenv("DISPATCH_LEASE_SECONDS", "60"), 60),
        )
