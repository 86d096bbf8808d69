"""
NATS JetStream Client for Python Microservices
Provides event-driven communication between the SMS platform services

This module wraps the native nats-py client. Domain events are published to
per-domain JetStream streams (campaign.* -> campaign-stream, credit.* ->
credit-stream) for persistence and at-least-once delivery to subscribers.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Set

import nats
from nats.aio.client import Client as NATS
from nats.js import JetStreamContext

logger = logging.getLogger(__name__)


class DecimalEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles Decimal and datetime types"""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


class EventType(str, Enum):
    """Event types published on the platform"""

    # Campaign lifecycle events
    CAMPAIGN_CREATED = "campaign.created"
    CAMPAIGN_SCHEDULED = "campaign.scheduled"
    CAMPAIGN_ENQUEUED = "campaign.enqueued"
    CAMPAIGN_COMPLETED = "campaign.completed"
    CAMPAIGN_FAILED = "campaign.failed"
    CAMPAIGN_DELETED = "campaign.deleted"

    # Message events
    MESSAGE_SENT = "campaign.message.sent"
    MESSAGE_DELIVERED = "campaign.message.delivered"
    MESSAGE_FAILED = "campaign.message.failed"
    MESSAGE_REDEEMED = "campaign.message.redeemed"

    # Contact events
    CONTACT_UNSUBSCRIBED = "campaign.contact.unsubscribed"

    # Credit events
    CREDIT_CREDITED = "credit.credited"
    CREDIT_DEBITED = "credit.debited"
    CREDIT_REFUNDED = "credit.refunded"
    CREDIT_PURCHASED = "credit.purchased"


class ServiceSource(str, Enum):
    """Services that publish events"""
    CAMPAIGN_SERVICE = "campaign_service"
    CREDIT_SERVICE = "credit_service"


class Event:
    """Event model"""

    def __init__(
        self,
        event_type: EventType,
        source: ServiceSource,
        data: Dict[str, Any],
        subject: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.id = str(uuid.uuid4())
        self.type = event_type.value
        self.source = source.value
        self.data = data
        self.subject = subject
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.metadata = metadata or {}
        self.version = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "source": self.source,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "data": self.data,
            "metadata": self.metadata,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        event = cls.__new__(cls)
        event.id = data.get("id")
        event.type = data.get("type")
        event.source = data.get("source")
        event.subject = data.get("subject")
        event.timestamp = data.get("timestamp")
        event.data = data.get("data", {})
        event.metadata = data.get("metadata", {})
        event.version = data.get("version", "1.0.0")
        return event


class NATSEventBus:
    """
    NATS JetStream event bus using the native nats-py client.

    Also exposes the underlying connection and JetStream context so the
    task queue can share a single connection per process.
    """

    def __init__(self, service_name: str, url: Optional[str] = None):
        """
        Initialize NATS Event Bus.

        Args:
            service_name: Name of the service (used as the connection name)
            url: NATS server URL (defaults to InfraConfig.nats_url)
        """
        if url is None:
            from core.config import get_settings
            url = get_settings().infrastructure.nats_url

        self.service_name = service_name
        self.url = url
        self._nc: Optional[NATS] = None
        self._js: Optional[JetStreamContext] = None
        self._streams: Set[str] = set()

        logger.info(f"NATS EventBus initialized: {self.url}")

    async def connect(self):
        """Connect to NATS and open a JetStream context"""
        try:
            self._nc = await nats.connect(servers=[self.url], name=self.service_name)
            self._js = self._nc.jetstream()
            logger.info(f"Connected to NATS as {self.service_name}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    @property
    def nc(self) -> NATS:
        """Get the underlying NATS connection"""
        if not self._nc:
            raise RuntimeError("NATS not connected. Call connect() first.")
        return self._nc

    @property
    def jetstream(self) -> JetStreamContext:
        """Get the JetStream context"""
        if not self._js:
            raise RuntimeError("NATS not connected. Call connect() first.")
        return self._js

    @staticmethod
    def stream_name_for_event(event_type: str) -> str:
        """campaign.message.sent -> campaign-stream"""
        return f"{event_type.split('.')[0]}-stream"

    async def _ensure_stream(self, event_type: str) -> str:
        stream_name = self.stream_name_for_event(event_type)
        if stream_name in self._streams:
            return stream_name

        prefix = event_type.split(".")[0]
        try:
            await self._js.add_stream(name=stream_name, subjects=[f"{prefix}.>"])
        except Exception as e:
            # Stream already exists with a different config
            logger.debug(f"Stream creation note: {e}")
        self._streams.add(stream_name)
        return stream_name

    async def publish_event(self, event: Event) -> bool:
        """
        Publish an event to NATS JetStream.

        Never raises: failures are logged and reported as False.
        """
        if not self.is_connected:
            logger.error("Not connected to NATS")
            return False

        try:
            stream_name = await self._ensure_stream(event.type)
            data = json.dumps(event.to_dict(), cls=DecimalEncoder).encode()
            ack = await self._js.publish(
                event.type,
                data,
                headers={
                    "event_type": event.type,
                    "source": event.source,
                    "Nats-Msg-Id": event.id,
                },
            )
            logger.info(f"Published event {event.type} [{event.id}] to stream {stream_name}, seq={ack.seq}")
            return True

        except Exception as e:
            logger.error(f"Error publishing event {event.id}: {e}")
            return False

    async def close(self):
        """Close NATS connection"""
        if self._nc:
            try:
                await self._nc.drain()
            except Exception as e:
                logger.warning(f"Error draining NATS connection: {e}")
            self._nc = None
            self._js = None

        logger.info("Disconnected from NATS")

    @property
    def is_connected(self) -> bool:
        """Check if connected to NATS"""
        return self._nc is not None and self._nc.is_connected


def create_event(
    event_type: EventType,
    source: ServiceSource,
    data: Dict[str, Any],
    subject: Optional[str] = None,
    metadata: Optional[Dict[str, str]] = None,
) -> Event:
    """Create an Event instance"""
    return Event(
        event_type=event_type,
        source=source,
        data=data,
        subject=subject,
        metadata=metadata,
    )
