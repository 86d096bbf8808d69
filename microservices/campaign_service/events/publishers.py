"""
Campaign Event Publishers

Publishes campaign lifecycle and message events to NATS JetStream.
Publishing is best-effort: failures are logged and reported as False.
"""

import logging
from typing import Any, Dict, Optional

from core.nats_client import EventType, ServiceSource, create_event

from ..models import Campaign, CampaignMessage

logger = logging.getLogger(__name__)


class CampaignEventPublisher:
    """Publisher for campaign service events"""

    def __init__(self, event_bus=None):
        self.event_bus = event_bus

    async def publish(self, event_type: EventType, data: Dict[str, Any]) -> bool:
        """
        Publish an event to NATS.

        Args:
            event_type: The event type enum
            data: Event data payload

        Returns:
            True if published successfully, False otherwise
        """
        if not self.event_bus:
            logger.debug(f"Event bus not configured, skipping publish: {event_type.value}")
            return False

        try:
            event = create_event(
                event_type=event_type,
                source=ServiceSource.CAMPAIGN_SERVICE,
                data=data,
            )
            return bool(await self.event_bus.publish_event(event))

        except Exception as e:
            logger.error(f"Failed to publish event {event_type.value}: {e}")
            return False

    # ====================
    # Campaign Lifecycle Events
    # ====================

    async def campaign_created(self, campaign: Campaign) -> bool:
        return await self.publish(
            EventType.CAMPAIGN_CREATED,
            {
                "campaign_id": campaign.campaign_id,
                "owner_id": campaign.owner_id,
                "name": campaign.name,
                "status": campaign.status.value,
            },
        )

    async def campaign_scheduled(self, campaign: Campaign) -> bool:
        return await self.publish(
            EventType.CAMPAIGN_SCHEDULED,
            {
                "campaign_id": campaign.campaign_id,
                "owner_id": campaign.owner_id,
                "scheduled_at": campaign.scheduled_at,
            },
        )

    async def campaign_enqueued(self, campaign: Campaign, total: int, enqueued: int) -> bool:
        return await self.publish(
            EventType.CAMPAIGN_ENQUEUED,
            {
                "campaign_id": campaign.campaign_id,
                "owner_id": campaign.owner_id,
                "total": total,
                "enqueued": enqueued,
            },
        )

    async def campaign_completed(self, campaign: Campaign) -> bool:
        return await self.publish(
            EventType.CAMPAIGN_COMPLETED,
            {
                "campaign_id": campaign.campaign_id,
                "owner_id": campaign.owner_id,
                "total": campaign.total,
                "finished_at": campaign.finished_at,
            },
        )

    async def campaign_failed(self, campaign: Campaign, reason: str) -> bool:
        return await self.publish(
            EventType.CAMPAIGN_FAILED,
            {
                "campaign_id": campaign.campaign_id,
                "owner_id": campaign.owner_id,
                "reason": reason,
            },
        )

    async def campaign_deleted(self, campaign_id: str, owner_id: str) -> bool:
        return await self.publish(
            EventType.CAMPAIGN_DELETED,
            {"campaign_id": campaign_id, "owner_id": owner_id},
        )

    # ====================
    # Message Events
    # ====================

    async def message_sent(self, message: CampaignMessage, provider_message_id: Optional[str]) -> bool:
        return await self.publish(
            EventType.MESSAGE_SENT,
            {
                "message_id": message.message_id,
                "campaign_id": message.campaign_id,
                "owner_id": message.owner_id,
                "provider_message_id": provider_message_id,
            },
        )

    async def message_failed(self, message: CampaignMessage, error: str, refunded: bool) -> bool:
        return await self.publish(
            EventType.MESSAGE_FAILED,
            {
                "message_id": message.message_id,
                "campaign_id": message.campaign_id,
                "owner_id": message.owner_id,
                "error": error,
                "refunded": refunded,
            },
        )

    async def message_delivered(self, message: CampaignMessage) -> bool:
        return await self.publish(
            EventType.MESSAGE_DELIVERED,
            {
                "message_id": message.message_id,
                "campaign_id": message.campaign_id,
                "owner_id": message.owner_id,
                "delivered_at": message.delivered_at,
            },
        )

    async def message_redeemed(self, message: CampaignMessage) -> bool:
        return await self.publish(
            EventType.MESSAGE_REDEEMED,
            {
                "message_id": message.message_id,
                "campaign_id": message.campaign_id,
                "owner_id": message.owner_id,
            },
        )

    async def contact_unsubscribed(self, phone: str, count: int) -> bool:
        return await self.publish(
            EventType.CONTACT_UNSUBSCRIBED,
            {"phone": phone, "count": count},
        )


__all__ = ["CampaignEventPublisher"]
