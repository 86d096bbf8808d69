"""
Campaign Scheduler

Delayed enqueue tasks for scheduled campaigns. The task id embeds the
scheduled time, so rescheduling publishes a new task and cancels the old
one; the fire handler re-checks the campaign before enqueueing.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .models import Campaign
from .protocols import TaskDispatcherProtocol

logger = logging.getLogger(__name__)


def _epoch(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def schedule_task_id(campaign_id: str, scheduled_at: datetime) -> str:
    return f"campaign:{campaign_id}:{_epoch(scheduled_at)}"


def same_instant(a: Optional[datetime], b: Optional[datetime]) -> bool:
    """Equal to the second; naive values are taken as UTC"""
    if a is None or b is None:
        return False
    return _epoch(a) == _epoch(b)


def parse_scheduled_at(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class CampaignScheduler:
    """Publishes and cancels delayed campaign enqueue tasks"""

    def __init__(self, dispatcher: Optional[TaskDispatcherProtocol] = None):
        self.dispatcher = dispatcher

    async def schedule(self, campaign: Campaign, scheduled_at: datetime) -> Optional[str]:
        """
        Publish the delayed task for a campaign.

        Returns the task id, or None when the queue did not accept it.
        """
        if not self.dispatcher:
            logger.warning(f"No scheduler queue configured, campaign {campaign.campaign_id} not scheduled")
            return None

        task_id = schedule_task_id(campaign.campaign_id, scheduled_at)
        delay = max(0.0, (scheduled_at - datetime.now(timezone.utc)).total_seconds())
        payload: Dict[str, Any] = {
            "campaign_id": campaign.campaign_id,
            "owner_id": campaign.owner_id,
            "scheduled_at": scheduled_at.isoformat(),
        }

        if not await self.dispatcher.enqueue(task_id, payload, delay=delay):
            logger.warning(f"Failed to schedule campaign {campaign.campaign_id} at {scheduled_at}")
            return None

        logger.info(f"Campaign {campaign.campaign_id} scheduled at {scheduled_at} (task {task_id})")
        return task_id

    async def cancel(self, task_id: Optional[str]) -> bool:
        """Cancel a pending task; a missing id is a no-op"""
        if not task_id or not self.dispatcher:
            return False
        try:
            return await self.dispatcher.cancel(task_id)
        except Exception as e:
            logger.warning(f"Failed to cancel scheduled task {task_id}: {e}")
            return False


__all__ = ["CampaignScheduler", "schedule_task_id", "same_instant", "parse_scheduled_at"]
