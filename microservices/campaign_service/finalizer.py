"""
Campaign Finalizer

Moves a sending campaign to completed once none of its messages is queued
or sent. Safe to call from any number of triggers (dispatch worker, delivery
webhooks, status queries, the sweep): the repository performs the check and
the transition in one conditional UPDATE, so exactly one caller wins.
"""

import logging
from typing import Optional

from .events.publishers import CampaignEventPublisher
from .protocols import CampaignRepositoryProtocol, StatsCacheProtocol

logger = logging.getLogger(__name__)

STATS_CACHE_PREFIX = "stats:campaign:v1"


def stats_cache_key(owner_id: str, campaign_id: str) -> str:
    """Cache key of per-campaign statistics"""
    return f"{STATS_CACHE_PREFIX}:{owner_id}:{campaign_id}"


class CampaignFinalizer:
    """Idempotent sending -> completed transition"""

    def __init__(
        self,
        repository: CampaignRepositoryProtocol,
        cache: Optional[StatsCacheProtocol] = None,
        publisher: Optional[CampaignEventPublisher] = None,
    ):
        self.repository = repository
        self.cache = cache
        self.publisher = publisher or CampaignEventPublisher()

    async def finalize(self, campaign_id: str) -> bool:
        """
        Complete the campaign if it is drained.

        Returns True only for the call that performed the transition.
        Errors are logged; a later trigger will retry.
        """
        try:
            campaign = await self.repository.complete_campaign_if_drained(campaign_id)
        except Exception as e:
            logger.error(f"Finalizer failed for campaign {campaign_id}: {e}", exc_info=True)
            return False

        if not campaign:
            return False

        logger.info(f"Campaign {campaign_id} completed ({campaign.total} messages)")
        await self.invalidate_stats(campaign.owner_id, campaign_id)
        await self.publisher.campaign_completed(campaign)
        return True

    async def invalidate_stats(self, owner_id: str, campaign_id: str) -> None:
        """Drop cached statistics; never raises"""
        if not self.cache:
            return
        try:
            await self.cache.delete(stats_cache_key(owner_id, campaign_id))
        except Exception as e:
            logger.warning(f"Stats cache invalidation failed for {campaign_id}: {e}")


__all__ = ["CampaignFinalizer", "stats_cache_key", "STATS_CACHE_PREFIX"]
