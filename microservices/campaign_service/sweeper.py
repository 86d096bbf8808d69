"""
Queued Message Sweeper

Periodic reconciler for the best-effort phase of enqueue. Queued messages
whose last dispatch attempt (or creation) is older than the idle threshold
are re-enqueued with their deterministic task id, and sending campaigns are
run through the finalizer.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from core.config import SweepConfig

from .dispatch_worker import dispatch_task_id
from .finalizer import CampaignFinalizer
from .protocols import CampaignRepositoryProtocol, TaskDispatcherProtocol

logger = logging.getLogger(__name__)


class QueuedMessageSweeper:
    """Re-dispatches idle queued messages and finalizes drained campaigns"""

    def __init__(
        self,
        repository: CampaignRepositoryProtocol,
        dispatcher: TaskDispatcherProtocol,
        finalizer: CampaignFinalizer,
        config: Optional[SweepConfig] = None,
    ):
        self.repository = repository
        self.dispatcher = dispatcher
        self.finalizer = finalizer
        self.config = config or SweepConfig()

    async def sweep_once(self) -> Dict[str, int]:
        """One pass; returns counters for logging and tests"""
        idle_before = datetime.now(timezone.utc) - timedelta(seconds=self.config.idle_seconds)
        message_ids = await self.repository.find_stale_queued_messages(
            idle_before, self.config.batch_size
        )

        requeued = 0
        for message_id in message_ids:
            if await self.dispatcher.enqueue(dispatch_task_id(message_id), {"message_id": message_id}):
                requeued += 1

        completed = 0
        for campaign_id in await self.repository.list_sending_campaign_ids():
            if await self.finalizer.finalize(campaign_id):
                completed += 1

        if message_ids or completed:
            logger.info(
                f"Sweep: {len(message_ids)} idle queued, {requeued} re-enqueued, "
                f"{completed} campaign(s) completed"
            )
        return {"stale": len(message_ids), "requeued": requeued, "completed": completed}

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Sweep every interval until stop_event is set"""
        stop_event = stop_event or asyncio.Event()
        logger.info(
            f"Sweeper started: interval={self.config.interval_seconds}s, "
            f"idle={self.config.idle_seconds}s, batch={self.config.batch_size}"
        )

        while not stop_event.is_set():
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"Sweep failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.config.interval_seconds)
            except asyncio.TimeoutError:
                continue

        logger.info("Sweeper stopped")


__all__ = ["QueuedMessageSweeper"]
