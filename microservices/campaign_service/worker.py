"""
Campaign Worker Process

Background process of the campaign service:

- dispatch consumer: ``message:<id>`` tasks -> MessageDispatchWorker,
  rate limited to QUEUE_RATE_MAX sends per QUEUE_RATE_DURATION_MS
- scheduler consumer: ``campaign:<id>:<epoch>`` tasks -> scheduled enqueue
- sweeper: periodic re-dispatch of idle queued messages and finalization

Run with ``python -m microservices.campaign_service.worker``.
"""

import asyncio
import logging
import signal
from typing import List

from core.config import get_settings
from core.logging_setup import setup_logging
from core.task_queue import RateLimiter, TaskWorker

from .factory import CampaignServiceFactory

setup_logging(get_settings().logging)
logger = logging.getLogger(__name__)


async def run_worker() -> None:
    """Run consumers and the sweeper until SIGINT/SIGTERM"""
    config = get_settings()
    if config.queue.disabled:
        logger.warning("Worker disabled via QUEUE_DISABLED")
        return

    factory = CampaignServiceFactory(config)
    await factory.initialize()

    if not factory.dispatch_queue or not factory.schedule_queue:
        logger.error("Task queue unavailable, worker cannot start")
        await factory.close()
        return

    dispatch_consumer = TaskWorker(
        factory.dispatch_queue,
        factory.dispatch_worker.handle_task,
        concurrency=config.queue.worker_concurrency,
        max_attempts=config.queue.attempts,
        backoff_ms=config.queue.backoff_ms,
        rate_limiter=RateLimiter(config.queue.rate_max, config.queue.rate_duration_ms / 1000.0),
    )
    schedule_consumer = TaskWorker(
        factory.schedule_queue,
        factory.service.handle_scheduled_task,
        concurrency=config.queue.scheduler_concurrency,
        max_attempts=config.queue.attempts,
        backoff_ms=config.queue.backoff_ms,
    )

    stop_event = asyncio.Event()

    def handle_shutdown() -> None:
        logger.info("Shutdown signal received")
        dispatch_consumer.stop()
        schedule_consumer.stop()
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_shutdown)

    tasks: List[asyncio.Task] = [
        asyncio.create_task(dispatch_consumer.run()),
        asyncio.create_task(schedule_consumer.run()),
    ]
    if factory.sweeper and config.sweep.enabled:
        tasks.append(asyncio.create_task(factory.sweeper.run(stop_event)))

    logger.info(f"Campaign worker running ({len(tasks)} loops)")
    try:
        await stop_event.wait()
    finally:
        await asyncio.gather(*tasks, return_exceptions=True)
        await factory.close()
        logger.info("Campaign worker stopped")


def main():
    """Run the worker"""
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
