"""
JetStream Task Queue

At-least-once background task dispatch on NATS JetStream.

- ``JetStreamTaskDispatcher`` publishes tasks to ``<prefix>.<queue>`` with the
  task id as ``Nats-Msg-Id`` so duplicate enqueues inside the stream's
  duplicate window are dropped by the server.
- Delayed tasks carry a ``not_before`` epoch; consumers defer them with
  ``nak(delay=...)`` until due.
- Cancellation is recorded in a JetStream key-value bucket (entries expire
  after ``cancel_ttl_seconds``) and checked by the consumer before running a
  task. Only queues whose task ids can be reused after a cancel clear the
  marker on enqueue.
- ``TaskWorker`` pulls tasks with bounded concurrency, applies a sliding
  window rate limit, retries failures with exponential backoff and
  terminates a task after the configured number of attempts.
"""

import asyncio
import json
import logging
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Set

from nats.errors import TimeoutError as NatsTimeoutError
from nats.js.api import AckPolicy, ConsumerConfig, KeyValueConfig, RetentionPolicy
from nats.js.errors import BucketNotFoundError, KeyNotFoundError

from core.config import QueueConfig
from core.nats_client import DecimalEncoder, NATSEventBus

logger = logging.getLogger(__name__)

TaskHandler = Callable[[str, Dict[str, Any]], Awaitable[Any]]


class RateLimiter:
    """Sliding-window limiter: at most ``max_calls`` per ``period`` seconds"""

    def __init__(self, max_calls: int, period: float):
        self.max_calls = max(1, max_calls)
        self.period = period
        self._calls: Deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                now = time.monotonic()
                while self._calls and now - self._calls[0] >= self.period:
                    self._calls.popleft()
                if len(self._calls) < self.max_calls:
                    self._calls.append(now)
                    return
                await asyncio.sleep(self.period - (now - self._calls[0]))


class JetStreamTaskDispatcher:
    """Task dispatcher for one named queue on the shared task stream"""

    def __init__(
        self,
        event_bus: NATSEventBus,
        queue_name: str,
        config: Optional[QueueConfig] = None,
        clear_cancellation_on_enqueue: bool = False,
    ):
        self.event_bus = event_bus
        self.queue_name = queue_name
        self.config = config or QueueConfig.from_env()
        self.subject = f"{self.config.subject_prefix}.{queue_name}"
        self.clear_cancellation_on_enqueue = clear_cancellation_on_enqueue
        self._kv = None

    async def initialize(self) -> None:
        """Ensure the task stream and the cancellation bucket exist"""
        js = self.event_bus.jetstream
        try:
            await js.add_stream(
                name=self.config.stream_name,
                subjects=[f"{self.config.subject_prefix}.>"],
                retention=RetentionPolicy.WORK_QUEUE,
                duplicate_window=float(self.config.duplicate_window_seconds),
            )
        except Exception as e:
            logger.debug(f"Task stream creation note: {e}")

        try:
            self._kv = await js.key_value(self.config.cancel_bucket)
        except BucketNotFoundError:
            self._kv = await js.create_key_value(
                config=KeyValueConfig(
                    bucket=self.config.cancel_bucket,
                    ttl=float(self.config.cancel_ttl_seconds),
                )
            )

        logger.info(f"Task queue '{self.queue_name}' ready on {self.subject}")

    @staticmethod
    def kv_key(task_id: str) -> str:
        """KV keys only allow [-/_=.a-zA-Z0-9]"""
        return "".join(ch if ch.isalnum() or ch in "-_=." else "." for ch in task_id)

    async def enqueue(
        self,
        task_id: str,
        payload: Dict[str, Any],
        delay: Optional[float] = None,
    ) -> bool:
        """
        Publish a task.

        Returns False (never raises) when the queue is disabled or
        unreachable so callers can treat dispatch as best-effort.
        """
        if self.config.disabled:
            logger.debug(f"Queue disabled, task {task_id} not enqueued")
            return False

        body: Dict[str, Any] = {
            "task_id": task_id,
            "payload": payload,
            "enqueued_at": datetime.now(timezone.utc).isoformat(),
        }
        if delay and delay > 0:
            body["not_before"] = time.time() + delay

        try:
            if self.clear_cancellation_on_enqueue and self._kv is not None:
                await self._clear_cancellation(task_id)

            ack = await self.event_bus.jetstream.publish(
                self.subject,
                json.dumps(body, cls=DecimalEncoder).encode(),
                headers={"Nats-Msg-Id": task_id},
            )
            if ack.duplicate:
                logger.debug(f"Task {task_id} already queued")
            return True

        except Exception as e:
            logger.warning(f"Failed to enqueue task {task_id} on {self.subject}: {e}")
            return False

    async def cancel(self, task_id: str) -> bool:
        """Mark a task as cancelled; consumers drop it when it comes due"""
        if self._kv is None:
            return False
        try:
            await self._kv.put(self.kv_key(task_id), b"cancelled")
            logger.info(f"Cancelled task {task_id}")
            return True
        except Exception as e:
            logger.warning(f"Failed to cancel task {task_id}: {e}")
            return False

    async def is_cancelled(self, task_id: str) -> bool:
        if self._kv is None or not task_id:
            return False
        try:
            await self._kv.get(self.kv_key(task_id))
            return True
        except KeyNotFoundError:
            return False

    async def _clear_cancellation(self, task_id: str) -> None:
        try:
            await self._kv.delete(self.kv_key(task_id))
        except Exception as e:
            logger.debug(f"No cancellation marker cleared for {task_id}: {e}")

    async def pull_subscribe(self, durable: str):
        """Create (or bind to) the durable pull consumer for this queue"""
        return await self.event_bus.jetstream.pull_subscribe(
            self.subject,
            durable=durable,
            stream=self.config.stream_name,
            config=ConsumerConfig(
                ack_policy=AckPolicy.EXPLICIT,
                ack_wait=float(self.config.ack_wait_seconds),
                max_deliver=-1,
            ),
        )


class TaskWorker:
    """Pull consumer running a handler per task with bounded concurrency"""

    def __init__(
        self,
        dispatcher: JetStreamTaskDispatcher,
        handler: TaskHandler,
        concurrency: int = 5,
        max_attempts: int = 5,
        backoff_ms: int = 3000,
        rate_limiter: Optional[RateLimiter] = None,
        durable: Optional[str] = None,
        fetch_timeout: float = 1.0,
    ):
        self.dispatcher = dispatcher
        self.handler = handler
        self.concurrency = max(1, concurrency)
        self.max_attempts = max(1, max_attempts)
        self.backoff_ms = backoff_ms
        self.rate_limiter = rate_limiter
        self.durable = durable or f"{dispatcher.queue_name}-worker"
        self.fetch_timeout = fetch_timeout
        self._running = False
        self._inflight: Set[asyncio.Task] = set()

    def backoff_seconds(self, attempt: int) -> float:
        """Exponential backoff: base * 2^(attempt-1)"""
        return (self.backoff_ms * (2 ** max(0, attempt - 1))) / 1000.0

    def stop(self) -> None:
        self._running = False

    async def run(self) -> None:
        """Consume tasks until stop() is called"""
        self._running = True
        psub = await self.dispatcher.pull_subscribe(self.durable)
        logger.info(
            f"Task worker started: queue={self.dispatcher.queue_name}, "
            f"concurrency={self.concurrency}, attempts={self.max_attempts}"
        )

        try:
            while self._running:
                free = self.concurrency - len(self._inflight)
                if free <= 0:
                    await asyncio.wait(self._inflight, return_when=asyncio.FIRST_COMPLETED)
                    continue

                try:
                    msgs = await psub.fetch(batch=free, timeout=self.fetch_timeout)
                except NatsTimeoutError:
                    continue
                except Exception as e:
                    logger.warning(f"Fetch error on {self.dispatcher.subject} (will retry): {e}")
                    await asyncio.sleep(5)
                    continue

                for msg in msgs:
                    task = asyncio.create_task(self.process_message(msg))
                    self._inflight.add(task)
                    task.add_done_callback(self._inflight.discard)
        finally:
            if self._inflight:
                await asyncio.gather(*self._inflight, return_exceptions=True)
            try:
                await psub.unsubscribe()
            except Exception:
                logger.debug("Pull subscription already closed")
            logger.info(f"Task worker stopped: queue={self.dispatcher.queue_name}")

    async def process_message(self, msg) -> None:
        """Run one delivered task and ack, retry or terminate it"""
        try:
            body = json.loads(msg.data.decode())
        except (ValueError, UnicodeDecodeError) as e:
            logger.error(f"Malformed task on {self.dispatcher.subject}: {e}")
            await msg.term()
            return

        task_id = body.get("task_id", "")
        payload = body.get("payload") or {}

        try:
            if await self.dispatcher.is_cancelled(task_id):
                logger.info(f"Skipping cancelled task {task_id}")
                await msg.ack()
                return

            not_before = body.get("not_before")
            if not_before:
                remaining = float(not_before) - time.time()
                if remaining > 0:
                    await msg.nak(delay=remaining)
                    return

            # A delayed task spends its first delivery being deferred
            attempt = msg.metadata.num_delivered
            if not_before:
                attempt = max(1, attempt - 1)

            if self.rate_limiter:
                await self.rate_limiter.acquire()

            try:
                await self.handler(task_id, payload)
            except Exception as e:
                if attempt >= self.max_attempts:
                    logger.error(f"Task {task_id} failed after {attempt} attempts: {e}")
                    await msg.term()
                    return
                delay = self.backoff_seconds(attempt)
                logger.warning(
                    f"Task {task_id} attempt {attempt}/{self.max_attempts} failed, "
                    f"retrying in {delay:.1f}s: {e}"
                )
                await msg.nak(delay=delay)
                return

            await msg.ack()

        except Exception as e:
            logger.error(f"Error processing task {task_id}: {e}", exc_info=True)


__all__ = [
    "RateLimiter",
    "JetStreamTaskDispatcher",
    "TaskWorker",
    "TaskHandler",
]
