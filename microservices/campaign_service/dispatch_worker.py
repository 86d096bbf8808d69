"""
Message Dispatch Worker

Handles one ``message:<id>`` task: lease the queued message, send it through
the SMS provider and classify the outcome.

- success: queued -> sent with the provider message id, then replay any
  delivery report that arrived before the id was known
- retryable failure (network, timeout, 5xx, 429): message stays queued,
  the error is recorded and the exception is re-raised so the task queue
  retries with backoff; on the last attempt the message is terminalized
- terminal failure (other 4xx, no valid sender): queued -> failed and one
  credit refunded, keyed by message id so it is applied at most once
"""

import logging
from typing import Any, Dict, Optional

from .events.publishers import CampaignEventPublisher
from .finalizer import CampaignFinalizer
from .models import CampaignMessage, DispatchOutcome, MessageStatus
from .protocols import (
    CampaignRepositoryProtocol,
    LedgerProtocol,
    ProviderError,
    SmsProviderProtocol,
)
from .reconciliation import DeliveryReconciler
from .sms_utils import resolve_sender

logger = logging.getLogger(__name__)

NO_SENDER_ERROR = "NO_SENDER"
RETRIES_EXHAUSTED_ERROR = "RETRIES_EXHAUSTED"


def dispatch_task_id(message_id: str) -> str:
    """Deterministic task id; duplicate enqueues of one message collapse"""
    return f"message:{message_id}"


def refund_key(message_id: str) -> str:
    return f"hardfail:message:{message_id}"


class MessageDispatchWorker:
    """Dispatch task handler"""

    def __init__(
        self,
        repository: CampaignRepositoryProtocol,
        ledger: LedgerProtocol,
        provider: SmsProviderProtocol,
        reconciler: DeliveryReconciler,
        finalizer: CampaignFinalizer,
        publisher: Optional[CampaignEventPublisher] = None,
        default_sender: Optional[str] = None,
        lease_seconds: int = 60,
        max_attempts: int = 5,
    ):
        self.repository = repository
        self.ledger = ledger
        self.provider = provider
        self.reconciler = reconciler
        self.finalizer = finalizer
        self.publisher = publisher or CampaignEventPublisher()
        self.default_sender = default_sender
        self.lease_seconds = lease_seconds
        self.max_attempts = max(1, max_attempts)

    async def handle_task(self, task_id: str, payload: Dict[str, Any]) -> DispatchOutcome:
        """
        Process one dispatch task.

        Raises:
            ProviderError: retryable provider failure; the task should be retried
        """
        message_id = (payload or {}).get("message_id")
        if not message_id:
            logger.warning(f"Dispatch task {task_id} has no message_id, discarding")
            return DispatchOutcome.DISCARDED

        message = await self.repository.claim_message_for_dispatch(message_id, self.lease_seconds)
        if message is None:
            return await self._handle_unclaimed(message_id)

        sender = resolve_sender(
            payload.get("sender"),
            await self.repository.get_owner_sender(message.owner_id),
            self.default_sender,
        )
        if not sender:
            logger.warning(f"No valid sender for owner {message.owner_id}, failing {message_id}")
            return await self._fail(message, NO_SENDER_ERROR)

        try:
            response = await self.provider.send_sms(message.to_phone, message.text, sender)
        except ProviderError as e:
            return await self._handle_provider_error(message, e)
        except Exception as e:
            # Unclassified errors carry no status code and are retried
            return await self._handle_provider_error(message, ProviderError(str(e)))

        provider_message_id = (response or {}).get("provider_message_id")
        if not await self.repository.mark_message_sent(message_id, provider_message_id):
            logger.warning(f"Message {message_id} left queued before it was marked sent")
            return DispatchOutcome.SKIPPED

        logger.info(f"Message {message_id} sent (provider id {provider_message_id})")
        await self.publisher.message_sent(message, provider_message_id)

        if provider_message_id:
            await self.reconciler.replay_stored_events(provider_message_id)
        return DispatchOutcome.SENT

    async def _handle_provider_error(
        self, message: CampaignMessage, error: ProviderError
    ) -> DispatchOutcome:
        if not error.is_retryable:
            logger.warning(
                f"Hard failure sending {message.message_id} (status {error.status_code}): {error}"
            )
            return await self._fail(message, str(error))

        if message.attempts >= self.max_attempts:
            logger.error(
                f"Message {message.message_id} failed {message.attempts} attempts, giving up: {error}"
            )
            return await self._fail(message, f"{RETRIES_EXHAUSTED_ERROR}: {error}")

        await self.repository.record_retryable_failure(message.message_id, str(error))
        logger.warning(
            f"Retryable failure sending {message.message_id} "
            f"(attempt {message.attempts}/{self.max_attempts}): {error}"
        )
        raise error

    async def _handle_unclaimed(self, message_id: str) -> DispatchOutcome:
        """The message is gone, already processed, or leased by another worker"""
        message = await self.repository.get_message(message_id)
        if message is None:
            logger.info(f"Message {message_id} not found, discarding task")
            return DispatchOutcome.DISCARDED

        # A redelivered task after a crash between the status update and the refund
        if message.status == MessageStatus.FAILED and not message.provider_message_id:
            await self._refund(message, message.error or "")
            return DispatchOutcome.FAILED

        logger.debug(f"Message {message_id} is {message.status.value} or leased, skipping")
        return DispatchOutcome.SKIPPED

    async def _fail(self, message: CampaignMessage, error: str) -> DispatchOutcome:
        """Terminal failure: mark failed, refund one credit, try to finalize"""
        if not await self.repository.mark_message_failed(message.message_id, error):
            current = await self.repository.get_message(message.message_id)
            if current is None or current.status != MessageStatus.FAILED:
                logger.warning(f"Message {message.message_id} changed state, not failing it")
                return DispatchOutcome.SKIPPED

        refunded = await self._refund(message, error)
        await self.publisher.message_failed(message, error, refunded)
        await self.finalizer.finalize(message.campaign_id)
        return DispatchOutcome.FAILED

    async def _refund(self, message: CampaignMessage, error: str) -> bool:
        """Refund the message's credit once; failures are logged for manual reconciliation"""
        key = refund_key(message.message_id)
        try:
            result = await self.ledger.refund(
                message.owner_id,
                1,
                reason=key,
                campaign_id=message.campaign_id,
                message_id=message.message_id,
                meta={"error": error},
                idempotency_key=key,
            )
            return result.applied
        except Exception as e:
            logger.error(f"Refund failed for message {message.message_id}: {e}")
            return False


__all__ = [
    "MessageDispatchWorker",
    "dispatch_task_id",
    "refund_key",
    "NO_SENDER_ERROR",
    "RETRIES_EXHAUSTED_ERROR",
]
