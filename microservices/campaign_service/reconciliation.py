"""
Delivery Reconciliation

Applies provider delivery reports (DLRs) to campaign messages and handles
inbound STOP replies.

Provider vocabulary is folded into three buckets:

- delivered / delivrd / completed / ok           -> delivered
- failed / undelivered / expired / rejected / error -> failed
- queued / accepted / submitted / enroute / sent -> sent

Anything else is logged and ignored. Updates are idempotent: a repeated
``delivered`` keeps the first delivered_at, ``sent`` only promotes queued
messages. Providers do not order their callbacks, so a ``failed`` report
after ``delivered`` wins (logged as an anomaly).

Every callback is acknowledged, including unmatched and malformed ones; a
bad event in a batch never aborts the remaining events.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .events.publishers import CampaignEventPublisher
from .finalizer import CampaignFinalizer
from .models import (
    CampaignMessage,
    DeliveryEvent,
    InboundResult,
    MessageStatus,
    ReconciliationResult,
    WebhookEvent,
)
from .protocols import CampaignRepositoryProtocol
from .sms_utils import is_stop_keyword, normalize_msisdn

logger = logging.getLogger(__name__)

DELIVERED_STATUSES = frozenset({"delivered", "delivrd", "completed", "ok"})
FAILED_STATUSES = frozenset({"failed", "undelivered", "expired", "rejected", "error"})
SENT_STATUSES = frozenset({"queued", "accepted", "submitted", "enroute", "sent"})

DEFAULT_DLR_ERROR = "FAILED_DLR"

# Envelope keys some providers wrap batches in
_BATCH_KEYS = ("events", "messages", "results")

_ID_FIELDS = ("messageId", "id", "MessageId")
_STATUS_FIELDS = ("status", "Status", "deliveryStatus")
_TIMESTAMP_FIELDS = ("doneAt", "timestamp", "Timestamp")
_ERROR_FIELDS = ("error", "Error", "description")


def map_provider_status(raw_status: Any) -> Optional[MessageStatus]:
    """Provider status string -> MessageStatus, None when unknown"""
    value = str(raw_status or "").strip().lower()
    if value in DELIVERED_STATUSES:
        return MessageStatus.DELIVERED
    if value in FAILED_STATUSES:
        return MessageStatus.FAILED
    if value in SENT_STATUSES:
        return MessageStatus.SENT
    return None


def _first(data: Dict[str, Any], fields: Iterable[str]) -> Any:
    for field in fields:
        value = data.get(field)
        if value not in (None, ""):
            return value
    return None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string or unix epoch (seconds or milliseconds); None if unparseable"""
    if value is None:
        return None
    try:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            seconds = value / 1000.0 if value > 1e12 else float(value)
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError):
        logger.debug(f"Unparseable DLR timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def extract_events(body: Any) -> List[Any]:
    """A single object, a list, or an envelope {events|messages|results: [...]}"""
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        for key in _BATCH_KEYS:
            if isinstance(body.get(key), list):
                return body[key]
        return [body]
    return []


def provider_message_id_of(raw: Any) -> Optional[str]:
    if not isinstance(raw, dict):
        return None
    value = _first(raw, _ID_FIELDS)
    return str(value) if value is not None else None


def parse_delivery_event(raw: Any) -> Optional[DeliveryEvent]:
    """Normalize one raw callback; None when it carries no provider message id"""
    provider_message_id = provider_message_id_of(raw)
    if not provider_message_id:
        return None

    raw_status = str(_first(raw, _STATUS_FIELDS) or "")
    status = map_provider_status(raw_status)
    error = _first(raw, _ERROR_FIELDS)
    if status == MessageStatus.FAILED and not error:
        error = DEFAULT_DLR_ERROR

    return DeliveryEvent(
        provider_message_id=provider_message_id,
        raw_status=raw_status,
        status=status,
        occurred_at=_parse_timestamp(_first(raw, _TIMESTAMP_FIELDS)),
        error=str(error) if error is not None else None,
    )


async def persist_webhook_event(
    repository: CampaignRepositoryProtocol,
    provider: str,
    event_type: str,
    payload: Any,
    provider_message_id: Optional[str] = None,
) -> None:
    """Store a raw callback for audit and replay; never raises"""
    try:
        await repository.save_webhook_event(
            WebhookEvent(
                event_id=f"whe_{uuid.uuid4().hex[:20]}",
                provider=provider,
                event_type=event_type,
                payload=payload if isinstance(payload, dict) else {"value": payload},
                provider_message_id=provider_message_id,
                received_at=datetime.now(timezone.utc),
            )
        )
    except Exception as e:
        logger.warning(f"WebhookEvent persist failed: {e}")


class DeliveryReconciler:
    """Applies delivery reports to campaign messages"""

    def __init__(
        self,
        repository: CampaignRepositoryProtocol,
        finalizer: CampaignFinalizer,
        publisher: Optional[CampaignEventPublisher] = None,
        provider: str = "mitto",
    ):
        self.repository = repository
        self.finalizer = finalizer
        self.publisher = publisher or CampaignEventPublisher()
        self.provider = provider

    async def ingest(self, body: Any) -> ReconciliationResult:
        """
        Process an already authenticated DLR callback body.

        Returns the number of messages moved to delivered or failed.
        """
        updated = 0
        for raw in extract_events(body):
            provider_message_id = provider_message_id_of(raw)
            await persist_webhook_event(
                self.repository, self.provider, "dlr", raw, provider_message_id
            )

            try:
                event = parse_delivery_event(raw)
                if event is None:
                    logger.warning(f"DLR without message id, ignoring: {raw!r}")
                    continue
                updated += await self.apply_event(event)
            except Exception as e:
                logger.error(f"DLR update error for {provider_message_id}: {e}", exc_info=True)

        return ReconciliationResult(ok=True, updated=updated)

    async def apply_event(self, event: DeliveryEvent) -> int:
        """Apply one normalized event; returns terminal updates made"""
        if event.status is None:
            logger.info(
                f"DLR unknown/ignored status '{event.raw_status}' for {event.provider_message_id}"
            )
            return 0

        messages = await self.repository.find_messages_by_provider_id(event.provider_message_id)
        if not messages:
            logger.info(f"DLR: no local messages matched {event.provider_message_id}")
            return 0

        if event.status == MessageStatus.FAILED and any(
            m.status == MessageStatus.DELIVERED for m in messages
        ):
            logger.warning(
                f"DLR anomaly: failed after delivered for {event.provider_message_id}, "
                f"applying latest report"
            )

        changed = await self.repository.apply_delivery_status(
            event.provider_message_id,
            event.status,
            occurred_at=event.occurred_at,
            error=event.error,
        )

        for owner_id, campaign_id in {(m.owner_id, m.campaign_id) for m in messages}:
            await self.finalizer.invalidate_stats(owner_id, campaign_id)

        await self._announce(changed, event.status)

        if not event.status.is_terminal:
            return 0

        for campaign_id in {m.campaign_id for m in changed}:
            await self.finalizer.finalize(campaign_id)
        return len(changed)

    async def replay_stored_events(self, provider_message_id: str) -> int:
        """
        Re-apply stored reports for a provider id.

        A report can arrive before the dispatch worker has recorded the
        provider id; the worker calls this right after marking the message
        sent.
        """
        if not provider_message_id:
            return 0

        try:
            stored = await self.repository.list_webhook_events(provider_message_id)
        except Exception as e:
            logger.warning(f"Could not load stored DLRs for {provider_message_id}: {e}")
            return 0

        updated = 0
        for record in stored:
            if record.event_type != "dlr":
                continue
            try:
                event = parse_delivery_event(record.payload)
                if event is not None:
                    updated += await self.apply_event(event)
            except Exception as e:
                logger.error(f"Replay of DLR {record.event_id} failed: {e}")

        if updated:
            logger.info(f"Replayed {updated} stored DLR update(s) for {provider_message_id}")
        return updated

    async def _announce(self, changed: List[CampaignMessage], status: MessageStatus) -> None:
        for message in changed:
            if status == MessageStatus.DELIVERED:
                await self.publisher.message_delivered(message)
            elif status == MessageStatus.FAILED:
                await self.publisher.message_failed(message, message.error or DEFAULT_DLR_ERROR, refunded=False)


class InboundMessageHandler:
    """Inbound SMS (MO) handling: STOP unsubscribes the sender everywhere"""

    def __init__(
        self,
        repository: CampaignRepositoryProtocol,
        publisher: Optional[CampaignEventPublisher] = None,
        default_country_code: str = "30",
        provider: str = "mitto",
    ):
        self.repository = repository
        self.publisher = publisher or CampaignEventPublisher()
        self.default_country_code = default_country_code
        self.provider = provider

    async def handle(self, body: Any) -> InboundResult:
        await persist_webhook_event(self.repository, self.provider, "inbound", body)

        if not isinstance(body, dict):
            return InboundResult()

        sender = body.get("from") or body.get("msisdn") or body.get("sender")
        text = str(body.get("text") or body.get("message") or "")
        if not sender or not text:
            return InboundResult()

        if not is_stop_keyword(text):
            return InboundResult()

        phone = normalize_msisdn(sender, self.default_country_code)
        try:
            count = await self.repository.unsubscribe_by_phone(phone)
        except Exception as e:
            logger.error(f"Inbound STOP handling failed for {phone}: {e}", exc_info=True)
            return InboundResult()

        logger.info(f"Inbound STOP from {phone}: unsubscribed {count} contact(s)")
        if count:
            await self.publisher.contact_unsubscribed(phone, count)
        return InboundResult(ok=True, unsubscribed=count)


__all__ = [
    "DeliveryReconciler",
    "InboundMessageHandler",
    "map_provider_status",
    "extract_events",
    "parse_delivery_event",
    "provider_message_id_of",
    "persist_webhook_event",
]
