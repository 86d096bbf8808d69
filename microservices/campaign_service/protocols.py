"""
Campaign Service Protocols

Defines interfaces for dependency injection and testing.
Following the protocol-based architecture pattern.
"""

from datetime import datetime
from typing import (
    Any,
    AsyncContextManager,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Tuple,
)

from microservices.credit_service.models import LedgerEntryResult
from microservices.credit_service.protocols import InsufficientCreditsError

from .models import (
    Campaign,
    CampaignMessage,
    CampaignStatus,
    Contact,
    MessageStatus,
    MessageStatusCounts,
    MessageTemplate,
    Redemption,
    WebhookEvent,
)


# ====================
# Repository Protocol
# ====================


class CampaignRepositoryProtocol(Protocol):
    """Protocol for campaign data repository"""

    async def initialize(self) -> None:
        """Initialize repository connection"""
        ...

    async def close(self) -> None:
        """Close repository connection"""
        ...

    async def health_check(self) -> bool:
        """Check repository health"""
        ...

    def transaction(self) -> AsyncContextManager[Any]:
        """Open a unit of work; yields a connection handle"""
        ...

    # Campaign CRUD
    async def create_campaign(self, campaign: Campaign) -> Campaign:
        """Insert a campaign"""
        ...

    async def get_campaign(
        self, campaign_id: str, owner_id: Optional[str] = None
    ) -> Optional[Campaign]:
        """Get campaign by ID, scoped to owner when given"""
        ...

    async def list_campaigns(
        self,
        owner_id: str,
        status: Optional[CampaignStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Campaign], int]:
        """List an owner's campaigns, newest first"""
        ...

    async def update_campaign(
        self,
        campaign_id: str,
        owner_id: str,
        updates: Dict[str, Any],
        allowed_statuses: Optional[Iterable[CampaignStatus]] = None,
    ) -> Optional[Campaign]:
        """Update fields if the campaign is in one of allowed_statuses"""
        ...

    async def delete_campaign(
        self,
        campaign_id: str,
        owner_id: str,
        allowed_statuses: Iterable[CampaignStatus],
    ) -> bool:
        """Delete if the campaign is in one of allowed_statuses"""
        ...

    # Lifecycle transitions
    async def claim_for_sending(
        self,
        campaign_id: str,
        owner_id: str,
        from_statuses: Iterable[CampaignStatus],
        conn: Any = None,
    ) -> Optional[CampaignStatus]:
        """
        Conditionally move the campaign to sending.

        Returns the prior status, or None when the campaign was not in
        from_statuses (another enqueue won).
        """
        ...

    async def set_campaign_total(self, campaign_id: str, total: int, conn: Any = None) -> None:
        """Record the recipient count fixed at enqueue time"""
        ...

    async def mark_campaign_failed(
        self, campaign_id: str, from_statuses: Iterable[CampaignStatus]
    ) -> bool:
        """Conditionally move the campaign to failed"""
        ...

    async def complete_campaign_if_drained(self, campaign_id: str) -> Optional[Campaign]:
        """
        Move a sending campaign with no queued/sent messages to completed.

        Returns the campaign only for the call that performed the transition.
        """
        ...

    async def list_sending_campaign_ids(self, limit: int = 100) -> List[str]:
        """Campaigns currently in sending"""
        ...

    # Audience & content
    async def get_template(
        self, template_id: str, owner_ids: List[str]
    ) -> Optional[MessageTemplate]:
        """Get a template owned by one of owner_ids"""
        ...

    async def list_exists(self, list_id: str, owner_id: str) -> bool:
        """Check that a contact list belongs to the owner"""
        ...

    async def list_audience(self, owner_id: str, list_id: Optional[str] = None) -> List[Contact]:
        """Subscribed contacts of a list, or of the whole owner when list_id is None"""
        ...

    async def get_owner_sender(self, owner_id: str) -> Optional[str]:
        """Configured sender name of an owner"""
        ...

    async def unsubscribe_by_phone(self, phone: str) -> int:
        """Unsubscribe every subscribed contact with this phone"""
        ...

    # Messages
    async def insert_messages(self, messages: List[CampaignMessage], conn: Any = None) -> int:
        """Insert queued messages"""
        ...

    async def get_message(self, message_id: str) -> Optional[CampaignMessage]:
        """Get message by ID"""
        ...

    async def claim_message_for_dispatch(
        self, message_id: str, lease_seconds: int
    ) -> Optional[CampaignMessage]:
        """
        Lease a queued message for one provider call.

        Returns None when the message is not queued or another worker holds
        an unexpired lease.
        """
        ...

    async def mark_message_sent(self, message_id: str, provider_message_id: Optional[str]) -> bool:
        """queued -> sent"""
        ...

    async def record_retryable_failure(self, message_id: str, error: str) -> bool:
        """Keep the message queued, record the error and release the lease"""
        ...

    async def mark_message_failed(self, message_id: str, error: str) -> bool:
        """queued -> failed"""
        ...

    async def find_messages_by_provider_id(self, provider_message_id: str) -> List[CampaignMessage]:
        """Messages sharing a provider correlation id"""
        ...

    async def apply_delivery_status(
        self,
        provider_message_id: str,
        status: MessageStatus,
        occurred_at: Optional[datetime] = None,
        error: Optional[str] = None,
    ) -> List[CampaignMessage]:
        """Apply a delivery report; returns the rows that changed"""
        ...

    async def count_messages_by_status(self, campaign_id: str) -> MessageStatusCounts:
        """Message counts per status for a campaign"""
        ...

    async def find_stale_queued_messages(self, idle_before: datetime, limit: int) -> List[str]:
        """Select and stamp queued messages with no dispatch since idle_before"""
        ...

    # Webhook events
    async def save_webhook_event(self, event: WebhookEvent) -> None:
        """Persist a raw provider callback"""
        ...

    async def list_webhook_events(self, provider_message_id: str) -> List[WebhookEvent]:
        """Stored callbacks for a provider message id, oldest first"""
        ...

    # Stats & tracking
    async def get_campaign_stats(self, campaign_id: str, owner_id: str) -> Dict[str, Any]:
        """Raw counters: sent, delivered, failed, redemptions, unsubscribes, first_sent_at"""
        ...

    async def get_message_by_tracking_id(self, tracking_id: str) -> Optional[CampaignMessage]:
        """Get message by public tracking id"""
        ...

    async def get_redemption(self, message_id: str) -> Optional[Redemption]:
        """Get redemption of a message"""
        ...

    async def record_visit(self, message_id: str) -> bool:
        """Increment the visit counter of an existing redemption"""
        ...

    async def create_redemption(self, redemption: Redemption) -> Optional[Redemption]:
        """Insert a redemption; None if the message was already redeemed"""
        ...


# ====================
# Collaborator Protocols
# ====================


class LedgerProtocol(Protocol):
    """Credit ledger operations used by the campaign pipeline"""

    async def debit(
        self,
        owner_id: str,
        amount: int,
        reason: Optional[str] = None,
        campaign_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        conn: Any = None,
    ) -> LedgerEntryResult:
        ...

    async def refund(
        self,
        owner_id: str,
        amount: int,
        reason: Optional[str] = None,
        campaign_id: Optional[str] = None,
        message_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        conn: Any = None,
    ) -> LedgerEntryResult:
        ...


class TaskDispatcherProtocol(Protocol):
    """At-least-once background task dispatcher"""

    async def enqueue(
        self, task_id: str, payload: Dict[str, Any], delay: Optional[float] = None
    ) -> bool:
        """Publish a task; False when the queue is unavailable"""
        ...

    async def cancel(self, task_id: str) -> bool:
        """Cancel a pending task"""
        ...


class SmsProviderProtocol(Protocol):
    """Outbound SMS gateway"""

    async def send_sms(self, destination: str, text: str, sender: str) -> Dict[str, Any]:
        """Send one SMS; returns {"provider_message_id": ...} or raises ProviderError"""
        ...


class StatsCacheProtocol(Protocol):
    """Failure-tolerant key/value cache"""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl: int = 30) -> bool:
        ...

    async def delete(self, key: str) -> bool:
        ...


class EventBusProtocol(Protocol):
    """Protocol for event bus operations"""

    async def publish_event(self, event: Any) -> bool:
        """Publish an event to the event bus"""
        ...

    async def close(self) -> None:
        """Close event bus connection"""
        ...


# ====================
# Custom Exceptions
# ====================


class CampaignServiceError(Exception):
    """Base exception for campaign service errors"""
    reason: str = "error"


class CampaignNotFoundError(CampaignServiceError):
    """Raised when campaign is not found or not owned by the caller"""
    reason = "not_found"


class CampaignValidationError(CampaignServiceError):
    """Raised when campaign input fails validation"""
    reason = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidCampaignStateError(CampaignServiceError):
    """Raised when campaign is in invalid state for operation"""

    def __init__(
        self,
        message: str,
        current_status: Optional[CampaignStatus] = None,
        reason: str = "invalid_state",
    ):
        super().__init__(message)
        self.current_status = current_status
        self.reason = reason


class CampaignInsufficientCreditsError(CampaignServiceError):
    """Raised when the owner cannot pay for the audience; nothing was changed"""
    reason = "insufficient_credits"

    def __init__(self, message: str, available: Optional[int] = None, required: Optional[int] = None):
        super().__init__(message)
        self.available = available
        self.required = required


class NoRecipientsError(CampaignServiceError):
    """Raised when the audience resolves to nobody"""

    def __init__(self, message: str, reason: str = "no_recipients"):
        super().__init__(message)
        self.reason = reason


class CampaignEnqueueError(CampaignServiceError):
    """Raised when materializing messages fails; the transaction was rolled back"""
    reason = "enqueue_failed"


class ProviderError(CampaignServiceError):
    """Raised by the SMS provider client"""
    reason = "provider_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_retryable(self) -> bool:
        """Network errors, timeouts, 5xx and 429 are retried; other 4xx are final"""
        if self.status_code is None:
            return True
        return self.status_code >= 500 or self.status_code == 429


class WebhookAuthenticationError(CampaignServiceError):
    """Raised when a provider callback fails authentication"""
    reason = "unauthorized"


__all__ = [
    "CampaignRepositoryProtocol",
    "LedgerProtocol",
    "TaskDispatcherProtocol",
    "SmsProviderProtocol",
    "StatsCacheProtocol",
    "EventBusProtocol",
    "CampaignServiceError",
    "CampaignNotFoundError",
    "CampaignValidationError",
    "InvalidCampaignStateError",
    "CampaignInsufficientCreditsError",
    "NoRecipientsError",
    "CampaignEnqueueError",
    "ProviderError",
    "WebhookAuthenticationError",
    "InsufficientCreditsError",
]
