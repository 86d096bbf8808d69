"""
Campaign Service Data Models

Campaign lifecycle, per-recipient messages, delivery events, redemptions and
the request / response shapes of the campaign API.

Statuses are closed enums with explicit transition tables. The conditional
updates in the repository take their allowed source statuses from
``sources_of``, so a stored status only moves along a listed edge.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ====================
# Enumerations
# ====================

class CampaignStatus(str, Enum):
    """Campaign lifecycle status"""
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENDING = "sending"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"

    @classmethod
    def sources_of(cls, target: "CampaignStatus") -> FrozenSet["CampaignStatus"]:
        """Statuses that may move to ``target``"""
        return frozenset(s for s, targets in _CAMPAIGN_TRANSITIONS.items() if target in targets)

    @classmethod
    def enqueueable(cls) -> FrozenSet["CampaignStatus"]:
        """Statuses from which the enqueue transaction may start"""
        return cls.sources_of(cls.SENDING)

    @property
    def is_editable(self) -> bool:
        return self not in (CampaignStatus.SENDING, CampaignStatus.COMPLETED)

    @property
    def is_deletable(self) -> bool:
        return self is not CampaignStatus.SENDING

    def can_transition_to(self, target: "CampaignStatus") -> bool:
        return target in _CAMPAIGN_TRANSITIONS[self]


_CAMPAIGN_TRANSITIONS: Dict[CampaignStatus, FrozenSet[CampaignStatus]] = {
    CampaignStatus.DRAFT: frozenset({
        CampaignStatus.SCHEDULED, CampaignStatus.SENDING, CampaignStatus.FAILED,
    }),
    CampaignStatus.SCHEDULED: frozenset({
        CampaignStatus.SCHEDULED, CampaignStatus.DRAFT, CampaignStatus.SENDING,
        CampaignStatus.FAILED, CampaignStatus.PAUSED,
    }),
    CampaignStatus.PAUSED: frozenset({
        CampaignStatus.DRAFT, CampaignStatus.SCHEDULED, CampaignStatus.SENDING,
        CampaignStatus.FAILED,
    }),
    CampaignStatus.SENDING: frozenset({CampaignStatus.COMPLETED}),
    CampaignStatus.COMPLETED: frozenset(),
    CampaignStatus.FAILED: frozenset({CampaignStatus.DRAFT}),
}


class MessageStatus(str, Enum):
    """Per-recipient message status"""
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"

    @classmethod
    def pending(cls) -> FrozenSet["MessageStatus"]:
        """Statuses that keep a campaign from completing"""
        return frozenset({cls.QUEUED, cls.SENT})

    @classmethod
    def sources_of(cls, target: "MessageStatus") -> FrozenSet["MessageStatus"]:
        """Statuses that may move to ``target``"""
        return frozenset(s for s, targets in _MESSAGE_TRANSITIONS.items() if target in targets)

    @property
    def is_terminal(self) -> bool:
        return self in (MessageStatus.DELIVERED, MessageStatus.FAILED)

    def can_transition_to(self, target: "MessageStatus") -> bool:
        return target in _MESSAGE_TRANSITIONS[self]


# Terminal statuses may still be overwritten by a later delivery report:
# providers do not order their callbacks, the last report wins.
_MESSAGE_TRANSITIONS: Dict[MessageStatus, FrozenSet[MessageStatus]] = {
    MessageStatus.QUEUED: frozenset({
        MessageStatus.QUEUED, MessageStatus.SENT, MessageStatus.DELIVERED, MessageStatus.FAILED,
    }),
    MessageStatus.SENT: frozenset({MessageStatus.DELIVERED, MessageStatus.FAILED}),
    MessageStatus.DELIVERED: frozenset({MessageStatus.FAILED}),
    MessageStatus.FAILED: frozenset({MessageStatus.DELIVERED}),
}


class DispatchOutcome(str, Enum):
    """Result of handling one dispatch task"""
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
    DISCARDED = "discarded"


class RedemptionOutcome(str, Enum):
    """Result of an owner redeeming a tracking id"""
    REDEEMED = "redeemed"
    ALREADY_REDEEMED = "already_redeemed"
    NOT_FOUND_OR_FORBIDDEN = "not_found_or_forbidden"


# ====================
# Audience & Content
# ====================

class Contact(BaseModel):
    """Audience member as seen by the campaign pipeline"""
    contact_id: str
    owner_id: str
    phone: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_subscribed: bool = True
    unsubscribed_at: Optional[datetime] = None


class MessageTemplate(BaseModel):
    """SMS body with {{placeholders}}"""
    template_id: str
    owner_id: str
    name: str
    text: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ====================
# Core Models
# ====================

class Campaign(BaseModel):
    """SMS campaign"""
    campaign_id: str
    owner_id: str
    name: str
    template_id: str
    list_id: Optional[str] = None  # None targets every subscribed contact
    status: CampaignStatus = CampaignStatus.DRAFT
    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    total: int = 0
    task_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CampaignMessage(BaseModel):
    """One message per (campaign, contact)"""
    message_id: str
    owner_id: str
    campaign_id: str
    contact_id: str
    to_phone: str
    text: str
    tracking_id: str
    status: MessageStatus = MessageStatus.QUEUED
    provider_message_id: Optional[str] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    error: Optional[str] = None
    attempts: int = 0
    last_dispatched_at: Optional[datetime] = None
    lease_until: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Redemption(BaseModel):
    """Offer redemption, at most one per message"""
    redemption_id: str
    owner_id: str
    message_id: str
    campaign_id: str
    contact_id: str
    redeemed_by: Optional[str] = None
    evidence: Dict[str, Any] = Field(default_factory=dict)
    visits: int = 0
    last_visited_at: Optional[datetime] = None
    redeemed_at: Optional[datetime] = None


class WebhookEvent(BaseModel):
    """Raw provider callback as received"""
    event_id: str
    provider: str
    event_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    provider_message_id: Optional[str] = None
    received_at: Optional[datetime] = None


class DeliveryEvent(BaseModel):
    """Delivery report normalized from a provider callback"""
    provider_message_id: str
    raw_status: str
    status: Optional[MessageStatus] = None  # None when the vocabulary is unknown
    occurred_at: Optional[datetime] = None
    error: Optional[str] = None


# ====================
# Request Models
# ====================

class CampaignCreateRequest(BaseModel):
    """Request to create a campaign"""
    name: str = Field(..., min_length=1, max_length=200)
    template_id: str = Field(..., min_length=1)
    list_id: Optional[str] = None
    scheduled_at: Optional[datetime] = None


class CampaignUpdateRequest(BaseModel):
    """Partial campaign update"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    template_id: Optional[str] = None
    list_id: Optional[str] = None


class ScheduleRequest(BaseModel):
    """Request to schedule or reschedule a campaign"""
    scheduled_at: datetime


class RedeemRequest(BaseModel):
    """Owner confirmation of an offer redemption"""
    model_config = ConfigDict(populate_by_name=True)

    tracking_id: str = Field(..., alias="trackingId", min_length=1)
    evidence: Dict[str, Any] = Field(default_factory=dict)


# ====================
# Response Models
# ====================

class EnqueueResult(BaseModel):
    """Outcome of a successful enqueue"""
    ok: bool = True
    campaign_id: str
    total: int
    enqueued: int


class PreviewItem(BaseModel):
    to: str
    text: str


class CampaignPreview(BaseModel):
    """Rendered sample of a campaign; count is the full audience size"""
    campaign_id: str
    sample: List[PreviewItem] = Field(default_factory=list)
    count: int = 0


class MessageStatusCounts(BaseModel):
    queued: int = 0
    sent: int = 0
    delivered: int = 0
    failed: int = 0


class CampaignStatusResponse(BaseModel):
    campaign: Campaign
    metrics: MessageStatusCounts


class CampaignStats(BaseModel):
    """Delivery and conversion statistics for one campaign"""
    campaign_id: str
    sent: int = 0
    delivered: int = 0
    failed: int = 0
    redemptions: int = 0
    unsubscribes: int = 0  # recipients who opted out after the first send
    delivered_rate: float = 0.0
    conversion_rate: float = 0.0
    first_sent_at: Optional[datetime] = None


class CampaignListResponse(BaseModel):
    campaigns: List[Campaign] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20


class ReconciliationResult(BaseModel):
    """Webhook acknowledgement body"""
    ok: bool = True
    updated: int = 0


class InboundResult(BaseModel):
    ok: bool = True
    unsubscribed: int = 0


class TrackingLookup(BaseModel):
    """Public view of a tracking id; nothing internal is exposed"""
    exists: bool
    already_redeemed: bool = False


class RedemptionResult(BaseModel):
    status: RedemptionOutcome
    redemption: Optional[Redemption] = None


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    port: int
    version: str
    dependencies: Dict[str, str] = Field(default_factory=dict)


class ReadinessResponse(BaseModel):
    """Readiness check response"""
    ready: bool
    checks: Dict[str, bool] = Field(default_factory=dict)
    details: Dict[str, str] = Field(default_factory=dict)


class LivenessResponse(BaseModel):
    """Liveness check response"""
    alive: bool
    uptime_seconds: float


__all__ = [
    # Enums
    "CampaignStatus",
    "MessageStatus",
    "DispatchOutcome",
    "RedemptionOutcome",
    # Models
    "Contact",
    "MessageTemplate",
    "Campaign",
    "CampaignMessage",
    "Redemption",
    "WebhookEvent",
    "DeliveryEvent",
    # Requests
    "CampaignCreateRequest",
    "CampaignUpdateRequest",
    "ScheduleRequest",
    "RedeemRequest",
    # Responses
    "EnqueueResult",
    "PreviewItem",
    "CampaignPreview",
    "MessageStatusCounts",
    "CampaignStatusResponse",
    "CampaignStats",
    "CampaignListResponse",
    "ReconciliationResult",
    "InboundResult",
    "TrackingLookup",
    "RedemptionResult",
    "HealthResponse",
    "ReadinessResponse",
    "LivenessResponse",
]
