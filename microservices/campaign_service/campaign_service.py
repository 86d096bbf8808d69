"""
Campaign Service Business Logic

Implements the campaign lifecycle (create, edit, schedule, delete), the
enqueue transaction that turns a campaign into queued messages paid for
with credits, preview / status / statistics, offer redemption and the
scheduled-campaign fire handler.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .events.publishers import CampaignEventPublisher
from .dispatch_worker import dispatch_task_id
from .finalizer import CampaignFinalizer, stats_cache_key
from .models import (
    Campaign,
    CampaignCreateRequest,
    CampaignListResponse,
    CampaignMessage,
    CampaignPreview,
    CampaignStats,
    CampaignStatus,
    CampaignStatusResponse,
    CampaignUpdateRequest,
    Contact,
    EnqueueResult,
    MessageStatus,
    MessageTemplate,
    PreviewItem,
    Redemption,
    RedemptionOutcome,
    RedemptionResult,
    TrackingLookup,
)
from .protocols import (
    CampaignEnqueueError,
    CampaignInsufficientCreditsError,
    CampaignNotFoundError,
    CampaignRepositoryProtocol,
    CampaignServiceError,
    CampaignValidationError,
    InsufficientCreditsError,
    InvalidCampaignStateError,
    LedgerProtocol,
    NoRecipientsError,
    StatsCacheProtocol,
    TaskDispatcherProtocol,
)
from .scheduler import CampaignScheduler, parse_scheduled_at, same_instant
from .sms_utils import generate_tracking_id, is_e164, is_plausible_tracking_id, render_template

logger = logging.getLogger(__name__)


def _rate(numerator: int, denominator: int) -> float:
    return round(numerator / denominator, 4) if denominator > 0 else 0.0


class CampaignService:
    """Campaign service business logic layer"""

    MAX_PAGE_SIZE = 100

    # Statuses in which a campaign may be edited or rescheduled
    EDITABLE_STATUSES = frozenset(s for s in CampaignStatus if s.is_editable)
    DELETABLE_STATUSES = frozenset(s for s in CampaignStatus if s.is_deletable)

    def __init__(
        self,
        repository: CampaignRepositoryProtocol,
        ledger: LedgerProtocol,
        dispatcher: Optional[TaskDispatcherProtocol] = None,
        scheduler: Optional[CampaignScheduler] = None,
        finalizer: Optional[CampaignFinalizer] = None,
        cache: Optional[StatsCacheProtocol] = None,
        publisher: Optional[CampaignEventPublisher] = None,
        system_owner_id: str = "system",
        preview_sample_size: int = 10,
        stats_cache_ttl: int = 30,
    ):
        self.repository = repository
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.scheduler = scheduler or CampaignScheduler()
        self.publisher = publisher or CampaignEventPublisher()
        self.cache = cache
        self.finalizer = finalizer or CampaignFinalizer(repository, cache, self.publisher)
        self.system_owner_id = system_owner_id
        self.preview_sample_size = preview_sample_size
        self.stats_cache_ttl = stats_cache_ttl

    # ====================
    # Campaign CRUD
    # ====================

    async def create_campaign(
        self,
        request: CampaignCreateRequest,
        owner_id: str,
        created_by: Optional[str] = None,
    ) -> Campaign:
        """
        Create a campaign in draft, or scheduled when scheduled_at is given.

        The template must belong to the owner or to the system owner; the
        list, when given, must belong to the owner.
        """
        await self._require_template(request.template_id, owner_id)
        if request.list_id is not None:
            await self._require_list(request.list_id, owner_id)
        if request.scheduled_at is not None:
            self._require_future(request.scheduled_at)

        now = datetime.now(timezone.utc)
        campaign = Campaign(
            campaign_id=f"cmp_{uuid.uuid4().hex[:16]}",
            owner_id=owner_id,
            name=request.name,
            template_id=request.template_id,
            list_id=request.list_id,
            status=CampaignStatus.DRAFT,
            created_by=created_by or owner_id,
            created_at=now,
            updated_at=now,
        )
        campaign = await self.repository.create_campaign(campaign)
        logger.info(f"Campaign created: {campaign.campaign_id} for owner {owner_id}")
        await self.publisher.campaign_created(campaign)

        if request.scheduled_at is not None:
            campaign = await self.schedule_campaign(
                campaign.campaign_id, owner_id, request.scheduled_at
            )
        return campaign

    async def get_campaign(self, campaign_id: str, owner_id: Optional[str] = None) -> Campaign:
        """Get campaign by ID; other owners' campaigns are reported as missing"""
        campaign = await self.repository.get_campaign(campaign_id, owner_id)
        if not campaign:
            raise CampaignNotFoundError(f"Campaign not found: {campaign_id}")
        return campaign

    async def list_campaigns(
        self,
        owner_id: str,
        status: Optional[CampaignStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> CampaignListResponse:
        """Paginated campaigns of an owner, newest first"""
        page = max(1, page)
        page_size = min(self.MAX_PAGE_SIZE, max(1, page_size))
        campaigns, total = await self.repository.list_campaigns(
            owner_id, status=status, limit=page_size, offset=(page - 1) * page_size
        )
        return CampaignListResponse(campaigns=campaigns, total=total, page=page, page_size=page_size)

    async def update_campaign(
        self,
        campaign_id: str,
        owner_id: str,
        request: CampaignUpdateRequest,
    ) -> Campaign:
        """
        Update name, template or audience.

        Sending and completed campaigns are immutable. A failed campaign
        whose template or audience changes goes back to draft.
        """
        campaign = await self.get_campaign(campaign_id, owner_id)
        self._ensure_editable(campaign)

        updates: Dict[str, Any] = {}
        if request.name is not None and request.name != campaign.name:
            updates["name"] = request.name

        if request.template_id is not None and request.template_id != campaign.template_id:
            await self._require_template(request.template_id, owner_id)
            updates["template_id"] = request.template_id

        if "list_id" in request.model_fields_set and request.list_id != campaign.list_id:
            if request.list_id is not None:
                await self._require_list(request.list_id, owner_id)
            updates["list_id"] = request.list_id

        if not updates:
            return campaign

        if campaign.status == CampaignStatus.FAILED and ({"template_id", "list_id"} & updates.keys()):
            updates["status"] = CampaignStatus.DRAFT

        updated = await self.repository.update_campaign(
            campaign_id, owner_id, updates, allowed_statuses=self.EDITABLE_STATUSES
        )
        if not updated:
            current = await self.get_campaign(campaign_id, owner_id)
            raise InvalidCampaignStateError(
                f"Campaign {campaign_id} changed state during update",
                current.status,
            )

        logger.info(f"Campaign updated: {campaign_id} ({', '.join(sorted(updates))})")
        return updated

    async def delete_campaign(self, campaign_id: str, owner_id: str) -> bool:
        """Delete a campaign that is not sending; cancels its scheduled task"""
        campaign = await self.get_campaign(campaign_id, owner_id)
        if not campaign.status.is_deletable:
            raise InvalidCampaignStateError(
                "Cannot delete a campaign while it is sending", campaign.status
            )

        deleted = await self.repository.delete_campaign(
            campaign_id, owner_id, allowed_statuses=self.DELETABLE_STATUSES
        )
        if not deleted:
            current = await self.get_campaign(campaign_id, owner_id)
            raise InvalidCampaignStateError(
                f"Campaign {campaign_id} changed state during delete", current.status
            )

        await self.scheduler.cancel(campaign.task_id)
        await self.finalizer.invalidate_stats(owner_id, campaign_id)
        await self.publisher.campaign_deleted(campaign_id, owner_id)
        logger.info(f"Campaign deleted: {campaign_id}")
        return True

    # ====================
    # Scheduling
    # ====================

    async def schedule_campaign(
        self,
        campaign_id: str,
        owner_id: str,
        scheduled_at: datetime,
    ) -> Campaign:
        """
        Schedule or reschedule a campaign.

        The delayed task for the new time is published first, then the
        previous task is cancelled.
        """
        scheduled_at = self._require_future(scheduled_at)
        campaign = await self.get_campaign(campaign_id, owner_id)
        if not campaign.status.can_transition_to(CampaignStatus.SCHEDULED):
            raise InvalidCampaignStateError(
                f"Cannot schedule campaign in status {campaign.status.value}", campaign.status
            )

        task_id = await self.scheduler.schedule(campaign, scheduled_at)
        updated = await self.repository.update_campaign(
            campaign_id,
            owner_id,
            {"status": CampaignStatus.SCHEDULED, "scheduled_at": scheduled_at, "task_id": task_id},
            allowed_statuses=CampaignStatus.sources_of(CampaignStatus.SCHEDULED),
        )
        if not updated:
            await self.scheduler.cancel(task_id)
            current = await self.get_campaign(campaign_id, owner_id)
            raise InvalidCampaignStateError(
                f"Campaign {campaign_id} changed state during scheduling", current.status
            )

        if campaign.task_id and campaign.task_id != task_id:
            await self.scheduler.cancel(campaign.task_id)

        await self.publisher.campaign_scheduled(updated)
        return updated

    async def unschedule_campaign(self, campaign_id: str, owner_id: str) -> Campaign:
        """Scheduled -> draft; cancels the delayed task"""
        campaign = await self.get_campaign(campaign_id, owner_id)
        if campaign.status != CampaignStatus.SCHEDULED:
            raise InvalidCampaignStateError(
                f"Campaign {campaign_id} is not scheduled", campaign.status
            )

        updated = await self.repository.update_campaign(
            campaign_id,
            owner_id,
            {"status": CampaignStatus.DRAFT, "scheduled_at": None, "task_id": None},
            allowed_statuses=[CampaignStatus.SCHEDULED],
        )
        if not updated:
            current = await self.get_campaign(campaign_id, owner_id)
            raise InvalidCampaignStateError(
                f"Campaign {campaign_id} changed state during unscheduling", current.status
            )

        await self.scheduler.cancel(campaign.task_id)
        logger.info(f"Campaign unscheduled: {campaign_id}")
        return updated

    async def handle_scheduled_task(
        self, task_id: str, payload: Dict[str, Any]
    ) -> Optional[EnqueueResult]:
        """
        Fire handler of a delayed campaign task.

        A task whose campaign was deleted, unscheduled, already enqueued or
        rescheduled to another time is a no-op. Business outcomes (no
        recipients, insufficient credits) are logged, not retried; storage
        failures propagate so the queue retries.
        """
        campaign_id = (payload or {}).get("campaign_id")
        if not campaign_id:
            logger.warning(f"Scheduled task {task_id} has no campaign_id")
            return None

        campaign = await self.repository.get_campaign(campaign_id, payload.get("owner_id"))
        if not campaign:
            logger.info(f"Scheduled task {task_id}: campaign {campaign_id} no longer exists")
            return None
        if campaign.status != CampaignStatus.SCHEDULED:
            logger.info(
                f"Scheduled task {task_id}: campaign {campaign_id} is {campaign.status.value}, skipping"
            )
            return None
        if not same_instant(campaign.scheduled_at, parse_scheduled_at(payload.get("scheduled_at"))):
            logger.info(f"Scheduled task {task_id}: campaign {campaign_id} was rescheduled, skipping")
            return None

        try:
            result = await self.enqueue_campaign(campaign_id, campaign.owner_id)
        except CampaignEnqueueError:
            raise
        except CampaignServiceError as e:
            logger.warning(f"Scheduled enqueue of {campaign_id} not performed ({e.reason}): {e}")
            return None

        logger.info(f"Scheduled campaign {campaign_id} enqueued: {result.enqueued}/{result.total} tasks")
        return result

    # ====================
    # Enqueue Transaction
    # ====================

    async def enqueue_campaign(
        self, campaign_id: str, owner_id: Optional[str] = None
    ) -> EnqueueResult:
        """
        Turn a campaign into queued messages.

        The status claim, the debit of one credit per recipient, the message
        inserts and the campaign total are one transaction: an insufficient
        balance or a storage error leaves the campaign and the wallet as
        they were. Dispatch tasks are published after commit and may be
        fewer than the recipients; the sweeper picks up the rest.

        Raises:
            CampaignNotFoundError: campaign missing or not owned
            InvalidCampaignStateError: not_enqueueable / already_sending
            CampaignValidationError: template missing
            NoRecipientsError: no_recipients / no_valid_recipients (campaign failed)
            CampaignInsufficientCreditsError: balance below recipient count
            CampaignEnqueueError: storage failure, rolled back
        """
        campaign = await self.get_campaign(campaign_id, owner_id)
        if campaign.status not in CampaignStatus.enqueueable():
            raise InvalidCampaignStateError(
                f"Cannot enqueue campaign from status {campaign.status.value}",
                campaign.status,
                reason="not_enqueueable",
            )

        template = await self._require_template(campaign.template_id, campaign.owner_id)
        recipients, audience_size = await self._resolve_recipients(campaign)
        if audience_size == 0:
            await self._fail_campaign(campaign, "no_recipients")
            raise NoRecipientsError("Campaign audience is empty", reason="no_recipients")
        if not recipients:
            await self._fail_campaign(campaign, "no_valid_recipients")
            raise NoRecipientsError(
                "No recipient has a valid phone number", reason="no_valid_recipients"
            )

        total = len(recipients)
        messages = [self._build_message(campaign, template, contact) for contact in recipients]

        try:
            async with self.repository.transaction() as conn:
                prior = await self.repository.claim_for_sending(
                    campaign_id, campaign.owner_id, CampaignStatus.enqueueable(), conn=conn
                )
                if prior is None:
                    raise InvalidCampaignStateError(
                        f"Campaign {campaign_id} is already sending",
                        reason="already_sending",
                    )
                await self.ledger.debit(
                    campaign.owner_id,
                    total,
                    reason=f"enqueue:campaign:{campaign_id}",
                    campaign_id=campaign_id,
                    conn=conn,
                )
                await self.repository.insert_messages(messages, conn=conn)
                await self.repository.set_campaign_total(campaign_id, total, conn=conn)
        except InvalidCampaignStateError:
            logger.info(f"Enqueue of {campaign_id} lost the race, already sending")
            raise
        except InsufficientCreditsError as e:
            logger.info(
                f"Enqueue of {campaign_id} rejected: {total} credits required, {e.available} available"
            )
            raise CampaignInsufficientCreditsError(
                "Insufficient credits", available=e.available, required=total
            ) from e
        except Exception as e:
            logger.error(f"Enqueue of {campaign_id} failed and was rolled back: {e}", exc_info=True)
            raise CampaignEnqueueError(f"Failed to enqueue campaign {campaign_id}") from e

        logger.info(f"Campaign {campaign_id} claimed from {prior.value}: {total} messages queued")

        enqueued = 0
        for message in messages:
            if await self._dispatch(message.message_id):
                enqueued += 1
        if enqueued < total:
            logger.warning(
                f"Campaign {campaign_id}: {total - enqueued} of {total} dispatch tasks not enqueued, "
                f"left for the sweeper"
            )

        if campaign.task_id:
            await self.scheduler.cancel(campaign.task_id)

        campaign.status = CampaignStatus.SENDING
        campaign.total = total
        await self.publisher.campaign_enqueued(campaign, total, enqueued)
        await self.finalizer.invalidate_stats(campaign.owner_id, campaign_id)

        return EnqueueResult(ok=True, campaign_id=campaign_id, total=total, enqueued=enqueued)

    async def _resolve_recipients(self, campaign: Campaign) -> Tuple[List[Contact], int]:
        """Subscribed contacts, unique by contact id, with an E.164 phone; plus raw audience size"""
        audience = await self.repository.list_audience(campaign.owner_id, campaign.list_id)

        seen = set()
        recipients = []
        for contact in audience:
            if contact.contact_id in seen or not contact.is_subscribed:
                continue
            seen.add(contact.contact_id)
            if is_e164(contact.phone):
                recipients.append(contact)
        return recipients, len(audience)

    def _build_message(
        self, campaign: Campaign, template: MessageTemplate, contact: Contact
    ) -> CampaignMessage:
        return CampaignMessage(
            message_id=f"msg_{uuid.uuid4().hex[:24]}",
            owner_id=campaign.owner_id,
            campaign_id=campaign.campaign_id,
            contact_id=contact.contact_id,
            to_phone=contact.phone,
            text=render_template(template.text, contact),
            tracking_id=generate_tracking_id(),
            status=MessageStatus.QUEUED,
        )

    async def _dispatch(self, message_id: str) -> bool:
        if not self.dispatcher:
            return False
        try:
            return await self.dispatcher.enqueue(dispatch_task_id(message_id), {"message_id": message_id})
        except Exception as e:
            logger.warning(f"Dispatch enqueue failed for {message_id}: {e}")
            return False

    async def _fail_campaign(self, campaign: Campaign, reason: str) -> None:
        if await self.repository.mark_campaign_failed(
            campaign.campaign_id, CampaignStatus.sources_of(CampaignStatus.FAILED)
        ):
            logger.info(f"Campaign {campaign.campaign_id} failed: {reason}")
            await self.scheduler.cancel(campaign.task_id)
            await self.publisher.campaign_failed(campaign, reason)

    # ====================
    # Preview / Status / Stats
    # ====================

    async def preview_campaign(self, campaign_id: str, owner_id: str) -> CampaignPreview:
        """Render the first recipients exactly as enqueue would; no side effects"""
        campaign = await self.get_campaign(campaign_id, owner_id)
        template = await self._require_template(campaign.template_id, owner_id)
        recipients, _ = await self._resolve_recipients(campaign)

        sample = [
            PreviewItem(to=contact.phone, text=render_template(template.text, contact))
            for contact in recipients[: self.preview_sample_size]
        ]
        return CampaignPreview(campaign_id=campaign_id, sample=sample, count=len(recipients))

    async def get_campaign_status(self, campaign_id: str, owner_id: str) -> CampaignStatusResponse:
        """Message counts per status; completes the campaign first if drained"""
        campaign = await self.get_campaign(campaign_id, owner_id)
        if campaign.status == CampaignStatus.SENDING:
            if await self.finalizer.finalize(campaign_id):
                campaign = await self.get_campaign(campaign_id, owner_id)

        metrics = await self.repository.count_messages_by_status(campaign_id)
        return CampaignStatusResponse(campaign=campaign, metrics=metrics)

    async def get_campaign_stats(self, campaign_id: str, owner_id: str) -> CampaignStats:
        """Delivery and conversion statistics, cached briefly per (owner, campaign)"""
        await self.get_campaign(campaign_id, owner_id)

        key = stats_cache_key(owner_id, campaign_id)
        cached = await self._cache_get(key)
        if cached:
            try:
                return CampaignStats.model_validate_json(cached)
            except ValueError:
                logger.debug(f"Discarding unreadable cached stats for {key}")

        raw = await self.repository.get_campaign_stats(campaign_id, owner_id)
        stats = CampaignStats(
            campaign_id=campaign_id,
            sent=raw["sent"],
            delivered=raw["delivered"],
            failed=raw["failed"],
            redemptions=raw["redemptions"],
            unsubscribes=raw.get("unsubscribes", 0),
            delivered_rate=_rate(raw["delivered"], raw["sent"]),
            conversion_rate=_rate(raw["redemptions"], raw["delivered"]),
            first_sent_at=raw.get("first_sent_at"),
        )

        await self._cache_set(key, stats.model_dump_json())
        return stats

    async def _cache_get(self, key: str) -> Optional[str]:
        if not self.cache:
            return None
        try:
            return await self.cache.get(key)
        except Exception as e:
            logger.warning(f"Stats cache read failed for {key}: {e}")
            return None

    async def _cache_set(self, key: str, value: str) -> None:
        if not self.cache:
            return
        try:
            await self.cache.set(key, value, ttl=self.stats_cache_ttl)
        except Exception as e:
            logger.warning(f"Stats cache write failed for {key}: {e}")

    # ====================
    # Tracking & Redemption
    # ====================

    async def lookup_tracking(self, tracking_id: str) -> TrackingLookup:
        """Public lookup; reveals only existence and redemption state"""
        if not is_plausible_tracking_id(tracking_id):
            return TrackingLookup(exists=False)

        message = await self.repository.get_message_by_tracking_id(tracking_id)
        if not message:
            return TrackingLookup(exists=False)

        redemption = await self.repository.get_redemption(message.message_id)
        if redemption:
            await self.repository.record_visit(message.message_id)
        return TrackingLookup(exists=True, already_redeemed=redemption is not None)

    async def redeem(
        self,
        tracking_id: str,
        owner_id: str,
        redeemed_by: Optional[str] = None,
        evidence: Optional[Dict[str, Any]] = None,
    ) -> RedemptionResult:
        """
        Record the redemption of a message's offer, at most once.

        Messages of other owners are indistinguishable from missing ones.
        """
        if not is_plausible_tracking_id(tracking_id):
            raise CampaignValidationError("Invalid tracking id", field="trackingId")

        message = await self.repository.get_message_by_tracking_id(tracking_id)
        if not message or message.owner_id != owner_id:
            return RedemptionResult(status=RedemptionOutcome.NOT_FOUND_OR_FORBIDDEN)

        existing = await self.repository.get_redemption(message.message_id)
        if existing:
            return RedemptionResult(status=RedemptionOutcome.ALREADY_REDEEMED, redemption=existing)

        created = await self.repository.create_redemption(
            Redemption(
                redemption_id=f"rdm_{uuid.uuid4().hex[:16]}",
                owner_id=owner_id,
                message_id=message.message_id,
                campaign_id=message.campaign_id,
                contact_id=message.contact_id,
                redeemed_by=redeemed_by or owner_id,
                evidence=evidence or {},
            )
        )
        if created is None:
            existing = await self.repository.get_redemption(message.message_id)
            return RedemptionResult(status=RedemptionOutcome.ALREADY_REDEEMED, redemption=existing)

        await self.finalizer.invalidate_stats(owner_id, message.campaign_id)
        await self.publisher.message_redeemed(message)
        logger.info(f"Message {message.message_id} redeemed (campaign {message.campaign_id})")
        return RedemptionResult(status=RedemptionOutcome.REDEEMED, redemption=created)

    # ====================
    # Validation Helpers
    # ====================

    def _ensure_editable(self, campaign: Campaign) -> None:
        if campaign.status == CampaignStatus.SENDING:
            raise InvalidCampaignStateError("Campaign is sending and cannot be edited", campaign.status)
        if campaign.status == CampaignStatus.COMPLETED:
            raise InvalidCampaignStateError("Completed campaigns cannot be edited", campaign.status)

    def _require_future(self, scheduled_at: datetime) -> datetime:
        if scheduled_at.tzinfo is None:
            scheduled_at = scheduled_at.replace(tzinfo=timezone.utc)
        if scheduled_at <= datetime.now(timezone.utc):
            raise CampaignValidationError("scheduled_at must be in the future", field="scheduled_at")
        return scheduled_at

    async def _require_template(self, template_id: str, owner_id: str) -> MessageTemplate:
        owners = [owner_id] if owner_id == self.system_owner_id else [owner_id, self.system_owner_id]
        template = await self.repository.get_template(template_id, owners)
        if not template:
            raise CampaignValidationError(f"Template not found: {template_id}", field="template_id")
        return template

    async def _require_list(self, list_id: str, owner_id: str) -> None:
        if not await self.repository.list_exists(list_id, owner_id):
            raise CampaignValidationError(f"List not found: {list_id}", field="list_id")

    # ====================
    # Health Check
    # ====================

    async def health_check(self) -> Dict[str, Any]:
        """Check service health"""
        db_healthy = await self.repository.health_check()
        return {
            "status": "healthy" if db_healthy else "degraded",
            "database": "connected" if db_healthy else "disconnected",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


__all__ = ["CampaignService"]
