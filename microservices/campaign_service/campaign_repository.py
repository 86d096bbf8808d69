"""
Campaign Service Data Repository

Data access layer - PostgreSQL (asyncpg)

Every state change that can race (enqueue claim, dispatch lease, delivery
reports, completion) is a single conditional UPDATE guarded on the current
status, so concurrent callers converge without application locks.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.postgres_client import PostgresClient

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

logger = logging.getLogger(__name__)


def _status_values(statuses: Iterable[CampaignStatus]) -> List[str]:
    return [CampaignStatus(s).value for s in statuses]


def _transition_sources(
    target: CampaignStatus, allowed: Optional[Iterable[CampaignStatus]] = None
) -> List[str]:
    """Source statuses for a move to target, narrowed to allowed when given"""
    sources = CampaignStatus.sources_of(target)
    if allowed is not None:
        sources = sources & {CampaignStatus(s) for s in allowed}
    return _status_values(sources)


def _message_sources(target: MessageStatus) -> List[str]:
    return [s.value for s in MessageStatus.sources_of(target)]


class CampaignRepository:
    """Campaign service data repository - PostgreSQL (asyncpg)"""

    # Columns a caller may change through update_campaign
    UPDATABLE_FIELDS = {"name", "template_id", "list_id", "status", "scheduled_at", "task_id"}

    def __init__(self, db: PostgresClient):
        self.db = db
        self.schema = "sms"

        # Table names
        self.campaigns_table = "campaigns"
        self.messages_table = "campaign_messages"
        self.templates_table = "message_templates"
        self.contacts_table = "contacts"
        self.lists_table = "lists"
        self.memberships_table = "list_memberships"
        self.owner_settings_table = "owner_settings"
        self.redemptions_table = "redemptions"
        self.webhook_events_table = "webhook_events"

    async def initialize(self):
        """Initialize database connection"""
        await self.db.initialize()
        logger.info("Campaign repository initialized with PostgreSQL")

    async def close(self):
        """Close database connection"""
        logger.info("Campaign repository closed")

    async def health_check(self) -> bool:
        """Check repository health"""
        return await self.db.health_check()

    def transaction(self):
        """Unit of work shared with the credit ledger"""
        return self.db.transaction()

    # ====================
    # Campaign CRUD
    # ====================

    async def create_campaign(self, campaign: Campaign) -> Campaign:
        """Insert a campaign"""
        try:
            row = await self.db.query_row(
                f'''
                INSERT INTO {self.schema}.{self.campaigns_table} (
                    campaign_id, owner_id, name, template_id, list_id, status,
                    scheduled_at, total, task_id, created_by, created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, 0, $8, $9, NOW(), NOW())
                RETURNING *
                ''',
                [
                    campaign.campaign_id,
                    campaign.owner_id,
                    campaign.name,
                    campaign.template_id,
                    campaign.list_id,
                    campaign.status.value,
                    campaign.scheduled_at,
                    campaign.task_id,
                    campaign.created_by,
                ],
            )
            return self._row_to_campaign(row)

        except Exception as e:
            logger.error(f"Error creating campaign: {e}", exc_info=True)
            raise

    async def get_campaign(
        self, campaign_id: str, owner_id: Optional[str] = None
    ) -> Optional[Campaign]:
        """Get campaign by ID, scoped to owner when given"""
        query = f"SELECT * FROM {self.schema}.{self.campaigns_table} WHERE campaign_id = $1"
        params: List[Any] = [campaign_id]
        if owner_id is not None:
            query += " AND owner_id = $2"
            params.append(owner_id)

        row = await self.db.query_row(query, params)
        return self._row_to_campaign(row) if row else None

    async def list_campaigns(
        self,
        owner_id: str,
        status: Optional[CampaignStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Campaign], int]:
        """List an owner's campaigns, newest first"""
        conditions = ["owner_id = $1"]
        params: List[Any] = [owner_id]
        if status is not None:
            params.append(status.value)
            conditions.append(f"status = ${len(params)}")
        where = " AND ".join(conditions)

        total = await self.db.query_value(
            f"SELECT COUNT(*) FROM {self.schema}.{self.campaigns_table} WHERE {where}",
            params,
        )
        rows = await self.db.query(
            f'''
            SELECT * FROM {self.schema}.{self.campaigns_table}
            WHERE {where}
            ORDER BY created_at DESC, campaign_id DESC
            LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
            ''',
            params + [limit, offset],
        )
        return [self._row_to_campaign(r) for r in rows], int(total or 0)

    async def update_campaign(
        self,
        campaign_id: str,
        owner_id: str,
        updates: Dict[str, Any],
        allowed_statuses: Optional[Iterable[CampaignStatus]] = None,
    ) -> Optional[Campaign]:
        """
        Update fields if the campaign is in one of allowed_statuses.

        A status change is further limited to the statuses that may move to
        the new one.
        """
        unknown = set(updates) - self.UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update campaign fields: {sorted(unknown)}")

        assignments = []
        params: List[Any] = [campaign_id, owner_id]
        for field, value in updates.items():
            if isinstance(value, CampaignStatus):
                value = value.value
            params.append(value)
            assignments.append(f"{field} = ${len(params)}")
        assignments.append("updated_at = NOW()")

        query = f'''
            UPDATE {self.schema}.{self.campaigns_table}
            SET {", ".join(assignments)}
            WHERE campaign_id = $1 AND owner_id = $2
        '''
        if "status" in updates:
            allowed_statuses = _transition_sources(CampaignStatus(updates["status"]), allowed_statuses)
        if allowed_statuses is not None:
            params.append(_status_values(allowed_statuses))
            query += f" AND status = ANY(${len(params)}::text[])"
        query += " RETURNING *"

        row = await self.db.query_row(query, params)
        return self._row_to_campaign(row) if row else None

    async def delete_campaign(
        self,
        campaign_id: str,
        owner_id: str,
        allowed_statuses: Iterable[CampaignStatus],
    ) -> bool:
        """Delete if the campaign is in one of allowed_statuses"""
        count = await self.db.execute(
            f'''
            DELETE FROM {self.schema}.{self.campaigns_table}
            WHERE campaign_id = $1 AND owner_id = $2 AND status = ANY($3::text[])
            ''',
            [campaign_id, owner_id, _status_values(allowed_statuses)],
        )
        return count > 0

    # ====================
    # Lifecycle Transitions
    # ====================

    async def claim_for_sending(
        self,
        campaign_id: str,
        owner_id: str,
        from_statuses: Iterable[CampaignStatus],
        conn=None,
    ) -> Optional[CampaignStatus]:
        """Conditionally move the campaign to sending; returns the prior status"""
        async with self.db.transaction(conn) as c:
            prior = await c.fetchval(
                f'''
                SELECT status FROM {self.schema}.{self.campaigns_table}
                WHERE campaign_id = $1 AND owner_id = $2
                FOR UPDATE
                ''',
                campaign_id,
                owner_id,
            )
            if prior is None or prior not in _transition_sources(CampaignStatus.SENDING, from_statuses):
                return None

            await c.execute(
                f'''
                UPDATE {self.schema}.{self.campaigns_table}
                SET status = 'sending', started_at = NOW(), finished_at = NULL,
                    task_id = NULL, updated_at = NOW()
                WHERE campaign_id = $1
                ''',
                campaign_id,
            )
            return CampaignStatus(prior)

    async def set_campaign_total(self, campaign_id: str, total: int, conn=None) -> None:
        """Record the recipient count fixed at enqueue time"""
        await self.db.execute(
            f'''
            UPDATE {self.schema}.{self.campaigns_table}
            SET total = $2, updated_at = NOW()
            WHERE campaign_id = $1
            ''',
            [campaign_id, total],
            conn=conn,
        )

    async def mark_campaign_failed(
        self, campaign_id: str, from_statuses: Iterable[CampaignStatus]
    ) -> bool:
        """Conditionally move the campaign to failed"""
        count = await self.db.execute(
            f'''
            UPDATE {self.schema}.{self.campaigns_table}
            SET status = 'failed', finished_at = NOW(), task_id = NULL, updated_at = NOW()
            WHERE campaign_id = $1 AND status = ANY($2::text[])
            ''',
            [campaign_id, _transition_sources(CampaignStatus.FAILED, from_statuses)],
        )
        return count > 0

    async def complete_campaign_if_drained(self, campaign_id: str) -> Optional[Campaign]:
        """sending -> completed once no message is queued or sent"""
        row = await self.db.query_row(
            f'''
            UPDATE {self.schema}.{self.campaigns_table} c
            SET status = 'completed', finished_at = NOW(), updated_at = NOW()
            WHERE c.campaign_id = $1
              AND c.status = ANY($2::text[])
              AND c.total > 0
              AND NOT EXISTS (
                  SELECT 1 FROM {self.schema}.{self.messages_table} m
                  WHERE m.campaign_id = c.campaign_id AND m.status = ANY($3::text[])
              )
            RETURNING c.*
            ''',
            [
                campaign_id,
                _transition_sources(CampaignStatus.COMPLETED),
                [s.value for s in MessageStatus.pending()],
            ],
        )
        return self._row_to_campaign(row) if row else None

    async def list_sending_campaign_ids(self, limit: int = 100) -> List[str]:
        """Campaigns currently in sending, oldest first"""
        rows = await self.db.query(
            f'''
            SELECT campaign_id FROM {self.schema}.{self.campaigns_table}
            WHERE status = 'sending'
            ORDER BY started_at ASC NULLS FIRST
            LIMIT $1
            ''',
            [limit],
        )
        return [r["campaign_id"] for r in rows]

    # ====================
    # Audience & Content
    # ====================

    async def get_template(
        self, template_id: str, owner_ids: List[str]
    ) -> Optional[MessageTemplate]:
        """Get a template owned by one of owner_ids"""
        row = await self.db.query_row(
            f'''
            SELECT * FROM {self.schema}.{self.templates_table}
            WHERE template_id = $1 AND owner_id = ANY($2::text[])
            ''',
            [template_id, list(owner_ids)],
        )
        return MessageTemplate(**row) if row else None

    async def list_exists(self, list_id: str, owner_id: str) -> bool:
        """Check that a contact list belongs to the owner"""
        value = await self.db.query_value(
            f"SELECT 1 FROM {self.schema}.{self.lists_table} WHERE list_id = $1 AND owner_id = $2",
            [list_id, owner_id],
        )
        return value is not None

    async def list_audience(self, owner_id: str, list_id: Optional[str] = None) -> List[Contact]:
        """Subscribed contacts of a list, or of the whole owner when list_id is None"""
        if list_id is None:
            rows = await self.db.query(
                f'''
                SELECT * FROM {self.schema}.{self.contacts_table}
                WHERE owner_id = $1 AND is_subscribed = TRUE
                ORDER BY created_at ASC, contact_id ASC
                ''',
                [owner_id],
            )
        else:
            rows = await self.db.query(
                f'''
                SELECT c.* FROM {self.schema}.{self.memberships_table} m
                JOIN {self.schema}.{self.lists_table} l ON l.list_id = m.list_id
                JOIN {self.schema}.{self.contacts_table} c ON c.contact_id = m.contact_id
                WHERE m.list_id = $1
                  AND l.owner_id = $2
                  AND c.owner_id = $2
                  AND c.is_subscribed = TRUE
                ORDER BY m.created_at ASC, c.contact_id ASC
                ''',
                [list_id, owner_id],
            )
        return [self._row_to_contact(r) for r in rows]

    async def get_owner_sender(self, owner_id: str) -> Optional[str]:
        """Configured sender name of an owner"""
        return await self.db.query_value(
            f"SELECT sender_name FROM {self.schema}.{self.owner_settings_table} WHERE owner_id = $1",
            [owner_id],
        )

    async def unsubscribe_by_phone(self, phone: str) -> int:
        """Unsubscribe every subscribed contact with this phone"""
        return await self.db.execute(
            f'''
            UPDATE {self.schema}.{self.contacts_table}
            SET is_subscribed = FALSE, unsubscribed_at = NOW(), updated_at = NOW()
            WHERE phone = $1 AND is_subscribed = TRUE
            ''',
            [phone],
        )

    # ====================
    # Messages
    # ====================

    async def insert_messages(self, messages: List[CampaignMessage], conn=None) -> int:
        """Insert queued messages"""
        if not messages:
            return 0

        await self.db.execute_many(
            f'''
            INSERT INTO {self.schema}.{self.messages_table} (
                message_id, owner_id, campaign_id, contact_id, to_phone, text,
                tracking_id, status, attempts, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, 'queued', 0, NOW(), NOW())
            ''',
            [
                [
                    m.message_id,
                    m.owner_id,
                    m.campaign_id,
                    m.contact_id,
                    m.to_phone,
                    m.text,
                    m.tracking_id,
                ]
                for m in messages
            ],
            conn=conn,
        )
        return len(messages)

    async def get_message(self, message_id: str) -> Optional[CampaignMessage]:
        """Get message by ID"""
        row = await self.db.query_row(
            f"SELECT * FROM {self.schema}.{self.messages_table} WHERE message_id = $1",
            [message_id],
        )
        return self._row_to_message(row) if row else None

    async def claim_message_for_dispatch(
        self, message_id: str, lease_seconds: int
    ) -> Optional[CampaignMessage]:
        """Lease a queued message for one provider call"""
        row = await self.db.query_row(
            f'''
            UPDATE {self.schema}.{self.messages_table}
            SET attempts = attempts + 1,
                last_dispatched_at = NOW(),
                lease_until = NOW() + ($2::int * INTERVAL '1 second'),
                updated_at = NOW()
            WHERE message_id = $1
              AND status = 'queued'
              AND (lease_until IS NULL OR lease_until < NOW())
            RETURNING *
            ''',
            [message_id, lease_seconds],
        )
        return self._row_to_message(row) if row else None

    async def mark_message_sent(self, message_id: str, provider_message_id: Optional[str]) -> bool:
        """queued -> sent"""
        count = await self.db.execute(
            f'''
            UPDATE {self.schema}.{self.messages_table}
            SET status = 'sent', provider_message_id = $2, sent_at = NOW(),
                error = NULL, lease_until = NULL, updated_at = NOW()
            WHERE message_id = $1 AND status = ANY($3::text[])
            ''',
            [message_id, provider_message_id, _message_sources(MessageStatus.SENT)],
        )
        return count > 0

    async def record_retryable_failure(self, message_id: str, error: str) -> bool:
        """Keep the message queued, record the error and release the lease"""
        count = await self.db.execute(
            f'''
            UPDATE {self.schema}.{self.messages_table}
            SET error = $2, lease_until = NULL, updated_at = NOW()
            WHERE message_id = $1 AND status = 'queued'
            ''',
            [message_id, error],
        )
        return count > 0

    async def mark_message_failed(self, message_id: str, error: str) -> bool:
        """queued -> failed"""
        count = await self.db.execute(
            f'''
            UPDATE {self.schema}.{self.messages_table}
            SET status = 'failed', failed_at = NOW(), error = $2,
                lease_until = NULL, updated_at = NOW()
            WHERE message_id = $1 AND status = 'queued'
            ''',
            [message_id, error],
        )
        return count > 0

    async def find_messages_by_provider_id(self, provider_message_id: str) -> List[CampaignMessage]:
        """Messages sharing a provider correlation id"""
        rows = await self.db.query(
            f"SELECT * FROM {self.schema}.{self.messages_table} WHERE provider_message_id = $1",
            [provider_message_id],
        )
        return [self._row_to_message(r) for r in rows]

    async def apply_delivery_status(
        self,
        provider_message_id: str,
        status: MessageStatus,
        occurred_at: Optional[datetime] = None,
        error: Optional[str] = None,
    ) -> List[CampaignMessage]:
        """Apply a delivery report; returns the rows that changed"""
        if status == MessageStatus.DELIVERED:
            query = f'''
                UPDATE {self.schema}.{self.messages_table}
                SET status = 'delivered',
                    delivered_at = COALESCE(delivered_at, $2, NOW()),
                    updated_at = NOW()
                WHERE provider_message_id = $1 AND status = ANY($3::text[])
                RETURNING *
            '''
            params: List[Any] = [provider_message_id, occurred_at]
        elif status == MessageStatus.FAILED:
            query = f'''
                UPDATE {self.schema}.{self.messages_table}
                SET status = 'failed',
                    failed_at = COALESCE(failed_at, $2, NOW()),
                    error = $3,
                    updated_at = NOW()
                WHERE provider_message_id = $1 AND status = ANY($4::text[])
                RETURNING *
            '''
            params = [provider_message_id, occurred_at, error or "FAILED_DLR"]
        elif status == MessageStatus.SENT:
            query = f'''
                UPDATE {self.schema}.{self.messages_table}
                SET status = 'sent',
                    sent_at = COALESCE(sent_at, $2, NOW()),
                    lease_until = NULL,
                    updated_at = NOW()
                WHERE provider_message_id = $1 AND status = ANY($3::text[])
                RETURNING *
            '''
            params = [provider_message_id, occurred_at]
        else:
            return []

        params.append(_message_sources(status))
        rows = await self.db.query(query, params)
        return [self._row_to_message(r) for r in rows]

    async def count_messages_by_status(self, campaign_id: str) -> MessageStatusCounts:
        """Message counts per status for a campaign"""
        rows = await self.db.query(
            f'''
            SELECT status, COUNT(*) AS count
            FROM {self.schema}.{self.messages_table}
            WHERE campaign_id = $1
            GROUP BY status
            ''',
            [campaign_id],
        )
        return MessageStatusCounts(**{r["status"]: int(r["count"]) for r in rows})

    async def find_stale_queued_messages(self, idle_before: datetime, limit: int) -> List[str]:
        """Select and stamp queued messages with no dispatch since idle_before"""
        rows = await self.db.query(
            f'''
            UPDATE {self.schema}.{self.messages_table}
            SET last_dispatched_at = NOW(), updated_at = NOW()
            WHERE message_id IN (
                SELECT message_id FROM {self.schema}.{self.messages_table}
                WHERE status = 'queued'
                  AND (lease_until IS NULL OR lease_until < NOW())
                  AND COALESCE(last_dispatched_at, created_at) < $1
                ORDER BY COALESCE(last_dispatched_at, created_at) ASC
                LIMIT $2
                FOR UPDATE SKIP LOCKED
            )
            RETURNING message_id
            ''',
            [idle_before, limit],
        )
        return [r["message_id"] for r in rows]

    # ====================
    # Webhook Events
    # ====================

    async def save_webhook_event(self, event: WebhookEvent) -> None:
        """Persist a raw provider callback"""
        await self.db.execute(
            f'''
            INSERT INTO {self.schema}.{self.webhook_events_table} (
                event_id, provider, event_type, payload, provider_message_id, received_at
            ) VALUES ($1, $2, $3, $4, $5, COALESCE($6, NOW()))
            ''',
            [
                event.event_id,
                event.provider,
                event.event_type,
                event.payload,
                event.provider_message_id,
                event.received_at,
            ],
        )

    async def list_webhook_events(self, provider_message_id: str) -> List[WebhookEvent]:
        """Stored callbacks for a provider message id, oldest first"""
        rows = await self.db.query(
            f'''
            SELECT * FROM {self.schema}.{self.webhook_events_table}
            WHERE provider_message_id = $1
            ORDER BY received_at ASC
            ''',
            [provider_message_id],
        )
        return [WebhookEvent(**r) for r in rows]

    # ====================
    # Stats & Tracking
    # ====================

    async def get_campaign_stats(self, campaign_id: str, owner_id: str) -> Dict[str, Any]:
        """Raw counters: sent, delivered, failed, redemptions, unsubscribes, first_sent_at"""
        row = await self.db.query_row(
            f'''
            SELECT
                COUNT(*) FILTER (WHERE status IN ('sent', 'delivered', 'failed')) AS sent,
                COUNT(*) FILTER (WHERE status = 'delivered') AS delivered,
                COUNT(*) FILTER (WHERE status = 'failed') AS failed,
                MIN(sent_at) AS first_sent_at
            FROM {self.schema}.{self.messages_table}
            WHERE campaign_id = $1 AND owner_id = $2
            ''',
            [campaign_id, owner_id],
        )
        redemptions = await self.db.query_value(
            f'''
            SELECT COUNT(*) FROM {self.schema}.{self.redemptions_table}
            WHERE campaign_id = $1 AND owner_id = $2
            ''',
            [campaign_id, owner_id],
        )

        stats = dict(row or {})
        unsubscribes = 0
        if stats.get("first_sent_at"):
            unsubscribes = await self.db.query_value(
                f'''
                SELECT COUNT(DISTINCT c.contact_id)
                FROM {self.schema}.{self.contacts_table} c
                JOIN {self.schema}.{self.messages_table} m ON m.contact_id = c.contact_id
                WHERE m.campaign_id = $1 AND c.owner_id = $2 AND c.unsubscribed_at >= $3
                ''',
                [campaign_id, owner_id, stats["first_sent_at"]],
            )

        return {
            "sent": int(stats.get("sent") or 0),
            "delivered": int(stats.get("delivered") or 0),
            "failed": int(stats.get("failed") or 0),
            "redemptions": int(redemptions or 0),
            "unsubscribes": int(unsubscribes or 0),
            "first_sent_at": stats.get("first_sent_at"),
        }

    async def get_message_by_tracking_id(self, tracking_id: str) -> Optional[CampaignMessage]:
        """Get message by public tracking id"""
        row = await self.db.query_row(
            f"SELECT * FROM {self.schema}.{self.messages_table} WHERE tracking_id = $1",
            [tracking_id],
        )
        return self._row_to_message(row) if row else None

    async def get_redemption(self, message_id: str) -> Optional[Redemption]:
        """Get redemption of a message"""
        row = await self.db.query_row(
            f"SELECT * FROM {self.schema}.{self.redemptions_table} WHERE message_id = $1",
            [message_id],
        )
        return Redemption(**row) if row else None

    async def record_visit(self, message_id: str) -> bool:
        """Increment the visit counter of an existing redemption"""
        count = await self.db.execute(
            f'''
            UPDATE {self.schema}.{self.redemptions_table}
            SET visits = visits + 1, last_visited_at = NOW()
            WHERE message_id = $1
            ''',
            [message_id],
        )
        return count > 0

    async def create_redemption(self, redemption: Redemption) -> Optional[Redemption]:
        """Insert a redemption; None if the message was already redeemed"""
        row = await self.db.query_row(
            f'''
            INSERT INTO {self.schema}.{self.redemptions_table} (
                redemption_id, owner_id, message_id, campaign_id, contact_id,
                redeemed_by, evidence, visits, redeemed_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, 0, NOW())
            ON CONFLICT (message_id) DO NOTHING
            RETURNING *
            ''',
            [
                redemption.redemption_id,
                redemption.owner_id,
                redemption.message_id,
                redemption.campaign_id,
                redemption.contact_id,
                redemption.redeemed_by,
                redemption.evidence,
            ],
        )
        return Redemption(**row) if row else None

    # ====================
    # Row Mapping
    # ====================

    def _row_to_campaign(self, row: Dict[str, Any]) -> Campaign:
        """Convert database row to Campaign model"""
        return Campaign(
            campaign_id=row["campaign_id"],
            owner_id=row["owner_id"],
            name=row["name"],
            template_id=row["template_id"],
            list_id=row.get("list_id"),
            status=CampaignStatus(row["status"]),
            scheduled_at=row.get("scheduled_at"),
            started_at=row.get("started_at"),
            finished_at=row.get("finished_at"),
            total=row.get("total") or 0,
            task_id=row.get("task_id"),
            created_by=row.get("created_by"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def _row_to_message(self, row: Dict[str, Any]) -> CampaignMessage:
        """Convert database row to CampaignMessage model"""
        return CampaignMessage(**{**row, "status": MessageStatus(row["status"])})

    def _row_to_contact(self, row: Dict[str, Any]) -> Contact:
        return Contact(
            contact_id=row["contact_id"],
            owner_id=row["owner_id"],
            phone=row["phone"],
            email=row.get("email"),
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
            is_subscribed=row.get("is_subscribed", True),
            unsubscribed_at=row.get("unsubscribed_at"),
        )


__all__ = ["CampaignRepository"]
