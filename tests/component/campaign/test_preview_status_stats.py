"""
Component Tests for Campaign Preview, Status and Statistics
"""

from datetime import timedelta

import pytest

from microservices.campaign_service.finalizer import stats_cache_key
from microservices.campaign_service.models import CampaignStatus, MessageStatus, Redemption
from microservices.campaign_service.protocols import CampaignNotFoundError, CampaignValidationError


def _seed_sent_campaign(store, data_factory, tenant, statuses):
    """A sending campaign whose messages are already in the given statuses"""
    campaign = store.add_campaign(
        data_factory.make_campaign(
            tenant.owner_id,
            tenant.template.template_id,
            status=CampaignStatus.SENDING,
            total=len(statuses),
        )
    )
    sent_at = data_factory.make_past(minutes=30)
    messages = []
    for status, contact in zip(statuses, tenant.contacts):
        messages.append(store.add_message(
            data_factory.make_message(
                tenant.owner_id,
                campaign.campaign_id,
                status=status,
                contact_id=contact.contact_id,
                to_phone=contact.phone,
                sent_at=None if status == MessageStatus.QUEUED else sent_at,
            )
        ))
    return campaign, messages


def _redeem(store, message):
    store.redemptions[message.message_id] = Redemption(
        redemption_id=f"rdm_{message.message_id}",
        owner_id=message.owner_id,
        message_id=message.message_id,
        campaign_id=message.campaign_id,
        contact_id=message.contact_id,
    )


@pytest.mark.component
@pytest.mark.asyncio
class TestPreview:
    """Preview renders like enqueue and has no side effects"""

    async def test_preview_sample_and_count(self, campaign_service, store, make_tenant, data_factory):
        # Given: 4 valid recipients, 1 unsubscribed, 1 invalid phone
        tenant = make_tenant(contacts=4, balance=10, template_text="Hi {{firstName}}")
        store.add_contacts([
            data_factory.make_contact(tenant.owner_id, is_subscribed=False),
            data_factory.make_contact(tenant.owner_id, phone="12345"),
        ])
        campaign = store.add_campaign(
            data_factory.make_campaign(tenant.owner_id, tenant.template.template_id)
        )

        # When
        preview = await campaign_service.preview_campaign(campaign.campaign_id, tenant.owner_id)

        # Then: a sample of the configured size, the count of real recipients
        assert preview.count == 4
        assert len(preview.sample) == campaign_service.preview_sample_size
        phones = {c.phone: c for c in tenant.contacts}
        for item in preview.sample:
            assert item.text == f"Hi {phones[item.to].first_name}"

    async def test_preview_has_no_side_effects(
        self, campaign_service, store, make_tenant, data_factory, dispatch_queue, event_bus
    ):
        tenant = make_tenant(contacts=3, balance=10)
        campaign = store.add_campaign(
            data_factory.make_campaign(tenant.owner_id, tenant.template.template_id)
        )

        await campaign_service.preview_campaign(campaign.campaign_id, tenant.owner_id)

        assert store.campaigns[campaign.campaign_id].status == CampaignStatus.DRAFT
        assert store.messages_of(campaign.campaign_id) == []
        assert store.balance(tenant.owner_id) == 10
        assert dispatch_queue.enqueue_calls == []
        event_bus.assert_no_events_published()

    async def test_preview_of_empty_audience(self, campaign_service, store, make_tenant, data_factory):
        tenant = make_tenant(contacts=0)
        campaign = store.add_campaign(
            data_factory.make_campaign(tenant.owner_id, tenant.template.template_id)
        )

        preview = await campaign_service.preview_campaign(campaign.campaign_id, tenant.owner_id)

        assert preview.count == 0
        assert preview.sample == []
        assert store.campaigns[campaign.campaign_id].status == CampaignStatus.DRAFT

    async def test_preview_with_missing_template(self, campaign_service, store, make_tenant, data_factory):
        tenant = make_tenant(contacts=1)
        campaign = store.add_campaign(
            data_factory.make_campaign(tenant.owner_id, data_factory.make_template_id())
        )

        with pytest.raises(CampaignValidationError):
            await campaign_service.preview_campaign(campaign.campaign_id, tenant.owner_id)


@pytest.mark.component
@pytest.mark.asyncio
class TestStatus:
    """Per-status message counts"""

    async def test_metrics_count_each_status(self, campaign_service, store, make_tenant, data_factory):
        tenant = make_tenant(contacts=4)
        campaign, _ = _seed_sent_campaign(
            store, data_factory, tenant,
            [MessageStatus.QUEUED, MessageStatus.SENT, MessageStatus.DELIVERED, MessageStatus.FAILED],
        )

        response = await campaign_service.get_campaign_status(campaign.campaign_id, tenant.owner_id)

        assert response.campaign.status == CampaignStatus.SENDING
        assert response.metrics.model_dump() == {"queued": 1, "sent": 1, "delivered": 1, "failed": 1}

    async def test_status_query_completes_drained_campaign(
        self, campaign_service, store, make_tenant, data_factory, event_bus
    ):
        tenant = make_tenant(contacts=2)
        campaign, _ = _seed_sent_campaign(
            store, data_factory, tenant, [MessageStatus.DELIVERED, MessageStatus.FAILED]
        )

        response = await campaign_service.get_campaign_status(campaign.campaign_id, tenant.owner_id)

        assert response.campaign.status == CampaignStatus.COMPLETED
        assert response.campaign.finished_at is not None
        assert len(event_bus.get_published("campaign.completed")) == 1

    async def test_status_of_other_owner(self, campaign_service, store, make_tenant, data_factory):
        tenant = make_tenant(contacts=1)
        other = make_tenant(contacts=0)
        campaign, _ = _seed_sent_campaign(store, data_factory, tenant, [MessageStatus.SENT])

        with pytest.raises(CampaignNotFoundError):
            await campaign_service.get_campaign_status(campaign.campaign_id, other.owner_id)


@pytest.mark.component
@pytest.mark.asyncio
class TestStats:
    """Delivery and conversion statistics"""

    async def test_rates(self, campaign_service, store, make_tenant, data_factory):
        # Given: 3 sent, 2 delivered, 1 failed, 1 redemption, 1 still queued
        tenant = make_tenant(contacts=4)
        campaign, messages = _seed_sent_campaign(
            store, data_factory, tenant,
            [MessageStatus.DELIVERED, MessageStatus.DELIVERED, MessageStatus.FAILED, MessageStatus.QUEUED],
        )
        _redeem(store, messages[0])

        # When
        stats = await campaign_service.get_campaign_stats(campaign.campaign_id, tenant.owner_id)

        # Then
        assert stats.sent == 3
        assert stats.delivered == 2
        assert stats.failed == 1
        assert stats.redemptions == 1
        assert stats.delivered_rate == 0.6667
        assert stats.conversion_rate == 0.5
        assert stats.first_sent_at is not None

    async def test_zero_denominators(self, campaign_service, store, make_tenant, data_factory):
        tenant = make_tenant(contacts=1)
        campaign = store.add_campaign(
            data_factory.make_campaign(tenant.owner_id, tenant.template.template_id)
        )

        stats = await campaign_service.get_campaign_stats(campaign.campaign_id, tenant.owner_id)

        assert stats.sent == 0
        assert stats.delivered_rate == 0.0
        assert stats.conversion_rate == 0.0
        assert stats.first_sent_at is None

    async def test_unsubscribes_after_first_send_are_counted(
        self, campaign_service, store, make_tenant, data_factory
    ):
        tenant = make_tenant(contacts=3)
        campaign, messages = _seed_sent_campaign(
            store, data_factory, tenant, [MessageStatus.DELIVERED] * 3
        )
        first_sent_at = messages[0].sent_at
        before, after, _ = (store.contacts[m.contact_id] for m in messages)
        before.is_subscribed = after.is_subscribed = False
        before.unsubscribed_at = first_sent_at - timedelta(days=1)
        after.unsubscribed_at = first_sent_at + timedelta(minutes=5)

        stats = await campaign_service.get_campaign_stats(campaign.campaign_id, tenant.owner_id)

        assert stats.unsubscribes == 1

    async def test_stats_are_cached(self, campaign_service, store, make_tenant, data_factory, cache):
        # Given: stats computed once
        tenant = make_tenant(contacts=2)
        campaign, messages = _seed_sent_campaign(
            store, data_factory, tenant, [MessageStatus.SENT, MessageStatus.SENT]
        )
        first = await campaign_service.get_campaign_stats(campaign.campaign_id, tenant.owner_id)

        # When: the data changes without invalidation
        store.messages[messages[0].message_id].status = MessageStatus.DELIVERED
        second = await campaign_service.get_campaign_stats(campaign.campaign_id, tenant.owner_id)

        # Then: the cached copy is served
        key = stats_cache_key(tenant.owner_id, campaign.campaign_id)
        assert second == first
        assert cache.ttls[key] == campaign_service.stats_cache_ttl

    async def test_delivery_report_refreshes_stats(
        self, campaign_service, store, make_tenant, data_factory, reconciler
    ):
        tenant = make_tenant(contacts=2)
        pmid = data_factory.make_provider_message_id()
        campaign, messages = _seed_sent_campaign(
            store, data_factory, tenant, [MessageStatus.SENT, MessageStatus.SENT]
        )
        store.messages[messages[0].message_id].provider_message_id = pmid
        await campaign_service.get_campaign_stats(campaign.campaign_id, tenant.owner_id)

        await reconciler.ingest(data_factory.make_dlr(pmid, "Delivered"))
        stats = await campaign_service.get_campaign_stats(campaign.campaign_id, tenant.owner_id)

        assert stats.delivered == 1

    async def test_unreadable_cache_entry_is_recomputed(
        self, campaign_service, store, make_tenant, data_factory, cache
    ):
        tenant = make_tenant(contacts=1)
        campaign, _ = _seed_sent_campaign(store, data_factory, tenant, [MessageStatus.DELIVERED])
        cache.data[stats_cache_key(tenant.owner_id, campaign.campaign_id)] = "{not json"

        stats = await campaign_service.get_campaign_stats(campaign.campaign_id, tenant.owner_id)

        assert stats.delivered == 1

    async def test_stats_of_other_owner(self, campaign_service, store, make_tenant, data_factory):
        tenant = make_tenant(contacts=1)
        other = make_tenant(contacts=0)
        campaign, _ = _seed_sent_campaign(store, data_factory, tenant, [MessageStatus.SENT])

        with pytest.raises(CampaignNotFoundError):
            await campaign_service.get_campaign_stats(campaign.campaign_id, other.owner_id)
