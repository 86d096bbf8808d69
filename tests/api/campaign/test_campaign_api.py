"""
API Tests for Campaign Endpoints

CRUD, scheduling, enqueue, preview / status / stats and the mapping of
service errors to HTTP statuses.
"""

import pytest

from microservices.campaign_service import main as campaign_main
from microservices.campaign_service.models import CampaignStatus


@pytest.mark.api
@pytest.mark.asyncio
class TestHealthEndpoints:
    """Tests for /health, /health/ready and /health/live"""

    async def test_health_check(self, campaign_client):
        response = await campaign_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "campaign_service"
        assert data["dependencies"]["postgres"] == "healthy"
        assert data["dependencies"]["nats"] == "not_configured"

    async def test_health_degraded_without_database(self, campaign_client, store):
        store.healthy = False

        response = await campaign_client.get("/health")

        assert response.json()["status"] == "degraded"

    async def test_readiness_and_liveness(self, campaign_client):
        ready = await campaign_client.get("/health/ready")
        live = await campaign_client.get("/health/live")

        assert ready.json()["ready"] is True
        assert live.json()["alive"] is True

    async def test_uninitialized_service_returns_503(self, campaign_client, monkeypatch, owner_headers):
        monkeypatch.setattr(campaign_main, "factory", None)

        response = await campaign_client.get("/api/v1/campaigns", headers=owner_headers)

        assert response.status_code == 503


@pytest.mark.api
@pytest.mark.asyncio
class TestCampaignCrudEndpoints:
    """Tests for /api/v1/campaigns"""

    async def test_create_campaign(self, campaign_client, owner_headers, seeded_owner, api_config):
        # Given
        request_data = {"name": "Spring sale", "template_id": seeded_owner.template.template_id}

        # When
        response = await campaign_client.post("/api/v1/campaigns", json=request_data, headers=owner_headers)

        # Then
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "draft"
        assert data["owner_id"] == seeded_owner.owner_id
        assert data["created_by"] == api_config.TEST_USER_ID

    async def test_user_without_organization_owns_campaign(self, campaign_client, store, data_factory, api_config):
        template = store.add_template(data_factory.make_template(api_config.TEST_USER_ID))

        response = await campaign_client.post(
            "/api/v1/campaigns",
            json={"name": "Solo", "template_id": template.template_id},
            headers=api_config.headers(owner_id=None),
        )

        assert response.status_code == 201
        assert response.json()["owner_id"] == api_config.TEST_USER_ID

    async def test_missing_identity_returns_401(self, campaign_client, seeded_owner):
        response = await campaign_client.post(
            "/api/v1/campaigns",
            json={"name": "Spring sale", "template_id": seeded_owner.template.template_id},
        )

        assert response.status_code == 401

    async def test_missing_name_returns_422(self, campaign_client, owner_headers, seeded_owner):
        response = await campaign_client.post(
            "/api/v1/campaigns",
            json={"template_id": seeded_owner.template.template_id},
            headers=owner_headers,
        )

        assert response.status_code == 422

    async def test_foreign_template_returns_422(self, campaign_client, owner_headers, store, data_factory):
        foreign = store.add_template(data_factory.make_template(data_factory.make_owner_id()))

        response = await campaign_client.post(
            "/api/v1/campaigns",
            json={"name": "Spring sale", "template_id": foreign.template_id},
            headers=owner_headers,
        )

        assert response.status_code == 422
        assert response.json()["field"] == "template_id"

    async def test_get_list_update_delete(self, campaign_client, owner_headers, seeded_owner):
        created = (await campaign_client.post(
            "/api/v1/campaigns",
            json={"name": "Spring sale", "template_id": seeded_owner.template.template_id},
            headers=owner_headers,
        )).json()
        url = f"/api/v1/campaigns/{created['campaign_id']}"

        fetched = await campaign_client.get(url, headers=owner_headers)
        listed = await campaign_client.get("/api/v1/campaigns", params={"status": "draft"}, headers=owner_headers)
        renamed = await campaign_client.patch(url, json={"name": "Summer sale"}, headers=owner_headers)
        deleted = await campaign_client.delete(url, headers=owner_headers)
        gone = await campaign_client.get(url, headers=owner_headers)

        assert fetched.json()["name"] == "Spring sale"
        assert [c["campaign_id"] for c in listed.json()["campaigns"]] == [created["campaign_id"]]
        assert renamed.json()["name"] == "Summer sale"
        assert deleted.status_code == 204
        assert gone.status_code == 404
        assert gone.json()["reason"] == "not_found"

    async def test_other_owner_gets_404(self, campaign_client, api_config, store, data_factory, seeded_owner):
        campaign = store.add_campaign(
            data_factory.make_campaign(seeded_owner.owner_id, seeded_owner.template.template_id)
        )

        response = await campaign_client.get(
            f"/api/v1/campaigns/{campaign.campaign_id}",
            headers=api_config.headers(data_factory.make_owner_id()),
        )

        assert response.status_code == 404

    async def test_list_rejects_page_size_over_100(self, campaign_client, owner_headers):
        response = await campaign_client.get("/api/v1/campaigns", params={"page_size": 101}, headers=owner_headers)

        assert response.status_code == 422

    async def test_editing_sending_campaign_returns_409(self, campaign_client, owner_headers, store, data_factory, seeded_owner):
        campaign = store.add_campaign(data_factory.make_campaign(
            seeded_owner.owner_id, seeded_owner.template.template_id, status=CampaignStatus.SENDING
        ))

        response = await campaign_client.patch(
            f"/api/v1/campaigns/{campaign.campaign_id}", json={"name": "Late"}, headers=owner_headers
        )

        assert response.status_code == 409
        assert response.json()["current_status"] == "sending"


@pytest.mark.api
@pytest.mark.asyncio
class TestSchedulingEndpoints:
    """Tests for /schedule and /unschedule"""

    async def test_schedule_then_unschedule(self, campaign_client, owner_headers, store, data_factory, seeded_owner):
        campaign = store.add_campaign(
            data_factory.make_campaign(seeded_owner.owner_id, seeded_owner.template.template_id)
        )
        base = f"/api/v1/campaigns/{campaign.campaign_id}"

        scheduled = await campaign_client.post(
            f"{base}/schedule",
            json={"scheduled_at": data_factory.make_future(30).isoformat()},
            headers=owner_headers,
        )
        unscheduled = await campaign_client.post(f"{base}/unschedule", headers=owner_headers)

        assert scheduled.status_code == 200
        assert scheduled.json()["status"] == "scheduled"
        assert scheduled.json()["task_id"].startswith(f"campaign:{campaign.campaign_id}:")
        assert unscheduled.json()["status"] == "draft"

    async def test_schedule_in_the_past_returns_422(self, campaign_client, owner_headers, store, data_factory, seeded_owner):
        campaign = store.add_campaign(
            data_factory.make_campaign(seeded_owner.owner_id, seeded_owner.template.template_id)
        )

        response = await campaign_client.post(
            f"/api/v1/campaigns/{campaign.campaign_id}/schedule",
            json={"scheduled_at": data_factory.make_past(5).isoformat()},
            headers=owner_headers,
        )

        assert response.status_code == 422
        assert response.json()["field"] == "scheduled_at"


@pytest.mark.api
@pytest.mark.asyncio
class TestExecutionEndpoints:
    """Tests for /enqueue, /preview, /status and /stats"""

    @staticmethod
    def _draft(store, data_factory, seeded_owner):
        return store.add_campaign(
            data_factory.make_campaign(seeded_owner.owner_id, seeded_owner.template.template_id)
        )

    async def test_enqueue(self, campaign_client, owner_headers, store, data_factory, seeded_owner, dispatch_queue):
        campaign = self._draft(store, data_factory, seeded_owner)

        response = await campaign_client.post(
            f"/api/v1/campaigns/{campaign.campaign_id}/enqueue", headers=owner_headers
        )

        assert response.status_code == 200
        assert response.json() == {
            "ok": True, "campaign_id": campaign.campaign_id, "total": 3, "enqueued": 3,
        }
        assert store.balance(seeded_owner.owner_id) == 97
        assert len(dispatch_queue.pending()) == 3

    async def test_second_enqueue_returns_409(self, campaign_client, owner_headers, store, data_factory, seeded_owner):
        campaign = self._draft(store, data_factory, seeded_owner)
        url = f"/api/v1/campaigns/{campaign.campaign_id}/enqueue"
        await campaign_client.post(url, headers=owner_headers)

        response = await campaign_client.post(url, headers=owner_headers)

        assert response.status_code == 409
        assert response.json()["reason"] == "not_enqueueable"
        assert store.balance(seeded_owner.owner_id) == 97

    async def test_insufficient_credits_returns_402(self, campaign_client, owner_headers, store, data_factory, seeded_owner):
        campaign = self._draft(store, data_factory, seeded_owner)
        store.set_balance(seeded_owner.owner_id, 2)

        response = await campaign_client.post(
            f"/api/v1/campaigns/{campaign.campaign_id}/enqueue", headers=owner_headers
        )

        assert response.status_code == 402
        assert response.json()["reason"] == "insufficient_credits"
        assert response.json()["available"] == 2
        assert response.json()["required"] == 3

    async def test_empty_audience_returns_422(self, campaign_client, api_config, store, data_factory):
        owner_id = data_factory.make_owner_id()
        template = store.add_template(data_factory.make_template(owner_id))
        campaign = store.add_campaign(data_factory.make_campaign(owner_id, template.template_id))

        response = await campaign_client.post(
            f"/api/v1/campaigns/{campaign.campaign_id}/enqueue", headers=api_config.headers(owner_id)
        )

        assert response.status_code == 422
        assert response.json()["reason"] == "no_recipients"

    async def test_preview(self, campaign_client, owner_headers, store, data_factory, seeded_owner):
        campaign = self._draft(store, data_factory, seeded_owner)

        response = await campaign_client.get(
            f"/api/v1/campaigns/{campaign.campaign_id}/preview", headers=owner_headers
        )

        data = response.json()
        assert response.status_code == 200
        assert data["count"] == 3
        assert {item["to"] for item in data["sample"]} == {c.phone for c in seeded_owner.contacts}
        assert all(item["text"].startswith("Hi ") for item in data["sample"])

    async def test_status_and_stats_after_enqueue(self, campaign_client, owner_headers, store, data_factory, seeded_owner):
        campaign = self._draft(store, data_factory, seeded_owner)
        base = f"/api/v1/campaigns/{campaign.campaign_id}"
        await campaign_client.post(f"{base}/enqueue", headers=owner_headers)

        status_response = await campaign_client.get(f"{base}/status", headers=owner_headers)
        stats_response = await campaign_client.get(f"{base}/stats", headers=owner_headers)

        assert status_response.json()["campaign"]["status"] == "sending"
        assert status_response.json()["metrics"] == {"queued": 3, "sent": 0, "delivered": 0, "failed": 0}
        assert stats_response.json()["sent"] == 0
        assert stats_response.json()["delivered_rate"] == 0.0
