"""
Campaign Service Main Application

FastAPI application for SMS campaigns: campaign management, enqueue,
preview / status / statistics, provider webhooks and offer tracking.
Port: 8251
"""

import json
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from core.config import get_settings
from core.logging_setup import setup_logging

from .factory import CampaignServiceFactory
from .models import (
    Campaign,
    CampaignCreateRequest,
    CampaignListResponse,
    CampaignPreview,
    CampaignStats,
    CampaignStatus,
    CampaignStatusResponse,
    CampaignUpdateRequest,
    EnqueueResult,
    HealthResponse,
    InboundResult,
    LivenessResponse,
    ReadinessResponse,
    ReconciliationResult,
    RedeemRequest,
    RedemptionResult,
    ScheduleRequest,
    TrackingLookup,
)
from .protocols import (
    CampaignEnqueueError,
    CampaignInsufficientCreditsError,
    CampaignNotFoundError,
    CampaignValidationError,
    InvalidCampaignStateError,
    NoRecipientsError,
    WebhookAuthenticationError,
)
from .webhook_auth import verify_webhook

# Configure logging
setup_logging(get_settings().logging)
logger = logging.getLogger(__name__)

# Service configuration
SERVICE_NAME = "campaign_service"
SERVICE_PORT = int(os.getenv("SERVICE_PORT", "8251"))
SERVICE_VERSION = "1.0.0"

# Track startup time for uptime calculation
startup_time = time.time()

# Global factory instance
factory: Optional[CampaignServiceFactory] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    global factory

    logger.info(f"Starting {SERVICE_NAME} on port {SERVICE_PORT}")

    factory = CampaignServiceFactory(get_settings())
    await factory.initialize()

    yield

    # Cleanup
    logger.info(f"Shutting down {SERVICE_NAME}")
    await factory.close()


# Create FastAPI application
app = FastAPI(
    title="Campaign Service",
    description="SMS campaign management, delivery pipeline and offer tracking",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)


# ====================
# Exception Handlers
# ====================


@app.exception_handler(CampaignNotFoundError)
async def campaign_not_found_handler(request: Request, exc: CampaignNotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc), "reason": exc.reason},
    )


@app.exception_handler(InvalidCampaignStateError)
async def invalid_state_handler(request: Request, exc: InvalidCampaignStateError):
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={
            "detail": str(exc),
            "reason": exc.reason,
            "current_status": exc.current_status.value if exc.current_status else None,
        },
    )


@app.exception_handler(CampaignValidationError)
async def validation_error_handler(request: Request, exc: CampaignValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "reason": exc.reason, "field": exc.field},
    )


@app.exception_handler(NoRecipientsError)
async def no_recipients_handler(request: Request, exc: NoRecipientsError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "reason": exc.reason},
    )


@app.exception_handler(CampaignInsufficientCreditsError)
async def insufficient_credits_handler(request: Request, exc: CampaignInsufficientCreditsError):
    return JSONResponse(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        content={
            "detail": str(exc),
            "reason": exc.reason,
            "available": exc.available,
            "required": exc.required,
        },
    )


@app.exception_handler(CampaignEnqueueError)
async def enqueue_error_handler(request: Request, exc: CampaignEnqueueError):
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc), "reason": exc.reason},
    )


@app.exception_handler(WebhookAuthenticationError)
async def webhook_auth_handler(request: Request, exc: WebhookAuthenticationError):
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"ok": False},
    )


# ====================
# Dependencies
# ====================


def get_factory_instance() -> CampaignServiceFactory:
    if not factory:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return factory


def get_service(f: CampaignServiceFactory = Depends(get_factory_instance)):
    """Get campaign service from factory"""
    return f.service


def get_auth_context(request: Request) -> dict:
    """
    Extract auth context from gateway headers.

    The owner (tenant) is the organization when present, otherwise the user.
    """
    user_id = request.headers.get("X-User-ID")
    owner_id = request.headers.get("X-Organization-ID") or user_id
    if not owner_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing owner identity")
    return {"user_id": user_id, "owner_id": owner_id}


async def read_webhook_body(request: Request) -> bytes:
    """Raw body of an authenticated provider callback"""
    raw_body = await request.body()
    verify_webhook(
        get_settings().webhook.secret,
        raw_body,
        query_secret=request.query_params.get("secret"),
        token=request.headers.get("X-Webhook-Token"),
        signature=request.headers.get("X-Webhook-Signature"),
    )
    return raw_body


def _parse_json(raw_body: bytes):
    try:
        return json.loads(raw_body or b"null")
    except (ValueError, UnicodeDecodeError) as e:
        logger.warning(f"Malformed webhook body ignored: {e}")
        return None


# ====================
# Health Endpoints
# ====================


@app.get("/api/v1/campaigns/health")
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    dependencies = {}

    if factory:
        try:
            db_healthy = await factory.repository.health_check()
            dependencies["postgres"] = "healthy" if db_healthy else "unhealthy"
        except Exception:
            dependencies["postgres"] = "unhealthy"

        if factory.nats_client:
            dependencies["nats"] = "healthy" if factory.nats_client.is_connected else "unhealthy"
        else:
            dependencies["nats"] = "not_configured"

        dependencies["task_queue"] = "healthy" if factory.dispatch_queue else "unavailable"
        dependencies["redis"] = (
            "healthy" if factory.cache and factory.cache.is_available else "unavailable"
        )

    return HealthResponse(
        status="healthy" if dependencies.get("postgres") == "healthy" else "degraded",
        service=SERVICE_NAME,
        port=SERVICE_PORT,
        version=SERVICE_VERSION,
        dependencies=dependencies,
    )


@app.get("/health/ready", response_model=ReadinessResponse, tags=["Health"])
async def readiness_check():
    """Readiness check endpoint"""
    checks = {}
    details = {}

    if factory:
        try:
            db_healthy = await factory.repository.health_check()
            checks["database"] = db_healthy
            details["database"] = "Connected" if db_healthy else "Connection failed"
        except Exception as e:
            checks["database"] = False
            details["database"] = str(e)

        if factory.nats_client:
            checks["nats"] = factory.nats_client.is_connected
            details["nats"] = "Connected" if factory.nats_client.is_connected else "Disconnected"
        else:
            checks["nats"] = True  # Optional
            details["nats"] = "Not configured (optional)"
    else:
        checks["factory"] = False
        details["factory"] = "Factory not initialized"

    return ReadinessResponse(
        ready=checks.get("database", False),
        checks=checks,
        details=details,
    )


@app.get("/health/live", response_model=LivenessResponse, tags=["Health"])
async def liveness_check():
    """Liveness check endpoint"""
    return LivenessResponse(
        alive=True,
        uptime_seconds=time.time() - startup_time,
    )


# ====================
# Campaign CRUD Endpoints
# ====================


@app.post(
    "/api/v1/campaigns",
    response_model=Campaign,
    status_code=status.HTTP_201_CREATED,
    tags=["Campaigns"],
)
async def create_campaign(
    request: CampaignCreateRequest,
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Create a campaign (draft, or scheduled when scheduled_at is given)"""
    return await service.create_campaign(
        request=request,
        owner_id=auth["owner_id"],
        created_by=auth["user_id"],
    )


@app.get("/api/v1/campaigns", response_model=CampaignListResponse, tags=["Campaigns"])
async def list_campaigns(
    status_filter: Optional[CampaignStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """List the caller's campaigns, newest first"""
    return await service.list_campaigns(
        auth["owner_id"], status=status_filter, page=page, page_size=page_size
    )


@app.get("/api/v1/campaigns/{campaign_id}", response_model=Campaign, tags=["Campaigns"])
async def get_campaign(
    campaign_id: str,
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Get campaign by ID"""
    return await service.get_campaign(campaign_id, auth["owner_id"])


@app.patch("/api/v1/campaigns/{campaign_id}", response_model=Campaign, tags=["Campaigns"])
async def update_campaign(
    campaign_id: str,
    request: CampaignUpdateRequest,
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Update name, template or list of a campaign that is not sending or completed"""
    return await service.update_campaign(campaign_id, auth["owner_id"], request)


@app.delete(
    "/api/v1/campaigns/{campaign_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Campaigns"],
)
async def delete_campaign(
    campaign_id: str,
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Delete a campaign that is not sending"""
    await service.delete_campaign(campaign_id, auth["owner_id"])


# ====================
# Scheduling Endpoints
# ====================


@app.post("/api/v1/campaigns/{campaign_id}/schedule", response_model=Campaign, tags=["Scheduling"])
async def schedule_campaign(
    campaign_id: str,
    request: ScheduleRequest,
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Schedule or reschedule a campaign"""
    return await service.schedule_campaign(campaign_id, auth["owner_id"], request.scheduled_at)


@app.post("/api/v1/campaigns/{campaign_id}/unschedule", response_model=Campaign, tags=["Scheduling"])
async def unschedule_campaign(
    campaign_id: str,
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Move a scheduled campaign back to draft"""
    return await service.unschedule_campaign(campaign_id, auth["owner_id"])


# ====================
# Execution Endpoints
# ====================


@app.post("/api/v1/campaigns/{campaign_id}/enqueue", response_model=EnqueueResult, tags=["Execution"])
async def enqueue_campaign(
    campaign_id: str,
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Debit credits and queue one message per recipient"""
    return await service.enqueue_campaign(campaign_id, auth["owner_id"])


@app.get("/api/v1/campaigns/{campaign_id}/preview", response_model=CampaignPreview, tags=["Execution"])
async def preview_campaign(
    campaign_id: str,
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Rendered sample of the campaign's messages"""
    return await service.preview_campaign(campaign_id, auth["owner_id"])


@app.get(
    "/api/v1/campaigns/{campaign_id}/status",
    response_model=CampaignStatusResponse,
    tags=["Execution"],
)
async def get_campaign_status(
    campaign_id: str,
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Message counts per status"""
    return await service.get_campaign_status(campaign_id, auth["owner_id"])


@app.get("/api/v1/campaigns/{campaign_id}/stats", response_model=CampaignStats, tags=["Execution"])
async def get_campaign_stats(
    campaign_id: str,
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Delivery and conversion statistics"""
    return await service.get_campaign_stats(campaign_id, auth["owner_id"])


# ====================
# Provider Webhooks
# ====================


@app.post(
    "/api/v1/webhooks/sms/dlr",
    response_model=ReconciliationResult,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Webhooks"],
)
async def delivery_report_webhook(
    raw_body: bytes = Depends(read_webhook_body),
    f: CampaignServiceFactory = Depends(get_factory_instance),
):
    """Delivery reports; always acknowledged once authenticated"""
    body = _parse_json(raw_body)
    if body is None:
        return ReconciliationResult(ok=True, updated=0)
    return await f.reconciler.ingest(body)


@app.post(
    "/api/v1/webhooks/sms/inbound",
    response_model=InboundResult,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Webhooks"],
)
async def inbound_message_webhook(
    raw_body: bytes = Depends(read_webhook_body),
    f: CampaignServiceFactory = Depends(get_factory_instance),
):
    """Inbound SMS; STOP unsubscribes the sender"""
    return await f.inbound_handler.handle(_parse_json(raw_body))


# ====================
# Tracking Endpoints
# ====================


@app.get("/api/v1/tracking/{tracking_id}", response_model=TrackingLookup, tags=["Tracking"])
async def lookup_tracking(tracking_id: str, service=Depends(get_service)):
    """Public: whether a tracking id exists and was redeemed"""
    result = await service.lookup_tracking(tracking_id)
    if not result.exists:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"exists": False})
    return result


@app.post("/api/v1/tracking/redeem", response_model=RedemptionResult, tags=["Tracking"])
async def redeem_tracking(
    request: RedeemRequest,
    http_request: Request,
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Record an offer redemption for one of the caller's messages"""
    evidence = dict(request.evidence)
    if http_request.client:
        evidence.setdefault("ip", http_request.client.host)
    return await service.redeem(
        request.tracking_id,
        auth["owner_id"],
        redeemed_by=auth["user_id"],
        evidence=evidence,
    )


# ====================
# Main Entry Point
# ====================


def main():
    """Run the service"""
    import uvicorn

    uvicorn.run(
        "microservices.campaign_service.main:app",
        host=get_settings().default_host,
        port=SERVICE_PORT,
        log_level="info",
    )


if __name__ == "__main__":
    main()
