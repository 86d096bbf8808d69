"""
Credit Service Main Application

FastAPI application for the billing surface of the credit ledger.
Port: 8229
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from core.config import get_settings
from core.logging_setup import setup_logging

from .factory import CreditServiceFactory
from .models import (
    BalanceResponse,
    CreditPackage,
    HealthResponse,
    LivenessResponse,
    PurchaseRequest,
    PurchaseResponse,
    ReadinessResponse,
    TransactionListResponse,
)
from .protocols import (
    CreditPackageNotFoundError,
    InsufficientCreditsError,
    InvalidAmountError,
)

# Configure logging
setup_logging(get_settings().logging)
logger = logging.getLogger(__name__)

# Service configuration
SERVICE_NAME = "credit_service"
SERVICE_PORT = int(os.getenv("SERVICE_PORT", "8229"))
SERVICE_VERSION = "1.0.0"

# Track startup time for uptime calculation
startup_time = time.time()

# Global factory instance
factory: Optional[CreditServiceFactory] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    global factory

    logger.info(f"Starting {SERVICE_NAME} on port {SERVICE_PORT}")

    factory = CreditServiceFactory(get_settings())
    await factory.initialize()

    yield

    # Cleanup
    logger.info(f"Shutting down {SERVICE_NAME}")
    await factory.close()


# Create FastAPI application
app = FastAPI(
    title="Credit Service",
    description="Prepaid SMS credit ledger: balances, transactions and credit packages",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)


# ====================
# Exception Handlers
# ====================


@app.exception_handler(CreditPackageNotFoundError)
async def package_not_found_handler(request: Request, exc: CreditPackageNotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc)},
    )


@app.exception_handler(InvalidAmountError)
async def invalid_amount_handler(request: Request, exc: InvalidAmountError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc)},
    )


@app.exception_handler(InsufficientCreditsError)
async def insufficient_credits_handler(request: Request, exc: InsufficientCreditsError):
    return JSONResponse(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        content={
            "detail": str(exc),
            "reason": "insufficient_credits",
            "available": exc.available,
            "required": exc.required,
        },
    )


# ====================
# Dependencies
# ====================


def get_service():
    """Get credit service from factory"""
    if not factory:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return factory.service


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


# ====================
# Health Endpoints
# ====================


@app.get("/api/v1/billing/health")
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
# Billing Endpoints
# ====================


@app.get("/api/v1/billing/balance", response_model=BalanceResponse, tags=["Billing"])
async def get_balance(
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Current credit balance of the caller's wallet"""
    return await service.get_balance(auth["owner_id"])


@app.get("/api/v1/billing/transactions", response_model=TransactionListResponse, tags=["Billing"])
async def list_transactions(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Ledger entries, newest first"""
    return await service.list_transactions(auth["owner_id"], page=page, page_size=page_size)


@app.get("/api/v1/billing/packages", response_model=List[CreditPackage], tags=["Billing"])
async def list_packages(service=Depends(get_service)):
    """Active credit packages ordered by size"""
    return await service.list_packages()


@app.post(
    "/api/v1/billing/purchase",
    response_model=PurchaseResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Billing"],
)
async def purchase_package(
    request: PurchaseRequest,
    service=Depends(get_service),
    auth: dict = Depends(get_auth_context),
):
    """Buy a credit package and credit its units"""
    return await service.purchase_package(auth["owner_id"], request.package_id)


# ====================
# Main Entry Point
# ====================


def main():
    """Run the service"""
    import uvicorn

    uvicorn.run(
        "microservices.credit_service.main:app",
        host=get_settings().default_host,
        port=SERVICE_PORT,
        log_level="info",
    )


if __name__ == "__main__":
    main()
