"""
FastAPI Application Entry Point.

This is the main application file for the Parcel Delivery Backend.
"""

from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from parcel_delivery.app.core.config import settings
from parcel_delivery.app.api.v1.router import router as api_v1_router
from parcel_delivery.app.core.observability import ObservabilityMiddleware, configure_logging, logger
from parcel_delivery.app.core.redis_client import build_redis, get_redis, ping_redis
from parcel_delivery.app.db.session import Base, build_engine, build_session_factory
from parcel_delivery.app.services.payment_gateway import StripePaymentGateway
from parcel_delivery.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from parcel_delivery.app.models.parcel import Parcel
from parcel_delivery.app.models.payment import Payment
from parcel_delivery.app.models.tracking_event import TrackingEvent
from parcel_delivery.app.models.reconciliation import PaymentReconciliation
from parcel_delivery.app.models.audit_log import AuditLog

configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Builds the database engine, Redis client and payment gateway.
    2. Creates database tables on startup.
    3. Disposes of connections on shutdown.
    """
    engine = build_engine(settings)
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.redis = build_redis(settings)
    app.state.payment_gateway = StripePaymentGateway.from_settings(settings)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Application started", extra={"app_name": settings.app_name})

    yield

    await app.state.redis.aclose()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Parcel delivery backend with payment ledger",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check(redis_client=Depends(get_redis)):
    """
    Health check endpoint.

    Reports "degraded" when Redis does not answer, since token revocation
    checks depend on it.

    Returns:
        dict: Status, Redis reachability and application information
    """
    redis_ok = await ping_redis(redis_client)
    return {
        "status": "healthy" if redis_ok else "degraded",
        "redis": "ok" if redis_ok else "unavailable",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


app.include_router(api_v1_router)


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Parcel Delivery API is running",
        "docs": "/docs",
        "health": "/health",
    }
