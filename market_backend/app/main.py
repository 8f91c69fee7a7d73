"""
FastAPI Application Entry Point.

Market lock booking backend: booking, queueing, payment verification and
notifications for rentable market stalls.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from market_backend.app.core.config import settings
from market_backend.app.core.observability import setup_logging, ObservabilityMiddleware
from market_backend.app.core.redis_client import create_redis_client, ping_redis
from market_backend.app.api.v1.router import router as api_v1_router
from market_backend.app.db.session import engine, Base, AsyncSessionLocal
from market_backend.app.services.event_broker import InMemoryBroker, RedisBroker
from market_backend.app.services.notification_service import Notifier
from market_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from market_backend.app.models.user import User
from market_backend.app.models.zone import Zone
from market_backend.app.models.lock import Lock
from market_backend.app.models.booking import Booking
from market_backend.app.models.queue_entry import QueueEntry
from market_backend.app.models.interest_entry import InterestEntry
from market_backend.app.models.payment import Payment
from market_backend.app.models.audit_log import AuditLog
from market_backend.app.models.notification import Notification

setup_logging()
logger = logging.getLogger(__name__)


async def create_broker():
    """In-process broker by default; Redis when several workers serve streams."""
    if settings.broker_backend == "redis":
        client = create_redis_client()
        if not await ping_redis(client):
            logger.warning("Redis at %s is not reachable; live streams will fail until it is", settings.redis_url)
        return RedisBroker(client)
    return InMemoryBroker()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Builds the notification broker and dispatcher.
    3. Closes the broker on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.broker = await create_broker()
    app.state.notifier = Notifier(AsyncSessionLocal, app.state.broker)
    logger.info("Started with %s notification broker", settings.broker_backend)
    yield
    await app.state.broker.close()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Booking, queueing and payment verification for market stall locks",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to the Market Lock Booking API",
        "docs": "/docs",
        "health": "/health",
    }
