"""
FastAPI dependencies.

Authentication (JWT bearer + real-time account check) and the wiring of
the notification stack and domain services. The broker and notifier live on
app.state, created in the application lifespan; tests override these
dependencies instead of patching globals.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from market_backend.app.core.jwt import decode_access_token
from market_backend.app.db.session import get_db
from market_backend.app.models.user import User
from market_backend.app.services.event_broker import EventBroker
from market_backend.app.services.notification_service import Notifier
from market_backend.app.domain.booking.booking_service import BookingService
from market_backend.app.domain.booking.payment_service import PaymentService
from market_backend.app.domain.booking.queue_processor import QueueProcessor
from market_backend.app.domain.booking.sweepers import ExpirySweeper
from market_backend.app.domain.booking.lock_service import LockService

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    1. Validates token signature and expiry
    2. Verifies the user still exists and is active (real-time check)

    Returns:
        Decoded token payload (sub, user_id, role)

    Raises:
        HTTPException: 401 if the token is unusable, 403 if the account is inactive
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    return payload


def get_broker(request: Request) -> EventBroker:
    return request.app.state.broker


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_queue_processor(notifier: Notifier = Depends(get_notifier)) -> QueueProcessor:
    return QueueProcessor(notifier)


def get_booking_service(processor: QueueProcessor = Depends(get_queue_processor)) -> BookingService:
    return BookingService(processor.notifier, processor)


def get_payment_service(notifier: Notifier = Depends(get_notifier)) -> PaymentService:
    return PaymentService(notifier)


def get_sweeper(processor: QueueProcessor = Depends(get_queue_processor)) -> ExpirySweeper:
    return ExpirySweeper(processor)


def get_lock_service(processor: QueueProcessor = Depends(get_queue_processor)) -> LockService:
    return LockService(processor)
