"""
Notification Service.

Notifier dispatches booking lifecycle events to users (in-app row, live
broker message, email) on a best-effort basis. NotificationService holds the
read-state operations used by the notification endpoints.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from market_backend.app.core.config import settings
from market_backend.app.core.reliability import CircuitBreaker
from market_backend.app.models.notification import Notification, NotificationEvent
from market_backend.app.models.user import User
from market_backend.app.services.email_provider import EmailProvider, LogEmailProvider
from market_backend.app.services.event_broker import EventBroker, user_topic
from market_backend.app.services.notification_policy import notification_policy

logger = logging.getLogger(__name__)


def _fmt_time(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M UTC")
    return str(value)


def render_message(event: NotificationEvent, payload: Dict[str, Any]) -> Tuple[str, str, str]:
    """Title, message and link for an event."""
    lock_number = payload.get("lock_number", "-")
    booking_link = f"/my-bookings/{payload.get('booking_id')}"

    if event == NotificationEvent.BOOKING_CREATED:
        return (
            "Booking created",
            f"You booked lock #{lock_number}. Please pay {payload.get('total_amount')} "
            f"before {_fmt_time(payload.get('payment_deadline'))}.",
            booking_link,
        )
    if event == NotificationEvent.PAYMENT_UPLOADED:
        return (
            "Payment slip received",
            "We received your payment slip and are verifying it.",
            booking_link,
        )
    if event == NotificationEvent.BOOKING_APPROVED:
        return (
            "Booking approved",
            f"Your payment for lock #{lock_number} was approved. "
            f"Rental runs {payload.get('start_date')} to {payload.get('end_date')}.",
            booking_link,
        )
    if event == NotificationEvent.BOOKING_REJECTED:
        return (
            "Payment rejected",
            f"Reason: {payload.get('rejection_reason') or 'not specified'}. "
            "Please check the slip and submit again before the payment deadline.",
            booking_link,
        )
    if event == NotificationEvent.BOOKING_CANCELLED:
        return (
            "Booking cancelled",
            f"Your booking for lock #{lock_number} was cancelled: "
            f"{payload.get('reason') or 'payment deadline passed'}.",
            booking_link,
        )
    if event == NotificationEvent.BOOKING_EXPIRING:
        return (
            "Rental ending soon",
            f"Your rental of lock #{lock_number} ends on {payload.get('end_date')}.",
            booking_link,
        )
    if event == NotificationEvent.QUEUE_TURN:
        return (
            "It's your turn!",
            f"Lock #{lock_number} is reserved for you until "
            f"{_fmt_time(payload.get('expires_at'))}. Book it before then to keep your turn.",
            f"/locks/{payload.get('lock_id')}",
        )
    if event == NotificationEvent.QUEUE_CANCELLED:
        return (
            "Queue closed",
            f"Lock #{lock_number} has been rented by another tenant, so its queue was cleared.",
            "/locks",
        )
    if event == NotificationEvent.LOCK_AVAILABLE:
        return (
            "A lock you follow is available",
            f"Lock #{lock_number} is now available to book.",
            f"/locks/{payload.get('lock_id')}",
        )
    return (
        payload.get("title", "System notice"),
        payload.get("message", "You have a new notification."),
        payload.get("link", "/notifications"),
    )


class Notifier:
    """
    Fire-and-forget notification dispatcher.

    send() never raises: every failure is logged and swallowed so the
    operation that triggered it (already committed) is unaffected. Each
    channel runs independently in its own session.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        broker: EventBroker,
        email_provider: Optional[EmailProvider] = None,
        email_breaker: Optional[CircuitBreaker] = None,
    ):
        self.session_factory = session_factory
        self.broker = broker
        self.email_provider = email_provider or LogEmailProvider()
        self.email_breaker = email_breaker or CircuitBreaker(
            name="email",
            failure_threshold=settings.email_failure_threshold,
            reset_timeout=settings.email_reset_timeout,
        )

    async def send(self, user_id: int, event: NotificationEvent, payload: Optional[Dict[str, Any]] = None) -> None:
        payload = payload or {}
        try:
            event = NotificationEvent(event)
            channels = notification_policy(event)
            title, message, link = render_message(event, payload)
        except Exception:
            logger.exception("Could not prepare %s notification for user %s", event, user_id)
            return

        if channels.in_app:
            await self._send_in_app(user_id, event, title, message, link)
        if channels.email:
            await self._send_email(user_id, event, title, message)

    async def _send_in_app(self, user_id: int, event: NotificationEvent, title: str, message: str, link: str) -> None:
        try:
            async with self.session_factory() as db:
                notif = Notification(
                    user_id=user_id,
                    type=event,
                    title=title,
                    message=message,
                    link=link,
                )
                db.add(notif)
                await db.commit()
                live = {
                    "id": notif.id,
                    "type": event.value,
                    "title": title,
                    "message": message,
                    "link": link,
                }
        except Exception:
            logger.exception("In-app notification %s for user %s failed", event.value, user_id)
            return

        try:
            await self.broker.publish(user_topic(user_id), live)
        except Exception:
            logger.exception("Live publish of %s for user %s failed", event.value, user_id)

    async def _send_email(self, user_id: int, event: NotificationEvent, subject: str, body: str) -> None:
        try:
            async with self.session_factory() as db:
                user = await db.get(User, user_id)
                email = user.email if user else None
            if not email:
                logger.info("No email address for user %s; skipping %s email", user_id, event.value)
                return
            await self.email_breaker.call(
                self.email_provider.send_email,
                to=email,
                subject=subject,
                body=body,
                meta={"event": event.value, "user_id": user_id},
            )
        except Exception:
            logger.exception("Email notification %s for user %s failed", event.value, user_id)


class NotificationService:

    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).values(
            is_read=True,
            read_at=datetime.utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        """Mark all notifications for user as read."""
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).values(
            is_read=True,
            read_at=datetime.utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount
