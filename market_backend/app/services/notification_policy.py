"""
Which channels each notification event goes out on.
"""

from typing import NamedTuple

from market_backend.app.models.notification import NotificationEvent


class NotificationChannels(NamedTuple):
    in_app: bool
    email: bool


_POLICY = {
    NotificationEvent.BOOKING_CREATED: NotificationChannels(in_app=True, email=True),
    NotificationEvent.PAYMENT_UPLOADED: NotificationChannels(in_app=False, email=False),  # user already knows
    NotificationEvent.BOOKING_APPROVED: NotificationChannels(in_app=True, email=True),
    NotificationEvent.BOOKING_REJECTED: NotificationChannels(in_app=True, email=True),
    NotificationEvent.BOOKING_CANCELLED: NotificationChannels(in_app=True, email=True),
    NotificationEvent.BOOKING_EXPIRING: NotificationChannels(in_app=True, email=True),
    NotificationEvent.QUEUE_TURN: NotificationChannels(in_app=True, email=True),
    NotificationEvent.QUEUE_CANCELLED: NotificationChannels(in_app=True, email=False),
    NotificationEvent.LOCK_AVAILABLE: NotificationChannels(in_app=True, email=False),
    NotificationEvent.SYSTEM: NotificationChannels(in_app=True, email=False),
}


def notification_policy(event: NotificationEvent) -> NotificationChannels:
    """Channels for an event. Every member of NotificationEvent has an entry."""
    return _POLICY[NotificationEvent(event)]
