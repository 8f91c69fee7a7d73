"""
Notification policy, dispatcher and broker tests.
"""

import asyncio

import pytest
from sqlalchemy import select

from market_backend.app.core.reliability import CircuitBreaker
from market_backend.app.models.notification import Notification, NotificationEvent
from market_backend.app.services.email_provider import EmailProvider
from market_backend.app.services.event_broker import InMemoryBroker, user_topic
from market_backend.app.services.notification_policy import notification_policy
from market_backend.app.services.notification_service import Notifier, NotificationService, render_message


class FailingEmailProvider(EmailProvider):
    def __init__(self):
        self.attempts = 0

    async def send_email(self, to, subject, body, meta=None):
        self.attempts += 1
        raise ConnectionError("smtp down")


class FailingBroker(InMemoryBroker):
    async def publish(self, topic, message):
        raise ConnectionError("broker down")


@pytest.mark.parametrize("event", list(NotificationEvent))
def test_every_event_has_policy_and_message(event):
    channels = notification_policy(event)
    title, message, link = render_message(event, {"lock_number": "A-01", "lock_id": 1, "booking_id": 2})
    assert isinstance(channels.in_app, bool)
    assert isinstance(channels.email, bool)
    assert title and message and link


def test_policy_table():
    assert notification_policy(NotificationEvent.PAYMENT_UPLOADED) == (False, False)
    assert notification_policy(NotificationEvent.QUEUE_TURN) == (True, True)
    assert notification_policy(NotificationEvent.LOCK_AVAILABLE) == (True, False)
    assert notification_policy("booking_approved").email is True


async def test_send_persists_publishes_and_emails(db_session, notifier, broker, email_provider, make_user):
    user = await make_user()
    topic = user_topic(user.id)

    stream = broker.subscribe(topic)
    receiving = asyncio.ensure_future(stream.__anext__())
    await asyncio.sleep(0)
    assert broker.subscriber_count(topic) == 1

    await notifier.send(user.id, NotificationEvent.QUEUE_TURN, {"lock_id": 5, "lock_number": "B-07"})

    live = await asyncio.wait_for(receiving, timeout=1)
    assert live["type"] == "queue_turn"
    assert "B-07" in live["message"]
    await stream.aclose()
    assert broker.subscriber_count(topic) == 0

    rows = (await db_session.execute(select(Notification).where(Notification.user_id == user.id))).scalars().all()
    assert len(rows) == 1
    assert rows[0].link == "/locks/5"
    assert email_provider.sent[0]["to"] == user.email


async def test_email_failure_does_not_block_in_app(db_session, session_factory, broker, make_user):
    user = await make_user()
    failing = FailingEmailProvider()
    notifier = Notifier(session_factory, broker, email_provider=failing)

    await notifier.send(user.id, NotificationEvent.BOOKING_APPROVED, {"booking_id": 1, "lock_number": "A-01"})

    assert failing.attempts == 1
    rows = (await db_session.execute(select(Notification).where(Notification.user_id == user.id))).scalars().all()
    assert len(rows) == 1


async def test_broker_failure_is_swallowed(db_session, session_factory, email_provider, make_user):
    user = await make_user()
    notifier = Notifier(session_factory, FailingBroker(), email_provider=email_provider)

    await notifier.send(user.id, NotificationEvent.BOOKING_CANCELLED, {"booking_id": 3})

    assert len(email_provider.sent) == 1


async def test_store_failure_is_swallowed(broker, email_provider, mocker):
    broken_factory = mocker.MagicMock(side_effect=RuntimeError("no database"))
    notifier = Notifier(broken_factory, broker, email_provider=email_provider)

    # Must not raise
    await notifier.send(1, NotificationEvent.BOOKING_CREATED, {"booking_id": 1})

    assert email_provider.sent == []


async def test_email_circuit_opens_after_repeated_failures(session_factory, broker, make_user):
    user = await make_user()
    failing = FailingEmailProvider()
    breaker = CircuitBreaker(name="email", failure_threshold=2, reset_timeout=60)
    notifier = Notifier(session_factory, broker, email_provider=failing, email_breaker=breaker)

    for _ in range(4):
        await notifier.send(user.id, NotificationEvent.QUEUE_TURN, {"lock_id": 1})

    assert failing.attempts == 2
    assert breaker.state == "OPEN"


async def test_mark_read(db_session, notifier, make_user):
    user = await make_user()
    other = await make_user()
    await notifier.send(user.id, NotificationEvent.SYSTEM, {"message": "Market closed Monday"})
    await notifier.send(user.id, NotificationEvent.LOCK_AVAILABLE, {"lock_id": 1})

    notification_id = (await db_session.execute(
        select(Notification.id).where(Notification.user_id == user.id).limit(1)
    )).scalar()

    assert await NotificationService.mark_read(db_session, notification_id, other.id) is False
    assert await NotificationService.mark_read(db_session, notification_id, user.id) is True
    assert await NotificationService.mark_all_read(db_session, user.id) == 1
    await db_session.commit()
