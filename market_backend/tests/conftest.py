"""
Centralized Test Configuration.
"""

from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from market_backend.app.main import app
from market_backend.app.db.session import get_db, Base
from market_backend.app.core.dependencies import get_broker, get_notifier
from market_backend.app.core.jwt import create_access_token
from market_backend.app.models.enums import UserRole
from market_backend.app.models.lock import Lock
from market_backend.app.models.user import User
from market_backend.app.models.zone import Zone
from market_backend.app.services.email_provider import EmailProvider
from market_backend.app.services.event_broker import InMemoryBroker
from market_backend.app.services.notification_service import Notifier
from market_backend.app.domain.booking.booking_service import BookingService
from market_backend.app.domain.booking.payment_service import PaymentService
from market_backend.app.domain.booking.queue_processor import QueueProcessor
from market_backend.app.domain.booking.sweepers import ExpirySweeper

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def _enable_foreign_keys(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class RecordingEmailProvider(EmailProvider):
    """Keeps sent emails in memory."""

    def __init__(self):
        self.sent = []

    async def send_email(self, to, subject, body, meta=None):
        self.sent.append({"to": to, "subject": subject, "body": body, "meta": meta or {}})
        return {"status": "sent", "provider": "memory"}


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(test_engine.sync_engine, "connect", _enable_foreign_keys)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# Shared session for fixture data creation and direct service calls
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def now():
    return datetime.utcnow()


@pytest.fixture
def tomorrow(now):
    return (now + timedelta(days=1)).date()


@pytest.fixture
def broker():
    return InMemoryBroker()


@pytest.fixture
def email_provider():
    return RecordingEmailProvider()


@pytest.fixture
def notifier(session_factory, broker, email_provider):
    return Notifier(session_factory, broker, email_provider=email_provider)


@pytest.fixture
def processor(notifier):
    return QueueProcessor(notifier)


@pytest.fixture
def booking_service(notifier, processor):
    return BookingService(notifier, processor)


@pytest.fixture
def payment_service(notifier):
    return PaymentService(notifier)


@pytest.fixture
def sweeper(processor):
    return ExpirySweeper(processor)


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    async def _make_user(name: str = None, role: UserRole = UserRole.USER, is_active: bool = True) -> User:
        counter["n"] += 1
        name = name or f"tenant{counter['n']}"
        user = User(email=f"{name}@example.com", name=name, role=role, is_active=is_active)
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        db_session.expunge(user)
        return user

    return _make_user


@pytest.fixture
def make_zone(db_session):
    async def _make_zone(name: str, description: str = None) -> Zone:
        zone = Zone(name=name, description=description)
        db_session.add(zone)
        await db_session.commit()
        await db_session.refresh(zone)
        db_session.expunge(zone)
        return zone

    return _make_zone


@pytest.fixture
def make_lock(db_session):
    counter = {"n": 0}

    async def _make_lock(price_daily: float = 100.0, **kwargs) -> Lock:
        counter["n"] += 1
        kwargs.setdefault("lock_number", f"A-{counter['n']:02d}")
        lock = Lock(price_daily=price_daily, **kwargs)
        db_session.add(lock)
        await db_session.commit()
        await db_session.refresh(lock)
        db_session.expunge(lock)
        return lock

    return _make_lock


@pytest.fixture
def reload(db_session):
    """Fresh copy of a row, bypassing whatever the session cached."""

    async def _reload(model, ident):
        return await db_session.get(model, ident, populate_existing=True)

    return _reload


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        token = create_access_token({"sub": user.email, "user_id": user.id, "role": user.role.value})
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers


@pytest.fixture
async def client(session_factory, notifier, broker):
    """Async client for testing, wired to the test database and notifier."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_broker] = lambda: broker

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}
