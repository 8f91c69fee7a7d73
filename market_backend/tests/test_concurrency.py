"""
Concurrency Tests.

Validates that racing booking requests never double-book a lock. Uses a
file-backed SQLite database so every request gets its own connection.
"""

import asyncio

import pytest
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from market_backend.app.core.exceptions import ConflictError
from market_backend.app.db.session import Base
from market_backend.app.domain.booking.booking_service import BookingService
from market_backend.app.domain.booking.queue_service import QueueService
from market_backend.app.models.booking import Booking
from market_backend.app.models.booking_enums import BookingStatus, LockStatus, RentalType
from market_backend.app.models.lock import Lock
from market_backend.app.models.queue_entry import QueueEntry
from market_backend.app.models.user import User
from market_backend.app.services.event_broker import InMemoryBroker
from market_backend.app.services.notification_service import Notifier

CONTENDERS = 6


@pytest.fixture
async def file_session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'race.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


async def seed(factory):
    async with factory() as db:
        users = [User(email=f"racer{i}@example.com", name=f"racer{i}") for i in range(CONTENDERS)]
        lock = Lock(lock_number="R-01", price_daily=80.0)
        db.add_all(users + [lock])
        await db.commit()
        return lock.id, [u.id for u in users]


async def test_concurrent_bookings_claim_lock_once(file_session_factory, email_provider, tomorrow):
    lock_id, user_ids = await seed(file_session_factory)
    service = BookingService(Notifier(file_session_factory, InMemoryBroker(), email_provider=email_provider))

    async def attempt(user_id):
        async with file_session_factory() as db:
            try:
                return await service.create_booking(db, lock_id, user_id, tomorrow, RentalType.DAILY)
            except ConflictError as exc:
                return exc

    results = await asyncio.gather(*(attempt(uid) for uid in user_ids))

    created = [r for r in results if not isinstance(r, ConflictError) and not r.queued]
    queued = [r for r in results if not isinstance(r, ConflictError) and r.queued]
    conflicts = [r for r in results if isinstance(r, ConflictError)]

    assert len(created) == 1
    assert len(queued) + len(conflicts) == CONTENDERS - 1

    async with file_session_factory() as db:
        live = await db.execute(
            select(func.count(Booking.id)).where(
                Booking.lock_id == lock_id,
                Booking.status == BookingStatus.PENDING_PAYMENT
            )
        )
        assert live.scalar() == 1

        lock = await db.get(Lock, lock_id)
        assert lock.status == LockStatus.BOOKED

        # Each loser that was queued appears exactly once
        rows = await db.execute(select(QueueEntry.user_id).where(QueueEntry.lock_id == lock_id))
        queued_user_ids = rows.scalars().all()
        assert len(queued_user_ids) == len(set(queued_user_ids)) == len(queued)
        assert await QueueService.count(db, lock_id) == len(queued)


async def test_concurrent_joins_leave_one_row(file_session_factory):
    lock_id, user_ids = await seed(file_session_factory)
    user_id = user_ids[0]

    async def join():
        async with file_session_factory() as db:
            return await QueueService.join_queue(db, lock_id, user_id)

    positions = await asyncio.gather(*(join() for _ in range(4)))

    assert positions == [1, 1, 1, 1]
    async with file_session_factory() as db:
        assert await QueueService.count(db, lock_id) == 1
