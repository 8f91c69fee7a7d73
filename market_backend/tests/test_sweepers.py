"""
Expiry sweeper tests, including the end-to-end hand-off scenario.
"""

from datetime import timedelta

from sqlalchemy import select, func

from market_backend.app.domain.booking.lock_service import LockService
from market_backend.app.models.booking import Booking
from market_backend.app.models.booking_enums import BookingStatus, LockStatus, RentalType
from market_backend.app.models.enums import UserRole
from market_backend.app.models.lock import Lock
from market_backend.app.models.notification import Notification, NotificationEvent
from market_backend.app.models.queue_entry import QueueEntry


async def notifications_of(db, user_id, event):
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.type == event
        )
    )
    return result.scalar()


async def test_unpaid_booking_hands_lock_to_queued_user(
    db_session, booking_service, sweeper, make_user, make_lock, reload, now, tomorrow
):
    """
    A books, B is queued by losing the race, A never pays, the sweep
    cancels A and reserves the lock for B, and B books within the window.
    """
    user_a = await make_user("alice")
    user_b = await make_user("bob")
    lock = await make_lock(price_daily=100.0)

    first = await booking_service.create_booking(db_session, lock.id, user_a.id, tomorrow, RentalType.DAILY, now=now)
    booking_a = first.booking.id
    assert first.booking.total_amount == 100.0
    assert first.booking.payment_deadline == now + timedelta(minutes=30)

    second = await booking_service.create_booking(db_session, lock.id, user_b.id, tomorrow, RentalType.DAILY, now=now)
    assert second.queued
    assert second.queue_position == 1

    later = now + timedelta(minutes=31)
    result = await sweeper.cancel_expired_bookings(db_session, now=later)
    assert result.to_dict() == {"found": 1, "processed": 1, "failed": 0}

    assert (await reload(Booking, booking_a)).status == BookingStatus.CANCELLED
    lock_row = await reload(Lock, lock.id)
    assert lock_row.status == LockStatus.RESERVED
    assert lock_row.reserved_to_id == user_b.id
    assert lock_row.reservation_expires_at == later + timedelta(minutes=30)
    assert await notifications_of(db_session, user_a.id, NotificationEvent.BOOKING_CANCELLED) == 1
    assert await notifications_of(db_session, user_b.id, NotificationEvent.QUEUE_TURN) == 1

    final = await booking_service.create_booking(
        db_session, lock.id, user_b.id, tomorrow, RentalType.DAILY, now=later + timedelta(minutes=5)
    )
    assert not final.queued

    lock_row = await reload(Lock, lock.id)
    assert lock_row.status == LockStatus.BOOKED
    assert lock_row.reserved_to_id is None
    remaining = await db_session.execute(select(func.count(QueueEntry.id)).where(QueueEntry.lock_id == lock.id))
    assert remaining.scalar() == 0


async def test_payment_sweep_is_idempotent(db_session, booking_service, sweeper, make_user, make_lock, now, tomorrow):
    locks = [await make_lock() for _ in range(2)]
    for lock in locks:
        user = await make_user()
        await booking_service.create_booking(db_session, lock.id, user.id, tomorrow, RentalType.DAILY, now=now)

    later = now + timedelta(minutes=45)
    first = await sweeper.cancel_expired_bookings(db_session, now=later)
    second = await sweeper.cancel_expired_bookings(db_session, now=later)

    assert first.processed == 2
    assert second.to_dict() == {"found": 0, "processed": 0, "failed": 0}

    cancelled = await db_session.execute(
        select(func.count(Booking.id)).where(Booking.status == BookingStatus.CANCELLED)
    )
    assert cancelled.scalar() == 2


async def test_payment_sweep_skips_bookings_within_deadline(db_session, booking_service, sweeper, make_user, make_lock, now, tomorrow):
    user = await make_user()
    lock = await make_lock()
    await booking_service.create_booking(db_session, lock.id, user.id, tomorrow, RentalType.DAILY, now=now)

    result = await sweeper.cancel_expired_bookings(db_session, now=now + timedelta(minutes=10))
    assert result.found == 0


async def test_reservation_sweep_releases_lock_when_queue_empties(
    db_session, sweeper, make_user, make_lock, reload, now
):
    holder = await make_user()
    lock = await make_lock(
        status=LockStatus.RESERVED,
        reserved_to_id=holder.id,
        reservation_expires_at=now - timedelta(minutes=1),
    )
    db_session.add(QueueEntry(lock_id=lock.id, user_id=holder.id))
    await db_session.commit()

    first = await sweeper.process_reservation_expiry(db_session, now=now)
    second = await sweeper.process_reservation_expiry(db_session, now=now)

    assert first.processed == 1
    assert second.found == 0

    lock_row = await reload(Lock, lock.id)
    assert lock_row.status == LockStatus.AVAILABLE
    assert lock_row.reserved_to_id is None
    assert lock_row.reservation_expires_at is None


async def test_deactivated_reservation_is_not_swept_again(
    db_session, sweeper, processor, make_user, make_lock, reload, now
):
    admin = await make_user("staff", role=UserRole.ADMIN)
    holder = await make_user()
    behind = await make_user()
    lock = await make_lock(
        status=LockStatus.RESERVED,
        reserved_to_id=holder.id,
        reservation_expires_at=now + timedelta(minutes=30),
    )
    db_session.add(QueueEntry(lock_id=lock.id, user_id=holder.id))
    db_session.add(QueueEntry(lock_id=lock.id, user_id=behind.id))
    await db_session.commit()

    retired = await LockService(processor).deactivate_lock(db_session, lock.id, admin.id)

    assert retired.is_active is False
    lock_row = await reload(Lock, lock.id)
    assert lock_row.status == LockStatus.AVAILABLE
    assert lock_row.reserved_to_id is None
    assert lock_row.reservation_expires_at is None

    remaining = await db_session.execute(select(func.count(QueueEntry.id)).where(QueueEntry.lock_id == lock.id))
    assert remaining.scalar() == 0
    for user in (holder, behind):
        assert await notifications_of(db_session, user.id, NotificationEvent.QUEUE_CANCELLED) == 1

    for _ in range(2):
        result = await sweeper.process_reservation_expiry(db_session, now=now + timedelta(minutes=31))
        assert result.found == 0


async def test_reservation_sweep_counts_only_locks_it_changed(
    db_session, sweeper, processor, make_user, make_lock, now, mocker
):
    holder = await make_user()
    # Holder already left the queue, so there is nothing to drop
    await make_lock(
        status=LockStatus.RESERVED,
        reserved_to_id=holder.id,
        reservation_expires_at=now - timedelta(minutes=1),
    )
    # Retired locks are never swept
    await make_lock(
        is_active=False,
        status=LockStatus.RESERVED,
        reserved_to_id=holder.id,
        reservation_expires_at=now - timedelta(minutes=1),
    )

    async def unchanged(db, lock_id, now=None):
        return None

    mocker.patch.object(processor, "process_lock_availability", side_effect=unchanged)

    result = await sweeper.process_reservation_expiry(db_session, now=now)

    assert result.to_dict() == {"found": 1, "processed": 0, "failed": 0}

async def test_sweeper_continues_after_item_failure(
    db_session, booking_service, sweeper, processor, make_user, make_lock, now, tomorrow, mocker
):
    for _ in range(2):
        lock = await make_lock()
        user = await make_user()
        await booking_service.create_booking(db_session, lock.id, user.id, tomorrow, RentalType.DAILY, now=now)

    real = processor.process_lock_availability
    calls = {"n": 0}

    async def flaky(db, lock_id, now=None):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("processor down")
        return await real(db, lock_id, now=now)

    mocker.patch.object(processor, "process_lock_availability", side_effect=flaky)

    result = await sweeper.cancel_expired_bookings(db_session, now=now + timedelta(hours=1))

    assert result.to_dict() == {"found": 2, "processed": 1, "failed": 1}


async def test_completed_rental_expires_and_frees_lock(
    db_session, sweeper, make_user, make_lock, reload, now
):
    tenant = await make_user()
    lock = await make_lock(status=LockStatus.RENTED)
    db_session.add(Booking(
        user_id=tenant.id,
        lock_id=lock.id,
        start_date=now.date() - timedelta(days=7),
        end_date=now.date() - timedelta(days=1),
        rental_type=RentalType.WEEKLY,
        total_amount=700.0,
        status=BookingStatus.ACTIVE,
        payment_deadline=now - timedelta(days=8),
    ))
    await db_session.commit()

    result = await sweeper.expire_completed_rentals(db_session, now=now)

    assert result.processed == 1
    assert (await reload(Lock, lock.id)).status == LockStatus.AVAILABLE


async def test_renewal_reminder_sent_once(db_session, sweeper, make_user, make_lock, email_provider, now):
    tenant = await make_user()
    lock = await make_lock(status=LockStatus.RENTED)
    db_session.add(Booking(
        user_id=tenant.id,
        lock_id=lock.id,
        start_date=now.date() - timedelta(days=5),
        end_date=now.date() + timedelta(days=2),
        rental_type=RentalType.WEEKLY,
        total_amount=700.0,
        status=BookingStatus.ACTIVE,
        payment_deadline=now - timedelta(days=6),
    ))
    await db_session.commit()

    first = await sweeper.send_renewal_reminders(db_session, now=now)
    second = await sweeper.send_renewal_reminders(db_session, now=now)

    assert first.processed == 1
    assert second.found == 0
    assert await notifications_of(db_session, tenant.id, NotificationEvent.BOOKING_EXPIRING) == 1
    assert [m["to"] for m in email_provider.sent] == [tenant.email]
