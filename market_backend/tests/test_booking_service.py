"""
Booking creation and cancellation tests.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select, func

from market_backend.app.core.exceptions import (
    ConflictError,
    PermissionDeniedError,
    ResourceNotFoundError,
    ValidationError,
)
from market_backend.app.models.audit_log import AuditLog
from market_backend.app.models.booking import Booking
from market_backend.app.models.booking_enums import BookingStatus, LockStatus, RentalType
from market_backend.app.models.lock import Lock
from market_backend.app.models.notification import Notification, NotificationEvent
from market_backend.app.models.queue_entry import QueueEntry


async def count(db, model, *criteria):
    result = await db.execute(select(func.count()).select_from(model).where(*criteria))
    return result.scalar()


async def test_booking_claims_available_lock(db_session, booking_service, make_user, make_lock, reload, now, tomorrow):
    user = await make_user()
    lock = await make_lock(price_daily=100.0)

    outcome = await booking_service.create_booking(
        db_session, lock.id, user.id, tomorrow, RentalType.DAILY, now=now
    )

    assert not outcome.queued
    booking = outcome.booking
    assert booking.status == BookingStatus.PENDING_PAYMENT
    assert booking.total_amount == 100.0
    assert booking.start_date == tomorrow
    assert booking.end_date == tomorrow
    assert booking.payment_deadline == now + timedelta(minutes=30)

    lock = await reload(Lock, lock.id)
    assert lock.status == LockStatus.BOOKED
    assert lock.reserved_to_id is None

    assert await count(db_session, AuditLog, AuditLog.action == "BOOKING_CREATED") == 1
    assert await count(
        db_session, Notification,
        Notification.user_id == user.id,
        Notification.type == NotificationEvent.BOOKING_CREATED
    ) == 1


async def test_weekly_booking_spans_seven_days(db_session, booking_service, make_user, make_lock, tomorrow):
    user = await make_user()
    lock = await make_lock(price_daily=100.0, price_weekly=550.0)

    outcome = await booking_service.create_booking(db_session, lock.id, user.id, tomorrow, "weekly")

    assert outcome.booking.end_date == tomorrow + timedelta(days=6)
    assert outcome.booking.total_amount == 550.0


async def test_lost_race_enrolls_in_queue(db_session, booking_service, make_user, make_lock, now, tomorrow):
    user_a = await make_user()
    user_b = await make_user()
    lock = await make_lock()

    first = await booking_service.create_booking(db_session, lock.id, user_a.id, tomorrow, RentalType.DAILY, now=now)
    second = await booking_service.create_booking(db_session, lock.id, user_b.id, tomorrow, RentalType.DAILY, now=now)

    assert not first.queued
    assert second.queued
    assert second.queue_position == 1
    assert await count(db_session, Booking, Booking.lock_id == lock.id) == 1
    assert await count(db_session, QueueEntry, QueueEntry.user_id == user_b.id) == 1


async def test_repeated_lost_race_keeps_single_queue_row(db_session, booking_service, make_user, make_lock, now, tomorrow):
    user_a = await make_user()
    user_b = await make_user()
    lock = await make_lock()

    await booking_service.create_booking(db_session, lock.id, user_a.id, tomorrow, RentalType.DAILY, now=now)
    first = await booking_service.create_booking(db_session, lock.id, user_b.id, tomorrow, RentalType.DAILY, now=now)
    again = await booking_service.create_booking(db_session, lock.id, user_b.id, tomorrow, RentalType.DAILY, now=now)

    assert first.queue_position == again.queue_position == 1
    assert await count(db_session, QueueEntry, QueueEntry.lock_id == lock.id) == 1


async def test_holder_cannot_queue_behind_own_booking(db_session, booking_service, make_user, make_lock, now, tomorrow):
    user = await make_user()
    lock = await make_lock()

    await booking_service.create_booking(db_session, lock.id, user.id, tomorrow, RentalType.DAILY, now=now)

    with pytest.raises(ConflictError):
        await booking_service.create_booking(db_session, lock.id, user.id, tomorrow, RentalType.DAILY, now=now)

    assert await count(db_session, QueueEntry, QueueEntry.lock_id == lock.id) == 0


async def test_booked_lock_rejects_same_day_request(db_session, booking_service, make_user, make_lock, now):
    user_a = await make_user()
    user_b = await make_user()
    lock = await make_lock()
    today = now.date()

    await booking_service.create_booking(db_session, lock.id, user_a.id, today, RentalType.DAILY, now=now)

    with pytest.raises(ConflictError):
        await booking_service.create_booking(db_session, lock.id, user_b.id, today, RentalType.DAILY, now=now)

    assert await count(db_session, QueueEntry) == 0


async def test_overlapping_live_booking_is_hard_conflict(db_session, booking_service, make_user, make_lock, now, tomorrow):
    owner = await make_user()
    other = await make_user()
    lock = await make_lock()

    # A weekly rental already covers tomorrow on a lock that reads as available
    db_session.add(Booking(
        user_id=owner.id,
        lock_id=lock.id,
        start_date=now.date(),
        end_date=now.date() + timedelta(days=6),
        rental_type=RentalType.WEEKLY,
        total_amount=700.0,
        status=BookingStatus.ACTIVE,
        payment_deadline=now,
    ))
    await db_session.commit()

    with pytest.raises(ConflictError) as exc_info:
        await booking_service.create_booking(db_session, lock.id, other.id, tomorrow, RentalType.DAILY, now=now)

    assert "booking_id" in exc_info.value.details
    assert await count(db_session, QueueEntry) == 0


async def test_maintenance_lock_is_conflict(db_session, booking_service, make_user, make_lock, tomorrow):
    user = await make_user()
    lock = await make_lock(status=LockStatus.MAINTENANCE)

    with pytest.raises(ConflictError):
        await booking_service.create_booking(db_session, lock.id, user.id, tomorrow, RentalType.DAILY)


@pytest.mark.parametrize("lock_kwargs", [{"is_active": False}, None])
async def test_missing_or_inactive_lock_is_not_found(db_session, booking_service, make_user, make_lock, tomorrow, lock_kwargs):
    user = await make_user()
    lock_id = 9999
    if lock_kwargs is not None:
        lock_id = (await make_lock(**lock_kwargs)).id

    with pytest.raises(ResourceNotFoundError):
        await booking_service.create_booking(db_session, lock_id, user.id, tomorrow, RentalType.DAILY)


async def test_invalid_input_rejected_before_lookup(db_session, booking_service, make_user, now):
    user = await make_user()
    yesterday = now.date() - timedelta(days=1)

    # Lock 9999 does not exist; validation must fire first
    with pytest.raises(ValidationError):
        await booking_service.create_booking(db_session, 9999, user.id, yesterday, RentalType.DAILY, now=now)
    with pytest.raises(ValidationError):
        await booking_service.create_booking(db_session, 9999, user.id, now.date(), "hourly", now=now)
    with pytest.raises(ValidationError):
        await booking_service.create_booking(db_session, 0, user.id, now.date(), RentalType.DAILY, now=now)


async def test_reserved_lock_only_bookable_by_holder(db_session, booking_service, make_user, make_lock, reload, now, tomorrow):
    holder = await make_user()
    rival = await make_user()
    lock = await make_lock(
        status=LockStatus.RESERVED,
        reserved_to_id=holder.id,
        reservation_expires_at=now + timedelta(minutes=20),
    )
    db_session.add(QueueEntry(lock_id=lock.id, user_id=holder.id))
    await db_session.commit()

    with pytest.raises(PermissionDeniedError):
        await booking_service.create_booking(db_session, lock.id, rival.id, tomorrow, RentalType.DAILY, now=now)

    outcome = await booking_service.create_booking(db_session, lock.id, holder.id, tomorrow, RentalType.DAILY, now=now)
    assert not outcome.queued

    lock = await reload(Lock, lock.id)
    assert lock.status == LockStatus.BOOKED
    assert lock.reserved_to_id is None
    assert lock.reservation_expires_at is None
    assert await count(db_session, QueueEntry, QueueEntry.user_id == holder.id) == 0


async def test_expired_reservation_rejects_holder(db_session, booking_service, make_user, make_lock, now, tomorrow):
    holder = await make_user()
    lock = await make_lock(
        status=LockStatus.RESERVED,
        reserved_to_id=holder.id,
        reservation_expires_at=now - timedelta(minutes=1),
    )

    with pytest.raises(PermissionDeniedError):
        await booking_service.create_booking(db_session, lock.id, holder.id, tomorrow, RentalType.DAILY, now=now)


async def test_cancel_hands_lock_to_queue_head(db_session, booking_service, make_user, make_lock, reload, now, tomorrow):
    owner = await make_user()
    waiting = await make_user()
    lock = await make_lock()

    created = await booking_service.create_booking(db_session, lock.id, owner.id, tomorrow, RentalType.DAILY, now=now)
    booking_id = created.booking.id
    await booking_service.create_booking(db_session, lock.id, waiting.id, tomorrow, RentalType.DAILY, now=now)

    cancelled = await booking_service.cancel_booking(db_session, booking_id, owner.id, now=now)

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancellation_reason == "Cancelled by user"

    lock = await reload(Lock, lock.id)
    assert lock.status == LockStatus.RESERVED
    assert lock.reserved_to_id == waiting.id
    assert await count(
        db_session, Notification,
        Notification.user_id == waiting.id,
        Notification.type == NotificationEvent.QUEUE_TURN
    ) == 1


async def test_cancel_rules(db_session, booking_service, make_user, make_lock, now, tomorrow):
    owner = await make_user()
    stranger = await make_user()
    lock = await make_lock()

    created = await booking_service.create_booking(db_session, lock.id, owner.id, tomorrow, RentalType.DAILY, now=now)
    booking_id = created.booking.id

    with pytest.raises(ResourceNotFoundError):
        await booking_service.cancel_booking(db_session, booking_id, stranger.id, now=now)

    await booking_service.cancel_booking(db_session, booking_id, owner.id, now=now)

    with pytest.raises(ConflictError):
        await booking_service.cancel_booking(db_session, booking_id, owner.id, now=now)
