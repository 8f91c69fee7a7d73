"""
Queue Advancement Processor (Domain Logic).

Decides what a lock becomes once it is vacated: reserved for the head of
its queue, or available to everyone.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.core.clock import utcnow
from market_backend.app.core.config import settings
from market_backend.app.models.booking import Booking
from market_backend.app.models.booking_enums import LockStatus, BLOCKING_BOOKING_STATUSES
from market_backend.app.models.interest_entry import InterestEntry
from market_backend.app.models.lock import Lock
from market_backend.app.models.notification import NotificationEvent
from market_backend.app.services.audit import log_event, AuditAction
from market_backend.app.services.notification_service import Notifier
from market_backend.app.domain.booking.queue_service import QueueService

logger = logging.getLogger(__name__)


async def load_lock(db: AsyncSession, lock_id: int) -> Optional[Lock]:
    """Fetch a lock, overwriting any stale copy held by the session."""
    result = await db.execute(
        select(Lock).where(Lock.id == lock_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


class QueueProcessor:
    """
    Hands a vacated lock to the next queued user or releases it.

    The processor does not remove the chosen user's queue entry; it goes when
    that user books the lock or when their reservation lapses.
    """

    def __init__(self, notifier: Notifier, reservation_window_minutes: int = None):
        self.notifier = notifier
        self.reservation_window = timedelta(
            minutes=reservation_window_minutes or settings.reservation_window_minutes
        )

    async def process_lock_availability(
        self,
        db: AsyncSession,
        lock_id: int,
        now: Optional[datetime] = None
    ) -> Optional[LockStatus]:
        """
        Move a vacated lock to RESERVED (queue head) or AVAILABLE.

        The write is conditional on the status read here, so a booking that
        claims the lock in between is never overwritten. Returns the new
        status, or None when nothing was changed.

        Flow:
        1. Load lock; skip inactive, maintenance, or still-held locks
        2. Oldest queue entry -> reserve for that user for the window
        3. No queue -> available, tell interested users
        """
        now = now or utcnow()

        lock = await load_lock(db, lock_id)
        if lock is None:
            logger.warning("Queue processing skipped: lock %s not found", lock_id)
            return None

        if not lock.is_active or lock.status == LockStatus.MAINTENANCE:
            logger.info("Queue processing skipped: lock %s is out of service", lock.lock_number)
            return None

        live = await db.execute(
            select(func.count(Booking.id)).where(
                Booking.lock_id == lock_id,
                Booking.status.in_(BLOCKING_BOOKING_STATUSES)
            )
        )
        if live.scalar() > 0:
            logger.info("Queue processing skipped: lock %s still has a live booking", lock.lock_number)
            return None

        observed_status = lock.status
        observed_holder = lock.reserved_to_id
        lock_number = lock.lock_number

        next_entry = await QueueService.oldest_entry(db, lock_id)

        if next_entry is not None:
            next_user_id = next_entry.user_id
            expires_at = now + self.reservation_window
            values = {
                "status": LockStatus.RESERVED,
                "reserved_to_id": next_user_id,
                "reservation_expires_at": expires_at,
            }
        else:
            next_user_id = None
            expires_at = None
            values = {
                "status": LockStatus.AVAILABLE,
                "reserved_to_id": None,
                "reservation_expires_at": None,
            }

        holder_matches = (
            Lock.reserved_to_id.is_(None) if observed_holder is None
            else Lock.reserved_to_id == observed_holder
        )

        try:
            result = await db.execute(
                update(Lock)
                .where(
                    Lock.id == lock_id,
                    Lock.status == observed_status,
                    holder_matches
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await db.rollback()
                logger.info("Lock %s changed while processing its queue; leaving it as is", lock_number)
                return None

            if next_user_id is not None:
                await log_event(
                    db=db,
                    action=AuditAction.QUEUE_RESERVED,
                    target_id=f"lock:{lock_id}",
                    metadata={
                        "reserved_to": next_user_id,
                        "expires_at": expires_at.isoformat(),
                        "previous_status": observed_status.value
                    }
                )
            else:
                await log_event(
                    db=db,
                    action=AuditAction.QUEUE_RELEASED,
                    target_id=f"lock:{lock_id}",
                    metadata={"previous_status": observed_status.value}
                )
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise

        if next_user_id is not None:
            logger.info("Lock %s reserved for queued user %s until %s", lock_number, next_user_id, expires_at)
            await self.notifier.send(next_user_id, NotificationEvent.QUEUE_TURN, {
                "lock_id": lock_id,
                "lock_number": lock_number,
                "expires_at": expires_at,
            })
            return LockStatus.RESERVED

        logger.info("Lock %s is now available (no queue)", lock_number)
        await self.notify_interested_users(db, lock_id, lock_number)
        return LockStatus.AVAILABLE

    async def notify_interested_users(self, db: AsyncSession, lock_id: int, lock_number: str) -> int:
        """Tell everyone who bookmarked the lock that it is free. Best-effort."""
        try:
            result = await db.execute(
                select(InterestEntry.user_id).where(InterestEntry.lock_id == lock_id)
            )
            user_ids = result.scalars().all()
            if not user_ids:
                return 0

            for user_id in user_ids:
                await self.notifier.send(user_id, NotificationEvent.LOCK_AVAILABLE, {
                    "lock_id": lock_id,
                    "lock_number": lock_number,
                })

            await db.execute(
                update(InterestEntry)
                .where(InterestEntry.lock_id == lock_id)
                .values(notified=True)
            )
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            logger.exception("Interest notifications for lock %s failed", lock_number)
            return 0

        logger.info("Sent availability notices to %d users for lock %s", len(user_ids), lock_number)
        return len(user_ids)
