"""
Lock administration and interest list.

Staff create locks, adjust pricing, and take locks in and out of service.
Putting a lock back into service goes through the queue processor so that
waiting users are served before anyone else.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.core.exceptions import ConflictError, ResourceNotFoundError, ValidationError
from market_backend.app.models.booking import Booking
from market_backend.app.models.booking_enums import BookingStatus, LockStatus, BLOCKING_BOOKING_STATUSES
from market_backend.app.models.interest_entry import InterestEntry
from market_backend.app.models.lock import Lock
from market_backend.app.models.notification import NotificationEvent
from market_backend.app.models.queue_entry import QueueEntry
from market_backend.app.services.audit import log_event, AuditAction
from market_backend.app.domain.booking.booking_service import CLAIMED_LOCK_STATUSES
from market_backend.app.domain.booking.queue_processor import QueueProcessor, load_lock
from market_backend.app.domain.booking.zone_service import ZoneService

logger = logging.getLogger(__name__)

PRICING_FIELDS = ("zone_id", "description", "price_daily", "price_weekly", "price_monthly")


class LockService:

    def __init__(self, processor: QueueProcessor):
        self.processor = processor

    @staticmethod
    async def list_locks(
        db: AsyncSession,
        zone_id: Optional[int] = None,
        status: Optional[LockStatus] = None,
        include_inactive: bool = False
    ) -> List[Lock]:
        query = select(Lock).order_by(Lock.lock_number.asc())
        if not include_inactive:
            query = query.where(Lock.is_active == True)
        if zone_id:
            query = query.where(Lock.zone_id == zone_id)
        if status:
            query = query.where(Lock.status == status)
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def get_lock(db: AsyncSession, lock_id: int, include_inactive: bool = False) -> Lock:
        lock = await load_lock(db, lock_id)
        if not lock or (not lock.is_active and not include_inactive):
            raise ResourceNotFoundError("Lock", lock_id)
        return lock

    async def create_lock(self, db: AsyncSession, admin_id: int, data: dict) -> Lock:
        if data.get("zone_id"):
            await ZoneService.get_active_zone(db, data["zone_id"])

        lock = Lock(status=LockStatus.AVAILABLE, is_active=True, **data)
        db.add(lock)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(f"Lock number {data.get('lock_number')} already exists")

        await log_event(
            db=db,
            action=AuditAction.LOCK_CREATED,
            actor_id=admin_id,
            target_id=f"lock:{lock.id}",
            metadata={"lock_number": lock.lock_number, "price_daily": lock.price_daily}
        )
        await db.commit()
        logger.info("Lock %s created by admin %s", lock.lock_number, admin_id)
        return lock

    async def update_lock(self, db: AsyncSession, lock_id: int, admin_id: int, data: dict) -> Lock:
        """
        Update pricing/description and optionally move the lock into or out
        of maintenance.
        """
        lock = await self.get_lock(db, lock_id, include_inactive=True)
        new_status = data.pop("status", None)
        if data.get("zone_id"):
            await ZoneService.get_active_zone(db, data["zone_id"])

        changes = {}
        for field in PRICING_FIELDS:
            if field in data and data[field] is not None:
                setattr(lock, field, data[field])
                changes[field] = data[field]

        if changes:
            await log_event(
                db=db,
                action=AuditAction.LOCK_UPDATED,
                actor_id=admin_id,
                target_id=f"lock:{lock_id}",
                metadata=changes
            )
            await db.commit()

        if new_status is None or new_status == lock.status:
            return lock

        if new_status == LockStatus.MAINTENANCE:
            await self._enter_maintenance(db, lock, admin_id)
        elif new_status == LockStatus.AVAILABLE and lock.status == LockStatus.MAINTENANCE:
            await self._leave_maintenance(db, lock, admin_id)
        else:
            raise ValidationError(
                "Only maintenance on/off can be set by hand",
                details={"field": "status", "current": lock.status.value}
            )

        return await self.get_lock(db, lock_id, include_inactive=True)

    async def _enter_maintenance(self, db: AsyncSession, lock: Lock, admin_id: int) -> None:
        previous = lock.status
        await db.execute(
            update(Lock)
            .where(Lock.id == lock.id)
            .values(status=LockStatus.MAINTENANCE, reserved_to_id=None, reservation_expires_at=None)
            .execution_options(synchronize_session=False)
        )
        await log_event(
            db=db,
            action=AuditAction.LOCK_UPDATED,
            actor_id=admin_id,
            target_id=f"lock:{lock.id}",
            metadata={"status": LockStatus.MAINTENANCE.value, "previous_status": previous.value}
        )
        await db.commit()
        logger.info("Lock %s taken out of service (was %s)", lock.lock_number, previous.value)

    async def _leave_maintenance(self, db: AsyncSession, lock: Lock, admin_id: int) -> None:
        """Restore the state implied by live bookings, or let the processor pick."""
        result = await db.execute(
            select(Booking.status).where(
                Booking.lock_id == lock.id,
                Booking.status.in_(BLOCKING_BOOKING_STATUSES)
            )
        )
        live = result.scalars().all()
        if BookingStatus.ACTIVE in live:
            restored = LockStatus.RENTED
        elif live:
            restored = LockStatus.BOOKED
        else:
            restored = LockStatus.AVAILABLE

        moved = await db.execute(
            update(Lock)
            .where(Lock.id == lock.id, Lock.status == LockStatus.MAINTENANCE)
            .values(status=restored)
            .execution_options(synchronize_session=False)
        )
        if moved.rowcount == 0:
            await db.rollback()
            raise ConflictError("Lock status changed, please refresh")

        await log_event(
            db=db,
            action=AuditAction.LOCK_UPDATED,
            actor_id=admin_id,
            target_id=f"lock:{lock.id}",
            metadata={"status": restored.value, "previous_status": LockStatus.MAINTENANCE.value}
        )
        await db.commit()
        logger.info("Lock %s back in service as %s", lock.lock_number, restored.value)

        if restored == LockStatus.AVAILABLE:
            await self.processor.process_lock_availability(db, lock.id)

    async def deactivate_lock(self, db: AsyncSession, lock_id: int, admin_id: int) -> Lock:
        """
        Soft delete. Refused while any live booking holds the lock.

        A pending reservation is dropped and the queue is closed, with a
        queue_cancelled notice to everyone who was waiting.
        """
        lock = await self.get_lock(db, lock_id)
        lock_number = lock.lock_number
        previous = lock.status

        result = await db.execute(
            select(func.count(Booking.id)).where(
                Booking.lock_id == lock_id,
                Booking.status.in_(BLOCKING_BOOKING_STATUSES)
            )
        )
        if result.scalar() > 0:
            raise ConflictError(f"Lock {lock_number} has live bookings and cannot be deactivated")

        # A booking landing after the count above flips the lock to BOOKED first
        retired = await db.execute(
            update(Lock)
            .where(
                Lock.id == lock_id,
                Lock.is_active == True,
                Lock.status.not_in(CLAIMED_LOCK_STATUSES)
            )
            .values(
                is_active=False,
                status=LockStatus.MAINTENANCE if previous == LockStatus.MAINTENANCE else LockStatus.AVAILABLE,
                reserved_to_id=None,
                reservation_expires_at=None
            )
            .execution_options(synchronize_session=False)
        )
        if retired.rowcount == 0:
            await db.rollback()
            raise ConflictError(f"Lock {lock_number} was just booked and cannot be deactivated")

        queued = await db.execute(select(QueueEntry.user_id).where(QueueEntry.lock_id == lock_id))
        waiting_user_ids = queued.scalars().all()
        await db.execute(delete(QueueEntry).where(QueueEntry.lock_id == lock_id))

        await log_event(
            db=db,
            action=AuditAction.LOCK_DEACTIVATED,
            actor_id=admin_id,
            target_id=f"lock:{lock_id}",
            metadata={"previous_status": previous.value}
        )
        if waiting_user_ids:
            await log_event(
                db=db,
                action=AuditAction.QUEUE_CLEARED,
                actor_id=admin_id,
                target_id=f"lock:{lock_id}",
                metadata={"user_ids": list(waiting_user_ids)}
            )
        await db.commit()
        logger.info("Lock %s deactivated by admin %s", lock_number, admin_id)

        for user_id in waiting_user_ids:
            await self.processor.notifier.send(user_id, NotificationEvent.QUEUE_CANCELLED, {
                "lock_id": lock_id,
                "lock_number": lock_number,
            })

        return await self.get_lock(db, lock_id, include_inactive=True)


class InterestService:

    @staticmethod
    async def toggle(db: AsyncSession, lock_id: int, user_id: int) -> bool:
        """Bookmark or un-bookmark a lock. Returns True when now bookmarked."""
        lock = await db.get(Lock, lock_id)
        if not lock or not lock.is_active:
            raise ResourceNotFoundError("Lock", lock_id)

        removed = await db.execute(
            delete(InterestEntry).where(
                InterestEntry.lock_id == lock_id,
                InterestEntry.user_id == user_id
            )
        )
        if removed.rowcount > 0:
            await db.commit()
            return False

        db.add(InterestEntry(lock_id=lock_id, user_id=user_id))
        try:
            await db.commit()
        except IntegrityError:
            # Double click: the other request already added it
            await db.rollback()
        return True

    @staticmethod
    async def list_for_user(db: AsyncSession, user_id: int) -> List[Lock]:
        result = await db.execute(
            select(Lock)
            .join(InterestEntry, InterestEntry.lock_id == Lock.id)
            .where(InterestEntry.user_id == user_id)
            .order_by(InterestEntry.created_at.desc())
        )
        return result.scalars().all()
