"""
Expiry Sweepers (Domain Logic).

Periodic jobs triggered by the cron endpoints. Every state change is a guarded
UPDATE re-checking the condition the row was selected on, so overlapping or
repeated runs apply each change once. A failure on one item is logged and the
sweep moves on.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.core.clock import utcnow, today
from market_backend.app.core.config import settings
from market_backend.app.models.booking import Booking
from market_backend.app.models.booking_enums import BookingStatus, LockStatus
from market_backend.app.models.lock import Lock
from market_backend.app.models.notification import NotificationEvent
from market_backend.app.models.queue_entry import QueueEntry
from market_backend.app.models.user import User
from market_backend.app.services.audit import log_event, AuditAction
from market_backend.app.domain.booking.queue_processor import QueueProcessor

logger = logging.getLogger(__name__)

PAYMENT_EXPIRED_REASON = "Payment deadline passed"


@dataclass
class SweepResult:
    found: int = 0
    processed: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class ExpirySweeper:
    """Runs the time-based transitions of bookings and reservations."""

    def __init__(self, processor: QueueProcessor):
        self.processor = processor
        self.notifier = processor.notifier

    async def cancel_expired_bookings(self, db: AsyncSession, now: Optional[datetime] = None) -> SweepResult:
        """
        Cancel unpaid bookings past their payment deadline and hand each
        vacated lock to the queue processor.
        """
        now = now or utcnow()
        result = await db.execute(
            select(Booking.id, Booking.user_id, Booking.lock_id, Lock.lock_number)
            .join(Lock, Lock.id == Booking.lock_id)
            .where(
                Booking.status == BookingStatus.PENDING_PAYMENT,
                Booking.payment_deadline < now
            )
            .order_by(Booking.payment_deadline.asc())
        )
        rows = result.all()
        sweep = SweepResult(found=len(rows))

        for booking_id, user_id, lock_id, lock_number in rows:
            try:
                cancelled = await db.execute(
                    update(Booking)
                    .where(Booking.id == booking_id, Booking.status == BookingStatus.PENDING_PAYMENT)
                    .values(
                        status=BookingStatus.CANCELLED,
                        cancelled_at=now,
                        cancellation_reason=PAYMENT_EXPIRED_REASON
                    )
                    .execution_options(synchronize_session=False)
                )
                if cancelled.rowcount == 0:
                    # Paid or cancelled since the select
                    await db.rollback()
                    continue

                await log_event(
                    db=db,
                    action=AuditAction.BOOKING_PAYMENT_EXPIRED,
                    target_id=f"booking:{booking_id}",
                    metadata={"lock_id": lock_id, "cancelled_at": now.isoformat()}
                )
                await db.commit()

                await self.notifier.send(user_id, NotificationEvent.BOOKING_CANCELLED, {
                    "booking_id": booking_id,
                    "lock_number": lock_number,
                    "reason": PAYMENT_EXPIRED_REASON,
                })
                await self.processor.process_lock_availability(db, lock_id, now=now)
                sweep.processed += 1
            except Exception:
                await db.rollback()
                sweep.failed += 1
                logger.exception("Failed to cancel expired booking %s", booking_id)

        logger.info("Payment deadline sweep: %s", sweep.to_dict())
        return sweep

    async def process_reservation_expiry(self, db: AsyncSession, now: Optional[datetime] = None) -> SweepResult:
        """
        Reap lapsed queue reservations: drop the user who missed their turn
        from the queue and pass the lock on.
        """
        now = now or utcnow()
        result = await db.execute(
            select(Lock.id, Lock.lock_number, Lock.reserved_to_id).where(
                Lock.status == LockStatus.RESERVED,
                Lock.is_active == True,
                Lock.reservation_expires_at < now
            )
        )
        rows = result.all()
        sweep = SweepResult(found=len(rows))

        for lock_id, lock_number, stale_user_id in rows:
            dropped_count = 0
            try:
                if stale_user_id is not None:
                    dropped = await db.execute(
                        delete(QueueEntry).where(
                            QueueEntry.lock_id == lock_id,
                            QueueEntry.user_id == stale_user_id
                        )
                    )
                    dropped_count = dropped.rowcount
                    # Only the run that removed the entry counts the drop
                    if dropped_count > 0:
                        await db.execute(
                            update(User)
                            .where(User.id == stale_user_id)
                            .values(queue_drop_count=User.queue_drop_count + 1)
                            .execution_options(synchronize_session=False)
                        )
                        await log_event(
                            db=db,
                            action=AuditAction.QUEUE_RESERVATION_EXPIRED,
                            target_id=f"lock:{lock_id}",
                            metadata={"user_id": stale_user_id, "swept_at": now.isoformat()}
                        )
                    await db.commit()
                    logger.info(
                        "Lock %s: user %s missed their reservation, removed from queue",
                        lock_number, stale_user_id
                    )

                new_status = await self.processor.process_lock_availability(db, lock_id, now=now)
                # Nothing dropped and nothing handed on: another run got here first
                if new_status is not None or dropped_count > 0:
                    sweep.processed += 1
            except Exception:
                await db.rollback()
                sweep.failed += 1
                logger.exception("Failed to process expired reservation on lock %s", lock_number)

        logger.info("Reservation expiry sweep: %s", sweep.to_dict())
        return sweep

    async def expire_completed_rentals(self, db: AsyncSession, now: Optional[datetime] = None) -> SweepResult:
        """Close active rentals whose last day has passed and free their locks."""
        now = now or utcnow()
        result = await db.execute(
            select(Booking.id, Booking.lock_id).where(
                Booking.status == BookingStatus.ACTIVE,
                Booking.end_date < today(now)
            )
        )
        rows = result.all()
        sweep = SweepResult(found=len(rows))

        for booking_id, lock_id in rows:
            try:
                expired = await db.execute(
                    update(Booking)
                    .where(Booking.id == booking_id, Booking.status == BookingStatus.ACTIVE)
                    .values(status=BookingStatus.EXPIRED)
                    .execution_options(synchronize_session=False)
                )
                if expired.rowcount == 0:
                    await db.rollback()
                    continue

                await log_event(
                    db=db,
                    action=AuditAction.BOOKING_EXPIRED,
                    target_id=f"booking:{booking_id}",
                    metadata={"lock_id": lock_id}
                )
                await db.commit()

                await self.processor.process_lock_availability(db, lock_id, now=now)
                sweep.processed += 1
            except Exception:
                await db.rollback()
                sweep.failed += 1
                logger.exception("Failed to expire rental %s", booking_id)

        logger.info("Rental expiry sweep: %s", sweep.to_dict())
        return sweep

    async def send_renewal_reminders(self, db: AsyncSession, now: Optional[datetime] = None) -> SweepResult:
        """Remind tenants once that their rental ends within the notice period."""
        now = now or utcnow()
        first_day = today(now)
        last_day = first_day + timedelta(days=settings.renewal_notice_days)

        result = await db.execute(
            select(Booking.id, Booking.user_id, Booking.end_date, Lock.lock_number)
            .join(Lock, Lock.id == Booking.lock_id)
            .where(
                Booking.status == BookingStatus.ACTIVE,
                Booking.end_date >= first_day,
                Booking.end_date <= last_day,
                Booking.renewal_notification_sent == False
            )
        )
        rows = result.all()
        sweep = SweepResult(found=len(rows))

        for booking_id, user_id, end_date, lock_number in rows:
            try:
                flagged = await db.execute(
                    update(Booking)
                    .where(Booking.id == booking_id, Booking.renewal_notification_sent == False)
                    .values(renewal_notification_sent=True)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
                if flagged.rowcount == 0:
                    continue

                await self.notifier.send(user_id, NotificationEvent.BOOKING_EXPIRING, {
                    "booking_id": booking_id,
                    "lock_number": lock_number,
                    "end_date": end_date.isoformat(),
                })
                sweep.processed += 1
            except Exception:
                await db.rollback()
                sweep.failed += 1
                logger.exception("Failed to send renewal reminder for booking %s", booking_id)

        logger.info("Renewal reminder sweep: %s", sweep.to_dict())
        return sweep
