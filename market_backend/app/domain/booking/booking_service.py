"""
Booking Service (Domain Logic).

Claims a lock for a user. The conditional UPDATE on the lock row is the only
place a lock becomes BOOKED; losing that race enrolls the user in the
lock's queue instead of failing.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import select, update, delete, and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.core.clock import utcnow, as_naive_utc, today
from market_backend.app.core.config import settings
from market_backend.app.core.exceptions import (
    ConflictError,
    PermissionDeniedError,
    ResourceNotFoundError,
    TransientStoreError,
    ValidationError,
)
from market_backend.app.models.booking import Booking
from market_backend.app.models.booking_enums import (
    BookingStatus,
    LockStatus,
    PaymentStatus,
    RentalType,
    BLOCKING_BOOKING_STATUSES,
)
from market_backend.app.models.lock import Lock
from market_backend.app.models.notification import NotificationEvent
from market_backend.app.models.payment import Payment
from market_backend.app.models.queue_entry import QueueEntry
from market_backend.app.services.audit import log_event, AuditAction
from market_backend.app.services.notification_service import Notifier
from market_backend.app.domain.booking.pricing import PricingResolver
from market_backend.app.domain.booking.queue_processor import QueueProcessor, load_lock
from market_backend.app.domain.booking.queue_service import QueueService

logger = logging.getLogger(__name__)

# Lock statuses that mean somebody currently holds the lock
CLAIMED_LOCK_STATUSES = (LockStatus.BOOKED, LockStatus.RENTED)

CANCELLABLE_STATUSES = (BookingStatus.PENDING_PAYMENT, BookingStatus.PENDING_VERIFICATION)


@dataclass
class BookingOutcome:
    """
    Result of a booking request.

    Either a booking was created, or the lock was claimed by someone else
    first and the user now waits in its queue. Both are successes.
    """
    booking: Optional[Booking] = None
    queue_position: Optional[int] = None

    @property
    def queued(self) -> bool:
        return self.booking is None

    @classmethod
    def created(cls, booking: Booking) -> "BookingOutcome":
        return cls(booking=booking)

    @classmethod
    def waitlisted(cls, position: int) -> "BookingOutcome":
        return cls(queue_position=position)


def validate_booking_request(lock_id, start_date, rental_type, now: datetime) -> RentalType:
    """Reject malformed input before touching the store."""
    if not isinstance(lock_id, int) or isinstance(lock_id, bool) or lock_id <= 0:
        raise ValidationError("lock_id is required", details={"field": "lock_id"})
    if not isinstance(start_date, date) or isinstance(start_date, datetime):
        raise ValidationError("start_date must be a calendar date", details={"field": "start_date"})
    if start_date < today(now):
        raise ValidationError("start_date cannot be in the past", details={"field": "start_date"})
    try:
        return RentalType(rental_type)
    except ValueError:
        raise ValidationError(
            f"rental_type must be one of: {', '.join(t.value for t in RentalType)}",
            details={"field": "rental_type"}
        )


class BookingService:

    def __init__(self, notifier: Notifier, processor: Optional[QueueProcessor] = None):
        self.notifier = notifier
        self.processor = processor or QueueProcessor(notifier)
        self.payment_window = timedelta(minutes=settings.payment_window_minutes)

    async def create_booking(
        self,
        db: AsyncSession,
        lock_id: int,
        user_id: int,
        start_date: date,
        rental_type: RentalType,
        now: Optional[datetime] = None
    ) -> BookingOutcome:
        """
        Claim a lock for a date range.

        Flow:
        1. Validate input, load lock, check state preconditions
        2. Resolve rental window and amount
        3. Reject overlapping live bookings on an unclaimed lock
        4. In one transaction: insert booking (pending_payment) and
           compare-and-set the lock to BOOKED
        5. Lost the compare-and-set -> roll back, enroll in the queue
        6. Won -> commit, notify the user

        Raises:
            ValidationError, ResourceNotFoundError, ConflictError,
            PermissionDeniedError, TransientStoreError
        """
        now = now or utcnow()
        rental_type = validate_booking_request(lock_id, start_date, rental_type, now)

        lock = await load_lock(db, lock_id)
        if not lock or not lock.is_active:
            raise ResourceNotFoundError("Lock", lock_id)

        lock_number = lock.lock_number

        if lock.status == LockStatus.MAINTENANCE:
            raise ConflictError(f"Lock {lock_number} is under maintenance")

        if lock.status in CLAIMED_LOCK_STATUSES and start_date == today(now):
            raise ConflictError(f"Lock {lock_number} is not available today")

        if lock.status == LockStatus.RESERVED:
            if lock.reserved_to_id != user_id:
                raise PermissionDeniedError(f"Lock {lock_number} is reserved for another user in the queue")
            expires_at = as_naive_utc(lock.reservation_expires_at)
            if expires_at is None or expires_at <= now:
                raise PermissionDeniedError(f"Your reservation for lock {lock_number} has expired")

        terms = PricingResolver.resolve(lock, start_date, rental_type)

        # A claimed lock is contended, not double-booked: let the compare-and-set decide
        if lock.status not in CLAIMED_LOCK_STATUSES:
            overlapping = await self.find_overlapping_booking(db, lock_id, terms.start_date, terms.end_date)
            if overlapping is not None:
                raise ConflictError(
                    f"Lock {lock_number} is already booked for the requested dates",
                    details={"booking_id": overlapping.id}
                )

        payment_deadline = now + self.payment_window

        try:
            booking = Booking(
                user_id=user_id,
                lock_id=lock_id,
                start_date=terms.start_date,
                end_date=terms.end_date,
                rental_type=rental_type,
                total_amount=terms.total_amount,
                status=BookingStatus.PENDING_PAYMENT,
                payment_deadline=payment_deadline,
            )
            db.add(booking)
            await db.flush()

            claimed = await db.execute(
                update(Lock)
                .where(
                    Lock.id == lock_id,
                    or_(
                        Lock.status == LockStatus.AVAILABLE,
                        and_(
                            Lock.status == LockStatus.RESERVED,
                            Lock.reserved_to_id == user_id,
                            Lock.reservation_expires_at > now
                        )
                    )
                )
                .values(
                    status=LockStatus.BOOKED,
                    reserved_to_id=None,
                    reservation_expires_at=None
                )
                .execution_options(synchronize_session=False)
            )

            if claimed.rowcount == 0:
                await db.rollback()
                return await self._enroll_after_lost_race(db, lock_id, user_id, lock_number)

            # The user's own turn is used up
            await db.execute(
                delete(QueueEntry).where(
                    QueueEntry.lock_id == lock_id,
                    QueueEntry.user_id == user_id
                )
            )
            await log_event(
                db=db,
                action=AuditAction.BOOKING_CREATED,
                actor_id=user_id,
                target_id=f"booking:{booking.id}",
                metadata={
                    "lock_id": lock_id,
                    "start_date": terms.start_date.isoformat(),
                    "end_date": terms.end_date.isoformat(),
                    "rental_type": rental_type.value,
                    "total_amount": terms.total_amount
                }
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("Booking transaction for lock %s failed", lock_number)
            raise TransientStoreError() from exc

        logger.info("Booking %s created: lock %s for user %s", booking.id, lock_number, user_id)

        await self.notifier.send(user_id, NotificationEvent.BOOKING_CREATED, {
            "booking_id": booking.id,
            "lock_number": lock_number,
            "total_amount": terms.total_amount,
            "payment_deadline": payment_deadline,
        })

        return BookingOutcome.created(booking)

    async def _enroll_after_lost_race(
        self,
        db: AsyncSession,
        lock_id: int,
        user_id: int,
        lock_number: str
    ) -> BookingOutcome:
        """Someone claimed the lock first: queue the user unless they already hold it."""
        own = await self.find_live_booking_for_user(db, lock_id, user_id)
        if own is not None:
            raise ConflictError(
                f"You already have a booking for lock {lock_number}",
                details={"booking_id": own.id}
            )

        position = await QueueService.enroll(db, lock_id, user_id)
        logger.info("Lock %s was claimed first; user %s queued at position %s", lock_number, user_id, position)
        return BookingOutcome.waitlisted(position)

    @staticmethod
    async def find_overlapping_booking(
        db: AsyncSession,
        lock_id: int,
        start_date: date,
        end_date: date
    ) -> Optional[Booking]:
        """First live booking on the lock whose window intersects [start_date, end_date]."""
        result = await db.execute(
            select(Booking).where(
                Booking.lock_id == lock_id,
                Booking.status.in_(BLOCKING_BOOKING_STATUSES),
                Booking.start_date <= end_date,
                Booking.end_date >= start_date
            ).limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def find_live_booking_for_user(db: AsyncSession, lock_id: int, user_id: int) -> Optional[Booking]:
        result = await db.execute(
            select(Booking).where(
                Booking.lock_id == lock_id,
                Booking.user_id == user_id,
                Booking.status.in_(BLOCKING_BOOKING_STATUSES)
            ).limit(1)
        )
        return result.scalar_one_or_none()

    async def cancel_booking(
        self,
        db: AsyncSession,
        booking_id: int,
        user_id: int,
        reason: str = "Cancelled by user",
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Cancel a booking that is still awaiting payment or verification,
        then hand the vacated lock to the queue processor.
        """
        now = now or utcnow()

        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id, Booking.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if not booking:
            raise ResourceNotFoundError("Booking", booking_id)

        if booking.status not in CANCELLABLE_STATUSES:
            raise ConflictError(f"Cannot cancel a booking in status {booking.status.value}")

        previous_status = booking.status
        lock_id = booking.lock_id

        try:
            cancelled = await db.execute(
                update(Booking)
                .where(Booking.id == booking_id, Booking.status.in_(CANCELLABLE_STATUSES))
                .values(
                    status=BookingStatus.CANCELLED,
                    cancelled_at=now,
                    cancellation_reason=reason
                )
                .execution_options(synchronize_session=False)
            )
            if cancelled.rowcount == 0:
                await db.rollback()
                raise ConflictError("Booking status changed, please refresh")

            # A slip still waiting for review can no longer be approved
            voided = await db.execute(
                update(Payment)
                .where(Payment.booking_id == booking_id, Payment.status == PaymentStatus.PENDING)
                .values(
                    status=PaymentStatus.REJECTED,
                    verified_at=now,
                    rejection_reason=f"Booking cancelled: {reason}"
                )
                .execution_options(synchronize_session=False)
            )
            await log_event(
                db=db,
                action=AuditAction.BOOKING_CANCELLED,
                actor_id=user_id,
                target_id=f"booking:{booking_id}",
                metadata={"lock_id": lock_id, "previous_status": previous_status.value, "reason": reason}
            )
            if voided.rowcount > 0:
                await log_event(
                    db=db,
                    action=AuditAction.PAYMENT_VOIDED,
                    actor_id=user_id,
                    target_id=f"booking:{booking_id}",
                    metadata={"reason": reason}
                )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            raise TransientStoreError() from exc

        logger.info("Booking %s cancelled by user %s", booking_id, user_id)

        try:
            await self.processor.process_lock_availability(db, lock_id, now=now)
        except SQLAlchemyError:
            logger.exception("Queue processing after cancelling booking %s failed", booking_id)

        await db.refresh(booking)
        return booking
