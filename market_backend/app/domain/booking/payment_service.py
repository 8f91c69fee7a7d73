"""
Payment Service (Domain Logic).

Payment slip submission by tenants and verification by staff. Approval turns
the booking into a rental and closes the lock's queue.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.core.clock import utcnow
from market_backend.app.core.exceptions import (
    ConflictError,
    ResourceNotFoundError,
    TransientStoreError,
    ValidationError,
)
from market_backend.app.models.booking import Booking
from market_backend.app.models.booking_enums import BookingStatus, LockStatus, PaymentStatus
from market_backend.app.models.lock import Lock
from market_backend.app.models.notification import NotificationEvent
from market_backend.app.models.payment import Payment
from market_backend.app.models.queue_entry import QueueEntry
from market_backend.app.services.audit import log_event, AuditAction
from market_backend.app.services.notification_service import Notifier

logger = logging.getLogger(__name__)


class PaymentService:

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    async def submit_payment(
        self,
        db: AsyncSession,
        booking_id: int,
        user_id: int,
        slip_reference: str,
        now: Optional[datetime] = None
    ) -> Payment:
        """
        Attach a payment slip to a booking awaiting payment.

        The payment row and the booking's move to pending_verification
        commit together.
        """
        now = now or utcnow()
        if not slip_reference or not slip_reference.strip():
            raise ValidationError("slip_reference is required", details={"field": "slip_reference"})

        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id, Booking.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if not booking:
            raise ResourceNotFoundError("Booking", booking_id)

        if booking.status != BookingStatus.PENDING_PAYMENT:
            raise ConflictError(
                f"Booking is {booking.status.value}, payment can only be submitted while pending_payment"
            )

        amount = booking.total_amount

        try:
            moved = await db.execute(
                update(Booking)
                .where(Booking.id == booking_id, Booking.status == BookingStatus.PENDING_PAYMENT)
                .values(status=BookingStatus.PENDING_VERIFICATION)
                .execution_options(synchronize_session=False)
            )
            if moved.rowcount == 0:
                # Deadline sweep got there first
                await db.rollback()
                raise ConflictError("Booking is no longer awaiting payment")

            payment = Payment(
                booking_id=booking_id,
                user_id=user_id,
                amount=amount,
                slip_reference=slip_reference.strip(),
                status=PaymentStatus.PENDING,
            )
            db.add(payment)
            await db.flush()

            await log_event(
                db=db,
                action=AuditAction.PAYMENT_SUBMITTED,
                actor_id=user_id,
                target_id=f"booking:{booking_id}",
                metadata={"payment_id": payment.id, "amount": amount}
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            raise TransientStoreError() from exc

        logger.info("Payment %s submitted for booking %s", payment.id, booking_id)

        await self.notifier.send(user_id, NotificationEvent.PAYMENT_UPLOADED, {
            "booking_id": booking_id,
            "amount": amount,
        })
        return payment

    async def verify_payment(
        self,
        db: AsyncSession,
        payment_id: int,
        admin_id: int,
        approve: bool,
        rejection_reason: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Payment:
        """
        Approve or reject a pending payment.

        Approve: booking -> active, lock -> rented, the lock's queue is
        cleared and everyone in it is told. Reject: booking returns to
        pending_payment keeping its original deadline.
        """
        now = now or utcnow()

        payment = await db.get(Payment, payment_id, populate_existing=True)
        if not payment:
            raise ResourceNotFoundError("Payment", payment_id)

        if payment.status != PaymentStatus.PENDING:
            raise ConflictError(f"Payment has already been {payment.status.value}")

        booking = await db.get(Booking, payment.booking_id, populate_existing=True)
        if not booking:
            raise ResourceNotFoundError("Booking", payment.booking_id)

        if booking.status != BookingStatus.PENDING_VERIFICATION:
            raise ConflictError(f"Booking is {booking.status.value}, expected pending_verification")

        booking_id = booking.id
        owner_id = booking.user_id
        lock_id = booking.lock_id

        if approve:
            return await self._approve(db, payment, booking_id, owner_id, lock_id, admin_id, now)
        return await self._reject(db, payment, booking_id, owner_id, admin_id, rejection_reason, now)

    async def _approve(self, db, payment, booking_id, owner_id, lock_id, admin_id, now) -> Payment:
        try:
            claimed = await db.execute(
                update(Payment)
                .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING)
                .values(status=PaymentStatus.APPROVED, verified_by_id=admin_id, verified_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                await db.rollback()
                raise ConflictError("Payment was verified concurrently")

            await db.execute(
                update(Booking)
                .where(Booking.id == booking_id)
                .values(status=BookingStatus.ACTIVE)
                .execution_options(synchronize_session=False)
            )
            # A lock under maintenance stays there; leaving maintenance restores RENTED
            rented = await db.execute(
                update(Lock)
                .where(Lock.id == lock_id, Lock.status != LockStatus.MAINTENANCE)
                .values(status=LockStatus.RENTED, reserved_to_id=None, reservation_expires_at=None)
                .execution_options(synchronize_session=False)
            )
            if rented.rowcount == 0:
                logger.warning("Lock %s is under maintenance; booking %s approved without renting it", lock_id, booking_id)

            queued = await db.execute(
                select(QueueEntry.user_id).where(
                    QueueEntry.lock_id == lock_id,
                    QueueEntry.user_id != owner_id
                )
            )
            purged_user_ids = queued.scalars().all()
            await db.execute(delete(QueueEntry).where(QueueEntry.lock_id == lock_id))

            await log_event(
                db=db,
                action=AuditAction.PAYMENT_APPROVED,
                actor_id=admin_id,
                target_id=f"booking:{booking_id}",
                metadata={"payment_id": payment.id, "lock_id": lock_id}
            )
            if purged_user_ids:
                await log_event(
                    db=db,
                    action=AuditAction.QUEUE_CLEARED,
                    actor_id=admin_id,
                    target_id=f"lock:{lock_id}",
                    metadata={"user_ids": list(purged_user_ids)}
                )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            raise TransientStoreError() from exc

        await db.refresh(payment)
        booking = await db.get(Booking, booking_id, populate_existing=True)
        lock = await db.get(Lock, lock_id, populate_existing=True)
        lock_number = lock.lock_number if lock else str(lock_id)

        logger.info(
            "Payment %s approved: booking %s active, lock %s rented, %d queued users released",
            payment.id, booking_id, lock_number, len(purged_user_ids)
        )

        await self.notifier.send(owner_id, NotificationEvent.BOOKING_APPROVED, {
            "booking_id": booking_id,
            "lock_number": lock_number,
            "start_date": booking.start_date.isoformat(),
            "end_date": booking.end_date.isoformat(),
        })
        for user_id in purged_user_ids:
            await self.notifier.send(user_id, NotificationEvent.QUEUE_CANCELLED, {
                "lock_id": lock_id,
                "lock_number": lock_number,
            })
        return payment

    async def _reject(self, db, payment, booking_id, owner_id, admin_id, rejection_reason, now) -> Payment:
        reason = (rejection_reason or "").strip() or None
        try:
            claimed = await db.execute(
                update(Payment)
                .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING)
                .values(
                    status=PaymentStatus.REJECTED,
                    verified_by_id=admin_id,
                    verified_at=now,
                    rejection_reason=reason
                )
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                await db.rollback()
                raise ConflictError("Payment was verified concurrently")

            # Deadline is left as it was; the sweep cancels if it has passed
            await db.execute(
                update(Booking)
                .where(Booking.id == booking_id)
                .values(status=BookingStatus.PENDING_PAYMENT)
                .execution_options(synchronize_session=False)
            )
            await log_event(
                db=db,
                action=AuditAction.PAYMENT_REJECTED,
                actor_id=admin_id,
                target_id=f"booking:{booking_id}",
                metadata={"payment_id": payment.id, "reason": reason}
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            raise TransientStoreError() from exc

        await db.refresh(payment)
        logger.info("Payment %s rejected for booking %s", payment.id, booking_id)

        await self.notifier.send(owner_id, NotificationEvent.BOOKING_REJECTED, {
            "booking_id": booking_id,
            "rejection_reason": reason,
        })
        return payment

    @staticmethod
    async def list_payments(db: AsyncSession, status: Optional[PaymentStatus] = None, limit: int = 100):
        """Payments for the staff review list, oldest first."""
        query = select(Payment).order_by(Payment.created_at.asc(), Payment.id.asc())
        if status is not None:
            query = query.where(Payment.status == status)
        result = await db.execute(query.limit(limit))
        return result.scalars().all()
