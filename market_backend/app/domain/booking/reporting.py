"""
Staff Reporting (Domain Logic).

Read-only views for the admin dashboard: every booking with its payment
slip, a recent-activity feed built from the audit log, and chart series for
revenue and zone occupancy.
"""

from datetime import datetime, time, timedelta
from typing import Dict, List, Optional

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.core.clock import utcnow, as_naive_utc, today
from market_backend.app.models.audit_log import AuditLog
from market_backend.app.models.booking import Booking
from market_backend.app.models.booking_enums import BookingStatus, LockStatus, PaymentStatus
from market_backend.app.models.lock import Lock
from market_backend.app.models.payment import Payment
from market_backend.app.models.user import User
from market_backend.app.models.zone import Zone
from market_backend.app.services.audit import AuditAction
from market_backend.app.domain.booking.zone_service import ZoneService

OCCUPIED_LOCK_STATUSES = (LockStatus.BOOKED, LockStatus.RENTED, LockStatus.RESERVED)

ACTIVITY_TITLES = {
    AuditAction.BOOKING_CREATED: "New booking",
    AuditAction.BOOKING_CANCELLED: "Booking cancelled",
    AuditAction.BOOKING_PAYMENT_EXPIRED: "Booking cancelled, payment overdue",
    AuditAction.BOOKING_EXPIRED: "Rental ended",
    AuditAction.PAYMENT_SUBMITTED: "Payment slip uploaded",
    AuditAction.PAYMENT_APPROVED: "Payment approved",
    AuditAction.PAYMENT_REJECTED: "Payment rejected",
    AuditAction.QUEUE_RESERVED: "Lock reserved for queued user",
    AuditAction.QUEUE_RESERVATION_EXPIRED: "Queued user missed their turn",
}


class ReportingService:

    @staticmethod
    async def list_bookings(
        db: AsyncSession,
        status: Optional[BookingStatus] = None,
        limit: int = 100
    ) -> List[Dict]:
        """All bookings, newest first, with tenant, lock, zone and latest payment slip."""
        query = (
            select(Booking, User.name, User.email, Lock.lock_number, Zone.name)
            .join(User, User.id == Booking.user_id)
            .join(Lock, Lock.id == Booking.lock_id)
            .outerjoin(Zone, Zone.id == Lock.zone_id)
            .order_by(desc(Booking.created_at), desc(Booking.id))
            .limit(limit)
        )
        if status is not None:
            query = query.where(Booking.status == status)
        rows = (await db.execute(query)).all()

        booking_ids = [row[0].id for row in rows]
        latest_payment = {}
        if booking_ids:
            payments = await db.execute(
                select(Payment)
                .where(Payment.booking_id.in_(booking_ids))
                .order_by(Payment.id.asc())
            )
            # Resubmitted slips: the newest one wins
            for payment in payments.scalars().all():
                latest_payment[payment.booking_id] = payment

        return [
            {
                "booking": booking,
                "user_name": user_name,
                "user_email": user_email,
                "lock_number": lock_number,
                "zone_name": zone_name,
                "payment": latest_payment.get(booking.id),
            }
            for booking, user_name, user_email, lock_number, zone_name in rows
        ]

    @staticmethod
    async def recent_activities(db: AsyncSession, limit: int = 8) -> List[Dict]:
        result = await db.execute(
            select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)
        )
        activities = []
        for event in result.scalars().all():
            kind = (event.target_id or "").split(":", 1)[0] or event.action.split("_", 1)[0].lower()
            activities.append({
                "id": event.id,
                "type": kind,
                "action": event.action,
                "title": ACTIVITY_TITLES.get(event.action, event.action.replace("_", " ").capitalize()),
                "actor_id": event.actor_id,
                "target_id": event.target_id,
                "timestamp": event.timestamp,
            })
        return activities

    @staticmethod
    async def charts(db: AsyncSession, days: int = 7, now: Optional[datetime] = None) -> Dict:
        """
        Approved revenue per day for the last `days` days (today included)
        and occupancy of every active zone.
        """
        now = now or utcnow()
        first_day = today(now) - timedelta(days=days - 1)

        result = await db.execute(
            select(Payment.amount, Payment.verified_at).where(
                Payment.status == PaymentStatus.APPROVED,
                Payment.verified_at >= datetime.combine(first_day, time.min)
            )
        )
        revenue = {first_day + timedelta(days=i): 0.0 for i in range(days)}
        for amount, verified_at in result.all():
            day = as_naive_utc(verified_at).date()
            if day in revenue:
                revenue[day] += amount

        zones = await ZoneService.list_zones(db)
        counts = await ZoneService.lock_counts(db)
        occupancy = []
        for zone in zones:
            by_status = counts.get(zone.id, {})
            total = sum(by_status.values())
            occupied = sum(by_status.get(s, 0) for s in OCCUPIED_LOCK_STATUSES)
            occupancy.append({
                "name": zone.name,
                "occupied": occupied,
                "total": total,
                "percentage": round(occupied * 100 / total) if total else 0,
            })

        return {
            "revenue": [{"date": day, "amount": amount} for day, amount in sorted(revenue.items())],
            "zones": occupancy,
        }
