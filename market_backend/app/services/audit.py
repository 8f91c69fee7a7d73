"""
Audit logging service for tracking lock, booking, queue and payment events.

Audit rows are written inside the caller's transaction so that the record
and the state change it describes commit or roll back together.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from market_backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Bookings
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_PAYMENT_EXPIRED = "BOOKING_PAYMENT_EXPIRED"
    BOOKING_EXPIRED = "BOOKING_EXPIRED"

    # Queue
    QUEUE_RESERVED = "QUEUE_RESERVED"
    QUEUE_RELEASED = "QUEUE_RELEASED"
    QUEUE_RESERVATION_EXPIRED = "QUEUE_RESERVATION_EXPIRED"
    QUEUE_CLEARED = "QUEUE_CLEARED"

    # Payments
    PAYMENT_SUBMITTED = "PAYMENT_SUBMITTED"
    PAYMENT_APPROVED = "PAYMENT_APPROVED"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"
    PAYMENT_VOIDED = "PAYMENT_VOIDED"

    # Lock administration
    LOCK_CREATED = "LOCK_CREATED"
    LOCK_UPDATED = "LOCK_UPDATED"
    LOCK_DEACTIVATED = "LOCK_DEACTIVATED"

    # Zones
    ZONE_CREATED = "ZONE_CREATED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    target_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Record an event in the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action (None for system jobs)
        target_id: Entity acted upon, e.g. "lock:3" or "booking:17"
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        target_id=target_id,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    target_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Args:
        db: Database session
        target_id: Filter by target entity
        action: Filter by action type
        limit: Maximum number of records to return

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if target_id:
        query = query.where(AuditLog.target_id == target_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
