"""
Audit Log Database Model.

Tracks lock, booking, queue and payment state changes.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from market_backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - BOOKING_CREATED / BOOKING_CANCELLED / BOOKING_EXPIRED
    - QUEUE_RESERVED / QUEUE_RESERVATION_EXPIRED / QUEUE_CLEARED
    - PAYMENT_SUBMITTED / PAYMENT_APPROVED / PAYMENT_REJECTED
    - LOCK_CREATED / LOCK_UPDATED / LOCK_DEACTIVATED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions such as sweeps)
    actor_id = Column(Integer, index=True, nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # What it was performed on ("lock:12", "booking:40")
    target_id = Column(String(100), index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_id}, target={self.target_id})>"
