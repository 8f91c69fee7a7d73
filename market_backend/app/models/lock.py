"""
Lock database model.

A lock is a rentable market stall. Its status column is the single shared
resource contended over by concurrent booking requests.
"""

from sqlalchemy import Column, Integer, String, Text, Float, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from market_backend.app.db.session import Base
from market_backend.app.models.booking_enums import LockStatus


class Lock(Base):
    """
    Lock model.

    reserved_to_id and reservation_expires_at are both set only while the
    lock is RESERVED for the head of its queue, and both cleared otherwise.
    Locks are soft-deactivated (is_active) and never deleted while bookings
    reference them.
    """
    __tablename__ = "locks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    lock_number = Column(String(50), unique=True, index=True, nullable=False)
    zone_id = Column(Integer, ForeignKey('zones.id'), nullable=True, index=True)
    description = Column(Text, nullable=True)

    # Pricing (weekly/monthly fall back to 7x/30x daily when unset)
    price_daily = Column(Float, nullable=False)
    price_weekly = Column(Float, nullable=True)
    price_monthly = Column(Float, nullable=True)

    # State
    status = Column(Enum(LockStatus, values_callable=lambda e: [m.value for m in e]),
                    default=LockStatus.AVAILABLE, nullable=False, index=True)
    reserved_to_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)
    reservation_expires_at = Column(DateTime(timezone=True), nullable=True, index=True)

    # Status (soft delete)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Lock(id={self.id}, number='{self.lock_number}', status='{self.status.value}')>"
