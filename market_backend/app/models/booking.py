"""
Booking database model.

A user's claim on a lock for a date range, progressing through the payment
lifecycle.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, Date, DateTime, ForeignKey, Enum, Index
from sqlalchemy.sql import func
from market_backend.app.db.session import Base
from market_backend.app.models.booking_enums import BookingStatus, RentalType


class Booking(Base):
    """
    Booking model.

    At most one booking in a blocking status (pending_payment,
    pending_verification, active) may overlap a given date on a lock.
    The conditional lock update in the booking creation protocol
    is what enforces it.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # References
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    lock_id = Column(Integer, ForeignKey('locks.id'), nullable=False, index=True)

    # Rental window (inclusive)
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False, index=True)
    rental_type = Column(Enum(RentalType, values_callable=lambda e: [m.value for m in e]), nullable=False)
    total_amount = Column(Float, nullable=False)

    # Lifecycle
    status = Column(Enum(BookingStatus, values_callable=lambda e: [m.value for m in e]),
                    default=BookingStatus.PENDING_PAYMENT, nullable=False, index=True)
    payment_deadline = Column(DateTime(timezone=True), nullable=False, index=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(255), nullable=True)
    renewal_notification_sent = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_bookings_lock_dates', 'lock_id', 'start_date', 'end_date'),
        Index('ix_bookings_user_status', 'user_id', 'status'),
    )

    def __repr__(self):
        return f"<Booking(id={self.id}, lock_id={self.lock_id}, user_id={self.user_id}, status='{self.status.value}')>"
