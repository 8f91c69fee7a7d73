"""
Payment database model.

A payment slip submitted against a booking and verified by staff.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from market_backend.app.db.session import Base
from market_backend.app.models.booking_enums import PaymentStatus


class Payment(Base):
    """
    Payment model.

    slip_reference points at the uploaded slip (storage and OCR live
    outside this service).
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    amount = Column(Float, nullable=False)
    slip_reference = Column(String(500), nullable=False)

    status = Column(Enum(PaymentStatus, values_callable=lambda e: [m.value for m in e]),
                    default=PaymentStatus.PENDING, nullable=False, index=True)
    verified_by_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Payment(id={self.id}, booking_id={self.booking_id}, status='{self.status.value}')>"
