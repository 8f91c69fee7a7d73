"""
Booking Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List
from market_backend.app.models.booking_enums import BookingStatus, RentalType


class BookingCreate(BaseModel):
    """Request to claim a lock."""
    lock_id: int = Field(..., gt=0, description="Lock to book")
    start_date: date = Field(..., description="First day of the rental")
    rental_type: RentalType = Field(..., description="daily, weekly or monthly")


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class BookingResponse(BaseModel):
    id: int
    user_id: int
    lock_id: int
    start_date: date
    end_date: date
    rental_type: RentalType
    total_amount: float
    status: BookingStatus
    payment_deadline: datetime
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class BookingQueuedResponse(BaseModel):
    """Returned (202) when another user claimed the lock first."""
    queued: bool = True
    position: int
    message: str = "The lock was just booked by someone else. You have been added to its queue."


class BookingListResponse(BaseModel):
    bookings: List[BookingResponse]
    total: int
