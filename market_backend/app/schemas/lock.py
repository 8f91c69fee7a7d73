"""
Lock Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from market_backend.app.models.booking_enums import LockStatus


class LockCreate(BaseModel):
    """Schema for registering a new lock."""
    lock_number: str = Field(..., min_length=1, max_length=50, description="Unique stall number, e.g. A-12")
    zone_id: Optional[int] = Field(None, gt=0)
    description: Optional[str] = Field(None, max_length=500)
    price_daily: float = Field(..., gt=0)
    price_weekly: Optional[float] = Field(None, gt=0)
    price_monthly: Optional[float] = Field(None, gt=0)


class LockUpdate(BaseModel):
    """
    Schema for updating a lock.

    status only accepts maintenance (take out of service) or available
    (put back into service); every other status is driven by bookings.
    """
    zone_id: Optional[int] = Field(None, gt=0)
    description: Optional[str] = Field(None, max_length=500)
    price_daily: Optional[float] = Field(None, gt=0)
    price_weekly: Optional[float] = Field(None, gt=0)
    price_monthly: Optional[float] = Field(None, gt=0)
    status: Optional[LockStatus] = None


class LockResponse(BaseModel):
    id: int
    lock_number: str
    zone_id: Optional[int] = None
    description: Optional[str]
    price_daily: float
    price_weekly: Optional[float]
    price_monthly: Optional[float]
    status: LockStatus
    reserved_to_id: Optional[int] = None
    reservation_expires_at: Optional[datetime] = None
    is_active: bool

    class Config:
        from_attributes = True


class WishlistToggle(BaseModel):
    lock_id: int = Field(..., gt=0)


class WishlistResponse(BaseModel):
    lock_id: int
    bookmarked: bool
