"""
Admin dashboard Pydantic schemas.
"""

from pydantic import BaseModel
from datetime import date, datetime
from typing import List, Optional

from market_backend.app.schemas.booking import BookingResponse
from market_backend.app.schemas.payment import PaymentResponse


class AdminBookingResponse(BaseModel):
    """A booking with who holds it, where it is and its latest payment slip."""
    booking: BookingResponse
    user_name: str
    user_email: str
    lock_number: str
    zone_name: Optional[str] = None
    payment: Optional[PaymentResponse] = None

    class Config:
        from_attributes = True


class ActivityResponse(BaseModel):
    id: int
    type: str
    action: str
    title: str
    actor_id: Optional[int] = None
    target_id: Optional[str] = None
    timestamp: datetime


class RevenuePoint(BaseModel):
    date: date
    amount: float


class ZoneOccupancy(BaseModel):
    name: str
    occupied: int
    total: int
    percentage: int


class ChartsResponse(BaseModel):
    revenue: List[RevenuePoint]
    zones: List[ZoneOccupancy]
