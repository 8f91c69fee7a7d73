"""
Payment Pydantic schemas.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Literal, Optional
from market_backend.app.models.booking_enums import PaymentStatus


class PaymentSubmit(BaseModel):
    booking_id: int = Field(..., gt=0)
    slip_reference: str = Field(..., min_length=1, max_length=500, description="Where the uploaded slip is stored")


class PaymentVerify(BaseModel):
    status: Literal["approved", "rejected"]
    rejection_reason: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def reason_required_on_reject(self):
        if self.status == "rejected" and not (self.rejection_reason or "").strip():
            raise ValueError("rejection_reason is required when rejecting a payment")
        return self


class PaymentResponse(BaseModel):
    id: int
    booking_id: int
    user_id: int
    amount: float
    slip_reference: str
    status: PaymentStatus
    verified_by_id: Optional[int] = None
    verified_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
