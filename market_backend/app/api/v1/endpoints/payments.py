"""
Payment API Endpoints.

Tenants submit slip references; staff approve or reject them.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.db.session import get_db
from market_backend.app.core.dependencies import get_current_user, get_payment_service
from market_backend.app.core.guards import require_admin
from market_backend.app.domain.booking.payment_service import PaymentService
from market_backend.app.models.booking_enums import PaymentStatus
from market_backend.app.schemas.payment import PaymentSubmit, PaymentVerify, PaymentResponse

router = APIRouter(prefix="/payments", tags=["Payments"])
admin_router = APIRouter(prefix="/admin/payments", tags=["Admin - Payments"])


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def submit_payment(
    req: PaymentSubmit,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service)
):
    """Submit a payment slip for a booking awaiting payment."""
    payment = await service.submit_payment(db, req.booking_id, current_user["user_id"], req.slip_reference)
    return PaymentResponse.model_validate(payment)


@admin_router.get("", response_model=List[PaymentResponse])
async def list_payments(
    status_filter: Optional[PaymentStatus] = Query(PaymentStatus.PENDING, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Payments waiting for review (or any status)."""
    payments = await PaymentService.list_payments(db, status_filter, limit)
    return [PaymentResponse.model_validate(p) for p in payments]


@admin_router.put("/{payment_id}", response_model=PaymentResponse)
async def verify_payment(
    payment_id: int,
    req: PaymentVerify,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service)
):
    """
    Approve or reject a payment slip.

    Approval rents the lock to the payer and closes its queue.
    """
    payment = await service.verify_payment(
        db,
        payment_id,
        admin_id=admin["user_id"],
        approve=req.status == "approved",
        rejection_reason=req.rejection_reason,
    )
    return PaymentResponse.model_validate(payment)
