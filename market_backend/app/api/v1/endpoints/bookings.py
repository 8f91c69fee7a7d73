"""
Booking API Endpoints.

Tenants claim locks here. A claim that loses the race for the lock is not an
error: the tenant is queued and gets 202 with their position.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, desc

from market_backend.app.db.session import get_db
from market_backend.app.core.dependencies import get_current_user, get_booking_service
from market_backend.app.core.exceptions import ResourceNotFoundError
from market_backend.app.domain.booking.booking_service import BookingService
from market_backend.app.models.booking import Booking
from market_backend.app.models.booking_enums import BookingStatus
from market_backend.app.schemas.booking import (
    BookingCreate,
    BookingCancel,
    BookingResponse,
    BookingQueuedResponse,
    BookingListResponse,
)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={202: {"model": BookingQueuedResponse, "description": "Lock was taken; caller queued"}},
)
async def create_booking(
    booking_data: BookingCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: BookingService = Depends(get_booking_service)
):
    """
    Book a lock.

    - 201: booking created (pending_payment, pay before payment_deadline)
    - 202: someone else got the lock first, caller is now in its queue
    """
    outcome = await service.create_booking(
        db,
        lock_id=booking_data.lock_id,
        user_id=current_user["user_id"],
        start_date=booking_data.start_date,
        rental_type=booking_data.rental_type,
    )

    if outcome.queued:
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=BookingQueuedResponse(position=outcome.queue_position).model_dump()
        )

    return BookingResponse.model_validate(outcome.booking)


@router.get("", response_model=BookingListResponse)
async def list_my_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List the caller's bookings, newest first."""
    query = select(Booking).where(Booking.user_id == current_user["user_id"])
    count_query = select(func.count(Booking.id)).where(Booking.user_id == current_user["user_id"])
    if status_filter:
        query = query.where(Booking.status == status_filter)
        count_query = count_query.where(Booking.status == status_filter)

    total = (await db.execute(count_query)).scalar()
    result = await db.execute(query.order_by(desc(Booking.created_at), desc(Booking.id)))

    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in result.scalars().all()],
        total=total
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(Booking).where(Booking.id == booking_id, Booking.user_id == current_user["user_id"])
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise ResourceNotFoundError("Booking", booking_id)
    return BookingResponse.model_validate(booking)


@router.delete("/{booking_id}", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    cancel_data: Optional[BookingCancel] = None,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    service: BookingService = Depends(get_booking_service)
):
    """Cancel a booking that has not been approved yet."""
    reason = (cancel_data.reason if cancel_data and cancel_data.reason else "Cancelled by user")
    booking = await service.cancel_booking(db, booking_id, current_user["user_id"], reason=reason)
    return BookingResponse.model_validate(booking)
