"""
Admin Dashboard Endpoints.

All bookings with their payment slips, the recent activity feed and
chart series (staff only).
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.db.session import get_db
from market_backend.app.core.guards import require_admin
from market_backend.app.domain.booking.reporting import ReportingService
from market_backend.app.models.booking_enums import BookingStatus
from market_backend.app.schemas.dashboard import (
    AdminBookingResponse,
    ActivityResponse,
    ChartsResponse,
)

router = APIRouter(prefix="/admin", tags=["Admin - Dashboard"])


@router.get("/bookings", response_model=List[AdminBookingResponse])
async def list_all_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    rows = await ReportingService.list_bookings(db, status=status_filter, limit=limit)
    return [AdminBookingResponse.model_validate(row) for row in rows]


@router.get("/activities", response_model=List[ActivityResponse])
async def recent_activities(
    limit: int = Query(8, ge=1, le=50),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await ReportingService.recent_activities(db, limit=limit)


@router.get("/charts", response_model=ChartsResponse)
async def charts(
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Revenue for the last seven days and occupancy per zone."""
    return await ReportingService.charts(db)
