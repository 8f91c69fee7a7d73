"""
Zone API Endpoints.

Public zone listing with lock counts, staff zone creation.
"""

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.db.session import get_db
from market_backend.app.core.guards import require_admin
from market_backend.app.domain.booking.zone_service import ZoneService
from market_backend.app.schemas.zone import ZoneCreate, ZoneResponse, ZoneStatsResponse

router = APIRouter(prefix="/zones", tags=["Zones"])
admin_router = APIRouter(prefix="/admin/zones", tags=["Admin - Zones"])


@router.get("", response_model=List[ZoneResponse])
async def list_zones(db: AsyncSession = Depends(get_db)):
    zones = await ZoneService.list_zones(db)
    return [ZoneResponse.model_validate(zone) for zone in zones]


@router.get("/stats", response_model=List[ZoneStatsResponse])
async def zone_stats(db: AsyncSession = Depends(get_db)):
    """Active zones with their total and currently available lock counts."""
    return await ZoneService.zone_stats(db)


@admin_router.post("", response_model=ZoneResponse, status_code=status.HTTP_201_CREATED)
async def create_zone(
    data: ZoneCreate,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    zone = await ZoneService.create_zone(db, admin["user_id"], data.model_dump())
    return ZoneResponse.model_validate(zone)
