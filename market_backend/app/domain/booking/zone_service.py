"""
Zone Service (Domain Logic).

Market zones and their lock counts.
"""

import logging
from collections import defaultdict
from typing import Dict, List

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.core.exceptions import ConflictError, ResourceNotFoundError
from market_backend.app.models.booking_enums import LockStatus
from market_backend.app.models.lock import Lock
from market_backend.app.models.zone import Zone
from market_backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger(__name__)


class ZoneService:

    @staticmethod
    async def list_zones(db: AsyncSession) -> List[Zone]:
        result = await db.execute(
            select(Zone).where(Zone.is_active == True).order_by(Zone.name.asc())
        )
        return result.scalars().all()

    @staticmethod
    async def get_active_zone(db: AsyncSession, zone_id: int) -> Zone:
        zone = await db.get(Zone, zone_id)
        if not zone or not zone.is_active:
            raise ResourceNotFoundError("Zone", zone_id)
        return zone

    @staticmethod
    async def create_zone(db: AsyncSession, admin_id: int, data: dict) -> Zone:
        zone = Zone(is_active=True, **data)
        db.add(zone)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictError(f"Zone {data.get('name')} already exists")

        await log_event(
            db=db,
            action=AuditAction.ZONE_CREATED,
            actor_id=admin_id,
            target_id=f"zone:{zone.id}",
            metadata={"name": zone.name}
        )
        await db.commit()
        logger.info("Zone %s created by admin %s", zone.name, admin_id)
        return zone

    @staticmethod
    async def lock_counts(db: AsyncSession) -> Dict[int, Dict[LockStatus, int]]:
        """Active locks per zone, broken down by status."""
        result = await db.execute(
            select(Lock.zone_id, Lock.status, func.count(Lock.id))
            .where(Lock.is_active == True, Lock.zone_id.is_not(None))
            .group_by(Lock.zone_id, Lock.status)
        )
        counts = defaultdict(dict)
        for zone_id, status, count in result.all():
            counts[zone_id][status] = count
        return counts

    @classmethod
    async def zone_stats(cls, db: AsyncSession) -> List[dict]:
        """Total and available lock counts for every active zone."""
        zones = await cls.list_zones(db)
        counts = await cls.lock_counts(db)
        stats = []
        for zone in zones:
            by_status = counts.get(zone.id, {})
            stats.append({
                "id": zone.id,
                "name": zone.name,
                "description": zone.description,
                "total_locks": sum(by_status.values()),
                "available_locks": by_status.get(LockStatus.AVAILABLE, 0),
            })
        return stats
