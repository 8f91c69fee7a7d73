"""
Lock API Endpoints.

Public browsing, staff lock management and tenant bookmarks (wishlist).
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.db.session import get_db
from market_backend.app.core.dependencies import get_current_user, get_lock_service
from market_backend.app.core.guards import require_admin
from market_backend.app.domain.booking.lock_service import LockService, InterestService
from market_backend.app.models.booking_enums import LockStatus
from market_backend.app.schemas.lock import (
    LockCreate,
    LockUpdate,
    LockResponse,
    WishlistToggle,
    WishlistResponse,
)

router = APIRouter(prefix="/locks", tags=["Locks"])
admin_router = APIRouter(prefix="/admin/locks", tags=["Admin - Locks"])
wishlist_router = APIRouter(prefix="/wishlist", tags=["Wishlist"])


@router.get("", response_model=List[LockResponse])
async def list_locks(
    zone_id: Optional[int] = Query(None),
    status_filter: Optional[LockStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db)
):
    """Browse active locks."""
    locks = await LockService.list_locks(db, zone_id=zone_id, status=status_filter)
    return [LockResponse.model_validate(lock) for lock in locks]


@router.get("/{lock_id}", response_model=LockResponse)
async def get_lock(lock_id: int, db: AsyncSession = Depends(get_db)):
    lock = await LockService.get_lock(db, lock_id)
    return LockResponse.model_validate(lock)


# --- Admin ---

@admin_router.get("", response_model=List[LockResponse])
async def admin_list_locks(
    include_inactive: bool = Query(True),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    locks = await LockService.list_locks(db, include_inactive=include_inactive)
    return [LockResponse.model_validate(lock) for lock in locks]


@admin_router.post("", response_model=LockResponse, status_code=status.HTTP_201_CREATED)
async def create_lock(
    lock_data: LockCreate,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    service: LockService = Depends(get_lock_service)
):
    lock = await service.create_lock(db, admin["user_id"], lock_data.model_dump())
    return LockResponse.model_validate(lock)


@admin_router.patch("/{lock_id}", response_model=LockResponse)
async def update_lock(
    lock_id: int,
    lock_data: LockUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    service: LockService = Depends(get_lock_service)
):
    """
    Update pricing or description, or toggle maintenance.

    Setting status back to available hands the lock to the head of its
    queue when someone is waiting.
    """
    lock = await service.update_lock(db, lock_id, admin["user_id"], lock_data.model_dump(exclude_unset=True))
    return LockResponse.model_validate(lock)


@admin_router.delete("/{lock_id}", response_model=LockResponse)
async def deactivate_lock(
    lock_id: int,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    service: LockService = Depends(get_lock_service)
):
    """Soft delete (refused while the lock has live bookings)."""
    lock = await service.deactivate_lock(db, lock_id, admin["user_id"])
    return LockResponse.model_validate(lock)


# --- Wishlist ---

@wishlist_router.post("", response_model=WishlistResponse)
async def toggle_bookmark(
    req: WishlistToggle,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Bookmark a lock, or remove the bookmark if it exists."""
    bookmarked = await InterestService.toggle(db, req.lock_id, current_user["user_id"])
    return WishlistResponse(lock_id=req.lock_id, bookmarked=bookmarked)


@wishlist_router.get("", response_model=List[LockResponse])
async def list_bookmarks(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    locks = await InterestService.list_for_user(db, current_user["user_id"])
    return [LockResponse.model_validate(lock) for lock in locks]
