"""
Queue API Endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.db.session import get_db
from market_backend.app.core.dependencies import get_current_user
from market_backend.app.domain.booking.queue_service import QueueService
from market_backend.app.schemas.queue import (
    QueueAction,
    QueueActionResponse,
    QueueInfoResponse,
    UserQueueEntry,
)

router = APIRouter(prefix="/queue", tags=["Queue"])


@router.get("", response_model=QueueInfoResponse)
async def get_queue_info(
    lock_id: int = Query(..., gt=0),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Queue length for a lock and the caller's position in it."""
    return await QueueService.queue_info(db, lock_id, current_user["user_id"])


@router.get("/mine", response_model=List[UserQueueEntry])
async def list_my_queues(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await QueueService.list_user_queues(db, current_user["user_id"])


@router.post("", response_model=QueueActionResponse)
async def queue_action(
    req: QueueAction,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Join or leave a lock's queue. Both are idempotent."""
    user_id = current_user["user_id"]

    if req.action == "join":
        position = await QueueService.join_queue(db, req.lock_id, user_id)
        return QueueActionResponse(lock_id=req.lock_id, action="join", in_queue=True, position=position)

    await QueueService.leave_queue(db, req.lock_id, user_id)
    return QueueActionResponse(lock_id=req.lock_id, action="leave", in_queue=False)
