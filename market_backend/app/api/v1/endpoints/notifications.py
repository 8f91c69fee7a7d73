"""
Notification API Endpoints.

In-app notification list and read state, plus a Server-Sent-Events stream
of new notifications for the signed-in user.
"""

import json
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from market_backend.app.db.session import get_db
from market_backend.app.core.dependencies import get_current_user, get_broker
from market_backend.app.models.notification import Notification
from market_backend.app.services.event_broker import EventBroker, user_topic
from market_backend.app.services.notification_service import NotificationService
from market_backend.app.schemas.notification import NotificationResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List current user's notifications."""
    query = select(Notification).where(Notification.user_id == current_user["user_id"])

    if unread_only:
        query = query.where(Notification.is_read == False)

    query = query.order_by(desc(Notification.created_at), desc(Notification.id)).limit(limit)

    result = await db.execute(query)
    return result.scalars().all()


@router.get("/stream")
async def stream_notifications(
    current_user: dict = Depends(get_current_user),
    broker: EventBroker = Depends(get_broker)
):
    """Live notifications as Server-Sent Events."""
    topic = user_topic(current_user["user_id"])

    async def event_stream():
        yield "retry: 10000\n\n"
        async for message in broker.subscribe(topic):
            yield f"data: {json.dumps(message, default=str)}\n\n"

    logger.info("Notification stream opened for user %s", current_user["user_id"])
    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache, no-transform", "Connection": "keep-alive"},
    )


@router.patch("/read-all")
async def mark_all_notifications_read(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark all notifications as read."""
    count = await NotificationService.mark_all_read(db, current_user["user_id"])
    await db.commit()
    return {"status": "success", "count": count}


@router.patch("/{notification_id}/read")
async def mark_notification_read(
    notification_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark a specific notification as read."""
    success = await NotificationService.mark_read(db, notification_id, current_user["user_id"])
    if not success:
        raise HTTPException(status_code=404, detail="Notification not found")

    await db.commit()
    return {"status": "success"}
