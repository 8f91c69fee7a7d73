"""
Notification schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional
from market_backend.app.models.notification import NotificationEvent


class NotificationResponse(BaseModel):
    id: int
    type: NotificationEvent
    title: str
    message: str
    link: Optional[str]
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime]

    class Config:
        from_attributes = True
