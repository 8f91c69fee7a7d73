"""
Queue Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal, Optional


class QueueAction(BaseModel):
    lock_id: int = Field(..., gt=0)
    action: Literal["join", "leave"]


class QueueInfoResponse(BaseModel):
    lock_id: int
    count: int
    in_queue: bool
    user_position: Optional[int] = None


class QueueActionResponse(BaseModel):
    lock_id: int
    action: str
    in_queue: bool
    position: Optional[int] = None


class UserQueueEntry(BaseModel):
    lock_id: int
    lock_number: str
    lock_status: str
    joined_at: datetime
    user_position: int
