"""
Audit trail response schema.
"""

from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    id: int
    actor_id: Optional[int] = None
    action: str
    target_id: Optional[str] = None
    meta_data: Optional[Dict[str, Any]] = None
    timestamp: datetime

    class Config:
        from_attributes = True
