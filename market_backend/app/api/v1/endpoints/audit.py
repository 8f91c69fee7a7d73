"""
Audit Trail Endpoint (staff only).
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.db.session import get_db
from market_backend.app.core.guards import require_admin
from market_backend.app.schemas.audit import AuditLogResponse
from market_backend.app.services.audit import get_audit_trail

router = APIRouter(prefix="/admin/audit", tags=["Admin - Audit"])


@router.get("", response_model=List[AuditLogResponse])
async def list_audit_events(
    target_id: Optional[str] = Query(None, description='e.g. "lock:3" or "booking:17"'),
    action: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Most recent audit events, optionally narrowed to one entity or action."""
    events = await get_audit_trail(db, target_id=target_id, action=action, limit=limit)
    return [AuditLogResponse.model_validate(e) for e in events]
