"""
Zone Pydantic schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional


class ZoneCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class ZoneResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


class ZoneStatsResponse(ZoneResponse):
    """Active lock counts for the market map."""
    total_locks: int
    available_locks: int
