"""
Cron sweep response schema.
"""

from pydantic import BaseModel


class SweepResponse(BaseModel):
    found: int
    processed: int
    failed: int
