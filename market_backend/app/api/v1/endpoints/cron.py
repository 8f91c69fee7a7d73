"""
Cron API Endpoints.

Triggered by an external scheduler every minute or so. Each call runs one
sweep and reports how many items it found, processed and failed on.
"""

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.db.session import get_db
from market_backend.app.core.config import settings
from market_backend.app.core.dependencies import get_sweeper
from market_backend.app.core.exceptions import AuthenticationError
from market_backend.app.domain.booking.sweepers import ExpirySweeper
from market_backend.app.schemas.sweep import SweepResponse


def verify_cron_secret(x_cron_secret: Optional[str] = Header(None)) -> None:
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, settings.cron_secret):
        raise AuthenticationError("Invalid cron secret")


router = APIRouter(prefix="/cron", tags=["Cron"], dependencies=[Depends(verify_cron_secret)])


@router.post("/cancel-expired-bookings", response_model=SweepResponse)
async def cancel_expired_bookings(
    db: AsyncSession = Depends(get_db),
    sweeper: ExpirySweeper = Depends(get_sweeper)
):
    """Cancel bookings whose payment deadline has passed."""
    result = await sweeper.cancel_expired_bookings(db)
    return result.to_dict()


@router.post("/process-queue-expiry", response_model=SweepResponse)
async def process_queue_expiry(
    db: AsyncSession = Depends(get_db),
    sweeper: ExpirySweeper = Depends(get_sweeper)
):
    """Pass on locks whose queue reservation lapsed."""
    result = await sweeper.process_reservation_expiry(db)
    return result.to_dict()


@router.post("/expire-completed-rentals", response_model=SweepResponse)
async def expire_completed_rentals(
    db: AsyncSession = Depends(get_db),
    sweeper: ExpirySweeper = Depends(get_sweeper)
):
    result = await sweeper.expire_completed_rentals(db)
    return result.to_dict()


@router.post("/send-renewal-reminders", response_model=SweepResponse)
async def send_renewal_reminders(
    db: AsyncSession = Depends(get_db),
    sweeper: ExpirySweeper = Depends(get_sweeper)
):
    result = await sweeper.send_renewal_reminders(db)
    return result.to_dict()
