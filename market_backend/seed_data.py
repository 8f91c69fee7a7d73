"""
Database seeding script for local development.

Creates one ADMIN user, one tenant and a small row of market locks, then
prints a bearer token for each user so the API can be exercised directly.
Run this after the database is reachable.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from market_backend.app.core.jwt import create_access_token
from market_backend.app.db.session import AsyncSessionLocal, engine, Base
from market_backend.app.models.enums import UserRole
from market_backend.app.models.lock import Lock
from market_backend.app.models.user import User
from market_backend.app.models.zone import Zone

# Import remaining models so create_all sees every table
from market_backend.app.models.booking import Booking
from market_backend.app.models.queue_entry import QueueEntry
from market_backend.app.models.interest_entry import InterestEntry
from market_backend.app.models.payment import Payment
from market_backend.app.models.audit_log import AuditLog
from market_backend.app.models.notification import Notification

SAMPLE_ZONES = {
    "A": "Fresh produce row",
    "B": "Dry goods row",
}

SAMPLE_LOCKS = [
    # (lock_number, zone, daily, weekly, monthly)
    ("A-01", "A", 100.0, 600.0, 2200.0),
    ("A-02", "A", 100.0, None, None),
    ("B-01", "B", 150.0, 900.0, None),
    ("B-02", "B", 150.0, 900.0, 3300.0),
]


async def seed_data():
    try:
        await _seed()
    finally:
        await engine.dispose()


async def _seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("Starting seed...")

        existing = await db.execute(select(User).where(User.email == "admin@market.local"))
        if existing.scalar_one_or_none():
            print("Seed data already present, skipping")
            return

        admin = User(email="admin@market.local", name="Market Admin", role=UserRole.ADMIN)
        tenant = User(email="tenant@market.local", name="Sample Tenant", role=UserRole.USER)
        db.add_all([admin, tenant])

        zones = {name: Zone(name=name, description=description) for name, description in SAMPLE_ZONES.items()}
        db.add_all(zones.values())
        await db.flush()

        for number, zone, daily, weekly, monthly in SAMPLE_LOCKS:
            db.add(Lock(
                lock_number=number,
                zone_id=zones[zone].id,
                price_daily=daily,
                price_weekly=weekly,
                price_monthly=monthly,
            ))

        await db.commit()

        print(f"Created {len(SAMPLE_LOCKS)} locks")
        for user in (admin, tenant):
            token = create_access_token({"sub": user.email, "user_id": user.id, "role": user.role.value})
            print(f"  {user.role.value:<6} {user.email}: {token}")


if __name__ == "__main__":
    asyncio.run(seed_data())
