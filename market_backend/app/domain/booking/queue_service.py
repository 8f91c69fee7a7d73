"""
Queue Service (Domain Logic).

FIFO waiting list per lock. Joining is idempotent; position is derived from
creation order, never stored.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, delete, func, or_, and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from market_backend.app.core.exceptions import ResourceNotFoundError, TransientStoreError
from market_backend.app.models.lock import Lock
from market_backend.app.models.queue_entry import QueueEntry

logger = logging.getLogger(__name__)


class QueueService:

    @staticmethod
    async def get_entry(db: AsyncSession, lock_id: int, user_id: int) -> Optional[QueueEntry]:
        result = await db.execute(
            select(QueueEntry).where(
                QueueEntry.lock_id == lock_id,
                QueueEntry.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def oldest_entry(db: AsyncSession, lock_id: int) -> Optional[QueueEntry]:
        """Head of the queue for a lock (FIFO by created_at, id breaks ties)."""
        result = await db.execute(
            select(QueueEntry)
            .where(QueueEntry.lock_id == lock_id)
            .order_by(QueueEntry.created_at.asc(), QueueEntry.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def position_of(db: AsyncSession, entry: QueueEntry) -> int:
        """Number of entries ahead of this one for the same lock, plus one."""
        result = await db.execute(
            select(func.count(QueueEntry.id)).where(
                QueueEntry.lock_id == entry.lock_id,
                or_(
                    QueueEntry.created_at < entry.created_at,
                    and_(QueueEntry.created_at == entry.created_at, QueueEntry.id < entry.id)
                )
            )
        )
        return result.scalar() + 1

    @staticmethod
    async def get_position(db: AsyncSession, lock_id: int, user_id: int) -> Optional[int]:
        entry = await QueueService.get_entry(db, lock_id, user_id)
        if entry is None:
            return None
        return await QueueService.position_of(db, entry)

    @staticmethod
    async def count(db: AsyncSession, lock_id: int) -> int:
        result = await db.execute(
            select(func.count(QueueEntry.id)).where(QueueEntry.lock_id == lock_id)
        )
        return result.scalar()

    @staticmethod
    async def enroll(db: AsyncSession, lock_id: int, user_id: int) -> int:
        """
        Insert the (lock, user) row unless present and commit.

        A concurrent insert of the same row surfaces as an IntegrityError on
        the unique constraint; that is the already-enrolled case, not a
        failure. Returns the user's position.
        """
        existing = await QueueService.get_entry(db, lock_id, user_id)
        if existing is None:
            db.add(QueueEntry(lock_id=lock_id, user_id=user_id))
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                logger.info("User %s already queued for lock %s", user_id, lock_id)
            except SQLAlchemyError as exc:
                await db.rollback()
                raise TransientStoreError() from exc

        position = await QueueService.get_position(db, lock_id, user_id)
        if position is None:
            # Entry vanished between insert and read (claimed or purged)
            raise TransientStoreError("Queue changed while joining, please retry")
        return position

    @staticmethod
    async def join_queue(db: AsyncSession, lock_id: int, user_id: int) -> int:
        """Join the queue of an active lock. Joining twice is a success."""
        lock = await db.get(Lock, lock_id)
        if not lock or not lock.is_active:
            raise ResourceNotFoundError("Lock", lock_id)

        position = await QueueService.enroll(db, lock_id, user_id)
        logger.info("User %s in queue for lock %s at position %s", user_id, lock_id, position)
        return position

    @staticmethod
    async def leave_queue(db: AsyncSession, lock_id: int, user_id: int) -> bool:
        """Remove the user's entry. Returns False when there was none."""
        result = await db.execute(
            delete(QueueEntry).where(
                QueueEntry.lock_id == lock_id,
                QueueEntry.user_id == user_id
            )
        )
        await db.commit()
        return result.rowcount > 0

    @staticmethod
    async def queue_info(db: AsyncSession, lock_id: int, user_id: Optional[int] = None) -> dict:
        """Queue length for a lock and, for a signed-in user, their place in it."""
        position = None
        if user_id is not None:
            position = await QueueService.get_position(db, lock_id, user_id)
        return {
            "lock_id": lock_id,
            "count": await QueueService.count(db, lock_id),
            "in_queue": position is not None,
            "user_position": position,
        }

    @staticmethod
    async def list_user_queues(db: AsyncSession, user_id: int) -> List[dict]:
        """Every queue the user is in, most recently joined first, with positions."""
        result = await db.execute(
            select(QueueEntry, Lock)
            .join(Lock, Lock.id == QueueEntry.lock_id)
            .where(QueueEntry.user_id == user_id)
            .order_by(QueueEntry.created_at.desc())
        )
        queues = []
        for entry, lock in result.all():
            queues.append({
                "lock_id": lock.id,
                "lock_number": lock.lock_number,
                "lock_status": lock.status.value,
                "joined_at": entry.created_at,
                "user_position": await QueueService.position_of(db, entry),
            })
        return queues
