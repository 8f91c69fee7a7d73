"""
Queue entry database model.

FIFO waiting list of users for a currently unavailable lock.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint, Index
from market_backend.app.db.session import Base


class QueueEntry(Base):
    """
    Queue entry model.

    One row per (lock, user). Position is the number of earlier rows for the
    same lock plus one, ordered by created_at.
    """
    __tablename__ = "queue_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    lock_id = Column(Integer, ForeignKey('locks.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Set in Python so FIFO order has sub-second resolution on every backend
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('lock_id', 'user_id', name='uq_queue_entries_lock_user'),
        Index('ix_queue_entries_lock_created', 'lock_id', 'created_at'),
    )

    def __repr__(self):
        return f"<QueueEntry(lock_id={self.lock_id}, user_id={self.user_id})>"
