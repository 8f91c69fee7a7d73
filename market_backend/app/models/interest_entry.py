"""
Interest list (bookmark) database model.
"""

from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from market_backend.app.db.session import Base


class InterestEntry(Base):
    """
    A user watching a lock. Everyone on the list is told when the lock
    becomes available with nobody queued for it.
    """
    __tablename__ = "interest_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    lock_id = Column(Integer, ForeignKey('locks.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    notified = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('lock_id', 'user_id', name='uq_interest_entries_lock_user'),
    )

    def __repr__(self):
        return f"<InterestEntry(lock_id={self.lock_id}, user_id={self.user_id}, notified={self.notified})>"
