from sqlalchemy import Column, DateTime, Integer, String, text
from sqlalchemy.sql import func

from app.models.base import Base


class RoundRobinCursor(Base):
    """Persisted rotation position per assignment pool.

    Used when Redis is unavailable so that every engine instance keeps
    rotating through the same sequence.
    """

    __tablename__ = "round_robin_cursors"
    pool_key = Column(String(500), primary_key=True)
    position = Column(Integer, nullable=False, server_default=text("0"))
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
