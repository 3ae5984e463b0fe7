from sqlalchemy import ARRAY, Column, DateTime, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.models.base import Base


class Team(Base):
    """Admissions team: a region plus the programs it specialises in.

    Team specialisations are inherited by members that have none of
    their own.
    """

    __tablename__ = "teams"
    team_id = Column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    name = Column(String(200), nullable=False)
    region = Column(String(100))
    specializations = Column(ARRAY(String))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    members = relationship("Advisor", back_populates="team")
