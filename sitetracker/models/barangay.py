"""Barangay model: smallest administrative division, within a municipality."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from sitetracker.database import Base


class Barangay(Base):
    """Barangay reference entity.

    Attributes:
        id: Primary key.
        municipality_id: FK to the owning Municipality.
        name: Barangay name.
        barangay_code: Official code.
    """

    __tablename__ = "barangays"

    id = Column(Integer, primary_key=True, autoincrement=True)
    municipality_id = Column(
        Integer, ForeignKey("municipalities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(100), nullable=False)
    barangay_code = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    municipality = relationship("Municipality", back_populates="barangays", lazy="select")
