"""Province model: top level of the location hierarchy."""

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from sitetracker.database import Base


class Province(Base):
    """Province reference entity.

    Attributes:
        id: Primary key.
        name: Province name, matched case-insensitively by the importer.
        region_code: Administrative region code.
    """

    __tablename__ = "provinces"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, index=True)
    region_code = Column(String(10), nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    districts = relationship("District", back_populates="province", lazy="select")
    municipalities = relationship("Municipality", back_populates="province", lazy="select")
