"""Municipality model: city or municipality within a province."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from sitetracker.database import Base


class Municipality(Base):
    """Municipality reference entity.

    Municipality names repeat across provinces, so the importer prefers the
    match scoped to the row's province before falling back to the name alone.

    Attributes:
        id: Primary key.
        province_id: FK to the owning Province.
        district_id: Optional FK to a District.
        name: Municipality name.
        municipality_code: Official code.
    """

    __tablename__ = "municipalities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    province_id = Column(Integer, ForeignKey("provinces.id", ondelete="CASCADE"), nullable=False, index=True)
    district_id = Column(Integer, ForeignKey("districts.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(100), nullable=False, index=True)
    municipality_code = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    province = relationship("Province", back_populates="municipalities", lazy="select")
    barangays = relationship("Barangay", back_populates="municipality", lazy="select")
