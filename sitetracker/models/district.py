"""District model: legislative district within a province."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from sitetracker.database import Base


class District(Base):
    """District reference entity, scoped to a province.

    Attributes:
        id: Primary key.
        province_id: FK to the owning Province.
        name: District name, e.g. ``"District I"``.
        district_code: Official code.
    """

    __tablename__ = "districts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    province_id = Column(Integer, ForeignKey("provinces.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    district_code = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    province = relationship("Province", back_populates="districts", lazy="select")
