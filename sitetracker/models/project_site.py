"""ProjectSite model: a geotagged infrastructure project site."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from sitetracker.database import Base


class ProjectSite(Base):
    """One physical site of a project, identified by its business site code.

    ``site_code`` is the natural key used by the CSV importer to match rows
    against stored records.

    Attributes:
        id: Primary key.
        site_code: Unique business identifier, e.g. ``"UNDP-GI-0009A"``.
        project_type_id: FK to ProjectType.
        site_name: Human-readable site name.
        barangay_id: Optional FK to Barangay.
        municipality_id: FK to Municipality.
        province_id: FK to Province.
        district_id: Optional FK to District.
        latitude: WGS84 latitude, 8 decimal places.
        longitude: WGS84 longitude, 8 decimal places.
        activation_date: Date the site went live.
        status: One of ``PROJECT_STATUSES``.
        remarks: Free-text notes.
        created_by: FK to the User who created the row.
        updated_by: FK to the User who last changed the row.
    """

    __tablename__ = "project_sites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    site_code = Column(String(30), unique=True, nullable=False)
    project_type_id = Column(Integer, ForeignKey("project_types.id", ondelete="RESTRICT"), nullable=False)
    site_name = Column(String(150), nullable=False)
    barangay_id = Column(Integer, ForeignKey("barangays.id", ondelete="SET NULL"), nullable=True)
    municipality_id = Column(Integer, ForeignKey("municipalities.id", ondelete="RESTRICT"), nullable=False)
    province_id = Column(Integer, ForeignKey("provinces.id", ondelete="RESTRICT"), nullable=False)
    district_id = Column(Integer, ForeignKey("districts.id", ondelete="SET NULL"), nullable=True)
    latitude = Column(Numeric(10, 8), nullable=False)
    longitude = Column(Numeric(11, 8), nullable=False)
    activation_date = Column(Date, nullable=True)
    status = Column(String(20), default="Pending", nullable=False)
    remarks = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    project_type = relationship("ProjectType", back_populates="project_sites", lazy="select")
    status_history = relationship(
        "ProjectStatusHistory",
        back_populates="project_site",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="ProjectStatusHistory.id",
    )
