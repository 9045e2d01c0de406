"""ProjectType model: programme a project site belongs to (e.g. Free-WIFI for All)."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from sitetracker.database import Base


class ProjectType(Base):
    """Reference entity naming the programme behind a project site.

    The CSV column ``Project Name`` is matched against ``name``
    (case-insensitive). Only active types are offered to the importer.

    Attributes:
        id: Primary key.
        name: Unique programme name.
        code_prefix: Prefix used in site codes, e.g. ``"UNDP"``.
        description: Free-text description.
        color_code: Map marker colour.
        is_active: Soft-delete flag.
    """

    __tablename__ = "project_types"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    code_prefix = Column(String(20), nullable=True)
    description = Column(Text, nullable=True)
    color_code = Column(String(7), default="#007bff", nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    project_sites = relationship("ProjectSite", back_populates="project_type", lazy="select")
