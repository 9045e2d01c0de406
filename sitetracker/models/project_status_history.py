"""ProjectStatusHistory model: one row per status change of a project site."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from sitetracker.database import Base


class ProjectStatusHistory(Base):
    """Status transition of a ProjectSite.

    Attributes:
        id: Primary key.
        project_site_id: FK to the ProjectSite.
        old_status: Status before the change (``None`` for a new site).
        new_status: Status after the change.
        reason: Why the status changed, e.g. ``"CSV import #12"``.
        changed_by: FK to the User responsible.
        changed_at: Timestamp of the change.
    """

    __tablename__ = "project_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_site_id = Column(
        Integer, ForeignKey("project_sites.id", ondelete="CASCADE"), nullable=False, index=True
    )
    old_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    changed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    changed_at = Column(DateTime, default=func.now(), nullable=False)

    project_site = relationship("ProjectSite", back_populates="status_history", lazy="select")
