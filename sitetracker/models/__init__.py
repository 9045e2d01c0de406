"""SQLAlchemy models package for the Project Site Tracker.

Importing all models here ensures that SQLAlchemy's mapper registry is
populated before ``Base.metadata.create_all()`` or Alembic migrations run.
The import order follows the foreign-key dependency graph so that parent
tables are always registered before their children.

Usage from other modules:
    from sitetracker.models import ProjectSite, CsvImport
"""

# Users (referenced by audit columns everywhere)
from sitetracker.models.user import User  # noqa: F401

# Location hierarchy and programme reference data
from sitetracker.models.province import Province  # noqa: F401
from sitetracker.models.district import District  # noqa: F401
from sitetracker.models.municipality import Municipality  # noqa: F401
from sitetracker.models.barangay import Barangay  # noqa: F401
from sitetracker.models.project_type import ProjectType  # noqa: F401

# Project sites
from sitetracker.models.project_site import ProjectSite  # noqa: F401
from sitetracker.models.project_status_history import ProjectStatusHistory  # noqa: F401

# Import jobs and their completion notifications
from sitetracker.models.csv_import import CsvImport  # noqa: F401
from sitetracker.models.notification import Notification  # noqa: F401

__all__ = [
    "User",
    "Province",
    "District",
    "Municipality",
    "Barangay",
    "ProjectType",
    "ProjectSite",
    "ProjectStatusHistory",
    "CsvImport",
    "Notification",
]
