"""
Application-wide constants for the Project Site Tracker.

Defines domain enumerations, the fixed CSV import schema, and the
business rule thresholds used across routers, services, and models.
"""

import re
from typing import Final

# ---------------------------------------------------------------------------
# User roles
# ---------------------------------------------------------------------------

ROLES: Final[list[str]] = [
    "Admin",
    "Manager",
    "Editor",
    "Viewer",
]

#: Roles allowed to upload, inspect and delete CSV imports.
IMPORT_ROLES: Final[tuple[str, ...]] = ("Editor", "Manager", "Admin")

# ---------------------------------------------------------------------------
# Project site status
# ---------------------------------------------------------------------------

PROJECT_STATUSES: Final[list[str]] = [
    "Pending",
    "In Progress",
    "Done",
    "Cancelled",
    "On Hold",
]

# ---------------------------------------------------------------------------
# CSV import schema
# ---------------------------------------------------------------------------

COL_SITE_CODE: Final[str] = "Site Code"
COL_PROJECT_NAME: Final[str] = "Project Name"
COL_SITE_NAME: Final[str] = "Site Name"
COL_BARANGAY: Final[str] = "Barangay"
COL_MUNICIPALITY: Final[str] = "Municipality"
COL_PROVINCE: Final[str] = "Province"
COL_DISTRICT: Final[str] = "District"
COL_LATITUDE: Final[str] = "Latitude"
COL_LONGITUDE: Final[str] = "Longitude"
COL_ACTIVATION_DATE: Final[str] = "Date of Activation"
COL_STATUS: Final[str] = "Status"

REQUIRED_COLUMNS: Final[list[str]] = [
    COL_SITE_CODE,
    COL_PROJECT_NAME,
    COL_SITE_NAME,
    COL_MUNICIPALITY,
    COL_PROVINCE,
    COL_LATITUDE,
    COL_LONGITUDE,
    COL_ACTIVATION_DATE,
    COL_STATUS,
]

OPTIONAL_COLUMNS: Final[list[str]] = [COL_BARANGAY, COL_DISTRICT]

#: Column order used by the downloadable template.
TEMPLATE_COLUMNS: Final[list[str]] = [
    COL_SITE_CODE,
    COL_PROJECT_NAME,
    COL_SITE_NAME,
    COL_BARANGAY,
    COL_MUNICIPALITY,
    COL_PROVINCE,
    COL_DISTRICT,
    COL_LATITUDE,
    COL_LONGITUDE,
    COL_ACTIVATION_DATE,
    COL_STATUS,
]

TEMPLATE_EXAMPLE_ROW: Final[list[str]] = [
    "UNDP-TEST-001",
    "Free-WIFI for All",
    "Test Barangay Hall - AP 1",
    "Raele",
    "Itbayat",
    "Batanes",
    "District I",
    "20.728794",
    "121.804235",
    "2024-04-29",
    "Pending",
]

#: Site code format ``[PREFIX]-[TYPE]-[NUMBER][SUFFIX]``, e.g. ``UNDP-GI-0009A``.
SITE_CODE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Z]+-[A-Z]+-\d+[A-Z]?$")

# ---------------------------------------------------------------------------
# Import job status
# ---------------------------------------------------------------------------

IMPORT_PENDING: Final[str] = "Pending"
IMPORT_PROCESSING: Final[str] = "Processing"
IMPORT_COMPLETED: Final[str] = "Completed"
IMPORT_PARTIAL: Final[str] = "Partial"
IMPORT_FAILED: Final[str] = "Failed"

IMPORT_TERMINAL_STATUSES: Final[frozenset[str]] = frozenset(
    {IMPORT_COMPLETED, IMPORT_PARTIAL, IMPORT_FAILED}
)

# Row actions reported in the import results
ACTION_CREATED: Final[str] = "created"
ACTION_UPDATED: Final[str] = "updated"
ACTION_SKIPPED: Final[str] = "skipped"

# Operator conflict decisions
RESOLUTION_OVERRIDE: Final[str] = "override"
RESOLUTION_SKIP: Final[str] = "skip"

# Conflict classifications
CONFLICT_EXACT: Final[str] = "exact"
CONFLICT_POTENTIAL: Final[str] = "potential"

# Decimal places stored for coordinates (NUMERIC(10,8) / NUMERIC(11,8))
COORDINATE_SCALE: Final[int] = 8
