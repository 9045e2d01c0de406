"""
Conflict detection between CSV rows and stored project sites.

A row *conflicts* when a project site with the same site code already
exists.  The detector compares every business field and classifies each
conflict as ``exact`` (nothing would change) or ``potential`` (at least one
field differs), listing the differing fields so an operator can decide to
override or skip.

The detector only reads.  Running it twice against the same file and
unchanged storage yields identical output, so clients may re-check freely
after editing their file.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.orm import Session

from sitetracker.models.project_site import ProjectSite
from sitetracker.parsers.csv_parser import ParsedRow
from sitetracker.parsers.row_validator import parse_date, parse_decimal
from sitetracker.services.reference_resolver import ReferenceResolver
from sitetracker.utils.constants import (
    COL_ACTIVATION_DATE,
    COL_BARANGAY,
    COL_DISTRICT,
    COL_LATITUDE,
    COL_LONGITUDE,
    COL_MUNICIPALITY,
    COL_PROJECT_NAME,
    COL_PROVINCE,
    COL_SITE_NAME,
    COL_STATUS,
    CONFLICT_EXACT,
    CONFLICT_POTENTIAL,
    COORDINATE_SCALE,
    RESOLUTION_OVERRIDE,
    RESOLUTION_SKIP,
)

logger = logging.getLogger(__name__)

#: Business fields compared between an incoming row and the stored site, in report order.
COMPARED_FIELDS: tuple[str, ...] = (
    "site_name",
    "project_type_id",
    "province_id",
    "municipality_id",
    "barangay_id",
    "district_id",
    "latitude",
    "longitude",
    "activation_date",
    "status",
)

_TEXT_FIELDS = frozenset({"site_name", "status"})
_COORDINATE_FIELDS = frozenset({"latitude", "longitude"})
_COORDINATE_QUANTUM = Decimal(1).scaleb(-COORDINATE_SCALE)

# Site codes per IN (...) query
_LOOKUP_BATCH_SIZE = 500


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------


@dataclass
class Conflict:
    """A CSV row whose site code already exists in storage."""

    row_number: int
    site_code: str
    conflict_type: str
    differences: list[str]
    existing: dict[str, Any]
    incoming: dict[str, Any]


@dataclass
class ConflictReport:
    """Partition of a file's rows into conflicts and new entries."""

    conflicts: list[Conflict] = field(default_factory=list)
    new_entries: list[ParsedRow] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.conflicts) + len(self.new_entries)

    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)

    @property
    def new_entry_count(self) -> int:
        return len(self.new_entries)


@dataclass
class ResolutionSummary:
    """How an operator's resolution map covers a set of conflicts."""

    override_rows: list[int] = field(default_factory=list)
    skip_rows: list[int] = field(default_factory=list)
    unresolved_rows: list[int] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.unresolved_rows


# ---------------------------------------------------------------------------
# Field comparison helpers
# ---------------------------------------------------------------------------


def _normalise_text(value: Any) -> str:
    return " ".join(str(value or "").split()).lower()


def _normalise_coordinate(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value)).quantize(_COORDINATE_QUANTUM)
    except InvalidOperation:
        # Too many digits to quantize; never a valid coordinate
        return None


def values_equal(field_name: str, existing: Any, incoming: Any) -> bool:
    """Compare one business field the way the detector does."""
    if field_name in _TEXT_FIELDS:
        return _normalise_text(existing) == _normalise_text(incoming)
    if field_name in _COORDINATE_FIELDS:
        return _normalise_coordinate(existing) == _normalise_coordinate(incoming)
    return existing == incoming


def diff_fields(existing: Mapping[str, Any], incoming: Mapping[str, Any]) -> list[str]:
    """Names of the compared fields whose values differ, in ``COMPARED_FIELDS`` order."""
    return [
        name
        for name in COMPARED_FIELDS
        if not values_equal(name, existing.get(name), incoming.get(name))
    ]


def existing_snapshot(site: ProjectSite) -> dict[str, Any]:
    """Business fields of a stored site, plus its id and site code."""
    return {
        "id": site.id,
        "site_code": site.site_code,
        "site_name": site.site_name,
        "project_type_id": site.project_type_id,
        "province_id": site.province_id,
        "municipality_id": site.municipality_id,
        "barangay_id": site.barangay_id,
        "district_id": site.district_id,
        "latitude": _normalise_coordinate(site.latitude),
        "longitude": _normalise_coordinate(site.longitude),
        "activation_date": site.activation_date,
        "status": site.status,
    }


def incoming_snapshot(row: ParsedRow, resolver: ReferenceResolver) -> dict[str, Any]:
    """Business fields of a CSV row, resolved leniently.

    Unresolvable names and unparseable values become ``None`` so the row can
    still be compared (and will show those fields as differing).
    """
    province_id = resolver.province_id(row.get(COL_PROVINCE))
    municipality_id = resolver.municipality_id(row.get(COL_MUNICIPALITY), province_id)
    return {
        "site_code": row.site_code,
        "site_name": row.get(COL_SITE_NAME),
        "project_type_id": resolver.project_type_id(row.get(COL_PROJECT_NAME)),
        "province_id": province_id,
        "municipality_id": municipality_id,
        "barangay_id": resolver.barangay_id(row.get(COL_BARANGAY), municipality_id),
        "district_id": resolver.district_id(row.get(COL_DISTRICT), province_id),
        "latitude": _normalise_coordinate(parse_decimal(row.get(COL_LATITUDE))),
        "longitude": _normalise_coordinate(parse_decimal(row.get(COL_LONGITUDE))),
        "activation_date": parse_date(row.get(COL_ACTIVATION_DATE)),
        "status": row.get(COL_STATUS),
    }


def jsonable_snapshot(snapshot: Mapping[str, Any]) -> dict[str, Any]:
    """Convert Decimal/date values of a snapshot to JSON-friendly types."""
    result: dict[str, Any] = {}
    for key, value in snapshot.items():
        if isinstance(value, Decimal):
            result[key] = float(value)
        elif isinstance(value, date):
            result[key] = value.isoformat()
        else:
            result[key] = value
    return result


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------


class ConflictDetector:
    """Partition CSV rows into new entries and conflicts with stored sites."""

    def __init__(self, resolver: ReferenceResolver) -> None:
        self._resolver = resolver

    @staticmethod
    def find_existing(db: Session, site_codes: Iterable[str]) -> dict[str, ProjectSite]:
        """Load stored sites for the given codes, keyed by site code."""
        codes = sorted({code for code in site_codes if code})
        found: dict[str, ProjectSite] = {}
        for start in range(0, len(codes), _LOOKUP_BATCH_SIZE):
            batch = codes[start : start + _LOOKUP_BATCH_SIZE]
            for site in db.query(ProjectSite).filter(ProjectSite.site_code.in_(batch)).all():
                found[site.site_code] = site
        return found

    def detect(self, db: Session, rows: list[ParsedRow]) -> ConflictReport:
        """Classify every row, in file order.

        Args:
            db: Session used for read-only lookups.
            rows: Parsed CSV rows.

        Returns:
            A ``ConflictReport``; rows without a stored match (including rows
            with a blank site code) are new entries.
        """
        self._resolver.refresh_if_stale(db)
        existing_by_code = self.find_existing(db, (row.site_code for row in rows))

        report = ConflictReport()
        for row in rows:
            site = existing_by_code.get(row.site_code)
            if site is None:
                report.new_entries.append(row)
                continue

            existing = existing_snapshot(site)
            incoming = incoming_snapshot(row, self._resolver)
            differences = diff_fields(existing, incoming)
            report.conflicts.append(
                Conflict(
                    row_number=row.row_number,
                    site_code=row.site_code,
                    conflict_type=CONFLICT_POTENTIAL if differences else CONFLICT_EXACT,
                    differences=differences,
                    existing=existing,
                    incoming=incoming,
                )
            )

        logger.info(
            "detect: %d rows, %d conflicts, %d new entries",
            report.total_rows,
            report.conflict_count,
            report.new_entry_count,
        )
        return report


def check_resolutions(
    conflicts: Iterable[Conflict],
    resolutions: Mapping[int, str],
) -> ResolutionSummary:
    """Match an operator's decisions against the detected conflicts.

    Decisions for rows that are not in conflict are ignored.
    """
    summary = ResolutionSummary()
    for conflict in conflicts:
        decision = resolutions.get(conflict.row_number)
        if decision == RESOLUTION_OVERRIDE:
            summary.override_rows.append(conflict.row_number)
        elif decision == RESOLUTION_SKIP:
            summary.skip_rows.append(conflict.row_number)
        else:
            summary.unresolved_rows.append(conflict.row_number)
    return summary
