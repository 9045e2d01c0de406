"""Per-row structural validation for project-site CSV records.

``RowValidator.validate`` is a pure function of the row's cell values: it
performs no I/O and reports every violated rule at once so the uploader can
fix a row in one pass.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from sitetracker.utils.constants import (
    COL_ACTIVATION_DATE,
    COL_BARANGAY,
    COL_DISTRICT,
    COL_LATITUDE,
    COL_LONGITUDE,
    COL_MUNICIPALITY,
    COL_PROJECT_NAME,
    COL_PROVINCE,
    COL_SITE_CODE,
    COL_SITE_NAME,
    COL_STATUS,
    PROJECT_STATUSES,
    SITE_CODE_PATTERN,
)

logger = logging.getLogger(__name__)

_DATE_FORMATS: tuple[str, ...] = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%d-%b-%Y",
    "%b %d, %Y",
    "%B %d, %Y",
)


# ---------------------------------------------------------------------------
# Value parsers (shared with the conflict detector)
# ---------------------------------------------------------------------------


def parse_decimal(raw: str) -> Decimal | None:
    """Parse a coordinate cell; ``None`` when blank, non-numeric or non-finite."""
    if not raw:
        return None
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def parse_date(raw: str) -> date | None:
    """Parse an activation date in any of the accepted spreadsheet formats."""
    if not raw:
        return None
    text = raw.strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidatedRow:
    """Typed values of a row that passed every structural check."""

    row_number: int
    site_code: str
    project_type_name: str
    site_name: str
    province_name: str
    municipality_name: str
    barangay_name: str | None
    district_name: str | None
    latitude: Decimal
    longitude: Decimal
    activation_date: date
    status: str


@dataclass
class RowCheck:
    """Outcome of validating one row: a ``ValidatedRow`` or its error messages."""

    row_number: int
    record: ValidatedRow | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class RowValidator:
    """Stateless validator for the fixed project-site record shape."""

    def validate(self, values: Mapping[str, str], row_number: int) -> RowCheck:
        """Run every rule against *values* and collect all violations.

        Args:
            values: Stripped cell values keyed by CSV column header.
            row_number: 1-based data row number, carried into the result.

        Returns:
            A ``RowCheck`` whose ``record`` is set only when ``errors`` is empty.
        """
        errors: list[str] = []

        def cell(column: str) -> str:
            return (values.get(column) or "").strip()

        site_code = cell(COL_SITE_CODE)
        if not site_code:
            errors.append("Site Code is required")
        elif not SITE_CODE_PATTERN.match(site_code):
            errors.append(
                f'Site Code "{site_code}" does not match expected format '
                "[PREFIX]-[TYPE]-[NUMBER][SUFFIX]"
            )

        for column in (COL_PROJECT_NAME, COL_SITE_NAME, COL_PROVINCE, COL_MUNICIPALITY):
            if not cell(column):
                errors.append(f"{column} is required")

        latitude = self._check_coordinate(cell(COL_LATITUDE), COL_LATITUDE, 90, errors)
        longitude = self._check_coordinate(cell(COL_LONGITUDE), COL_LONGITUDE, 180, errors)

        activation_raw = cell(COL_ACTIVATION_DATE)
        activation_date = parse_date(activation_raw)
        if not activation_raw:
            errors.append(f"{COL_ACTIVATION_DATE} is required")
        elif activation_date is None:
            errors.append(f"{COL_ACTIVATION_DATE} must be a valid date")

        status = cell(COL_STATUS)
        if not status:
            errors.append("Status is required")
        elif status not in PROJECT_STATUSES:
            errors.append(f"Status must be one of: {', '.join(PROJECT_STATUSES)}")

        if errors:
            return RowCheck(row_number=row_number, errors=errors)

        record = ValidatedRow(
            row_number=row_number,
            site_code=site_code,
            project_type_name=cell(COL_PROJECT_NAME),
            site_name=cell(COL_SITE_NAME),
            province_name=cell(COL_PROVINCE),
            municipality_name=cell(COL_MUNICIPALITY),
            barangay_name=cell(COL_BARANGAY) or None,
            district_name=cell(COL_DISTRICT) or None,
            latitude=latitude,
            longitude=longitude,
            activation_date=activation_date,
            status=status,
        )
        return RowCheck(row_number=row_number, record=record)

    @staticmethod
    def _check_coordinate(raw: str, column: str, bound: int, errors: list[str]) -> Decimal | None:
        if not raw:
            errors.append(f"{column} is required")
            return None
        value = parse_decimal(raw)
        if value is None or not -bound <= value <= bound:
            errors.append(f"{column} must be a number between -{bound} and {bound}")
            return None
        return value
