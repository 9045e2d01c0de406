"""Read a project-site CSV upload into ``ParsedRow`` records.

File-level problems (empty file, bad encoding, ragged rows, missing
required columns) raise ``CsvFileError`` before any row is looked at;
per-row problems are left to ``RowValidator``.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO

import pandas as pd

from sitetracker.exceptions import CsvFileError
from sitetracker.utils.constants import COL_SITE_CODE, REQUIRED_COLUMNS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass
class ParsedRow:
    """A single CSV record after header mapping.

    Attributes:
        row_number: 1-based position among data rows (header excluded).
        values: Stripped cell values keyed by column header.
    """

    row_number: int
    values: dict[str, str] = field(default_factory=dict)

    @property
    def site_code(self) -> str:
        """Natural key of the row (may be empty; validation reports that)."""
        return self.values.get(COL_SITE_CODE, "")

    def get(self, column: str) -> str:
        return self.values.get(column, "")


@dataclass
class CsvParseResult:
    """Headers and rows of a parsed upload."""

    headers: list[str] = field(default_factory=list)
    rows: list[ParsedRow] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.rows)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _read_source(source: str | Path | bytes | BinaryIO) -> bytes:
    """Normalise any input type to raw bytes."""
    if isinstance(source, bytes):
        return source
    if isinstance(source, (str, Path)):
        try:
            return Path(source).read_bytes()
        except OSError as exc:
            raise CsvFileError(f"Cannot open uploaded file: {exc}") from exc
    data = source.read()
    return data if isinstance(data, bytes) else data.encode()


def _clean_str(value: Any) -> str:
    """Return a stripped string, converting NaN/None to empty string."""
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    return str(value).strip()


def missing_columns(headers: list[str]) -> list[str]:
    """Required columns absent from *headers*, in schema order."""
    present = set(headers)
    return [col for col in REQUIRED_COLUMNS if col not in present]


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def read_project_csv(source: str | Path | bytes | BinaryIO) -> CsvParseResult:
    """Parse a project-site CSV into ordered ``ParsedRow`` records.

    Every cell is read as a string so that site codes with leading zeros and
    free-form dates survive untouched; blank lines are ignored and do not
    consume a row number.

    Args:
        source: Path to the stored upload, its raw bytes, or a binary file object.

    Returns:
        A ``CsvParseResult`` with trimmed headers and one ``ParsedRow`` per data row.

    Raises:
        CsvFileError: If the file is empty, not UTF-8, malformed, or lacks a
            required column.
    """
    raw = _read_source(source)
    if not raw.strip():
        raise CsvFileError("The uploaded file is empty.")

    try:
        df = pd.read_csv(
            io.BytesIO(raw),
            dtype=str,
            keep_default_na=False,
            encoding="utf-8-sig",
            skip_blank_lines=True,
        )
    except UnicodeDecodeError as exc:
        raise CsvFileError("File encoding not supported. Please save the CSV as UTF-8.") from exc
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise CsvFileError(
            f"Failed to parse CSV file. Please ensure it is a valid CSV format. ({exc})"
        ) from exc

    headers = [_clean_str(col) for col in df.columns]
    missing = missing_columns(headers)
    if missing:
        raise CsvFileError(f"Missing required columns: {', '.join(missing)}")

    df.columns = headers
    rows = [
        ParsedRow(
            row_number=index + 1,
            values={col: _clean_str(val) for col, val in record.items()},
        )
        for index, record in enumerate(df.to_dict(orient="records"))
    ]

    logger.debug("read_project_csv: %d columns, %d rows", len(headers), len(rows))
    return CsvParseResult(headers=headers, rows=rows)
