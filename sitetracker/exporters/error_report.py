"""
CSV error report for a finished import.

Usage example::

    payload = generate_error_report(load_errors(job.errors_json))
    filename = error_report_filename(job.original_filename)

Design notes
------------
- Plain header line, then the rows via pandas ``to_csv`` with every field
  quoted; embedded quotes are doubled by the csv writer.
- Cells that a spreadsheet would evaluate as a formula (leading ``=``,
  ``+``, ``-``, ``@``, tab or carriage return) are prefixed with ``'``.
- The report is never truncated, unlike the inline status view.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Iterable
from pathlib import PurePath

import pandas as pd

from sitetracker.services.import_job import RowError

REPORT_COLUMNS: list[str] = ["Row Number", "Site Code", "Error Messages"]

_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.\-]")


def _neutralise(value: str) -> str:
    if value.startswith(_FORMULA_PREFIXES):
        return "'" + value
    return value


def generate_error_report(errors: Iterable[RowError]) -> bytes:
    """Render *errors* as UTF-8 CSV bytes, one line per rejected row."""
    records = [
        [
            _neutralise(str(error.row_number)),
            _neutralise(error.site_code or ""),
            _neutralise("; ".join(error.messages)),
        ]
        for error in errors
    ]
    header = ",".join(REPORT_COLUMNS) + "\n"
    if not records:
        return header.encode("utf-8")
    df = pd.DataFrame(records, columns=REPORT_COLUMNS, dtype=str)
    body = df.to_csv(index=False, header=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
    return (header + body).encode("utf-8")


def error_report_filename(original_filename: str | None) -> str:
    """``<stem>_errors.csv`` with unsafe characters replaced by ``_``."""
    stem = PurePath(original_filename or "import").stem or "import"
    return f"{_UNSAFE_FILENAME_CHARS.sub('_', stem)}_errors.csv"
