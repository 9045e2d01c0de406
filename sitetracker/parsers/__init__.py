"""Project-site CSV parsing and row validation.

Public API
----------
read_project_csv : Parse an upload into ``ParsedRow`` records (file-level checks).
missing_columns  : Required columns absent from a header list.
ParsedRow        : One data row keyed by column header.
CsvParseResult   : Headers plus ordered rows of a parsed upload.
RowValidator     : Stateless per-row structural/semantic validation.
RowCheck         : Outcome of ``RowValidator.validate``.
ValidatedRow     : Typed values of a row that passed validation.

Usage example::

    from sitetracker.parsers import RowValidator, read_project_csv

    parsed = read_project_csv("/path/to/sites.csv")
    validator = RowValidator()
    for row in parsed.rows:
        check = validator.validate(row.values, row.row_number)
        if not check.ok:
            print(row.row_number, check.errors)
"""

from .csv_parser import CsvParseResult, ParsedRow, missing_columns, read_project_csv
from .row_validator import RowCheck, RowValidator, ValidatedRow, parse_date, parse_decimal

__all__: list[str] = [
    "CsvParseResult",
    "ParsedRow",
    "RowCheck",
    "RowValidator",
    "ValidatedRow",
    "missing_columns",
    "parse_date",
    "parse_decimal",
    "read_project_csv",
]
