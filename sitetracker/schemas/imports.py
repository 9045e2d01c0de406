"""
Pydantic v2 schemas for the CSV import module.

Covers:
- Submission response for ``POST /api/import/csv``.
- Conflict resolutions sent with a submission.
- Conflict detection and dry-run validation results.
- Job status snapshot and paginated history.

All bodies serialise with camelCase keys (see ``CamelModel``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import ConfigDict, Field

from sitetracker.schemas.common import CamelModel, PaginationMeta


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class ImportSubmitResponse(CamelModel):
    """Returned with 202 once the job is recorded and queued."""

    import_id: int = Field(..., description="Durable id of the import job.")
    filename: str = Field(..., description="Original filename.")
    total_rows: int = Field(..., ge=0)
    status: str = Field(..., description="Always 'Pending' at submission.")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "importId": 42,
                "filename": "sites_batanes.csv",
                "totalRows": 250,
                "status": "Pending",
            }
        },
    )


class ConflictResolutionItem(CamelModel):
    """Operator decision for one conflicting row."""

    row_index: int = Field(..., ge=1, description="1-based data row number.")
    action: Literal["override", "skip"]


# ---------------------------------------------------------------------------
# Row errors / dry-run validation
# ---------------------------------------------------------------------------


class RowErrorItem(CamelModel):
    row_number: int
    site_code: str
    errors: list[str]
    conflict: bool = False


class ValidationResponse(CamelModel):
    """Result of validating a file without touching the database."""

    valid: bool
    total_rows: int
    errors: list[RowErrorItem] = Field(default_factory=list)
    headers: list[str] = Field(default_factory=list)
    required_columns: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Conflict detection
# ---------------------------------------------------------------------------


class ConflictItem(CamelModel):
    row_number: int
    site_code: str
    conflict_type: Literal["exact", "potential"]
    differences: list[str] = Field(default_factory=list, description="Differing field names, in order.")
    existing: dict[str, Any]
    incoming: dict[str, Any]


class NewEntryItem(CamelModel):
    row_number: int
    site_code: str
    site_name: str


class ConflictDetectionResponse(CamelModel):
    total_rows: int
    conflict_count: int
    new_entry_count: int
    conflicts: list[ConflictItem] = Field(default_factory=list)
    new_entries: list[NewEntryItem] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Status and history
# ---------------------------------------------------------------------------


class ImportStatusResponse(CamelModel):
    """Durable snapshot of one import job.

    Two error figures are reported and they answer different questions:

    - ``error_count``: rows counted as failed.  Once the job is terminal,
      ``success_count + error_count == total_rows``.
    - ``error_count_total``: entries in the stored error list, which is
      what the downloadable report contains.  ``errors`` shows at most the
      first ``IMPORT_STATUS_ERROR_LIMIT`` of them.

    They agree for row-level failures.  After a fatal failure every
    unprocessed row is counted in ``error_count`` while the error list
    holds the row errors seen so far plus one synthetic entry (row 0)
    carrying the fault, so ``error_count_total`` can be smaller.
    """

    import_id: int
    filename: str | None = None
    status: str
    progress: int = Field(..., ge=0, le=100)
    total_rows: int
    processed_rows: int
    success_count: int
    error_count: int = Field(..., description="Rows counted as failed")
    created_count: int
    updated_count: int
    skipped_count: int
    conflict_count: int
    errors: list[RowErrorItem] = Field(default_factory=list)
    error_count_total: int = Field(0, description="Entries in the stored error list (report lines)")
    errors_truncated: bool = Field(False, description="``errors`` omits some stored entries")
    imported_by_name: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ImportHistoryItem(CamelModel):
    id: int
    original_filename: str | None = None
    status: str
    total_rows: int
    success_count: int
    error_count: int
    imported_by_name: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None


class ImportHistoryResponse(CamelModel):
    imports: list[ImportHistoryItem] = Field(default_factory=list)
    pagination: PaginationMeta
