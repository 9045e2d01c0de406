"""
Import job lifecycle: statuses, legal transitions, row errors and running
counts.

State machine::

    Pending ──► Processing ──► Completed | Partial | Failed
       │
       └──────► Failed            (fatal before start / interrupted)

Terminal statuses never change again.  ``ImportTracker`` holds the running
counts of one engine run in memory and copies them onto the ``CsvImport``
row whenever the engine persists progress.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from sitetracker.exceptions import InvalidTransitionError
from sitetracker.models.csv_import import CsvImport
from sitetracker.utils.constants import (
    ACTION_CREATED,
    ACTION_SKIPPED,
    ACTION_UPDATED,
    IMPORT_COMPLETED,
    IMPORT_FAILED,
    IMPORT_PARTIAL,
    IMPORT_PENDING,
    IMPORT_PROCESSING,
    IMPORT_TERMINAL_STATUSES,
)

_TRANSITIONS: dict[str, frozenset[str]] = {
    IMPORT_PENDING: frozenset({IMPORT_PROCESSING, IMPORT_FAILED}),
    IMPORT_PROCESSING: frozenset({IMPORT_COMPLETED, IMPORT_PARTIAL, IMPORT_FAILED}),
}


def is_terminal(status: str) -> bool:
    return status in IMPORT_TERMINAL_STATUSES


def can_transition(current: str, target: str) -> bool:
    return target in _TRANSITIONS.get(current, frozenset())


def check_transition(current: str, target: str) -> None:
    """Raise ``InvalidTransitionError`` unless *current* → *target* is legal."""
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Import job cannot move from {current} to {target}")


def final_status(total_rows: int, error_count: int) -> str:
    """Terminal status for a finished run.

    ``Failed`` when every row failed, ``Partial`` when some did, and
    ``Completed`` when none did (including an empty file).
    """
    if total_rows > 0 and error_count >= total_rows:
        return IMPORT_FAILED
    if error_count > 0:
        return IMPORT_PARTIAL
    return IMPORT_COMPLETED


def progress_percent(processed_rows: int, total_rows: int) -> int:
    if total_rows <= 0:
        return 100
    return (100 * processed_rows) // total_rows


# ---------------------------------------------------------------------------
# Row errors
# ---------------------------------------------------------------------------


@dataclass
class RowError:
    """Why one CSV row was rejected.

    ``row_number`` 0 is reserved for the synthetic error of a fatal job
    failure.
    """

    row_number: int
    site_code: str
    messages: list[str]
    conflict: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "rowNumber": self.row_number,
            "siteCode": self.site_code,
            "errors": list(self.messages),
            "conflict": self.conflict,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RowError:
        return cls(
            row_number=int(data.get("rowNumber", 0)),
            site_code=data.get("siteCode") or "",
            messages=list(data.get("errors") or []),
            conflict=bool(data.get("conflict", False)),
        )


def dump_errors(errors: list[RowError]) -> str:
    return json.dumps([e.to_dict() for e in errors])


def load_errors(errors_json: str | None) -> list[RowError]:
    """Decode ``csv_imports.errors_json``; a missing value is an empty list."""
    if not errors_json:
        return []
    return [RowError.from_dict(item) for item in json.loads(errors_json)]


# ---------------------------------------------------------------------------
# Running counts
# ---------------------------------------------------------------------------


@dataclass
class ImportTracker:
    """Counts and errors accumulated by one engine run."""

    import_id: int
    total_rows: int = 0
    processed_rows: int = 0
    success_count: int = 0
    error_count: int = 0
    created_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    conflict_count: int = 0
    errors: list[RowError] = field(default_factory=list)

    def record_success(self, action: str) -> None:
        self.processed_rows += 1
        self.success_count += 1
        if action == ACTION_CREATED:
            self.created_count += 1
        elif action == ACTION_UPDATED:
            self.updated_count += 1
        elif action == ACTION_SKIPPED:
            self.skipped_count += 1
        else:
            raise ValueError(f"Unknown row action: {action!r}")

    def record_error(self, error: RowError) -> None:
        self.processed_rows += 1
        self.error_count += 1
        if error.conflict:
            self.conflict_count += 1
        self.errors.append(error)

    def fail(self, message: str) -> None:
        """Collapse the run into a fatal failure.

        Rows never reached count as errors so that ``success + error ==
        total`` still holds; ``processed_rows`` keeps how far the run got and
        the per-row errors are replaced by one synthetic error.
        """
        self.error_count = max(self.total_rows - self.success_count, 0)
        self.errors = [RowError(row_number=0, site_code="", messages=[message])]

    @property
    def progress(self) -> int:
        return progress_percent(self.processed_rows, self.total_rows)

    def progress_event(self) -> dict[str, Any]:
        return {
            "importId": self.import_id,
            "progress": self.progress,
            "totalRows": self.total_rows,
            "processedRows": self.processed_rows,
            "successCount": self.success_count,
            "errorCount": self.error_count,
        }

    def results(self) -> dict[str, Any]:
        return {
            "totalRows": self.total_rows,
            "processedRows": self.processed_rows,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "createdCount": self.created_count,
            "updatedCount": self.updated_count,
            "skippedCount": self.skipped_count,
            "conflictCount": self.conflict_count,
        }

    def apply_to(self, job: CsvImport) -> None:
        """Copy the running counts and error list onto the job row."""
        job.total_rows = self.total_rows
        job.processed_rows = self.processed_rows
        job.success_count = self.success_count
        job.error_count = self.error_count
        job.created_count = self.created_count
        job.updated_count = self.updated_count
        job.skipped_count = self.skipped_count
        job.conflict_count = self.conflict_count
        job.errors_json = dump_errors(self.errors)


def transition(job: CsvImport, target: str) -> None:
    """Move *job* to *target*, enforcing the state machine."""
    check_transition(job.status, target)
    job.status = target
