"""Domain exceptions raised by the import services.

Routers translate these into HTTP responses; services never raise
``HTTPException`` themselves.
"""

from __future__ import annotations


class CsvFileError(ValueError):
    """The uploaded file cannot be imported at all (unreadable, wrong columns)."""


class UploadTooLargeError(CsvFileError):
    """The uploaded file exceeds ``MAX_UPLOAD_BYTES``."""


class ImportNotFoundError(LookupError):
    """No import job exists with the requested id."""


class ImportStateError(RuntimeError):
    """The import job is in a status that does not allow the operation."""


class InvalidTransitionError(ImportStateError):
    """An import job status change that the state machine forbids."""


class ImportAlreadyRunningError(ImportStateError):
    """A second engine was asked to process a job that already has one."""


class ImportInterruptedError(RuntimeError):
    """The worker pool is shutting down while a job is mid-run."""


class UnresolvedConflictsError(ValueError):
    """A resolution map was supplied but some conflicting rows have no decision."""

    def __init__(self, row_numbers: list[int]) -> None:
        self.row_numbers = row_numbers
        rows = ", ".join(str(n) for n in row_numbers)
        super().__init__(
            f"{len(row_numbers)} conflicting row(s) have no override/skip decision: rows {rows}"
        )


class ImportQueueUnavailableError(RuntimeError):
    """The worker pool no longer accepts jobs (the service is shutting down)."""
