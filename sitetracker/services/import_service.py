"""
CSV import service layer.

Sits between ``routers/imports.py`` and the import pipeline:

1. File-level checks on an upload (extension, size, parseable CSV with the
   required columns) before anything is stored.
2. Optional resolution-map check against detected conflicts; an incomplete
   map rejects the submission before a job exists.
3. Store the upload, create the ``Pending`` job row and hand it to the
   ``ImportRunner``.
4. Read-side helpers: status snapshot, SSE snapshot, history, error report,
   template, deletion of finished jobs.

Services raise domain exceptions (``sitetracker.exceptions``); the router
maps them to HTTP status codes.
"""

from __future__ import annotations

import logging
from math import ceil
from typing import Any

import pandas as pd
from pydantic import TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session, sessionmaker

from sitetracker.config import Settings
from sitetracker.exceptions import (
    CsvFileError,
    ImportNotFoundError,
    ImportQueueUnavailableError,
    ImportStateError,
    UnresolvedConflictsError,
    UploadTooLargeError,
)
from sitetracker.exporters.error_report import error_report_filename, generate_error_report
from sitetracker.models.csv_import import CsvImport
from sitetracker.models.user import User
from sitetracker.parsers.csv_parser import CsvParseResult, read_project_csv
from sitetracker.parsers.row_validator import RowValidator
from sitetracker.schemas.common import PaginationMeta, PaginationParams
from sitetracker.schemas.imports import (
    ConflictDetectionResponse,
    ConflictItem,
    ConflictResolutionItem,
    ImportHistoryItem,
    ImportHistoryResponse,
    ImportStatusResponse,
    ImportSubmitResponse,
    NewEntryItem,
    RowErrorItem,
    ValidationResponse,
)
from sitetracker.services.conflict_detector import (
    Conflict,
    ConflictDetector,
    check_resolutions,
    jsonable_snapshot,
)
from sitetracker.services.file_storage import delete_upload, save_upload
from sitetracker.services.import_engine import ImportOptions
from sitetracker.services.import_job import RowError, is_terminal, load_errors, progress_percent
from sitetracker.services.import_runner import ImportRunner
from sitetracker.services.progress_broadcaster import EVENT_COMPLETE, EVENT_PROGRESS, ImportEvent
from sitetracker.utils.constants import (
    COL_SITE_NAME,
    IMPORT_PENDING,
    IMPORT_PROCESSING,
    REQUIRED_COLUMNS,
    TEMPLATE_COLUMNS,
    TEMPLATE_EXAMPLE_ROW,
)

logger = logging.getLogger(__name__)

_RESOLUTIONS_ADAPTER = TypeAdapter(list[ConflictResolutionItem])


# ---------------------------------------------------------------------------
# Upload checks
# ---------------------------------------------------------------------------


def check_upload(raw_bytes: bytes, filename: str | None, settings: Settings) -> None:
    """Reject uploads that are missing, not ``.csv`` or larger than the limit."""
    if not filename:
        raise CsvFileError("Please upload a CSV file.")
    if not filename.lower().endswith(".csv"):
        raise CsvFileError("Only .csv files are accepted.")
    if len(raw_bytes) > settings.MAX_UPLOAD_BYTES:
        raise UploadTooLargeError(
            f"File exceeds the maximum upload size of {settings.MAX_UPLOAD_BYTES // (1024 * 1024)} MB."
        )


def parse_upload(raw_bytes: bytes, filename: str | None, settings: Settings) -> CsvParseResult:
    check_upload(raw_bytes, filename, settings)
    return read_project_csv(raw_bytes)


def parse_resolutions(raw: str | None) -> dict[int, str] | None:
    """Decode the ``conflictsResolution`` form field.

    Returns ``None`` when the field is absent or blank.

    Raises:
        ValueError: If the field is not a JSON list of ``{rowIndex, action}``.
    """
    if raw is None or not raw.strip():
        return None
    try:
        items = _RESOLUTIONS_ADAPTER.validate_json(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid conflictsResolution: {exc.errors()[0]['msg']}") from exc
    return {item.row_index: item.action for item in items}


def _row_error_item(error: RowError) -> RowErrorItem:
    return RowErrorItem(
        row_number=error.row_number,
        site_code=error.site_code,
        errors=error.messages,
        conflict=error.conflict,
    )


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


def submit_import(
    db: Session,
    runner: ImportRunner,
    detector: ConflictDetector,
    raw_bytes: bytes,
    filename: str | None,
    options: ImportOptions,
    user: User,
    settings: Settings,
) -> ImportSubmitResponse:
    """Record a new import job and queue it for background processing.

    Raises:
        CsvFileError: File-level problem; nothing is stored.
        UnresolvedConflictsError: ``options.resolutions`` leaves some
            conflicting rows undecided; nothing is stored.
        ImportQueueUnavailableError: The runner refused the job; the job
            record and the stored file are removed again.
    """
    parsed = parse_upload(raw_bytes, filename, settings)

    if options.resolutions is not None:
        report = detector.detect(db, parsed.rows)
        summary = check_resolutions(report.conflicts, options.resolutions)
        if not summary.complete:
            raise UnresolvedConflictsError(summary.unresolved_rows)

    stored = save_upload(raw_bytes, filename, settings.UPLOADS_DIR, user.username)
    job = CsvImport(
        filename=stored.relative_path,
        original_filename=filename,
        total_rows=parsed.total_rows,
        imported_by=user.id,
        status=IMPORT_PENDING,
    )
    db.add(job)
    db.commit()
    db.refresh(job)

    options.user_id = user.id
    try:
        runner.start(job.id, stored.path, options)
    except RuntimeError as exc:
        logger.error("Import %s could not be queued: %s", job.id, exc)
        db.delete(job)
        db.commit()
        delete_upload(stored.relative_path, settings.UPLOADS_DIR)
        raise ImportQueueUnavailableError(
            "Imports are not being accepted right now; retry shortly."
        ) from exc
    logger.info(
        "Import %s submitted by '%s': %s (%d rows)",
        job.id,
        user.username,
        filename,
        parsed.total_rows,
    )
    return ImportSubmitResponse(
        import_id=job.id,
        filename=filename,
        total_rows=parsed.total_rows,
        status=IMPORT_PENDING,
    )


# ---------------------------------------------------------------------------
# Pre-submission checks
# ---------------------------------------------------------------------------


def _conflict_item(conflict: Conflict) -> ConflictItem:
    def camel(snapshot: dict[str, Any]) -> dict[str, Any]:
        return {to_camel(k): v for k, v in jsonable_snapshot(snapshot).items()}

    return ConflictItem(
        row_number=conflict.row_number,
        site_code=conflict.site_code,
        conflict_type=conflict.conflict_type,
        differences=[to_camel(name) for name in conflict.differences],
        existing=camel(conflict.existing),
        incoming=camel(conflict.incoming),
    )


def detect_conflicts(
    db: Session,
    detector: ConflictDetector,
    raw_bytes: bytes,
    filename: str | None,
    settings: Settings,
) -> ConflictDetectionResponse:
    """Partition an upload into new entries and conflicts; writes nothing."""
    parsed = parse_upload(raw_bytes, filename, settings)
    report = detector.detect(db, parsed.rows)
    return ConflictDetectionResponse(
        total_rows=report.total_rows,
        conflict_count=report.conflict_count,
        new_entry_count=report.new_entry_count,
        conflicts=[_conflict_item(c) for c in report.conflicts],
        new_entries=[
            NewEntryItem(
                row_number=row.row_number,
                site_code=row.site_code,
                site_name=row.get(COL_SITE_NAME),
            )
            for row in report.new_entries
        ],
    )


def validate_csv(raw_bytes: bytes, filename: str | None, settings: Settings) -> ValidationResponse:
    """Dry run of header and row validation; the database is not touched."""
    parsed = parse_upload(raw_bytes, filename, settings)
    validator = RowValidator()
    errors: list[RowErrorItem] = []
    for row in parsed.rows:
        check = validator.validate(row.values, row.row_number)
        if not check.ok:
            errors.append(
                RowErrorItem(row_number=row.row_number, site_code=row.site_code, errors=check.errors)
            )
    return ValidationResponse(
        valid=not errors,
        total_rows=parsed.total_rows,
        errors=errors,
        headers=parsed.headers,
        required_columns=list(REQUIRED_COLUMNS),
    )


# ---------------------------------------------------------------------------
# Job queries
# ---------------------------------------------------------------------------


def get_job(db: Session, import_id: int) -> CsvImport:
    job = db.get(CsvImport, import_id)
    if job is None:
        raise ImportNotFoundError(f"Import job {import_id} not found")
    return job


def _job_progress(job: CsvImport) -> int:
    if is_terminal(job.status):
        return 100
    if job.status == IMPORT_PROCESSING:
        return progress_percent(job.processed_rows or 0, job.total_rows or 0)
    return 0


def _importer_name(db: Session, user_id: int | None) -> str | None:
    if user_id is None:
        return None
    user = db.get(User, user_id)
    return user.full_name if user is not None else None


def get_import_status(
    db: Session, import_id: int, error_limit: int = 100
) -> ImportStatusResponse:
    """Durable status of one job, with at most *error_limit* inline errors."""
    job = get_job(db, import_id)
    errors = load_errors(job.errors_json)
    return ImportStatusResponse(
        import_id=job.id,
        filename=job.original_filename,
        status=job.status,
        progress=_job_progress(job),
        total_rows=job.total_rows or 0,
        processed_rows=job.processed_rows or 0,
        success_count=job.success_count or 0,
        error_count=job.error_count or 0,
        created_count=job.created_count or 0,
        updated_count=job.updated_count or 0,
        skipped_count=job.skipped_count or 0,
        conflict_count=job.conflict_count or 0,
        errors=[_row_error_item(e) for e in errors[:error_limit]],
        error_count_total=len(errors),
        errors_truncated=len(errors) > error_limit,
        imported_by_name=_importer_name(db, job.imported_by),
        created_at=job.created_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
    )


def job_event(job: CsvImport) -> ImportEvent:
    """The durable state of *job* as a stream event."""
    if is_terminal(job.status):
        return ImportEvent(
            EVENT_COMPLETE,
            {
                "importId": job.id,
                "status": job.status,
                "results": {
                    "totalRows": job.total_rows or 0,
                    "processedRows": job.processed_rows or 0,
                    "successCount": job.success_count or 0,
                    "errorCount": job.error_count or 0,
                    "createdCount": job.created_count or 0,
                    "updatedCount": job.updated_count or 0,
                    "skippedCount": job.skipped_count or 0,
                    "conflictCount": job.conflict_count or 0,
                },
            },
        )
    return ImportEvent(
        EVENT_PROGRESS,
        {
            "importId": job.id,
            "progress": _job_progress(job),
            "totalRows": job.total_rows or 0,
            "processedRows": job.processed_rows or 0,
            "successCount": job.success_count or 0,
            "errorCount": job.error_count or 0,
        },
    )


def load_job_event(session_factory: sessionmaker, import_id: int) -> ImportEvent | None:
    """Blocking snapshot loader for ``ProgressBroadcaster.subscribe``."""
    db: Session = session_factory()
    try:
        job = db.get(CsvImport, import_id)
        return job_event(job) if job is not None else None
    finally:
        db.close()


def list_imports(db: Session, pagination: PaginationParams) -> ImportHistoryResponse:
    """Import history, newest first."""
    total = db.query(CsvImport).count()
    rows = (
        db.query(CsvImport, User.full_name)
        .outerjoin(User, CsvImport.imported_by == User.id)
        .order_by(CsvImport.created_at.desc(), CsvImport.id.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
        .all()
    )
    items = [
        ImportHistoryItem(
            id=job.id,
            original_filename=job.original_filename,
            status=job.status,
            total_rows=job.total_rows or 0,
            success_count=job.success_count or 0,
            error_count=job.error_count or 0,
            imported_by_name=full_name,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )
        for job, full_name in rows
    ]
    return ImportHistoryResponse(
        imports=items,
        pagination=PaginationMeta(
            page=pagination.page,
            limit=pagination.limit,
            total=total,
            total_pages=ceil(total / pagination.limit) if total else 0,
        ),
    )


# ---------------------------------------------------------------------------
# Error report, template, deletion
# ---------------------------------------------------------------------------


def build_error_report(db: Session, import_id: int) -> tuple[bytes, str]:
    """CSV bytes and download filename of a finished job's error report.

    Raises:
        ImportNotFoundError: Unknown job.
        ImportStateError: The job is still running or has no errors.
    """
    job = get_job(db, import_id)
    if not is_terminal(job.status):
        raise ImportStateError(f"Import job {import_id} is still {job.status}")
    errors = load_errors(job.errors_json)
    if not errors:
        raise ImportStateError(f"Import job {import_id} has no errors")
    return generate_error_report(errors), error_report_filename(job.original_filename)


def template_csv() -> bytes:
    """Header row plus one example row."""
    df = pd.DataFrame([TEMPLATE_EXAMPLE_ROW], columns=TEMPLATE_COLUMNS)
    return df.to_csv(index=False, lineterminator="\n").encode("utf-8")


def delete_import(db: Session, import_id: int, settings: Settings) -> None:
    """Delete a finished job and its stored upload.

    Raises:
        ImportNotFoundError: Unknown job.
        ImportStateError: The job has not reached a terminal status.
    """
    job = get_job(db, import_id)
    if not is_terminal(job.status):
        raise ImportStateError(f"Import job {import_id} is {job.status}; only finished jobs can be deleted")

    delete_upload(job.filename, settings.UPLOADS_DIR)
    db.delete(job)
    db.commit()
    logger.info("Import %s deleted", import_id)

