"""
Import engine: runs one CSV import job from stored file to terminal status.

Workflow
--------
1. Parse the stored upload and fix ``total_rows``.
2. Claim the job with a compare-and-set ``Pending → Processing`` so that no
   second engine (in this or another process) can run it.
3. For every row, in file order: validate, resolve references, decide the
   disposition (create, update, skip or unresolved conflict) and write it in
   its own transaction.  Row failures become ``RowError`` entries; they
   never stop the run.
4. Every ``progress_interval`` rows persist the running counts on the job
   row and publish a progress event.
5. Persist the terminal status, publish the completion event and notify
   the submitter.

Anything that escapes a row (lost database, interrupted worker pool) is a
fatal failure: the in-flight row is rolled back, rows already committed stay
committed, and the job is forced to ``Failed`` with one synthetic error.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from sitetracker.exceptions import ImportInterruptedError, ImportNotFoundError, ImportStateError
from sitetracker.models.csv_import import CsvImport
from sitetracker.models.project_site import ProjectSite
from sitetracker.models.project_status_history import ProjectStatusHistory
from sitetracker.parsers.csv_parser import ParsedRow, read_project_csv
from sitetracker.parsers.row_validator import RowValidator, ValidatedRow
from sitetracker.services.import_job import (
    ImportTracker,
    RowError,
    final_status,
    is_terminal,
    transition,
)
from sitetracker.services.notification_service import ImportCompletion, notify_import_completed
from sitetracker.services.progress_broadcaster import (
    EVENT_COMPLETE,
    EVENT_ERROR,
    EVENT_PROGRESS,
    ImportEvent,
    ProgressBroadcaster,
)
from sitetracker.services.reference_resolver import ReferenceResolver, ResolvedIds
from sitetracker.utils.constants import (
    ACTION_CREATED,
    ACTION_SKIPPED,
    ACTION_UPDATED,
    IMPORT_FAILED,
    IMPORT_PENDING,
    IMPORT_PROCESSING,
    RESOLUTION_OVERRIDE,
    RESOLUTION_SKIP,
)

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Processing interrupted"

Notifier = Callable[[Session, ImportCompletion], object]


# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------


@dataclass
class ImportOptions:
    """Per-job import behaviour chosen by the uploader.

    Attributes:
        skip_duplicates: Leave an existing site untouched when no decision
            applies to it.
        update_existing: Overwrite existing sites; ignored when
            ``resolutions`` is supplied.
        resolutions: Operator decisions keyed by row number
            (``"override"`` or ``"skip"``).
        user_id: Submitting user, stamped on created/updated sites.
    """

    skip_duplicates: bool = True
    update_existing: bool = False
    resolutions: dict[int, str] | None = None
    user_id: int | None = None


@dataclass
class ImportResult:
    """Final outcome of ``ImportEngine.run``."""

    import_id: int
    status: str
    total_rows: int = 0
    processed_rows: int = 0
    success_count: int = 0
    error_count: int = 0
    created_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    conflict_count: int = 0
    errors: list[RowError] = field(default_factory=list)

    @classmethod
    def from_tracker(cls, tracker: ImportTracker, status: str) -> ImportResult:
        return cls(
            import_id=tracker.import_id,
            status=status,
            total_rows=tracker.total_rows,
            processed_rows=tracker.processed_rows,
            success_count=tracker.success_count,
            error_count=tracker.error_count,
            created_count=tracker.created_count,
            updated_count=tracker.updated_count,
            skipped_count=tracker.skipped_count,
            conflict_count=tracker.conflict_count,
            errors=list(tracker.errors),
        )


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ImportEngine:
    """Processes import jobs; one ``run`` call per job.

    Args:
        session_factory: Creates the engine's own database sessions.
        resolver: Shared reference cache.
        broadcaster: Receives progress, completion and error events.
        notifier: Called with a session and an ``ImportCompletion`` once a
            job is terminal; its failures are logged and ignored.
        validator: Row validator (a fresh ``RowValidator`` by default).
        progress_interval: Rows between persisted progress checkpoints.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        resolver: ReferenceResolver,
        broadcaster: ProgressBroadcaster,
        notifier: Notifier = notify_import_completed,
        validator: RowValidator | None = None,
        progress_interval: int = 10,
    ) -> None:
        self._session_factory = session_factory
        self._resolver = resolver
        self._broadcaster = broadcaster
        self._notifier = notifier
        self._validator = validator or RowValidator()
        self._progress_interval = max(progress_interval, 1)

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    def run(
        self,
        source: str | Path | bytes | BinaryIO,
        import_id: int,
        options: ImportOptions | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ImportResult:
        """Process the stored file of job *import_id* to a terminal status.

        Raises:
            ImportNotFoundError: The job does not exist.
            ImportStateError: The job is not ``Pending`` (already claimed by
                another engine, or finished).
        """
        options = options or ImportOptions()
        tracker = ImportTracker(import_id=import_id)
        db: Session = self._session_factory()
        try:
            parsed = read_project_csv(source)
            tracker.total_rows = parsed.total_rows
            self._claim(db, import_id, tracker.total_rows)
            logger.info("Import %s started: %d rows", import_id, tracker.total_rows)

            for row in parsed.rows:
                if cancel_event is not None and cancel_event.is_set():
                    raise ImportInterruptedError(INTERRUPTED_MESSAGE)
                self._process_row(db, row, options, tracker)
                if tracker.processed_rows % self._progress_interval == 0:
                    self._checkpoint(db, tracker)

            return self._finish(db, tracker)
        except (ImportNotFoundError, ImportStateError):
            db.rollback()
            raise
        except Exception as exc:
            db.rollback()
            logger.exception("Import %s failed", import_id)
            return self._fail(tracker, str(exc) or exc.__class__.__name__)
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    def _claim(self, db: Session, import_id: int, total_rows: int) -> None:
        claimed = (
            db.query(CsvImport)
            .filter(CsvImport.id == import_id, CsvImport.status == IMPORT_PENDING)
            .update(
                {
                    CsvImport.status: IMPORT_PROCESSING,
                    CsvImport.started_at: _now(),
                    CsvImport.total_rows: total_rows,
                },
                synchronize_session=False,
            )
        )
        db.commit()
        if claimed == 1:
            return

        job = db.get(CsvImport, import_id)
        if job is None:
            raise ImportNotFoundError(f"Import {import_id} not found")
        raise ImportStateError(f"Import {import_id} is {job.status}; only Pending jobs can be processed")

    def _checkpoint(self, db: Session, tracker: ImportTracker) -> None:
        job = db.get(CsvImport, tracker.import_id)
        tracker.apply_to(job)
        db.commit()
        self._broadcaster.publish(
            tracker.import_id, ImportEvent(EVENT_PROGRESS, tracker.progress_event())
        )

    def _finish(self, db: Session, tracker: ImportTracker) -> ImportResult:
        status = final_status(tracker.total_rows, tracker.error_count)
        job = db.get(CsvImport, tracker.import_id)
        transition(job, status)
        tracker.apply_to(job)
        job.completed_at = _now()
        db.commit()

        self._broadcaster.publish(
            tracker.import_id, ImportEvent(EVENT_PROGRESS, tracker.progress_event())
        )
        self._broadcaster.publish(
            tracker.import_id,
            ImportEvent(
                EVENT_COMPLETE,
                {"importId": tracker.import_id, "status": status, "results": tracker.results()},
            ),
        )
        logger.info(
            "Import %s %s: %d ok, %d errors (%d created, %d updated, %d skipped)",
            tracker.import_id,
            status,
            tracker.success_count,
            tracker.error_count,
            tracker.created_count,
            tracker.updated_count,
            tracker.skipped_count,
        )
        self._notify(db, job)
        return ImportResult.from_tracker(tracker, status)

    def _fail(self, tracker: ImportTracker, message: str) -> ImportResult:
        """Force the job to ``Failed`` from a fresh session."""
        db: Session = self._session_factory()
        try:
            job = db.get(CsvImport, tracker.import_id)
            if job is None:
                logger.error("Import %s vanished while failing it", tracker.import_id)
                tracker.fail(message)
                return ImportResult.from_tracker(tracker, IMPORT_FAILED)
            if is_terminal(job.status):
                return ImportResult.from_tracker(tracker, job.status)

            transition(job, IMPORT_FAILED)
            tracker.fail(message)
            tracker.apply_to(job)
            job.completed_at = _now()
            db.commit()

            self._broadcaster.publish(
                tracker.import_id,
                ImportEvent(
                    EVENT_ERROR,
                    {
                        "importId": tracker.import_id,
                        "status": IMPORT_FAILED,
                        "error": message,
                        "results": tracker.results(),
                    },
                ),
            )
            self._notify(db, job)
            return ImportResult.from_tracker(tracker, IMPORT_FAILED)
        finally:
            db.close()

    def _notify(self, db: Session, job: CsvImport) -> None:
        completion = ImportCompletion(
            import_id=job.id,
            user_id=job.imported_by,
            original_filename=job.original_filename,
            status=job.status,
            total_rows=job.total_rows,
            success_count=job.success_count,
            error_count=job.error_count,
        )
        try:
            self._notifier(db, completion)
        except Exception:
            db.rollback()
            logger.exception("Completion notification for import %s failed", job.id)

    # ------------------------------------------------------------------
    # Row processing
    # ------------------------------------------------------------------

    def _process_row(
        self,
        db: Session,
        row: ParsedRow,
        options: ImportOptions,
        tracker: ImportTracker,
    ) -> None:
        check = self._validator.validate(row.values, row.row_number)
        if not check.ok:
            tracker.record_error(RowError(row.row_number, row.site_code, check.errors))
            return

        self._resolver.refresh_if_stale(db)
        resolved = self._resolver.resolve(check.record)
        if not resolved.ok:
            tracker.record_error(RowError(row.row_number, row.site_code, resolved.errors))
            return

        record = check.record
        try:
            action = self._write(db, record, resolved.ids, options, tracker.import_id)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Import %s row %d: database error: %s", tracker.import_id, row.row_number, exc)
            detail = getattr(exc, "orig", None) or exc
            tracker.record_error(
                RowError(row.row_number, record.site_code, [f"Database error: {detail}"])
            )
            return

        if action is None:
            tracker.record_error(
                RowError(
                    row.row_number,
                    record.site_code,
                    [f'Site Code "{record.site_code}" already exists; choose override or skip'],
                    conflict=True,
                )
            )
            return
        tracker.record_success(action)

    @staticmethod
    def _decision(row_number: int, options: ImportOptions) -> str | None:
        if options.resolutions is not None:
            return options.resolutions.get(row_number)
        return RESOLUTION_OVERRIDE if options.update_existing else None

    def _write(
        self,
        db: Session,
        record: ValidatedRow,
        ids: ResolvedIds,
        options: ImportOptions,
        import_id: int,
    ) -> str | None:
        """Apply one row; returns the action taken, or ``None`` for an unresolved conflict."""
        # Looked up again right before writing: the site may have appeared
        # since conflict detection.
        existing = db.query(ProjectSite).filter(ProjectSite.site_code == record.site_code).first()
        reason = f"CSV import #{import_id}"

        if existing is None:
            site = ProjectSite(
                site_code=record.site_code,
                created_by=options.user_id,
            )
            self._assign(site, record, ids, options.user_id)
            site.status_history.append(
                ProjectStatusHistory(
                    old_status=None,
                    new_status=record.status,
                    reason=reason,
                    changed_by=options.user_id,
                )
            )
            db.add(site)
            db.commit()
            return ACTION_CREATED

        decision = self._decision(record.row_number, options)
        if decision == RESOLUTION_SKIP:
            return ACTION_SKIPPED
        if decision == RESOLUTION_OVERRIDE:
            old_status = existing.status
            self._assign(existing, record, ids, options.user_id)
            if old_status != record.status:
                existing.status_history.append(
                    ProjectStatusHistory(
                        old_status=old_status,
                        new_status=record.status,
                        reason=reason,
                        changed_by=options.user_id,
                    )
                )
            db.commit()
            return ACTION_UPDATED
        if options.skip_duplicates:
            return ACTION_SKIPPED
        return None

    @staticmethod
    def _assign(site: ProjectSite, record: ValidatedRow, ids: ResolvedIds, user_id: int | None) -> None:
        # Every business field is overwritten, including optional ids that
        # resolve to None.
        site.site_name = record.site_name
        site.project_type_id = ids.project_type_id
        site.province_id = ids.province_id
        site.municipality_id = ids.municipality_id
        site.barangay_id = ids.barangay_id
        site.district_id = ids.district_id
        site.latitude = record.latitude
        site.longitude = record.longitude
        site.activation_date = record.activation_date
        site.status = record.status
        site.updated_by = user_id
