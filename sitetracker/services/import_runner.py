"""
Background execution of import jobs.

``ImportRunner`` owns a ``ThreadPoolExecutor`` and the set of job ids that
currently have a live engine.  A second ``start`` for the same id is
rejected, and the engine's compare-and-set on the job status stops two
engines from claiming the same job.

``recover_interrupted_imports`` runs once at startup: any job left in
``Pending`` or ``Processing`` without a live engine in *this* process is
marked ``Failed``.  Job records carry no owner, so the service must run as
a single process (one uvicorn worker); a second worker starting up would
fail jobs the first one is still processing.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy.orm import Session

from sitetracker.exceptions import ImportAlreadyRunningError
from sitetracker.models.csv_import import CsvImport
from sitetracker.services.import_engine import INTERRUPTED_MESSAGE, ImportEngine, ImportOptions, ImportResult
from sitetracker.services.import_job import ImportTracker, transition
from sitetracker.utils.constants import IMPORT_FAILED, IMPORT_PENDING, IMPORT_PROCESSING

logger = logging.getLogger(__name__)


class ImportRunner:
    """Runs ``ImportEngine.run`` off the request thread, one engine per job.

    Args:
        engine: The shared import engine.
        max_workers: Size of the worker pool.
        executor: Injected executor (tests); the runner owns a
            ``ThreadPoolExecutor`` otherwise.
    """

    def __init__(
        self,
        engine: ImportEngine,
        max_workers: int = 2,
        executor: Executor | None = None,
    ) -> None:
        self._engine = engine
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="csv-import"
        )
        self._lock = threading.Lock()
        self._active: set[int] = set()
        self._cancel = threading.Event()

    def is_active(self, import_id: int) -> bool:
        with self._lock:
            return import_id in self._active

    def active_ids(self) -> set[int]:
        with self._lock:
            return set(self._active)

    def start(self, import_id: int, source: Path, options: ImportOptions) -> Future:
        """Schedule the job; returns immediately.

        Raises:
            ImportAlreadyRunningError: The job already has a live engine.
        """
        with self._lock:
            if import_id in self._active:
                raise ImportAlreadyRunningError(f"Import {import_id} is already being processed")
            self._active.add(import_id)

        try:
            future = self._executor.submit(self._run, import_id, source, options)
        except RuntimeError:
            # Executor already shut down
            with self._lock:
                self._active.discard(import_id)
            raise
        logger.info("Import %s queued", import_id)
        return future

    def _run(self, import_id: int, source: Path, options: ImportOptions) -> ImportResult | None:
        try:
            return self._engine.run(source, import_id, options, cancel_event=self._cancel)
        except Exception:
            logger.exception("Import %s could not be processed", import_id)
            return None
        finally:
            with self._lock:
                self._active.discard(import_id)

    def shutdown(self, wait: bool = True) -> None:
        """Signal running engines to stop between rows and close the pool."""
        self._cancel.set()
        self._executor.shutdown(wait=wait)
        logger.info("Import runner stopped")


def recover_interrupted_imports(db: Session, runner: ImportRunner | None = None) -> list[int]:
    """Mark ``Pending``/``Processing`` jobs without a live engine as ``Failed``.

    Returns:
        Ids of the jobs that were failed.
    """
    live = runner.active_ids() if runner is not None else set()
    stuck = (
        db.query(CsvImport)
        .filter(CsvImport.status.in_([IMPORT_PENDING, IMPORT_PROCESSING]))
        .order_by(CsvImport.id)
        .all()
    )

    recovered: list[int] = []
    for job in stuck:
        if job.id in live:
            continue
        tracker = ImportTracker(
            import_id=job.id,
            total_rows=job.total_rows or 0,
            processed_rows=job.processed_rows or 0,
            success_count=job.success_count or 0,
            created_count=job.created_count or 0,
            updated_count=job.updated_count or 0,
            skipped_count=job.skipped_count or 0,
            conflict_count=job.conflict_count or 0,
        )
        tracker.fail(INTERRUPTED_MESSAGE)
        transition(job, IMPORT_FAILED)
        tracker.apply_to(job)
        job.completed_at = datetime.now(timezone.utc)
        recovered.append(job.id)

    if recovered:
        db.commit()
        logger.warning("Marked %d interrupted import(s) as Failed: %s", len(recovered), recovered)
    return recovered
