"""
CSV import router.

Mounts under ``/api/import`` (prefix set in ``main.py``).  Every endpoint
requires the Editor, Manager or Admin role.

Endpoints
---------
POST   /csv             : Submit a CSV file for background import (202).
POST   /detect-conflicts: Compare a file against stored sites; no writes.
POST   /validate        : Dry-run header and row validation; no DB access.
GET    /template        : Download the CSV template.
GET    /                : Paginated import history, newest first.
GET    /{id}/status     : Durable job snapshot.
GET    /{id}/events     : Server-Sent Events progress stream.
GET    /{id}/download   : Error report CSV of a finished job.
DELETE /{id}            : Delete a finished job and its stored file.
"""

from __future__ import annotations

import io
import json
import logging
from functools import partial
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from sitetracker.config import Settings, get_settings
from sitetracker.database import get_db
from sitetracker.exceptions import (
    CsvFileError,
    ImportNotFoundError,
    ImportQueueUnavailableError,
    ImportStateError,
    UnresolvedConflictsError,
    UploadTooLargeError,
)
from sitetracker.models.user import User
from sitetracker.schemas.common import MessageResponse, PaginationParams
from sitetracker.schemas.imports import (
    ConflictDetectionResponse,
    ImportHistoryResponse,
    ImportStatusResponse,
    ImportSubmitResponse,
    ValidationResponse,
)
from sitetracker.services import import_service
from sitetracker.services.auth_service import require_role
from sitetracker.services.conflict_detector import ConflictDetector
from sitetracker.services.import_engine import ImportOptions
from sitetracker.services.import_runner import ImportRunner
from sitetracker.services.progress_broadcaster import EVENT_HEARTBEAT, ImportEvent, ProgressBroadcaster
from sitetracker.utils.constants import IMPORT_ROLES

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Import"])

ImportUser = Annotated[User, Depends(require_role(*IMPORT_ROLES))]


# ---------------------------------------------------------------------------
# Pipeline components (built in the app lifespan)
# ---------------------------------------------------------------------------


def get_runner(request: Request) -> ImportRunner:
    return request.app.state.import_runner


def get_detector(request: Request) -> ConflictDetector:
    return request.app.state.conflict_detector


def get_broadcaster(request: Request) -> ProgressBroadcaster:
    return request.app.state.progress_broadcaster


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _to_http(exc: Exception) -> HTTPException:
    """Map a service-layer exception to its HTTP response."""
    if isinstance(exc, UploadTooLargeError):
        return HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(exc))
    if isinstance(exc, CsvFileError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, UnresolvedConflictsError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "unresolvedRows": exc.row_numbers},
        )
    if isinstance(exc, ImportNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ImportQueueUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    if isinstance(exc, ImportStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


_SERVICE_ERRORS = (
    CsvFileError,
    UnresolvedConflictsError,
    ImportNotFoundError,
    ImportStateError,
    ImportQueueUnavailableError,
)


async def _read_upload(file: UploadFile | None) -> tuple[bytes, str | None]:
    if file is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please upload a CSV file.")
    return await file.read(), file.filename


# ---------------------------------------------------------------------------
# POST /csv
# ---------------------------------------------------------------------------


@router.post(
    "/csv",
    response_model=ImportSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Submit a CSV import",
    description=(
        "Validates the file header, records a Pending import job and processes it in the "
        "background. Follow progress via ``/{id}/events`` or ``/{id}/status``."
    ),
    responses={
        202: {"description": "Job recorded and queued."},
        400: {"description": "Missing, unreadable or malformed CSV file."},
        409: {"description": "A resolution map was sent but some conflicts are undecided."},
        413: {"description": "File larger than the upload limit."},
        422: {"description": "Malformed conflictsResolution field."},
        503: {"description": "The import queue is shutting down; nothing was stored."},
    },
)
async def submit_csv_import(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    runner: Annotated[ImportRunner, Depends(get_runner)],
    detector: Annotated[ConflictDetector, Depends(get_detector)],
    current_user: ImportUser,
    file: Annotated[UploadFile | None, File(description="CSV file (.csv)")] = None,
    skip_duplicates: Annotated[bool, Form(alias="skipDuplicates")] = True,
    update_existing: Annotated[bool, Form(alias="updateExisting")] = False,
    conflicts_resolution: Annotated[str | None, Form(alias="conflictsResolution")] = None,
) -> ImportSubmitResponse:
    raw_bytes, filename = await _read_upload(file)

    try:
        resolutions = import_service.parse_resolutions(conflicts_resolution)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    options = ImportOptions(
        skip_duplicates=skip_duplicates,
        update_existing=update_existing,
        resolutions=resolutions,
    )
    logger.info("submit_csv_import: user='%s' file='%s'", current_user.username, filename)

    try:
        return import_service.submit_import(
            db, runner, detector, raw_bytes, filename, options, current_user, settings
        )
    except _SERVICE_ERRORS as exc:
        raise _to_http(exc) from exc


# ---------------------------------------------------------------------------
# POST /detect-conflicts
# ---------------------------------------------------------------------------


@router.post(
    "/detect-conflicts",
    response_model=ConflictDetectionResponse,
    summary="Detect conflicts with stored project sites",
    responses={400: {"description": "Missing, unreadable or malformed CSV file."}},
)
async def detect_csv_conflicts(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    detector: Annotated[ConflictDetector, Depends(get_detector)],
    _current_user: ImportUser,
    file: Annotated[UploadFile | None, File(description="CSV file (.csv)")] = None,
) -> ConflictDetectionResponse:
    """List rows whose site code already exists, with field-level differences."""
    raw_bytes, filename = await _read_upload(file)
    try:
        return import_service.detect_conflicts(db, detector, raw_bytes, filename, settings)
    except _SERVICE_ERRORS as exc:
        raise _to_http(exc) from exc


# ---------------------------------------------------------------------------
# POST /validate
# ---------------------------------------------------------------------------


@router.post(
    "/validate",
    response_model=ValidationResponse,
    summary="Validate a CSV file without importing",
    responses={400: {"description": "Missing, unreadable or malformed CSV file."}},
)
async def validate_csv_file(
    settings: Annotated[Settings, Depends(get_settings)],
    _current_user: ImportUser,
    file: Annotated[UploadFile | None, File(description="CSV file (.csv)")] = None,
) -> ValidationResponse:
    raw_bytes, filename = await _read_upload(file)
    try:
        return import_service.validate_csv(raw_bytes, filename, settings)
    except _SERVICE_ERRORS as exc:
        raise _to_http(exc) from exc


# ---------------------------------------------------------------------------
# GET /template
# ---------------------------------------------------------------------------


@router.get(
    "/template",
    summary="Download the CSV import template",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/csv": {}}}},
)
def download_template(_current_user: ImportUser) -> StreamingResponse:
    payload = import_service.template_csv()
    return StreamingResponse(
        io.BytesIO(payload),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="project_import_template.csv"'},
    )


# ---------------------------------------------------------------------------
# GET /
# ---------------------------------------------------------------------------


@router.get(
    "/",
    response_model=ImportHistoryResponse,
    summary="Import history",
)
def list_import_history(
    db: Annotated[Session, Depends(get_db)],
    _current_user: ImportUser,
    page: Annotated[int, Query(ge=1, description="Page number (1-based).")] = 1,
    limit: Annotated[int, Query(ge=1, le=100, description="Rows per page.")] = 20,
) -> ImportHistoryResponse:
    return import_service.list_imports(db, PaginationParams(page=page, limit=limit))


# ---------------------------------------------------------------------------
# GET /{id}/status
# ---------------------------------------------------------------------------


@router.get(
    "/{import_id}/status",
    response_model=ImportStatusResponse,
    summary="Import job status",
    responses={404: {"description": "Unknown import job."}},
)
def get_import_status(
    import_id: int,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    _current_user: ImportUser,
) -> ImportStatusResponse:
    """Durable snapshot, for clients that lost their event stream."""
    try:
        return import_service.get_import_status(db, import_id, settings.IMPORT_STATUS_ERROR_LIMIT)
    except _SERVICE_ERRORS as exc:
        raise _to_http(exc) from exc


# ---------------------------------------------------------------------------
# GET /{id}/events
# ---------------------------------------------------------------------------


def _format_sse(event: ImportEvent) -> str:
    if event.kind == EVENT_HEARTBEAT:
        return ": keepalive\n\n"
    return f"event: {event.sse_name}\ndata: {json.dumps(event.data)}\n\n"


@router.get(
    "/{import_id}/events",
    summary="Import progress stream (Server-Sent Events)",
    response_class=StreamingResponse,
    responses={
        200: {"content": {"text/event-stream": {}}},
        404: {"description": "Unknown import job."},
    },
)
async def stream_import_events(
    import_id: int,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    broadcaster: Annotated[ProgressBroadcaster, Depends(get_broadcaster)],
    _current_user: ImportUser,
) -> StreamingResponse:
    """Stream ``import:progress`` events until ``import:complete`` or ``import:error``.

    The first event is always the job's current durable state.
    """
    try:
        import_service.get_job(db, import_id)
    except ImportNotFoundError as exc:
        raise _to_http(exc) from exc

    load_snapshot = partial(import_service.load_job_event, request.app.state.session_factory, import_id)

    async def event_stream():
        async for event in broadcaster.subscribe(import_id, load_snapshot):
            yield _format_sse(event)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# ---------------------------------------------------------------------------
# GET /{id}/download
# ---------------------------------------------------------------------------


@router.get(
    "/{import_id}/download",
    summary="Download the error report",
    response_class=StreamingResponse,
    responses={
        200: {"content": {"text/csv": {}}},
        404: {"description": "Unknown import job."},
        409: {"description": "Job still running, or it has no errors."},
    },
)
def download_error_report(
    import_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: ImportUser,
) -> StreamingResponse:
    try:
        payload, filename = import_service.build_error_report(db, import_id)
    except _SERVICE_ERRORS as exc:
        raise _to_http(exc) from exc

    return StreamingResponse(
        io.BytesIO(payload),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Content-Length": str(len(payload)),
        },
    )


# ---------------------------------------------------------------------------
# DELETE /{id}
# ---------------------------------------------------------------------------


@router.delete(
    "/{import_id}",
    response_model=MessageResponse,
    summary="Delete a finished import job",
    responses={
        404: {"description": "Unknown import job."},
        409: {"description": "Job has not finished."},
    },
)
def delete_import_job(
    import_id: int,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    current_user: ImportUser,
) -> MessageResponse:
    try:
        import_service.delete_import(db, import_id, settings)
    except _SERVICE_ERRORS as exc:
        raise _to_http(exc) from exc

    logger.info("Import %s deleted by '%s'", import_id, current_user.username)
    return MessageResponse(message="Import job deleted successfully")
