"""
In-app notifications.

Only the import-completion notification is produced here; the engine calls
``notify_import_completed`` once a job reaches a terminal status.  Delivery
to the client (polling the inbox) is outside this service.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from sitetracker.models.notification import Notification
from sitetracker.utils.constants import IMPORT_PARTIAL

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE_IMPORT = "import"


@dataclass(frozen=True)
class ImportCompletion:
    """Outcome of a finished import, as needed to notify its submitter."""

    import_id: int
    user_id: int | None
    original_filename: str | None
    status: str
    total_rows: int
    success_count: int
    error_count: int


def create_notification(
    db: Session,
    user_id: int,
    type_: str,
    title: str,
    message: str,
    data: dict[str, Any] | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title,
        message=message,
        data_json=json.dumps(data) if data is not None else None,
        is_read=False,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def notify_import_completed(db: Session, completion: ImportCompletion) -> Notification | None:
    """Store a notification for the user who submitted the import.

    Returns ``None`` without writing when the job has no submitter.
    """
    if completion.user_id is None:
        return None

    name = completion.original_filename or f"#{completion.import_id}"
    if completion.status == IMPORT_PARTIAL:
        title = "Import Completed with Errors"
        message = (
            f'CSV import "{name}" completed with {completion.error_count} error(s). '
            f"{completion.success_count} row(s) imported successfully."
        )
    elif completion.error_count > 0:
        title = "Import Failed"
        message = f'CSV import "{name}" failed with {completion.error_count} error(s).'
    else:
        title = "Import Completed Successfully"
        message = (
            f'CSV import "{name}" completed successfully. '
            f"{completion.success_count} row(s) imported."
        )

    notification = create_notification(
        db,
        user_id=completion.user_id,
        type_=NOTIFICATION_TYPE_IMPORT,
        title=title,
        message=message,
        data={
            "importId": completion.import_id,
            "filename": completion.original_filename,
            "status": completion.status,
            "successCount": completion.success_count,
            "errorCount": completion.error_count,
            "totalRows": completion.total_rows,
        },
    )
    logger.info("Import %s notification sent to user %s: %s", completion.import_id, completion.user_id, title)
    return notification
