from __future__ import annotations

import json

from sitetracker.models import Notification
from sitetracker.services.notification_service import ImportCompletion, notify_import_completed


def _completion(user_id, status: str, success: int, errors: int) -> ImportCompletion:
    return ImportCompletion(
        import_id=12,
        user_id=user_id,
        original_filename="batanes.csv",
        status=status,
        total_rows=success + errors,
        success_count=success,
        error_count=errors,
    )


def test_partial_import_notification(db, editor) -> None:
    notification = notify_import_completed(db, _completion(editor.id, "Partial", 98, 2))

    assert notification.title == "Import Completed with Errors"
    assert notification.message == (
        'CSV import "batanes.csv" completed with 2 error(s). 98 row(s) imported successfully.'
    )
    assert notification.type == "import"
    assert json.loads(notification.data_json)["importId"] == 12
    assert notification.is_read is False


def test_failed_and_successful_titles(db, editor) -> None:
    failed = notify_import_completed(db, _completion(editor.id, "Failed", 0, 3))
    done = notify_import_completed(db, _completion(editor.id, "Completed", 5, 0))

    assert failed.title == "Import Failed"
    assert failed.message == 'CSV import "batanes.csv" failed with 3 error(s).'
    assert done.title == "Import Completed Successfully"
    assert db.query(Notification).count() == 2


def test_no_submitter_means_no_notification(db) -> None:
    assert notify_import_completed(db, _completion(None, "Completed", 1, 0)) is None
    assert db.query(Notification).count() == 0
