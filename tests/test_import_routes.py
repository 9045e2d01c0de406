from __future__ import annotations

import json
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from sitetracker.config import get_settings
from sitetracker.main import app, build_import_pipeline
from sitetracker.models import CsvImport, ProjectSite
from sitetracker.services.import_job import RowError, dump_errors
from sitetracker.utils.constants import TEMPLATE_COLUMNS
from sitetracker.utils.security import create_access_token


@pytest.fixture()
def client(session_factory, test_settings, reference_data, inline_executor) -> Iterator[TestClient]:
    # No lifespan: the pipeline is wired by hand with an inline executor
    build_import_pipeline(app, session_factory, test_settings, executor=inline_executor)
    app.dependency_overrides[get_settings] = lambda: test_settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth(user) -> dict[str, str]:
    token = create_access_token(user.id, user.username, user.role)
    return {"Authorization": f"Bearer {token}"}


def _upload(client, path: str, payload: bytes, user, filename: str = "sites.csv", **form):
    return client.post(
        f"/api/import{path}",
        files={"file": (filename, payload, "text/csv")},
        data=form,
        headers=_auth(user),
    )


def _history_total(client, user) -> int:
    return client.get("/api/import/", headers=_auth(user)).json()["pagination"]["total"]


def test_submit_queues_job_and_status_reflects_result(
    client, editor, site_row, make_csv, test_settings
) -> None:
    response = _upload(client, "/csv", make_csv([site_row(1), site_row(2), site_row(3)]), editor)

    assert response.status_code == 202
    body = response.json()
    assert body["filename"] == "sites.csv"
    assert body["totalRows"] == 3
    assert body["status"] == "Pending"

    status = client.get(f"/api/import/{body['importId']}/status", headers=_auth(editor))
    assert status.status_code == 200
    snapshot = status.json()
    assert snapshot["status"] == "Completed"
    assert snapshot["progress"] == 100
    assert snapshot["createdCount"] == 3
    assert snapshot["errors"] == []
    assert snapshot["importedByName"] == "Editor User"
    assert list(test_settings.UPLOADS_DIR.rglob("*_sites.csv"))


def test_submit_rejects_non_csv_files(client, editor, site_row, make_csv) -> None:
    response = _upload(client, "/csv", make_csv([site_row(1)]), editor, filename="sites.xlsx")

    assert response.status_code == 400
    assert response.json()["detail"] == "Only .csv files are accepted."


def test_submit_rejects_missing_columns_without_creating_a_job(client, editor) -> None:
    response = _upload(client, "/csv", b"Site Code,Status\nUNDP-GI-0001,Pending\n", editor)

    assert response.status_code == 400
    assert response.json()["detail"].startswith("Missing required columns: Project Name")
    assert _history_total(client, editor) == 0


def test_submit_while_shutting_down_leaves_nothing_behind(
    client, session_factory, editor, site_row, make_csv, test_settings
) -> None:
    stopped = ThreadPoolExecutor(max_workers=1)
    stopped.shutdown()
    build_import_pipeline(app, session_factory, test_settings, executor=stopped)

    response = _upload(client, "/csv", make_csv([site_row(1)]), editor)

    assert response.status_code == 503
    assert _history_total(client, editor) == 0
    assert list(test_settings.UPLOADS_DIR.rglob("*.csv")) == []


def test_submit_rejects_oversized_files(client, editor, test_settings) -> None:
    payload = b"x" * (test_settings.MAX_UPLOAD_BYTES + 1)

    response = _upload(client, "/csv", payload, editor)

    assert response.status_code == 413


def test_submit_without_file_is_a_bad_request(client, editor) -> None:
    response = client.post("/api/import/csv", headers=_auth(editor))

    assert response.status_code == 400


def test_incomplete_resolution_map_is_rejected_up_front(client, editor, site_row, make_csv) -> None:
    _upload(client, "/csv", make_csv([site_row(1), site_row(2)]), editor)
    resolutions = json.dumps([{"rowIndex": 1, "action": "skip"}])

    response = _upload(
        client,
        "/csv",
        make_csv([site_row(1), site_row(2, site_name="Renamed"), site_row(3)]),
        editor,
        conflictsResolution=resolutions,
    )

    assert response.status_code == 409
    assert response.json()["detail"]["unresolvedRows"] == [2]
    assert _history_total(client, editor) == 1


def test_complete_resolution_map_is_applied(client, db, editor, site_row, make_csv) -> None:
    _upload(client, "/csv", make_csv([site_row(1), site_row(2)]), editor)
    resolutions = json.dumps(
        [{"rowIndex": 1, "action": "skip"}, {"rowIndex": 2, "action": "override"}]
    )

    response = _upload(
        client,
        "/csv",
        make_csv([site_row(1, site_name="Kept?"), site_row(2, site_name="Renamed")]),
        editor,
        conflictsResolution=resolutions,
    )

    assert response.status_code == 202
    snapshot = client.get(
        f"/api/import/{response.json()['importId']}/status", headers=_auth(editor)
    ).json()
    assert (snapshot["skippedCount"], snapshot["updatedCount"]) == (1, 1)
    db.expire_all()
    names = {site.site_code: site.site_name for site in db.query(ProjectSite).all()}
    assert names == {"UNDP-GI-0001": "Barangay Hall 1", "UNDP-GI-0002": "Renamed"}


def test_malformed_resolution_map_is_unprocessable(client, editor, site_row, make_csv) -> None:
    response = _upload(
        client,
        "/csv",
        make_csv([site_row(1)]),
        editor,
        conflictsResolution='[{"rowIndex": 1, "action": "merge"}]',
    )

    assert response.status_code == 422
    assert _history_total(client, editor) == 0


def test_skip_duplicates_form_flag(client, editor, site_row, make_csv) -> None:
    _upload(client, "/csv", make_csv([site_row(1)]), editor)

    response = _upload(
        client, "/csv", make_csv([site_row(1, site_name="Renamed")]), editor, skipDuplicates="false"
    )

    snapshot = client.get(
        f"/api/import/{response.json()['importId']}/status", headers=_auth(editor)
    ).json()
    assert snapshot["status"] == "Failed"
    assert snapshot["conflictCount"] == 1
    assert snapshot["errors"][0]["conflict"] is True


def test_detect_conflicts_lists_differences(client, editor, site_row, make_csv) -> None:
    _upload(client, "/csv", make_csv([site_row(1)]), editor)

    response = _upload(
        client,
        "/detect-conflicts",
        make_csv([site_row(1, status="Done"), site_row(2)]),
        editor,
    )

    assert response.status_code == 200
    body = response.json()
    assert (body["totalRows"], body["conflictCount"], body["newEntryCount"]) == (2, 1, 1)
    conflict = body["conflicts"][0]
    assert conflict["rowNumber"] == 1
    assert conflict["conflictType"] == "potential"
    assert conflict["differences"] == ["status"]
    assert conflict["existing"]["status"] == "Pending"
    assert conflict["incoming"]["status"] == "Done"
    assert conflict["existing"]["activationDate"] == "2024-04-29"
    assert body["newEntries"] == [{"rowNumber": 2, "siteCode": "UNDP-GI-0002", "siteName": "Barangay Hall 2"}]


def test_validate_reports_row_errors_without_writing(client, db, editor, site_row, make_csv) -> None:
    response = _upload(
        client, "/validate", make_csv([site_row(1), site_row(2, latitude="200")]), editor
    )

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is False
    assert body["totalRows"] == 2
    assert body["errors"] == [
        {
            "rowNumber": 2,
            "siteCode": "UNDP-GI-0002",
            "errors": ["Latitude must be a number between -90 and 90"],
            "conflict": False,
        }
    ]
    assert body["headers"] == TEMPLATE_COLUMNS
    assert db.query(ProjectSite).count() == 0
    assert _history_total(client, editor) == 0


def test_template_download(client, editor) -> None:
    response = client.get("/api/import/template", headers=_auth(editor))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "project_import_template.csv" in response.headers["content-disposition"]
    lines = response.text.splitlines()
    assert lines[0] == ",".join(TEMPLATE_COLUMNS)
    assert lines[1].startswith("UNDP-TEST-001,Free-WIFI for All")


def test_history_is_paginated_newest_first(client, editor, site_row, make_csv) -> None:
    ids = [
        _upload(client, "/csv", make_csv([site_row(n)]), editor).json()["importId"]
        for n in (1, 2, 3)
    ]

    response = client.get("/api/import/?page=1&limit=2", headers=_auth(editor))

    body = response.json()
    assert [item["id"] for item in body["imports"]] == [ids[2], ids[1]]
    assert body["imports"][0]["importedByName"] == "Editor User"
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}


def test_error_report_download(client, editor, site_row, make_csv) -> None:
    response = _upload(
        client, "/csv", make_csv([site_row(1), site_row(2, status="")]), editor, filename="batanes sites.csv"
    )
    import_id = response.json()["importId"]

    download = client.get(f"/api/import/{import_id}/download", headers=_auth(editor))

    assert download.status_code == 200
    assert 'filename="batanes_sites_errors.csv"' in download.headers["content-disposition"]
    assert download.text.splitlines() == [
        "Row Number,Site Code,Error Messages",
        '"2","UNDP-GI-0002","Status is required"',
    ]


def test_error_report_needs_a_finished_job_with_errors(client, db, editor, site_row, make_csv) -> None:
    clean_id = _upload(client, "/csv", make_csv([site_row(1)]), editor).json()["importId"]
    running = CsvImport(filename="x.csv", original_filename="x.csv", status="Processing")
    db.add(running)
    db.commit()

    assert client.get(f"/api/import/{clean_id}/download", headers=_auth(editor)).status_code == 409
    assert client.get(f"/api/import/{running.id}/download", headers=_auth(editor)).status_code == 409
    assert client.get("/api/import/999/download", headers=_auth(editor)).status_code == 404


def test_delete_only_finished_jobs(client, db, editor, site_row, make_csv, test_settings) -> None:
    finished_id = _upload(client, "/csv", make_csv([site_row(1)]), editor).json()["importId"]
    pending = CsvImport(filename="x.csv", original_filename="x.csv", status="Pending")
    db.add(pending)
    db.commit()

    assert client.delete(f"/api/import/{pending.id}", headers=_auth(editor)).status_code == 409

    response = client.delete(f"/api/import/{finished_id}", headers=_auth(editor))
    assert response.status_code == 200
    assert response.json()["message"] == "Import job deleted successfully"
    assert client.get(f"/api/import/{finished_id}/status", headers=_auth(editor)).status_code == 404
    assert not list(test_settings.UPLOADS_DIR.rglob("*_sites.csv"))


def test_events_stream_ends_with_terminal_event(client, editor, site_row, make_csv) -> None:
    import_id = _upload(client, "/csv", make_csv([site_row(1)]), editor).json()["importId"]

    response = client.get(f"/api/import/{import_id}/events", headers=_auth(editor))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    event, data = response.text.strip().split("\n")
    assert event == "event: import:complete"
    payload = json.loads(data.removeprefix("data: "))
    assert payload["importId"] == import_id
    assert payload["status"] == "Completed"
    assert payload["results"]["createdCount"] == 1


def test_events_for_unknown_job_is_not_found(client, editor) -> None:
    assert client.get("/api/import/999/events", headers=_auth(editor)).status_code == 404


def test_status_truncates_inline_errors(client, db, editor, test_settings) -> None:
    errors = [RowError(n, f"UNDP-GI-{n:04d}", ["Status is required"]) for n in range(1, 151)]
    job = CsvImport(
        filename="x.csv",
        original_filename="x.csv",
        status="Failed",
        total_rows=150,
        processed_rows=150,
        error_count=150,
        errors_json=dump_errors(errors),
    )
    db.add(job)
    db.commit()

    snapshot = client.get(f"/api/import/{job.id}/status", headers=_auth(editor)).json()

    assert len(snapshot["errors"]) == test_settings.IMPORT_STATUS_ERROR_LIMIT
    assert snapshot["errorCountTotal"] == 150
    assert snapshot["errorsTruncated"] is True


def test_status_after_fatal_failure_separates_failed_rows_from_report_entries(
    client, db, editor
) -> None:
    errors = [
        RowError(2, "UNDP-GI-0002", ["Status is required"]),
        RowError(0, "", ["Database error: disk I/O error"]),
    ]
    job = CsvImport(
        filename="x.csv",
        original_filename="x.csv",
        status="Failed",
        total_rows=10,
        processed_rows=4,
        success_count=3,
        error_count=7,
        errors_json=dump_errors(errors),
    )
    db.add(job)
    db.commit()

    snapshot = client.get(f"/api/import/{job.id}/status", headers=_auth(editor)).json()

    assert snapshot["successCount"] + snapshot["errorCount"] == snapshot["totalRows"]
    assert snapshot["errorCount"] == 7
    assert snapshot["errorCountTotal"] == 2
    assert snapshot["errorsTruncated"] is False
    assert [e["rowNumber"] for e in snapshot["errors"]] == [2, 0]


def test_viewers_and_anonymous_callers_are_refused(client, viewer, site_row, make_csv) -> None:
    payload = make_csv([site_row(1)])

    assert _upload(client, "/csv", payload, viewer).status_code == 403
    assert client.get("/api/import/").status_code == 401
