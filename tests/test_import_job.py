from __future__ import annotations

import pytest

from sitetracker.exceptions import InvalidTransitionError
from sitetracker.models import CsvImport
from sitetracker.services.import_job import (
    ImportTracker,
    RowError,
    can_transition,
    check_transition,
    dump_errors,
    final_status,
    load_errors,
    progress_percent,
    transition,
)


def test_final_status_follows_error_count() -> None:
    assert final_status(total_rows=100, error_count=0) == "Completed"
    assert final_status(total_rows=100, error_count=2) == "Partial"
    assert final_status(total_rows=100, error_count=100) == "Failed"
    assert final_status(total_rows=0, error_count=0) == "Completed"


def test_only_forward_transitions_are_allowed() -> None:
    assert can_transition("Pending", "Processing")
    assert can_transition("Pending", "Failed")
    assert can_transition("Processing", "Partial")
    assert not can_transition("Pending", "Completed")
    assert not can_transition("Processing", "Pending")

    for terminal in ("Completed", "Partial", "Failed"):
        with pytest.raises(InvalidTransitionError):
            check_transition(terminal, "Processing")


def test_transition_updates_the_job_row() -> None:
    job = CsvImport(filename="a.csv", status="Pending")

    transition(job, "Processing")
    assert job.status == "Processing"

    transition(job, "Completed")
    with pytest.raises(InvalidTransitionError, match="Completed to Failed"):
        transition(job, "Failed")
    assert job.status == "Completed"


def test_progress_percent_rounds_down() -> None:
    assert progress_percent(0, 3) == 0
    assert progress_percent(2, 3) == 66
    assert progress_percent(3, 3) == 100
    assert progress_percent(0, 0) == 100


def test_tracker_counts_actions_and_errors() -> None:
    tracker = ImportTracker(import_id=1, total_rows=5)

    tracker.record_success("created")
    tracker.record_success("updated")
    tracker.record_success("skipped")
    tracker.record_error(RowError(4, "UNDP-GI-0004", ["Status is required"]))
    tracker.record_error(RowError(5, "UNDP-GI-0005", ["exists"], conflict=True))

    assert tracker.processed_rows == 5
    assert tracker.success_count + tracker.error_count == tracker.total_rows
    assert (tracker.created_count, tracker.updated_count, tracker.skipped_count) == (1, 1, 1)
    assert tracker.conflict_count == 1
    assert tracker.progress_event() == {
        "importId": 1,
        "progress": 100,
        "totalRows": 5,
        "processedRows": 5,
        "successCount": 3,
        "errorCount": 2,
    }


def test_unknown_action_is_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown row action"):
        ImportTracker(import_id=1, total_rows=1).record_success("merged")


def test_fail_counts_unreached_rows_as_errors() -> None:
    tracker = ImportTracker(import_id=3, total_rows=10)
    for _ in range(4):
        tracker.record_success("created")
    tracker.record_error(RowError(5, "UNDP-GI-0005", ["bad"]))

    tracker.fail("Processing interrupted")

    assert tracker.success_count == 4
    assert tracker.error_count == 6
    assert tracker.processed_rows == 5
    assert [(e.row_number, e.messages) for e in tracker.errors] == [(0, ["Processing interrupted"])]


def test_apply_to_copies_counts_and_errors() -> None:
    tracker = ImportTracker(import_id=1, total_rows=2)
    tracker.record_success("created")
    tracker.record_error(RowError(2, "", ["Site Code is required"]))
    job = CsvImport(filename="a.csv", status="Processing")

    tracker.apply_to(job)

    assert (job.total_rows, job.processed_rows, job.success_count, job.error_count) == (2, 2, 1, 1)
    assert job.created_count == 1
    assert load_errors(job.errors_json) == [RowError(2, "", ["Site Code is required"])]


def test_errors_json_uses_camel_case_keys() -> None:
    payload = dump_errors([RowError(7, "UNDP-GI-0007", ["a", "b"], conflict=True)])

    assert payload == (
        '[{"rowNumber": 7, "siteCode": "UNDP-GI-0007", "errors": ["a", "b"], "conflict": true}]'
    )
    assert load_errors(None) == []
    assert load_errors("") == []
