from __future__ import annotations

from sitetracker.services.file_storage import (
    delete_upload,
    resolve_upload_path,
    sanitize_filename,
    save_upload,
)


def test_upload_is_stored_under_year_month_and_user(tmp_path) -> None:
    stored = save_upload(b"a,b\n", "my sites (v2).csv", tmp_path, "editor")

    prefix, year, month, user, name = stored.relative_path.split("/")
    assert prefix == "imports"
    assert len(year) == 4 and len(month) == 2
    assert user == "editor"
    assert name.endswith("_my_sites_v2.csv")
    assert resolve_upload_path(stored.relative_path, tmp_path) == stored.path
    assert stored.path.read_bytes() == b"a,b\n"


def test_unusable_names_fall_back_to_defaults(tmp_path) -> None:
    stored = save_upload(b"", "???", tmp_path, "")

    assert stored.path.name.endswith("_upload.csv")
    assert stored.path.parent.name == "anonymous"
    assert sanitize_filename("a b/c.csv") == "a_bc.csv"


def test_delete_upload_reports_missing_files(tmp_path) -> None:
    stored = save_upload(b"x", "s.csv", tmp_path)

    assert delete_upload(stored.relative_path, tmp_path) is True
    assert delete_upload(stored.relative_path, tmp_path) is False
