from __future__ import annotations

import io

import pytest

from sitetracker.exceptions import CsvFileError
from sitetracker.parsers.csv_parser import missing_columns, read_project_csv
from sitetracker.utils.constants import REQUIRED_COLUMNS, TEMPLATE_COLUMNS

HEADER = ",".join(TEMPLATE_COLUMNS)
ROW_1 = "UNDP-GI-0001,Free-WIFI for All,Hall 1,Raele,Itbayat,Batanes,District I,20.7,121.8,2024-04-29,Pending"
ROW_2 = "UNDP-GI-0002,Free-WIFI for All,Hall 2,,Basco,Batanes,,20.4,121.9,2024-05-01,Done"


def test_reads_rows_with_one_based_numbers() -> None:
    result = read_project_csv(f"{HEADER}\n{ROW_1}\n{ROW_2}\n".encode())

    assert result.headers == TEMPLATE_COLUMNS
    assert result.total_rows == 2
    assert [row.row_number for row in result.rows] == [1, 2]
    assert result.rows[0].site_code == "UNDP-GI-0001"
    assert result.rows[1].get("Barangay") == ""
    assert result.rows[1].get("Status") == "Done"


def test_bom_and_padded_headers_are_normalised() -> None:
    padded = ",".join(f" {col} " for col in TEMPLATE_COLUMNS)
    raw = b"\xef\xbb\xbf" + f"{padded}\n{ROW_1}\n".encode()

    result = read_project_csv(raw)

    assert result.headers == TEMPLATE_COLUMNS
    assert result.rows[0].site_code == "UNDP-GI-0001"


def test_cells_are_kept_as_trimmed_text() -> None:
    row = "UNDP-GI-0007, Free-WIFI for All ,0012,Raele,Itbayat, Batanes ,District I,20.70,121.80,2024-04-29,Pending"

    result = read_project_csv(f"{HEADER}\n{row}\n".encode())

    values = result.rows[0].values
    assert values["Site Name"] == "0012"
    assert values["Project Name"] == "Free-WIFI for All"
    assert values["Province"] == "Batanes"
    assert values["Latitude"] == "20.70"


def test_blank_lines_do_not_consume_row_numbers() -> None:
    result = read_project_csv(f"{HEADER}\n{ROW_1}\n\n\n{ROW_2}\n".encode())

    assert [row.row_number for row in result.rows] == [1, 2]
    assert result.rows[1].site_code == "UNDP-GI-0002"


def test_header_only_file_has_no_rows() -> None:
    result = read_project_csv(f"{HEADER}\n".encode())

    assert result.total_rows == 0
    assert result.rows == []


def test_accepts_file_objects_and_paths(tmp_path) -> None:
    payload = f"{HEADER}\n{ROW_1}\n".encode()
    path = tmp_path / "sites.csv"
    path.write_bytes(payload)

    assert read_project_csv(io.BytesIO(payload)).total_rows == 1
    assert read_project_csv(path).total_rows == 1


def test_empty_file_is_rejected() -> None:
    with pytest.raises(CsvFileError, match="empty"):
        read_project_csv(b"  \n")


def test_missing_required_columns_are_listed_in_schema_order() -> None:
    header = "Site Code,Project Name,Site Name,Municipality,Province,Date of Activation,Status"

    with pytest.raises(CsvFileError) as excinfo:
        read_project_csv(f"{header}\nUNDP-GI-0001,X,Y,Z,W,2024-01-01,Pending\n".encode())

    assert str(excinfo.value) == "Missing required columns: Latitude, Longitude"


def test_missing_columns_helper_ignores_extra_columns() -> None:
    assert missing_columns(REQUIRED_COLUMNS + ["Notes"]) == []
    assert missing_columns(["Site Code"]) == REQUIRED_COLUMNS[1:]


def test_non_utf8_file_is_rejected() -> None:
    raw = f"{HEADER}\n".encode() + "UNDP-GI-0001,Free-WIFI for All,Osmeña".encode("latin-1") + b"\n"

    with pytest.raises(CsvFileError, match="UTF-8"):
        read_project_csv(raw)


def test_ragged_row_is_rejected() -> None:
    with pytest.raises(CsvFileError, match="Failed to parse CSV file"):
        read_project_csv(f"{HEADER}\n{ROW_1}\n{ROW_2},extra,cells\n".encode())
