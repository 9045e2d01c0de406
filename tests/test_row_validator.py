from __future__ import annotations

from datetime import date
from decimal import Decimal

from sitetracker.parsers.row_validator import RowValidator, parse_date, parse_decimal


def test_valid_row_produces_typed_record(site_row) -> None:
    check = RowValidator().validate(site_row(9, site_code="UNDP-GI-0009A"), row_number=9)

    assert check.ok
    record = check.record
    assert record is not None
    assert record.row_number == 9
    assert record.site_code == "UNDP-GI-0009A"
    assert record.latitude == Decimal("20.728794")
    assert record.longitude == Decimal("121.804235")
    assert record.activation_date == date(2024, 4, 29)
    assert record.barangay_name == "Raele"
    assert record.district_name == "District I"


def test_blank_optional_columns_become_none(site_row) -> None:
    check = RowValidator().validate(site_row(barangay="", district=""), row_number=1)

    assert check.ok
    assert check.record.barangay_name is None
    assert check.record.district_name is None


def test_every_violation_is_reported_at_once(site_row) -> None:
    values = site_row(site_code="", site_name="", latitude="abc", status="")

    check = RowValidator().validate(values, row_number=4)

    assert not check.ok
    assert check.record is None
    assert check.errors == [
        "Site Code is required",
        "Site Name is required",
        "Latitude must be a number between -90 and 90",
        "Status is required",
    ]


def test_site_code_format_is_enforced(site_row) -> None:
    check = RowValidator().validate(site_row(site_code="undp-gi-1"), row_number=1)

    assert check.errors == [
        'Site Code "undp-gi-1" does not match expected format [PREFIX]-[TYPE]-[NUMBER][SUFFIX]'
    ]


def test_coordinates_outside_range_are_rejected(site_row) -> None:
    check = RowValidator().validate(site_row(latitude="90.5", longitude="-181"), row_number=1)

    assert check.errors == [
        "Latitude must be a number between -90 and 90",
        "Longitude must be a number between -180 and 180",
    ]


def test_coordinate_bounds_are_inclusive(site_row) -> None:
    check = RowValidator().validate(site_row(latitude="-90", longitude="180"), row_number=1)

    assert check.ok


def test_non_finite_coordinates_are_rejected() -> None:
    assert parse_decimal("NaN") is None
    assert parse_decimal("inf") is None
    assert parse_decimal("") is None
    assert parse_decimal(" 12.5 ") == Decimal("12.5")


def test_status_must_match_exactly(site_row) -> None:
    validator = RowValidator()

    assert validator.validate(site_row(status="In Progress"), row_number=1).ok
    check = validator.validate(site_row(status="done"), row_number=1)
    assert check.errors == ["Status must be one of: Pending, In Progress, Done, Cancelled, On Hold"]


def test_activation_date_accepts_spreadsheet_formats() -> None:
    expected = date(2024, 4, 29)

    assert parse_date("2024-04-29") == expected
    assert parse_date("04/29/2024") == expected
    assert parse_date("29-Apr-2024") == expected
    assert parse_date("April 29, 2024") == expected
    assert parse_date("2024-04-29T08:30:00") == expected


def test_unparseable_activation_date_is_an_error(site_row) -> None:
    validator = RowValidator()

    missing = validator.validate(site_row(activation_date=""), row_number=1)
    invalid = validator.validate(site_row(activation_date="2024-13-45"), row_number=1)

    assert missing.errors == ["Date of Activation is required"]
    assert invalid.errors == ["Date of Activation must be a valid date"]
