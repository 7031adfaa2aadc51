from datetime import date, datetime

import pytest

from formloom.data.models import FieldDefinition
from formloom.data.transformer import parse_date, parse_number, transform


def _field(ftype, **kwargs):
    return FieldDefinition(id="f", label="F", type=ftype, **kwargs)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1,234.56", 1234.56),
        ("1.234,56", 1234.56),
        ("12,5", 12.5),
        ("1,234", 1234.0),
        ("€ 99", 99.0),
        ("-3", -3.0),
        (7, 7.0),
        ("abc", None),
        ("inf", None),
        ("1.2.3", None),
    ],
)
def test_parse_number(raw, expected):
    assert parse_number(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("2024-01-15", datetime(2024, 1, 15)),
        ("01/02/2024", datetime(2024, 1, 2)),
        ("15/01/2024", datetime(2024, 1, 15)),
        ("15-01-2024", datetime(2024, 1, 15)),
        ("15.01.2024", datetime(2024, 1, 15)),
        (date(2024, 5, 6), datetime(2024, 5, 6)),
        ("2024-02-30", None),
        ("next tuesday", None),
    ],
)
def test_parse_date(raw, expected):
    assert parse_date(raw) == expected


def test_empty_values_transform_to_none():
    assert transform(_field("number"), "  ").value is None
    assert transform(_field("number"), None).success is True


def test_number_transform():
    assert transform(_field("currency"), "$1,234.50").value == 1234.5
    result = transform(_field("number"), "twelve")
    assert result.success is False
    assert result.error == "Invalid number format"


def test_date_transform_returns_iso_instant():
    assert transform(_field("date"), "15/01/2024").value == "2024-01-15T00:00:00.000Z"
    assert transform(_field("date"), "soon").error == "Invalid date format"


@pytest.mark.parametrize("raw,expected", [("Yes", True), ("y", True), ("ON", True), ("0", False), ("off", False)])
def test_checkbox_transform(raw, expected):
    assert transform(_field("checkbox"), raw).value is expected


def test_checkbox_rejects_unknown_token():
    result = transform(_field("checkbox"), "perhaps")
    assert result.success is False


def test_multi_select_splits_on_commas_and_semicolons():
    assert transform(_field("multi_select"), "a, b;c ;").value == ["a", "b", "c"]


def test_text_is_trimmed():
    assert transform(_field("short_text"), "  hello ").value == "hello"
