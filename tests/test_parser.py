from datetime import datetime

import pytest

from conftest import build_xlsx
from formloom.data.parser import TabularParser, format_number, normalize_column_name
from formloom.exceptions import ParseError


def test_parse_xlsx_first_sheet_header_and_rows():
    content = build_xlsx(
        [
            ["Name", "Age", "Joined", "Active"],
            ["Ada", 36, datetime(2024, 1, 15), True],
            ["Linus", 28.5, None, False],
        ]
    )
    table = TabularParser.parse(content, "people.xlsx")

    assert table.columns == ["Name", "Age", "Joined", "Active"]
    assert table.row_count == 2
    assert table.rows[0] == {"Name": "Ada", "Age": "36", "Joined": "2024-01-15T00:00:00.000Z", "Active": "TRUE"}
    assert table.rows[1]["Age"] == "28.5"
    assert table.rows[1]["Joined"] is None
    assert table.rows[1]["Active"] == "FALSE"


def test_xlsx_cells_keep_their_display_format():
    content = build_xlsx(
        [["Zip", "Share", "Price", "Plain"], [1234, 0.15, 1234.5, 7]],
        number_formats={"A2": "00000", "B2": "0%", "C2": "#,##0.00"},
    )
    table = TabularParser.parse(content, "orders.xlsx")
    assert table.rows[0] == {"Zip": "01234", "Share": "15%", "Price": "1,234.50", "Plain": "7"}


@pytest.mark.parametrize(
    "value, number_format, expected",
    [
        (42, "000000", "000042"),
        (0.125, "0.0%", "12.5%"),
        (2.5, "0", "3"),
        (3.1, "0.0#", "3.1"),
        (-1500, "#,##0;[Red]-#,##0", "-1,500"),
        (9.99, '"$"#,##0.00', "$9.99"),
        (0, "#", "0"),
    ],
)
def test_format_number_plain_formats(value, number_format, expected):
    assert format_number(value, number_format) == expected


@pytest.mark.parametrize("number_format", ["General", None, "yyyy-mm-dd", "0.00E+00", "@", "# ?/?"])
def test_format_number_leaves_other_formats_alone(number_format):
    assert format_number(45000, number_format) is None


def test_parse_drops_blank_data_rows():
    content = build_xlsx([["Name", "City"], ["Ada", "London"], [None, None], ["Grace", "NYC"]])
    table = TabularParser.parse(content, "people.xlsx")
    assert table.columns == ["Name", "City"]
    assert [r["Name"] for r in table.rows] == ["Ada", "Grace"]


def test_row_one_is_the_header_even_when_blank():
    table = TabularParser.parse(b",\nName,City\nAda,London\n", "people.csv")
    assert table.columns == ["Column_1", "Column_2"]
    assert table.rows[0] == {"Column_1": "Name", "Column_2": "City"}


def test_blank_header_cells_get_positional_names():
    content = build_xlsx([["Name", None, "City"], ["Ada", "x", "London"]])
    table = TabularParser.parse(content, "people.xlsx")
    assert table.columns == ["Name", "Column_2", "City"]


def test_duplicate_headers_rejected():
    content = build_xlsx([["Email", "Email"], ["a@b.co", "c@d.co"]])
    with pytest.raises(ParseError, match="Duplicate column names found: Email"):
        TabularParser.parse(content, "dupes.xlsx")


def test_header_only_file_rejected():
    content = build_xlsx([["Name", "Email"]])
    with pytest.raises(ParseError, match="no data rows"):
        TabularParser.parse(content, "empty.xlsx")


def test_empty_payload_rejected():
    with pytest.raises(ParseError):
        TabularParser.parse(b"", "empty.csv")


def test_unreadable_workbook_wrapped_as_parse_error():
    with pytest.raises(ParseError, match="Failed to parse file"):
        TabularParser.parse(b"PK\x03\x04not really a zip", "broken.xlsx")


def test_parse_csv_with_semicolons_and_bom():
    content = "\ufeffName;Score\nAda;1,5\nGrace;2\n".encode("utf-8")
    table = TabularParser.parse(content, "scores.csv")
    assert table.columns == ["Name", "Score"]
    assert table.rows == [{"Name": "Ada", "Score": "1,5"}, {"Name": "Grace", "Score": "2"}]


def test_preview_limited_to_five_rows():
    rows = [["n"]] + [[i] for i in range(1, 9)]
    table = TabularParser.parse(build_xlsx(rows), "n.xlsx")
    assert table.row_count == 8
    assert len(table.preview) == 5


@pytest.mark.parametrize(
    "content,filename,expected",
    [
        (b"PK\x03\x04rest", None, "xlsx"),
        (b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1rest", None, "xls"),
        (b"a,b\n1,2\n", None, "csv"),
        (b"a,b\n1,2\n", "DATA.CSV", "csv"),
    ],
)
def test_detect_format(content, filename, expected):
    assert TabularParser.detect_format(content, filename) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("First_Name", "first name"),
        ("  E-mail  Address ", "e mail address"),
        ("Café (EUR)", "cafe eur"),
        (None, ""),
    ],
)
def test_normalize_column_name(raw, expected):
    assert normalize_column_name(raw) == expected
