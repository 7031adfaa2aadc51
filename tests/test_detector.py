import pytest

from formloom.data.detector import FieldDetector


def _detect(column, values):
    rows = [{column: v} for v in values]
    result = FieldDetector.detect([column], rows)
    return result.fields[0], result


def test_email_column_detected():
    field, _ = _detect("Email", ["a@x.com", "b@y.org", "c@z.net", "d@w.io", "e@v.co"])
    assert field.type == "email"
    assert field.confidence == 0.9
    assert field.required is True


def test_email_named_column_with_bad_data_falls_through():
    field, _ = _detect("Email", ["a@x.com", "nope", "still nope", "x", "y"])
    assert field.type != "email"


def test_phone_column_is_text_with_phone_suggestion():
    field, _ = _detect("Mobile", ["555-1234", "555-9876"])
    assert field.type == "text"
    assert field.confidence == 0.7
    assert field.suggestions[0].type == "phone"


def test_url_column_is_text_with_url_suggestion():
    field, _ = _detect("Website", ["https://a.com"])
    assert field.type == "text"
    assert field.suggestions[0].type == "url"


def test_date_column_detected():
    field, _ = _detect("Start Date", ["2024-01-15", "15/01/2024", "01/02/2024", "2024-03-01"])
    assert field.type == "date"
    assert field.confidence == 0.85


def test_two_boolean_values_become_checkbox():
    field, _ = _detect("Subscribed", ["yes", "no", "yes", "yes"])
    assert field.type == "checkbox"
    assert field.confidence == 0.9


def test_low_cardinality_column_becomes_dropdown_with_sorted_options():
    values = ["red", "green", "blue"] * 4
    field, _ = _detect("Colour", values)
    assert field.type == "dropdown"
    assert field.options == ["blue", "green", "red"]


def test_numeric_column_detected():
    field, _ = _detect("Amount", ["1", "2.5", "1,200", "7", "8", "9", "10", "11", "12", "13"])
    assert field.type == "number"


def test_long_text_becomes_textarea():
    field, _ = _detect("Notes", ["x" * 150, "y" * 120])
    assert field.type == "textarea"


def test_no_values_is_low_confidence_text_and_optional():
    field, result = _detect("Comment", [None, "", "  "])
    assert field.type == "text"
    assert field.confidence == 0.3
    assert field.required is False
    assert result.warnings == ['Column "Comment" has 3 empty values out of 3']


def test_only_sample_rows_are_inspected():
    rows = [{"Code": "a"} for _ in range(5)] + [{"Code": None}]
    result = FieldDetector.detect(["Code"], rows, sample_size=5)
    assert result.sample_size == 5
    assert result.total_rows == 6
    assert result.fields[0].required is True


def test_field_names_are_sanitized_and_unique():
    rows = [{"First Name": "a", "first-name": "b", "!!!": "c"}]
    result = FieldDetector.detect(["First Name", "first-name", "!!!"], rows)
    assert [f.name for f in result.fields] == ["first_name", "first_name_2", "field_3"]


@pytest.mark.parametrize(
    "filename,columns,expected",
    [
        ("customer_list.xlsx", ["Name"], "Customer List"),
        ("data_export.csv", ["id", "Customer Name"], "Customer Name Form"),
        ("", [], "Imported Form"),
    ],
)
def test_suggest_form_name(filename, columns, expected):
    assert FieldDetector.suggest_form_name(filename, columns) == expected
