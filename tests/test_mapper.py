import pytest

from formloom.data.mapper import ColumnAutoMapper
from formloom.data.models import FieldDefinition


@pytest.fixture
def mapper():
    return ColumnAutoMapper()


def _fields(*specs):
    return [FieldDefinition(id=fid, label=label, type=ftype, required=req) for fid, label, ftype, req in specs]


def test_exact_match_after_normalization(mapper):
    fields = _fields(("f1", "First Name", "short_text", True))
    result = mapper.auto_map(["first_name"], fields)
    assert result.mapping == {"first_name": "f1"}
    assert result.suggestions[0].confidence == "high"
    assert result.unmapped_fields == []


def test_partial_and_word_overlap_tiers(mapper):
    fields = _fields(("f_email", "Email", "email", True), ("f_phone", "Phone Number", "phone", False))
    result = mapper.auto_map(["Work Email Address", "Number to call"], fields)
    assert result.mapping == {"Work Email Address": "f_email", "Number to call": "f_phone"}
    tiers = {s.source_column: s.confidence for s in result.suggestions}
    assert tiers == {"Work Email Address": "medium", "Number to call": "low"}


def test_exact_tier_beats_earlier_partial_candidate(mapper):
    fields = _fields(("f_full", "Full Name", "short_text", False), ("f_name", "Name", "short_text", False))
    result = mapper.auto_map(["Name"], fields)
    assert result.mapping == {"Name": "f_name"}


def test_unmatched_columns_and_required_fields_reported(mapper):
    fields = _fields(("f_email", "Email", "email", True), ("f_age", "Age", "number", False))
    result = mapper.auto_map(["Zip"], fields)
    assert result.mapping == {}
    assert result.unmapped_columns == ["Zip"]
    assert [f.id for f in result.unmapped_fields] == ["f_email"]


def test_file_fields_are_never_targets(mapper):
    fields = _fields(("f_cv", "Resume", "file_upload", False))
    result = mapper.auto_map(["Resume"], fields)
    assert result.mapping == {}
    assert result.unmapped_columns == ["Resume"]


def test_two_columns_may_map_to_the_same_field(mapper):
    fields = _fields(("f_email", "Email", "email", True))
    result = mapper.auto_map(["Email", "Backup Email"], fields)
    assert result.mapping == {"Email": "f_email", "Backup Email": "f_email"}


def test_punctuation_only_column_is_unmapped(mapper):
    fields = _fields(("f1", "Notes", "long_text", False))
    result = mapper.auto_map(["???"], fields)
    assert result.unmapped_columns == ["???"]


def test_auto_map_is_repeatable(mapper):
    fields = _fields(
        ("f_first", "First Name", "short_text", True),
        ("f_email", "Email", "email", True),
        ("f_phone", "Phone Number", "phone", False),
    )
    columns = ["first_name", "Work Email Address", "Number to call", "Notes"]

    first = mapper.auto_map(columns, fields)
    second = ColumnAutoMapper().auto_map(columns, fields)

    assert first.mapping == second.mapping
    assert first.suggestions == second.suggestions
    assert first.unmapped_columns == second.unmapped_columns == ["Notes"]
