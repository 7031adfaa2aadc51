import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from formloom.data.dto import SKIP_COLUMN, ColumnMapping, MappingValidation, RowError, ValidationResult
from formloom.data.models import FieldDefinition, FormDefinition
from formloom.data.transformer import (
    is_boolean_token,
    is_empty,
    parse_date,
    parse_number,
    split_multi_value,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}$", re.IGNORECASE)
PHONE_PATTERN = re.compile(r"^[+]?[(]?[0-9]{1,4}[)]?[-\s.]?[(]?[0-9]{1,4}[)]?[-\s.]?[0-9]{1,9}$")

DEFAULT_ERROR_LIMIT = 100


@dataclass
class CellIssue:
    error: str
    suggestion: Optional[str] = None


def mapped_targets(mapping: ColumnMapping) -> List[str]:
    return [field_id for field_id in mapping.values() if field_id and field_id != SKIP_COLUMN]


def validate_mapping(mapping: ColumnMapping, target_fields: Iterable[FieldDefinition]) -> MappingValidation:
    """
    Structural gate run before any row is looked at: every required importable
    field needs a column, and no field may be fed by two columns.
    """
    fields = list(target_fields)
    targets = mapped_targets(mapping)
    target_set = set(targets)
    errors: List[str] = []

    unmapped_required = [f for f in fields if f.required and f.is_importable and f.id not in target_set]
    if unmapped_required:
        errors.append(f"Required fields not mapped: {', '.join(f.label for f in unmapped_required)}")

    labels = {f.id: f.label for f in fields}
    duplicates = [labels.get(field_id, field_id) for field_id, count in Counter(targets).items() if count > 1]
    if duplicates:
        errors.append(f"Multiple columns mapped to same field: {', '.join(duplicates)}")

    return MappingValidation(is_valid=not errors, errors=errors)


def _option_values(field: FieldDefinition) -> List[str]:
    return [opt.value for opt in field.options]


def _bounded_integer(value: Any, low: float, high: float) -> bool:
    number = parse_number(value)
    return number is not None and number.is_integer() and low <= number <= high


def _format_bound(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def check_type(field: FieldDefinition, value: Any) -> Optional[CellIssue]:
    """Type/format rule for a non-empty cell."""
    kind = field.type

    if kind in ("number", "currency"):
        number = parse_number(value)
        if number is None:
            return CellIssue("Must be a valid number", "Enter a numeric value (e.g., 123 or 45.99)")
        min_rule = field.rule("min_value")
        if min_rule and number < min_rule.value:
            return CellIssue(min_rule.message or f"Must be at least {_format_bound(min_rule.value)}")
        max_rule = field.rule("max_value")
        if max_rule and number > max_rule.value:
            return CellIssue(max_rule.message or f"Must be at most {_format_bound(max_rule.value)}")

    elif kind == "email":
        if not EMAIL_PATTERN.match(str(value).strip()):
            return CellIssue("Must be a valid email address", "Format: user@example.com")

    elif kind == "phone":
        if not PHONE_PATTERN.match(str(value).strip()):
            return CellIssue("Must be a valid phone number", "Format: +1-555-1234 or (555) 123-4567")

    elif kind == "url":
        parsed = urlparse(str(value).strip())
        if not (parsed.scheme and parsed.netloc):
            return CellIssue("Must be a valid URL", "Format: https://example.com")

    elif kind in ("date", "datetime"):
        if parse_date(value) is None:
            return CellIssue("Must be a valid date", "Format: YYYY-MM-DD or MM/DD/YYYY")

    elif kind == "checkbox":
        if not is_boolean_token(value):
            return CellIssue("Must be a boolean value", "Use: true/false, yes/no, 1/0")

    elif kind in ("dropdown", "radio"):
        options = _option_values(field)
        if options and str(value).strip().lower() not in {o.lower() for o in options}:
            listed = ", ".join(options)
            return CellIssue(f"Must be one of: {listed}", f"Valid values: {listed}")

    elif kind == "multi_select":
        options = _option_values(field)
        if options:
            allowed = {o.lower() for o in options}
            invalid = [v for v in split_multi_value(value) if v.lower() not in allowed]
            if invalid:
                return CellIssue(f"Invalid options: {', '.join(invalid)}", f"Valid values: {', '.join(options)}")

    elif kind == "rating":
        top = field.max_rating or 5
        if not _bounded_integer(value, 1, top):
            return CellIssue(f"Must be a whole number between 1 and {top}")

    elif kind == "scale":
        low = field.min_value if field.min_value is not None else 1
        high = field.max_value if field.max_value is not None else 10
        if not _bounded_integer(value, low, high):
            return CellIssue(f"Must be a whole number between {_format_bound(low)} and {_format_bound(high)}")

    return None


def check_length(field: FieldDefinition, value: Any) -> Optional[CellIssue]:
    length = len(str(value))
    min_rule = field.rule("min_length")
    if min_rule and length < min_rule.value:
        return CellIssue(min_rule.message or f"Must be at least {_format_bound(min_rule.value)} characters")
    max_rule = field.rule("max_length")
    if max_rule and length > max_rule.value:
        return CellIssue(max_rule.message or f"Must be at most {_format_bound(max_rule.value)} characters")
    return None


def validate_cell(field: FieldDefinition, value: Any, row_number: int) -> Optional[RowError]:
    """Required check, then type rule, then length rules; first failure wins."""
    if is_empty(value):
        if field.required:
            return RowError(
                row=row_number,
                field=field.label,
                field_id=field.id,
                value=value,
                error=f"{field.label} is required",
                suggestion="Provide a value for this field",
            )
        return None

    issue = check_type(field, value) or check_length(field, value)
    if issue is None:
        return None
    return RowError(
        row=row_number,
        field=field.label,
        field_id=field.id,
        value=value,
        error=issue.error,
        suggestion=issue.suggestion,
    )


def resolve_mapping(form: FormDefinition, mapping: ColumnMapping) -> Dict[str, FieldDefinition]:
    """Column -> importable field for every usable mapping entry."""
    resolved: Dict[str, FieldDefinition] = {}
    for column, field_id in mapping.items():
        if not field_id or field_id == SKIP_COLUMN:
            continue
        field = form.field_by_id(field_id)
        if field is None or not field.is_importable:
            continue
        resolved[column] = field
    return resolved


def quick_validation(
    rows: List[Dict[str, Any]],
    form: FormDefinition,
    mapping: ColumnMapping,
    error_limit: int = DEFAULT_ERROR_LIMIT,
) -> ValidationResult:
    """
    Exhaustive per-cell check of every row against the mapped fields.
    Nothing is mutated; the returned error list is capped at ``error_limit``.
    """
    warnings: List[str] = []
    targets = set(mapped_targets(mapping))

    for field in form.importable_fields:
        if field.required and field.id not in targets:
            warnings.append(f'Required field "{field.label}" is not mapped and will cause import errors')

    skipped_fields = [f.label for f in form.fields if not f.is_importable]
    if skipped_fields:
        warnings.append(f"File upload fields ({', '.join(skipped_fields)}) will be skipped during import")

    unknown = sorted(field_id for field_id in targets if form.field_by_id(field_id) is None)
    if unknown:
        warnings.append(f"Mapping references unknown fields that will be ignored: {', '.join(unknown)}")

    resolved = resolve_mapping(form, mapping)
    errors: List[RowError] = []
    for index, row in enumerate(rows):
        row_number = index + 1
        for column, field in resolved.items():
            error = validate_cell(field, row.get(column), row_number)
            if error:
                errors.append(error)

    invalid_rows = len({e.row for e in errors})
    logger.info(
        "quick validation finished",
        extra={"form_id": form.id, "rows": len(rows), "invalid_rows": invalid_rows, "errors": len(errors)},
    )
    return ValidationResult(
        valid_row_count=len(rows) - invalid_rows,
        invalid_row_count=invalid_rows,
        errors=errors[:error_limit],
        warnings=warnings,
        skipped_fields=skipped_fields,
    )
