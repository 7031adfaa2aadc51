"""Downloadable CSV enumerating every row-level failure of an import job."""

from __future__ import annotations

import io
import json
import re
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

import pandas as pd

from formloom.data.dto import ErrorReport, RowError
from formloom.data.models import FieldDefinition
from formloom.utils.dates import to_iso_instant, utc_now

REPORT_COLUMNS = ["Row Number", "Field Name", "Field Type", "Value", "Error Message", "Suggestion"]


def format_value_for_display(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (datetime, date)):
        return to_iso_instant(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def report_filename(form_name: str, at: Optional[datetime] = None) -> str:
    timestamp = re.sub(r"[:.]", "-", to_iso_instant(at or utc_now()))
    safe_name = re.sub(r"[^a-z0-9]", "_", form_name or "form", flags=re.IGNORECASE)
    return f"import_errors_{safe_name}_{timestamp}.csv"


def build_error_report(
    errors: Iterable[RowError],
    fields: Mapping[str, FieldDefinition],
    form_name: str,
    at: Optional[datetime] = None,
) -> ErrorReport:
    records = [
        {
            "Row Number": err.row,
            "Field Name": err.field,
            "Field Type": fields[err.field_id].type if err.field_id in fields else "unknown",
            "Value": format_value_for_display(err.value),
            "Error Message": err.error,
            "Suggestion": err.suggestion or "",
        }
        for err in errors
    ]
    df = pd.DataFrame(records, columns=REPORT_COLUMNS)
    buffer = io.BytesIO()
    df.to_csv(buffer, index=False, encoding="utf-8")
    return ErrorReport(filename=report_filename(form_name, at), content=buffer.getvalue(), row_count=len(records))
