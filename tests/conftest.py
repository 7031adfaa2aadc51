from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence

import pytest
from openpyxl import Workbook

from formloom.data.models import FieldDefinition
from formloom.store.database import Database
from formloom.store.files import LocalFileStore
from formloom.store.records import RecordStore
from formloom.store.repositories import FormRepository, ImportJobRepository


def build_xlsx(
    rows: Iterable[Sequence[Any]],
    title: str = "Sheet1",
    number_formats: Optional[Dict[str, str]] = None,
) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    for row in rows:
        ws.append(list(row))
    for coordinate, number_format in (number_formats or {}).items():
        ws[coordinate].number_format = number_format
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


CONTACT_FIELDS = [
    {"id": "f_name", "label": "Name", "type": "short_text", "required": True},
    {"id": "f_email", "label": "Email", "type": "email", "required": True},
    {"id": "f_age", "label": "Age", "type": "number"},
    {"id": "f_joined", "label": "Joined", "type": "date"},
    {"id": "f_active", "label": "Active", "type": "checkbox"},
    {"id": "f_cv", "label": "Resume", "type": "file_upload"},
]


@pytest.fixture
def contact_fields() -> list[FieldDefinition]:
    return [FieldDefinition.model_validate(f) for f in CONTACT_FIELDS]


@pytest.fixture
def record_store(tmp_path: Path) -> RecordStore:
    return RecordStore(Database(tmp_path / "formloom.db"))


@pytest.fixture
def file_store(tmp_path: Path) -> LocalFileStore:
    return LocalFileStore(tmp_path / "uploads")


@pytest.fixture
def forms(record_store) -> FormRepository:
    return FormRepository(record_store)


@pytest.fixture
def jobs(record_store) -> ImportJobRepository:
    return ImportJobRepository(record_store)


@pytest.fixture
def contact_form(forms, contact_fields):
    return forms.create_form(name="Contacts", fields=contact_fields, tenant_id="acme", created_by="u1")
