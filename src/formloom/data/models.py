from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

JobStatus = Literal["pending", "parsing", "validating", "importing", "completed", "failed", "cancelled"]

ACTIVE_JOB_STATUSES: tuple[str, ...] = ("pending", "parsing", "validating", "importing")
TERMINAL_JOB_STATUSES: tuple[str, ...] = ("completed", "failed", "cancelled")

# Attachment-like fields carry file ids, never spreadsheet values.
NON_IMPORTABLE_FIELD_TYPES = frozenset({"file", "file_upload", "image_upload", "signature"})


class FieldOption(BaseModel):
    value: str
    label: Optional[str] = None


class ValidationRule(BaseModel):
    type: Literal["min_value", "max_value", "min_length", "max_length"]
    value: float
    message: Optional[str] = None


class FieldDefinition(BaseModel):
    id: str
    label: str
    type: str
    name: Optional[str] = None
    required: bool = False
    options: list[FieldOption] = Field(default_factory=list)
    validation: list[ValidationRule] = Field(default_factory=list)
    max_rating: Optional[int] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, value: Any) -> Any:
        # Detected fields carry bare strings; stored forms carry {value,label} objects.
        if not value:
            return []
        return [{"value": str(opt), "label": str(opt)} if not isinstance(opt, dict) else opt for opt in value]

    @property
    def is_importable(self) -> bool:
        return self.type not in NON_IMPORTABLE_FIELD_TYPES

    def rule(self, rule_type: str) -> Optional[ValidationRule]:
        for rule in self.validation:
            if rule.type == rule_type:
                return rule
        return None


class FormDefinition(BaseModel):
    id: str
    name: str = "Untitled Form"
    tenant_id: Optional[str] = None
    version: int = 1
    fields: list[FieldDefinition] = Field(default_factory=list)

    @field_validator("fields", mode="before")
    @classmethod
    def _decode_fields(cls, value: Any) -> Any:
        # Document stores keep nested schemas as JSON strings.
        if isinstance(value, str):
            return json.loads(value) if value.strip() else []
        return value

    def field_by_id(self, field_id: str) -> Optional[FieldDefinition]:
        for field in self.fields:
            if field.id == field_id:
                return field
        return None

    @property
    def importable_fields(self) -> list[FieldDefinition]:
        return [f for f in self.fields if f.is_importable]


class ImportJob(BaseModel):
    id: str
    tenant_id: str
    form_id: str
    file_id: str
    file_name: str = "import.xlsx"
    file_size: int = 0
    status: JobStatus = "pending"
    total_rows: int = 0
    processed_rows: int = 0
    success_count: int = 0
    error_count: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    created_by: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_JOB_STATUSES

    @property
    def percentage(self) -> int:
        if self.total_rows <= 0:
            return 0
        return round(self.processed_rows / self.total_rows * 100)


class Caller(BaseModel):
    """
    Identity of whoever initiated the request; entitlement was checked upstream.
    """
    tenant_id: str = "default"
    user_id: str = "anonymous"
    email: Optional[str] = None


class ImportOptions(BaseModel):
    skip_empty_rows: bool = True


DetectedFieldType = Literal[
    "text", "textarea", "number", "email", "phone", "url", "date", "time", "datetime", "checkbox", "radio", "dropdown", "file"
]


class FormFieldDraft(BaseModel):
    """A detected field as confirmed (and possibly edited) by the user before form creation."""
    name: str = Field(min_length=1)
    label: str = Field(min_length=1)
    type: DetectedFieldType
    required: bool = False
    help_text: Optional[str] = None
    options: Optional[list[str]] = None
