from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from formloom.data.models import FieldDefinition, FormFieldDraft, ImportOptions


class FileRef(BaseModel):
    file_id: str = Field(min_length=1)
    file_name: Optional[str] = None


class MappingRequest(FileRef):
    mapping: dict[str, str]


class CommitRequest(MappingRequest):
    options: ImportOptions = Field(default_factory=ImportOptions)


class CreateFormFromImportRequest(FileRef):
    form_name: str = Field(min_length=1, max_length=100)
    form_description: Optional[str] = None
    fields: list[FormFieldDraft]
    column_mapping: dict[str, str]  # column name -> draft field name
    import_data: bool = True


class CreateFormRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    fields: list[FieldDefinition] = Field(default_factory=list)
