import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence
from uuid import uuid4

from formloom.config import ImportSettings, settings
from formloom.data.detector import FieldDetector
from formloom.data.dto import ColumnMapping, CommitResult, ParsedTable, ValidationResult
from formloom.data.executor import ImportExecutor
from formloom.data.mapper import ColumnAutoMapper
from formloom.data.models import Caller, FieldDefinition, FormDefinition, FormFieldDraft, ImportOptions
from formloom.data.parser import TabularParser
from formloom.data.validator import quick_validation, validate_mapping
from formloom.exceptions import DataSourceError, MappingError
from formloom.store.repositories import FormRepository, ImportJobRepository, RecordStoreProtocol
from formloom.utils.cache import TTLCache

logger = logging.getLogger(__name__)

# Detected types that the form builder names differently.
FORM_TYPE_ALIASES = {"text": "short_text", "textarea": "long_text"}
OPTION_FIELD_TYPES = ("dropdown", "radio", "checkbox")


class FileSource(Protocol):
    def download(self, handle: str) -> bytes: ...

    def metadata(self, handle: str) -> Dict[str, Any]: ...


class ImportService:
    """
    Entry point for the spreadsheet import flows: analyze a file to draft a
    new form, map a file onto an existing form, preview validation, commit.
    Every step re-reads the file by handle; nothing is kept between calls
    except the short-lived download cache.
    """

    def __init__(
        self,
        files: FileSource,
        store: RecordStoreProtocol,
        forms: Optional[FormRepository] = None,
        jobs: Optional[ImportJobRepository] = None,
        cache: Optional[TTLCache] = None,
        import_settings: Optional[ImportSettings] = None,
    ):
        self.config = import_settings or settings.imports
        self.files = files
        self.store = store
        self.forms = forms or FormRepository(store)
        self.jobs = jobs or ImportJobRepository(store)
        self.cache = cache if cache is not None else TTLCache(ttl_seconds=self.config.file_cache_ttl_seconds)
        self.mapper = ColumnAutoMapper()

    # --- upload boundary ---------------------------------------------------

    def validate_upload(self, filename: str, size: int) -> None:
        extension = Path(filename or "").suffix.lower()
        allowed = [ext.lower() for ext in self.config.allowed_extensions]
        if extension not in allowed:
            raise DataSourceError(f"Invalid file type. Allowed types: {', '.join(allowed)}")
        if size <= 0:
            raise DataSourceError("File is empty")
        if size > self.config.max_upload_bytes:
            raise DataSourceError(f"File size exceeds {self.config.max_upload_mb}MB limit")

    # --- read side ---------------------------------------------------------

    def analyze(self, file_handle: str, filename: Optional[str] = None) -> Dict[str, Any]:
        filename = self._file_name(file_handle, filename)
        table = self._load_table(file_handle, filename)
        detection = FieldDetector.detect(table.columns, table.rows, sample_size=self.config.detection_sample_size)
        return {
            "columns": table.columns,
            "row_count": table.row_count,
            "preview": table.rows[: self.config.preview_rows],
            "detected_fields": [f.to_dict() for f in detection.fields],
            "warnings": detection.warnings,
            "sample_size": detection.sample_size,
            "suggested_name": FieldDetector.suggest_form_name(filename or "", table.columns),
        }

    def parse_for_mapping(self, form_id: str, file_handle: str, filename: Optional[str] = None) -> Dict[str, Any]:
        form = self.forms.get_form(form_id)
        filename = self._file_name(file_handle, filename)
        table = self._load_table(file_handle, filename)
        auto = self.mapper.auto_map(table.columns, form.fields)
        return {
            "columns": table.columns,
            "row_count": table.row_count,
            "preview": table.rows[: self.config.preview_rows],
            "auto_mapping": auto.mapping,
            "suggestions": [s.to_dict() for s in auto.suggestions],
            "unmapped_columns": auto.unmapped_columns,
            "unmapped_fields": [
                {"id": f.id, "label": f.label, "type": f.type, "required": f.required} for f in auto.unmapped_fields
            ],
        }

    def validate(
        self,
        form_id: str,
        file_handle: str,
        mapping: ColumnMapping,
        filename: Optional[str] = None,
    ) -> ValidationResult:
        form = self.forms.get_form(form_id)
        filename = self._file_name(file_handle, filename)
        self._check_mapping(form, mapping)
        table = self._load_table(file_handle, filename)
        return quick_validation(table.rows, form, mapping, error_limit=self.config.error_preview_limit)

    # --- write side --------------------------------------------------------

    def commit(
        self,
        form_id: str,
        file_handle: str,
        mapping: ColumnMapping,
        options: Optional[ImportOptions] = None,
        caller: Optional[Caller] = None,
        filename: Optional[str] = None,
    ) -> CommitResult:
        """
        Re-download, re-parse and re-check the mapping, then run the executor.
        Row failures end up in the result; only fatal problems raise, and they
        raise before any job exists.
        """
        options = options or ImportOptions()
        caller = caller or Caller()
        form = self.forms.get_form(form_id)
        filename = self._file_name(file_handle, filename)
        self._check_mapping(form, mapping)
        table = self._load_table(file_handle, filename, fresh=True)

        job = self.jobs.create(
            tenant_id=form.tenant_id or caller.tenant_id,
            form_id=form.id,
            file_id=file_handle,
            file_name=filename or file_handle,
            file_size=self._cached_size(file_handle),
            created_by=caller.user_id,
            total_rows=table.row_count,
        )
        logger.info(
            "import job started",
            extra={"job_id": job.id, "form_id": form.id, "rows": table.row_count, "user_id": caller.user_id},
        )

        executor = ImportExecutor(self.store, self.jobs, batch_size=self.config.batch_size)
        summary = executor.run(job, form, table.rows, mapping, skip_empty_rows=options.skip_empty_rows)

        if summary.cancelled:
            message = f"Import cancelled: {summary.imported} rows imported before cancellation"
        elif summary.failed:
            message = f"Imported {summary.imported} rows, {summary.failed} failed"
        else:
            message = f"Successfully imported {summary.imported} rows"
        return CommitResult(
            job_id=job.id,
            imported=summary.imported,
            failed=summary.failed,
            skipped=summary.skipped,
            cancelled=summary.cancelled,
            errors=summary.errors[: self.config.error_preview_limit],
            error_report=summary.error_report,
            message=message,
        )

    def create_form_from_import(
        self,
        file_handle: str,
        form_name: str,
        fields: Sequence[FormFieldDraft],
        column_mapping: Dict[str, str],
        import_data: bool = True,
        caller: Optional[Caller] = None,
        filename: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Persist a form built from confirmed detected fields and, optionally,
        commit the same file into it. ``column_mapping`` is column -> draft field name.
        """
        caller = caller or Caller()
        definitions = [self._field_from_draft(draft) for draft in fields]
        form = self.forms.create_form(
            name=form_name,
            fields=definitions,
            tenant_id=caller.tenant_id,
            created_by=caller.user_id,
            description=description,
        )

        result: Dict[str, Any] = {"form_id": form.id, "form_name": form.name, "import": None}
        if import_data:
            by_name = {f.name: f.id for f in definitions}
            mapping = {column: by_name[name] for column, name in column_mapping.items() if name in by_name}
            commit = self.commit(form.id, file_handle, mapping, caller=caller, filename=filename)
            result["import"] = commit.to_dict()
            result["message"] = f'Form "{form_name}" created successfully with {commit.imported} submissions imported'
        else:
            result["message"] = f'Form "{form_name}" created successfully'
        return result

    # --- job control -------------------------------------------------------

    def get_progress(self, job_id: str) -> Dict[str, Any]:
        job = self.jobs.get(job_id)
        return {
            "job_id": job.id,
            "status": job.status,
            "total_rows": job.total_rows,
            "processed_rows": job.processed_rows,
            "success_count": job.success_count,
            "error_count": job.error_count,
            "percentage": job.percentage,
            "error": job.error,
        }

    def cancel(self, job_id: str) -> Dict[str, Any]:
        job = self.jobs.mark_cancelled(job_id)
        return {"job_id": job.id, "status": job.status}

    def list_jobs(self, form_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        return [job.model_dump(mode="json") for job in self.jobs.list_by_form(form_id, limit=limit)]

    def prune_jobs(self, older_than_days: Optional[int] = None) -> int:
        days = self.config.job_retention_days if older_than_days is None else older_than_days
        return self.jobs.delete_old_jobs(older_than_days=days)

    # --- helpers -----------------------------------------------------------

    def _load_table(self, file_handle: str, filename: Optional[str], fresh: bool = False) -> ParsedTable:
        key = self._cache_key(file_handle)
        if fresh:
            self.cache.invalidate([key])
        content = self.cache.get(key)
        if content is None:
            content = self.files.download(file_handle)
            self.cache.set(key, content)
        return TabularParser.parse(content, filename)

    def _cached_size(self, file_handle: str) -> int:
        content = self.cache.get(self._cache_key(file_handle))
        return len(content) if content is not None else 0

    def _file_name(self, file_handle: str, filename: Optional[str]) -> Optional[str]:
        """Caller-supplied name first, then the one recorded at upload."""
        if filename:
            return filename
        return self.files.metadata(file_handle).get("filename")

    @staticmethod
    def _cache_key(file_handle: str) -> str:
        return f"file:{file_handle}"

    @staticmethod
    def _check_mapping(form: FormDefinition, mapping: ColumnMapping) -> None:
        check = validate_mapping(mapping, form.fields)
        if not check.is_valid:
            raise MappingError("Invalid column mapping", errors=check.errors)

    @staticmethod
    def _field_from_draft(draft: FormFieldDraft) -> FieldDefinition:
        options: List[str] = []
        if draft.type in OPTION_FIELD_TYPES and draft.options:
            options = list(draft.options)
        return FieldDefinition(
            id=f"fld_{uuid4().hex[:12]}",
            name=draft.name,
            label=draft.label,
            type=FORM_TYPE_ALIASES.get(draft.type, draft.type),
            required=draft.required,
            options=options,
        )
