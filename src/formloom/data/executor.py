from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from formloom.data.dto import ColumnMapping, ImportSummary, RowError, RowOutcome
from formloom.data.error_report import build_error_report
from formloom.data.models import FieldDefinition, FormDefinition, ImportJob
from formloom.data.transformer import DATE_FIELD_TYPES, NUMERIC_FIELD_TYPES, is_empty, transform
from formloom.data.validator import resolve_mapping, validate_cell
from formloom.exceptions import PersistenceError
from formloom.store.repositories import ImportJobRepository, RecordStoreProtocol, team_permissions

logger = logging.getLogger(__name__)

SUBMISSIONS_COLLECTION = "submissions"
SUBMISSION_VALUES_COLLECTION = "submission_values"
DEFAULT_BATCH_SIZE = 100


def process_row(
    row: Mapping[str, Any],
    row_number: int,
    fields: Mapping[str, FieldDefinition],
    skip_empty_rows: bool = True,
) -> RowOutcome:
    """
    Validate and transform one row against the resolved column -> field map.
    No side effects; the executor decides what to persist.
    """
    if skip_empty_rows and all(is_empty(row.get(column)) for column in fields):
        return RowOutcome(row_number=row_number, status="skipped")

    data: Dict[str, Any] = {}
    errors: List[RowError] = []
    for column, field in fields.items():
        raw = row.get(column)
        error = validate_cell(field, raw, row_number)
        if error:
            errors.append(error)
            continue
        result = transform(field, raw)
        if not result.success:
            errors.append(
                RowError(row=row_number, field=field.label, field_id=field.id, value=raw, error=result.error)
            )
            continue
        data[field.id] = result.value

    if errors:
        return RowOutcome(row_number=row_number, status="failed", errors=errors)
    return RowOutcome(row_number=row_number, status="ready", data=data)


def typed_value(field: FieldDefinition, value: Any) -> Dict[str, Any]:
    """Place a canonical value in the column matching its field type."""
    if field.type in NUMERIC_FIELD_TYPES:
        return {"value_number": value}
    if field.type in DATE_FIELD_TYPES:
        return {"value_date": value}
    if field.type == "checkbox":
        return {"value_boolean": value}
    if isinstance(value, list):
        return {"value_array": value}
    return {"value_text": value}


class ImportExecutor:
    """
    Sequential batch driver for a committed import.
    Batches only set checkpoint boundaries: the job is re-read before each batch
    (cancellation) and its counters are written after each one.
    """

    def __init__(
        self,
        store: RecordStoreProtocol,
        jobs: ImportJobRepository,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.store = store
        self.jobs = jobs
        self.batch_size = max(1, int(batch_size))

    def run(
        self,
        job: ImportJob,
        form: FormDefinition,
        rows: Sequence[Mapping[str, Any]],
        mapping: ColumnMapping,
        skip_empty_rows: bool = True,
    ) -> ImportSummary:
        summary = ImportSummary()
        fields = resolve_mapping(form, mapping)
        failed_rows = 0
        processed = 0

        try:
            self.jobs.mark_started(job.id, len(rows))
            for start in range(0, len(rows), self.batch_size):
                if self.jobs.get(job.id).status == "cancelled":
                    summary.cancelled = True
                    logger.info("import cancelled", extra={"job_id": job.id, "processed_rows": processed})
                    break

                for offset, row in enumerate(rows[start : start + self.batch_size]):
                    row_number = start + offset + 1
                    outcome = process_row(row, row_number, fields, skip_empty_rows)
                    if outcome.status == "ready":
                        persist_error = self._persist(job, form, fields, outcome)
                        if persist_error:
                            outcome = RowOutcome(row_number=row_number, status="failed", errors=[persist_error])

                    if outcome.status == "ready":
                        summary.imported += 1
                    elif outcome.status == "skipped":
                        summary.skipped += 1
                    else:
                        failed_rows += 1
                        summary.errors.extend(outcome.errors)
                    processed += 1

                self.jobs.update_progress(job.id, processed, summary.imported, failed_rows)

            summary.failed = failed_rows
            if not summary.cancelled:
                finished = self.jobs.mark_completed(job.id, processed, summary.imported, failed_rows)
                summary.cancelled = finished.status == "cancelled"
        except Exception as exc:
            logger.exception("import job failed", extra={"job_id": job.id, "processed_rows": processed})
            self.jobs.mark_failed(job.id, str(exc))
            raise

        if summary.errors:
            by_id = {field.id: field for field in form.fields}
            summary.error_report = build_error_report(summary.errors, by_id, form.name)

        logger.info(
            "import finished",
            extra={
                "job_id": job.id,
                "form_id": form.id,
                "imported": summary.imported,
                "failed": summary.failed,
                "skipped": summary.skipped,
                "cancelled": summary.cancelled,
            },
        )
        return summary

    def _persist(
        self,
        job: ImportJob,
        form: FormDefinition,
        fields: Mapping[str, FieldDefinition],
        outcome: RowOutcome,
    ) -> Optional[RowError]:
        """Parent submission first, then one value record per non-null value."""
        by_id = {field.id: field for field in fields.values()}
        permissions = team_permissions(job.tenant_id, job.created_by)
        try:
            submission = self.store.create_record(
                SUBMISSIONS_COLLECTION,
                {
                    "form_id": form.id,
                    "form_version": form.version,
                    "tenant_id": job.tenant_id,
                    "submitted_by": job.created_by,
                    "status": "submitted",
                    "source": "import",
                    "import_job_id": job.id,
                    "row_number": outcome.row_number,
                },
                permissions=permissions,
            )
            for field_id, value in outcome.data.items():
                if value is None:
                    continue
                field = by_id[field_id]
                self.store.create_record(
                    SUBMISSION_VALUES_COLLECTION,
                    {
                        "submission_id": submission["id"],
                        "field_id": field_id,
                        "field_type": field.type,
                        **typed_value(field, value),
                    },
                    permissions=permissions,
                )
        except PersistenceError as exc:
            logger.warning(
                "row persistence failed",
                extra={"job_id": job.id, "row": outcome.row_number, "error": str(exc)},
            )
            return RowError(
                row=outcome.row_number,
                field="",
                field_id="",
                value=None,
                error=f"Failed to save row: {exc}",
            )
        return None
