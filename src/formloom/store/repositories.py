from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any, Optional, Protocol

from formloom.data.models import (
    ACTIVE_JOB_STATUSES,
    TERMINAL_JOB_STATUSES,
    FieldDefinition,
    FormDefinition,
    ImportJob,
)
from formloom.exceptions import FormNotFoundError, JobNotFoundError, JobStateError
from formloom.utils.dates import utc_now

logger = logging.getLogger(__name__)

FORMS_COLLECTION = "forms"
JOBS_COLLECTION = "import_jobs"


class RecordStoreProtocol(Protocol):
    def create_record(
        self,
        collection: str,
        data: dict[str, Any],
        permissions: Optional[list[str]] = None,
        record_id: Optional[str] = None,
    ) -> dict[str, Any]: ...

    def update_record(self, collection: str, record_id: str, partial: dict[str, Any]) -> dict[str, Any]: ...

    def get_record(self, collection: str, record_id: str) -> Optional[dict[str, Any]]: ...

    def query_records(
        self,
        collection: str,
        filters: Optional[dict[str, Any]] = None,
        *,
        created_before: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]: ...

    def delete_record(self, collection: str, record_id: str) -> bool: ...


def team_permissions(tenant_id: str, user_id: Optional[str] = None) -> list[str]:
    """Owner/admin of the tenant team may read and update; the creator may read; only owners delete."""
    team = f"team:{tenant_id}"
    perms = [
        f'read("{team}/owner")',
        f'read("{team}/admin")',
        f'update("{team}/owner")',
        f'update("{team}/admin")',
        f'delete("{team}/owner")',
    ]
    if user_id:
        perms.append(f'read("user:{user_id}")')
    return perms


class FormRepository:
    def __init__(self, store: RecordStoreProtocol):
        self.store = store

    def get_form(self, form_id: str) -> FormDefinition:
        record = self.store.get_record(FORMS_COLLECTION, form_id)
        if record is None:
            raise FormNotFoundError(f"Form not found: {form_id}")
        return FormDefinition.model_validate(record)

    def create_form(
        self,
        name: str,
        fields: list[FieldDefinition],
        tenant_id: str,
        created_by: Optional[str] = None,
        description: Optional[str] = None,
    ) -> FormDefinition:
        # Nested schema kept as a JSON string so every backend stores it the same way.
        record = self.store.create_record(
            FORMS_COLLECTION,
            {
                "name": name,
                "description": description,
                "tenant_id": tenant_id,
                "version": 1,
                "status": "draft",
                "created_by": created_by,
                "fields": json.dumps([f.model_dump(exclude_none=True) for f in fields], ensure_ascii=False),
            },
            permissions=team_permissions(tenant_id, created_by),
        )
        logger.info("form created", extra={"form_id": record["id"], "tenant_id": tenant_id, "fields": len(fields)})
        return FormDefinition.model_validate(record)


class ImportJobRepository:
    """
    Durable import job records. The executor is the only writer while a job runs;
    cancel only flips the status and the executor notices at the next batch.
    """

    def __init__(self, store: RecordStoreProtocol):
        self.store = store

    def create(
        self,
        *,
        tenant_id: str,
        form_id: str,
        file_id: str,
        file_name: str,
        file_size: int,
        created_by: str,
        status: str = "pending",
        total_rows: int = 0,
    ) -> ImportJob:
        now = utc_now()
        record = self.store.create_record(
            JOBS_COLLECTION,
            {
                "tenant_id": tenant_id,
                "form_id": form_id,
                "file_id": file_id,
                "file_name": file_name,
                "file_size": file_size,
                "status": status,
                "total_rows": total_rows,
                "processed_rows": 0,
                "success_count": 0,
                "error_count": 0,
                "started_at": now.isoformat() if status == "importing" else None,
                "completed_at": None,
                "error": None,
                "created_by": created_by,
            },
            permissions=team_permissions(tenant_id, created_by),
        )
        return self._to_job(record)

    def get(self, job_id: str) -> ImportJob:
        record = self.store.get_record(JOBS_COLLECTION, job_id)
        if record is None:
            raise JobNotFoundError(f"Import job not found: {job_id}")
        return self._to_job(record)

    def update_progress(self, job_id: str, processed_rows: int, success_count: int, error_count: int) -> ImportJob:
        # Counters only: a concurrent cancel must never be overwritten by a checkpoint.
        record = self.store.update_record(
            JOBS_COLLECTION,
            job_id,
            {"processed_rows": processed_rows, "success_count": success_count, "error_count": error_count},
        )
        return self._to_job(record)

    def mark_started(self, job_id: str, total_rows: int) -> ImportJob:
        job = self.get(job_id)
        if not job.is_active:
            return job
        return self._update(job_id, {"status": "importing", "total_rows": total_rows, "started_at": utc_now().isoformat()})

    def mark_completed(self, job_id: str, processed_rows: int, success_count: int, error_count: int) -> ImportJob:
        counters = {"processed_rows": processed_rows, "success_count": success_count, "error_count": error_count}
        if not self.get(job_id).is_active:
            # Cancelled while the last batch ran: keep the status, record how far it got.
            return self._to_job(self.store.update_record(JOBS_COLLECTION, job_id, counters))
        return self._update(job_id, {"status": "completed", **counters, "completed_at": utc_now().isoformat()})

    def mark_failed(self, job_id: str, error: str) -> ImportJob:
        job = self.get(job_id)
        if not job.is_active:
            logger.warning("failure after job finished", extra={"job_id": job_id, "status": job.status, "error": error})
            return job
        return self._update(job_id, {"status": "failed", "error": error, "completed_at": utc_now().isoformat()})

    def mark_cancelled(self, job_id: str) -> ImportJob:
        job = self.get(job_id)
        if job.status not in ACTIVE_JOB_STATUSES:
            raise JobStateError(f"Cannot cancel job in '{job.status}' status")
        logger.info("import job cancelled", extra={"job_id": job_id, "processed_rows": job.processed_rows})
        return self._update(job_id, {"status": "cancelled", "completed_at": utc_now().isoformat()})

    def list_by_form(self, form_id: str, limit: int = 20) -> list[ImportJob]:
        records = self.store.query_records(JOBS_COLLECTION, {"form_id": form_id}, limit=limit)
        return [self._to_job(r) for r in records]

    def list_active(self, tenant_id: Optional[str] = None) -> list[ImportJob]:
        filters: dict[str, Any] = {"status": list(ACTIVE_JOB_STATUSES)}
        if tenant_id:
            filters["tenant_id"] = tenant_id
        return [self._to_job(r) for r in self.store.query_records(JOBS_COLLECTION, filters)]

    def delete_old_jobs(self, older_than_days: int = 7) -> int:
        """Remove finished jobs created before the cutoff; running jobs are never pruned."""
        cutoff = (utc_now() - timedelta(days=older_than_days)).isoformat()
        stale = self.store.query_records(
            JOBS_COLLECTION,
            {"status": list(TERMINAL_JOB_STATUSES)},
            created_before=cutoff,
        )
        deleted = sum(1 for record in stale if self.store.delete_record(JOBS_COLLECTION, record["id"]))
        logger.info("pruned import jobs", extra={"deleted": deleted, "cutoff": cutoff})
        return deleted

    def _update(self, job_id: str, changes: dict[str, Any]) -> ImportJob:
        if self.store.get_record(JOBS_COLLECTION, job_id) is None:
            raise JobNotFoundError(f"Import job not found: {job_id}")
        return self._to_job(self.store.update_record(JOBS_COLLECTION, job_id, changes))

    @staticmethod
    def _to_job(record: dict[str, Any]) -> ImportJob:
        return ImportJob.model_validate(record)
