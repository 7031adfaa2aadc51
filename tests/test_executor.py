import pytest

from formloom.data.executor import (
    SUBMISSION_VALUES_COLLECTION,
    SUBMISSIONS_COLLECTION,
    ImportExecutor,
    process_row,
)
from formloom.data.validator import resolve_mapping
from formloom.exceptions import PersistenceError
from formloom.store.repositories import ImportJobRepository

MAPPING = {"Name": "f_name", "Email": "f_email", "Age": "f_age", "Active": "f_active", "Joined": "f_joined"}


def _row(name="Ada", email="ada@example.com", age="36", active="yes", joined="2024-01-15"):
    return {"Name": name, "Email": email, "Age": age, "Active": active, "Joined": joined}


def _new_job(jobs, form, rows):
    return jobs.create(
        tenant_id="acme",
        form_id=form.id,
        file_id="0" * 32,
        file_name="contacts.xlsx",
        file_size=100,
        created_by="u1",
        status="importing",
        total_rows=len(rows),
    )


class FailingStore:
    """Record store that rejects the submission for chosen row numbers."""

    def __init__(self, inner, fail_rows=(), error=PersistenceError):
        self.inner = inner
        self.fail_rows = set(fail_rows)
        self.error = error

    def create_record(self, collection, data, permissions=None, record_id=None):
        if collection == SUBMISSIONS_COLLECTION and data.get("row_number") in self.fail_rows:
            raise self.error("disk full")
        return self.inner.create_record(collection, data, permissions, record_id)

    def __getattr__(self, name):
        return getattr(self.inner, name)


class CancelOnFirstSubmission(FailingStore):
    """Cancels the job from inside the batch, after the first submission is written."""

    def __init__(self, inner, jobs):
        super().__init__(inner)
        self.jobs = jobs

    def create_record(self, collection, data, permissions=None, record_id=None):
        record = super().create_record(collection, data, permissions, record_id)
        if collection == SUBMISSIONS_COLLECTION and self.jobs.get(data["import_job_id"]).is_active:
            self.jobs.mark_cancelled(data["import_job_id"])
        return record


class CancelAfterFirstCheckpoint(ImportJobRepository):
    def update_progress(self, job_id, processed_rows, success_count, error_count):
        job = super().update_progress(job_id, processed_rows, success_count, error_count)
        if job.status == "importing":
            self.mark_cancelled(job_id)
        return job


def test_process_row_ready_with_canonical_values(contact_form):
    fields = resolve_mapping(contact_form, MAPPING)
    outcome = process_row(_row(), 1, fields)
    assert outcome.status == "ready"
    assert outcome.data == {
        "f_name": "Ada",
        "f_email": "ada@example.com",
        "f_age": 36.0,
        "f_active": True,
        "f_joined": "2024-01-15T00:00:00.000Z",
    }


def test_process_row_collects_every_cell_error(contact_form):
    fields = resolve_mapping(contact_form, MAPPING)
    outcome = process_row(_row(name="", age="old"), 4, fields)
    assert outcome.status == "failed"
    assert {e.field_id for e in outcome.errors} == {"f_name", "f_age"}
    assert all(e.row == 4 for e in outcome.errors)


def test_process_row_skips_blank_rows_only_when_asked(contact_form):
    fields = resolve_mapping(contact_form, MAPPING)
    blank = {column: None for column in MAPPING}
    assert process_row(blank, 1, fields, skip_empty_rows=True).status == "skipped"
    assert process_row(blank, 1, fields, skip_empty_rows=False).status == "failed"


def test_run_imports_valid_rows_and_reports_failures(record_store, jobs, contact_form):
    rows = [_row(), _row(name="", email="bob@example.com"), _row(name="Cy", email="cy@example.com")]
    job = _new_job(jobs, contact_form, rows)

    summary = ImportExecutor(record_store, jobs, batch_size=2).run(job, contact_form, rows, MAPPING)

    assert summary.imported == 2
    assert summary.failed == 1
    assert summary.errors[0].row == 2
    assert summary.error_report is not None
    assert summary.error_report.row_count == 1

    stored = jobs.get(job.id)
    assert stored.status == "completed"
    assert stored.processed_rows == 3
    assert stored.success_count == 2
    assert stored.error_count == 1
    assert stored.completed_at is not None

    submissions = record_store.query_records(SUBMISSIONS_COLLECTION, {"import_job_id": job.id})
    assert sorted(s["row_number"] for s in submissions) == [1, 3]


def test_run_writes_typed_child_values(record_store, jobs, contact_form):
    rows = [_row(age="", joined="")]
    job = _new_job(jobs, contact_form, rows)
    ImportExecutor(record_store, jobs).run(job, contact_form, rows, MAPPING)

    submission = record_store.query_records(SUBMISSIONS_COLLECTION, {"import_job_id": job.id})[0]
    values = record_store.query_records(SUBMISSION_VALUES_COLLECTION, {"submission_id": submission["id"]})
    by_field = {v["field_id"]: v for v in values}
    assert set(by_field) == {"f_name", "f_email", "f_active"}
    assert by_field["f_name"]["value_text"] == "Ada"
    assert by_field["f_active"]["value_boolean"] is True


def test_completed_with_only_errors_is_still_completed(record_store, jobs, contact_form):
    rows = [_row(email="nope")]
    job = _new_job(jobs, contact_form, rows)
    summary = ImportExecutor(record_store, jobs).run(job, contact_form, rows, MAPPING)
    assert summary.imported == 0
    assert jobs.get(job.id).status == "completed"


def test_persistence_error_fails_only_that_row(record_store, jobs, contact_form):
    rows = [_row(), _row(name="Bo"), _row(name="Cy")]
    job = _new_job(jobs, contact_form, rows)
    store = FailingStore(record_store, fail_rows={2})

    summary = ImportExecutor(store, jobs).run(job, contact_form, rows, MAPPING)

    assert summary.imported == 2
    assert summary.failed == 1
    assert "disk full" in summary.errors[0].error
    assert jobs.get(job.id).status == "completed"


def test_unexpected_error_marks_job_failed_and_propagates(record_store, jobs, contact_form):
    rows = [_row()]
    job = _new_job(jobs, contact_form, rows)
    store = FailingStore(record_store, fail_rows={1}, error=RuntimeError)

    with pytest.raises(RuntimeError):
        ImportExecutor(store, jobs).run(job, contact_form, rows, MAPPING)

    stored = jobs.get(job.id)
    assert stored.status == "failed"
    assert stored.error == "disk full"


def test_cancellation_stops_at_batch_boundary_without_rollback(record_store, contact_form):
    jobs = CancelAfterFirstCheckpoint(record_store)
    rows = [_row(name=f"Person {i}") for i in range(5)]
    job = _new_job(jobs, contact_form, rows)

    summary = ImportExecutor(record_store, jobs, batch_size=2).run(job, contact_form, rows, MAPPING)

    assert summary.cancelled is True
    assert summary.imported == 2
    stored = jobs.get(job.id)
    assert stored.status == "cancelled"
    assert stored.processed_rows == 2
    assert len(record_store.query_records(SUBMISSIONS_COLLECTION, {"import_job_id": job.id})) == 2


def test_checkpoint_does_not_overwrite_cancelled_status(record_store, jobs, contact_form):
    job = _new_job(jobs, contact_form, [_row()])
    jobs.mark_cancelled(job.id)
    jobs.update_progress(job.id, 1, 1, 0)
    assert jobs.get(job.id).status == "cancelled"


def test_cancel_during_final_batch_stays_cancelled(record_store, jobs, contact_form):
    rows = [_row()]
    job = _new_job(jobs, contact_form, rows)
    store = CancelOnFirstSubmission(record_store, jobs)

    summary = ImportExecutor(store, jobs, batch_size=10).run(job, contact_form, rows, MAPPING)

    assert summary.cancelled is True
    assert summary.imported == 1
    stored = jobs.get(job.id)
    assert stored.status == "cancelled"
    assert stored.processed_rows == 1
    assert stored.success_count == 1


def test_late_failure_does_not_reopen_cancelled_job(jobs, contact_form):
    job = _new_job(jobs, contact_form, [_row()])
    jobs.mark_cancelled(job.id)

    assert jobs.mark_failed(job.id, "boom").status == "cancelled"
    assert jobs.mark_completed(job.id, 1, 1, 0).status == "cancelled"
    assert jobs.mark_started(job.id, 1).status == "cancelled"
    assert jobs.get(job.id).error is None


def test_run_moves_pending_job_to_importing(record_store, jobs, contact_form):
    rows = [_row()]
    job = jobs.create(
        tenant_id="acme",
        form_id=contact_form.id,
        file_id="0" * 32,
        file_name="contacts.csv",
        file_size=10,
        created_by="u1",
        total_rows=len(rows),
    )
    assert job.status == "pending"

    ImportExecutor(record_store, jobs).run(job, contact_form, rows, MAPPING)

    stored = jobs.get(job.id)
    assert stored.status == "completed"
    assert stored.started_at is not None
