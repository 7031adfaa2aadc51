from fastapi import APIRouter, Depends, Query

from formloom.api.deps import get_import_service, require_auth
from formloom.service import ImportService

router = APIRouter(tags=["Import Jobs"])


@router.get("/imports/jobs/{job_id}")
def job_progress(
    job_id: str,
    svc: ImportService = Depends(get_import_service),
    _auth=Depends(require_auth),
):
    return svc.get_progress(job_id)


@router.post("/imports/jobs/{job_id}/cancel")
def cancel_job(
    job_id: str,
    svc: ImportService = Depends(get_import_service),
    _auth=Depends(require_auth),
):
    return svc.cancel(job_id)


@router.get("/forms/{form_id}/import-jobs")
def list_form_jobs(
    form_id: str,
    limit: int = Query(20, ge=1, le=100),
    svc: ImportService = Depends(get_import_service),
    _auth=Depends(require_auth),
):
    return {"items": svc.list_jobs(form_id, limit=limit)}
