import logging

from fastapi import APIRouter, Depends, File, UploadFile

from formloom.api.deps import get_file_store, get_import_service, require_auth
from formloom.service import ImportService
from formloom.store.files import LocalFileStore

logger = logging.getLogger("formloom.api.uploads")
router = APIRouter(prefix="/uploads", tags=["Uploads"])


@router.post("", status_code=201)
async def upload_import_file(
    file: UploadFile = File(...),
    svc: ImportService = Depends(get_import_service),
    files: LocalFileStore = Depends(get_file_store),
    _auth=Depends(require_auth),
):
    content = await file.read()
    filename = file.filename or "import.xlsx"
    svc.validate_upload(filename, len(content))
    file_id = files.upload(content, filename)
    return {"file_id": file_id, "file_name": filename, "size": len(content)}
