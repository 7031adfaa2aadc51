from fastapi import APIRouter, Depends

from formloom.api.deps import get_caller, get_import_service, require_auth
from formloom.api.schemas import CommitRequest, CreateFormFromImportRequest, FileRef, MappingRequest
from formloom.data.models import Caller
from formloom.service import ImportService

router = APIRouter(prefix="/imports", tags=["Imports"])


@router.post("/analyze")
def analyze_file(
    body: FileRef,
    svc: ImportService = Depends(get_import_service),
    _auth=Depends(require_auth),
):
    return svc.analyze(body.file_id, body.file_name)


@router.post("/create-form")
def create_form_from_import(
    body: CreateFormFromImportRequest,
    svc: ImportService = Depends(get_import_service),
    caller: Caller = Depends(get_caller),
    _auth=Depends(require_auth),
):
    return svc.create_form_from_import(
        body.file_id,
        body.form_name,
        body.fields,
        body.column_mapping,
        import_data=body.import_data,
        caller=caller,
        filename=body.file_name,
        description=body.form_description,
    )


@router.post("/forms/{form_id}/mapping")
def parse_for_mapping(
    form_id: str,
    body: FileRef,
    svc: ImportService = Depends(get_import_service),
    _auth=Depends(require_auth),
):
    return svc.parse_for_mapping(form_id, body.file_id, body.file_name)


@router.post("/forms/{form_id}/validate")
def validate_import(
    form_id: str,
    body: MappingRequest,
    svc: ImportService = Depends(get_import_service),
    _auth=Depends(require_auth),
):
    return svc.validate(form_id, body.file_id, body.mapping, body.file_name).to_dict()


@router.post("/forms/{form_id}/commit")
def commit_import(
    form_id: str,
    body: CommitRequest,
    svc: ImportService = Depends(get_import_service),
    caller: Caller = Depends(get_caller),
    _auth=Depends(require_auth),
):
    result = svc.commit(form_id, body.file_id, body.mapping, body.options, caller, body.file_name)
    return result.to_dict()
