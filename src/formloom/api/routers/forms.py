from fastapi import APIRouter, Depends

from formloom.api.deps import get_caller, get_form_repository, require_auth
from formloom.api.schemas import CreateFormRequest
from formloom.data.models import Caller
from formloom.store.repositories import FormRepository

router = APIRouter(prefix="/forms", tags=["Forms"])


@router.post("", status_code=201)
def create_form(
    body: CreateFormRequest,
    forms: FormRepository = Depends(get_form_repository),
    caller: Caller = Depends(get_caller),
    _auth=Depends(require_auth),
):
    form = forms.create_form(
        name=body.name,
        fields=body.fields,
        tenant_id=caller.tenant_id,
        created_by=caller.user_id,
        description=body.description,
    )
    return form.model_dump()


@router.get("/{form_id}")
def get_form(
    form_id: str,
    forms: FormRepository = Depends(get_form_repository),
    _auth=Depends(require_auth),
):
    return forms.get_form(form_id).model_dump()
