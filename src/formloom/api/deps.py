from __future__ import annotations

from typing import Any, Optional

from fastapi import Header, HTTPException, Request

from formloom.config import settings
from formloom.data.models import Caller
from formloom.service import ImportService
from formloom.store.database import Database
from formloom.store.files import LocalFileStore
from formloom.store.records import RecordStore
from formloom.store.repositories import FormRepository

# Global/Cached instances
_db_instance: Optional[Database] = None
_store_instance: Optional[Any] = None
_store_backend: Optional[str] = None
_file_store_instance: Optional[LocalFileStore] = None


def reset_instances() -> None:
    global _db_instance, _store_instance, _store_backend, _file_store_instance
    _db_instance = None
    _store_instance = None
    _store_backend = None
    _file_store_instance = None


def get_db() -> Database:
    global _db_instance
    if _db_instance is None:
        _db_instance = Database(settings.paths.db_path)
    return _db_instance


def get_record_store() -> Any:
    global _store_instance, _store_backend
    backend = (settings.storage.backend or "sqlite").strip().lower()
    if _store_instance is None or _store_backend != backend:
        if backend == "firestore":
            from formloom.store.firestore import FirestoreRecordStore

            _store_instance = FirestoreRecordStore(
                project_id=settings.storage.firestore_project_id,
                database=settings.storage.firestore_database,
                collection_prefix=settings.storage.firestore_collection_prefix,
            )
        else:
            _store_instance = RecordStore(db=get_db())
        _store_backend = backend
    return _store_instance


def get_file_store() -> LocalFileStore:
    global _file_store_instance
    if _file_store_instance is None:
        _file_store_instance = LocalFileStore(settings.paths.upload_dir)
    return _file_store_instance


def get_form_repository() -> FormRepository:
    return FormRepository(get_record_store())


def get_import_service(request: Request) -> ImportService:
    return ImportService(
        files=get_file_store(),
        store=get_record_store(),
        cache=request.app.state.file_cache,
        import_settings=request.app.state.import_settings,
    )


def require_auth(
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
):
    token = settings.security.api_token
    if not token:
        return
    if authorization == f"Bearer {token}" or authorization == f"Token {token}" or x_api_key == token:
        return
    raise HTTPException(status_code=401, detail="Unauthorized", headers={"WWW-Authenticate": "Bearer"})


def get_caller(
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-Id"),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
) -> Caller:
    # Tenant membership is enforced by the gateway in front of this service.
    return Caller(
        tenant_id=x_tenant_id or "default",
        user_id=x_user_id or "anonymous",
        email=x_user_email,
    )
