import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from formloom.config import settings
from formloom.exceptions import (
    DataSourceError,
    FormloomError,
    FormNotFoundError,
    JobNotFoundError,
    JobStateError,
    MappingError,
    ParseError,
)
from formloom.api.middleware import add_request_id, enforce_body_size, log_requests
from formloom.api import deps
from formloom.utils.cache import TTLCache

# Routers
from formloom.api.routers import system, uploads, imports, jobs, forms

# Configure logging
logging.basicConfig(level=getattr(logging, settings.logging.level.upper(), logging.INFO))
logger = logging.getLogger("formloom.api")

# Most specific first; the first isinstance match wins.
ERROR_RESPONSES = (
    (ParseError, 422, "parse_error"),
    (DataSourceError, 422, "invalid_source"),
    (MappingError, 422, "invalid_mapping"),
    (FormNotFoundError, 404, "form_not_found"),
    (JobNotFoundError, 404, "job_not_found"),
    (JobStateError, 409, "invalid_job_state"),
)


def _error_payload(request: Request, code: str, detail) -> dict:
    payload = {"error": code, "detail": detail}
    rid = getattr(request.state, "request_id", None)
    if rid:
        payload["request_id"] = rid
    return payload


def create_app(db_path: Optional[Path] = None, upload_dir: Optional[Path] = None) -> FastAPI:
    """
    Factory to build the FastAPI application.
    Path overrides reset the cached stores in deps so tests get a fresh database.
    """
    if db_path or upload_dir:
        if db_path:
            settings.paths.db_path = db_path
        if upload_dir:
            settings.paths.upload_dir = upload_dir
        deps.reset_instances()

    app = FastAPI(title="Formloom Import API", version=settings.app.version)
    app.state.import_settings = settings.imports
    # Downloaded upload bytes, shared by every request this app serves.
    app.state.file_cache = TTLCache(ttl_seconds=settings.imports.file_cache_ttl_seconds)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Custom Middleware
    app.middleware("http")(enforce_body_size)
    if settings.logging.log_requests:
        app.middleware("http")(log_requests)
    app.middleware("http")(add_request_id)

    app.include_router(system.router)
    app.include_router(uploads.router)
    app.include_router(imports.router)
    app.include_router(jobs.router)
    app.include_router(forms.router)

    @app.exception_handler(FormloomError)
    async def formloom_exception_handler(request: Request, exc: FormloomError):
        for exc_type, status_code, code in ERROR_RESPONSES:
            if isinstance(exc, exc_type):
                payload = _error_payload(request, code, str(exc))
                if isinstance(exc, MappingError):
                    payload["errors"] = exc.errors
                return JSONResponse(status_code=status_code, content=payload)

        rid = getattr(request.state, "request_id", None)
        logger.exception("Formloom error", extra={"path": str(request.url), "request_id": rid})
        return JSONResponse(status_code=500, content=_error_payload(request, "internal_error", str(exc)))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        rid = getattr(request.state, "request_id", None)
        logger.exception("Unhandled error", extra={"path": str(request.url), "request_id": rid})
        return JSONResponse(
            status_code=500,
            content=_error_payload(request, "internal_error", "Unexpected server error"),
        )

    return app

# Module-level app for uvicorn entrypoint
app = create_app()
