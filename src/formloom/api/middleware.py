import time
import logging
from uuid import uuid4
from fastapi import Request
from fastapi.responses import JSONResponse
from formloom.config import ImportSettings, settings

logger = logging.getLogger("formloom.api")

UPLOAD_PATH_PREFIX = "/uploads"
# Multipart framing adds a little on top of the file itself.
MULTIPART_OVERHEAD_BYTES = 64 * 1024
# Everything except uploads is a small JSON body (handles, mappings, options).
MAX_JSON_BODY_BYTES = 1024 * 1024


def _import_settings(request: Request) -> ImportSettings:
    return getattr(request.app.state, "import_settings", None) or settings.imports


def body_limit_for(path: str, imports: ImportSettings) -> int:
    if path.startswith(UPLOAD_PATH_PREFIX):
        return imports.max_upload_bytes + MULTIPART_OVERHEAD_BYTES
    return MAX_JSON_BODY_BYTES


async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or uuid4().hex
    request.state.request_id = rid
    response = await call_next(request)
    response.headers["x-request-id"] = rid
    return response


async def enforce_body_size(request: Request, call_next):
    imports = _import_settings(request)
    limit_bytes = body_limit_for(request.url.path, imports)
    try:
        declared = int(request.headers.get("content-length") or 0)
    except ValueError:
        declared = 0
    if declared > limit_bytes:
        is_upload = request.url.path.startswith(UPLOAD_PATH_PREFIX)
        logger.warning(
            "rejected oversized request",
            extra={"path": request.url.path, "content_length": declared, "limit": limit_bytes},
        )
        return JSONResponse(
            status_code=413,
            content={
                "error": "request_too_large",
                "detail": (
                    f"File size exceeds {imports.max_upload_mb}MB limit"
                    if is_upload
                    else "Request body too large"
                ),
                "request_id": getattr(request.state, "request_id", None),
            },
        )
    return await call_next(request)


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = None
    try:
        response = await call_next(request)
        return response
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        status = getattr(response, "status_code", "error")
        # form_id / job_id when the route carries them.
        ids = {k: v for k, v in request.path_params.items() if k in ("form_id", "job_id")}
        level = logging.WARNING if status == "error" or status >= 500 else logging.INFO
        logger.log(
            level,
            "request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "request_id": getattr(request.state, "request_id", None),
                "tenant_id": request.headers.get("x-tenant-id"),
                "user_id": request.headers.get("x-user-id"),
                **ids,
            },
        )
