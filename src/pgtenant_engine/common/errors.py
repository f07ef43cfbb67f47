"""Exception handlers producing the API's error envelope."""

import logging
import traceback
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from pgtenant_engine.common.exceptions import AccessControlStaleError, PgTenantError

logger = logging.getLogger(__name__)

_STATUS_LABELS: dict[int, str] = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


def _is_development(request: Request) -> bool:
    container = getattr(request.app.state, "container", None)
    return bool(container and container.settings.is_development)


def _payload(
    request: Request, status_code: int, code: str, message: str, exc: BaseException | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "success": False,
        "error": _STATUS_LABELS.get(status_code, "Error"),
        "code": code,
        "message": message,
    }
    if exc is not None and _is_development(request):
        body["trace"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )
    return body


async def pgtenant_error_handler(request: Request, exc: PgTenantError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "Request failed",
            extra={"path": request.url.path, "code": exc.code, "error": exc.message},
        )
    return JSONResponse(
        content=_payload(request, exc.status_code, exc.code, exc.message, exc),
        status_code=exc.status_code,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        content=_payload(request, exc.status_code, "HTTP_ERROR", str(exc.detail)),
        status_code=exc.status_code,
        headers=exc.headers,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Missing or malformed request fields are a 400, not FastAPI's default 422.
    fields = ", ".join(
        ".".join(str(p) for p in err.get("loc", ()) if p != "body") or "body"
        for err in exc.errors()
    )
    body = _payload(request, 400, "VALIDATION_ERROR", f"Invalid or missing fields: {fields}")
    body["details"] = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")} for err in exc.errors()
    ]
    return JSONResponse(content=body, status_code=400)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra={"path": request.url.path})
    message = str(exc) if _is_development(request) else "Internal server error"
    return JSONResponse(
        content=_payload(request, 500, "INTERNAL_ERROR", message, exc),
        status_code=500,
    )


def stale_response(exc: AccessControlStaleError, data: Any) -> JSONResponse:
    """202: the change is stored, but enforcement lags behind it."""
    cause = exc.cause
    return JSONResponse(
        status_code=202,
        content={
            "success": True,
            "message": exc.message,
            "warning": {
                "code": exc.code,
                "cause": cause.code if cause else None,
                "file_written": exc.file_written,
            },
            "data": jsonable_encoder(data),
        },
    )
