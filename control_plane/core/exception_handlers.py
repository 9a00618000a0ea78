"""Centralized exception handlers for the FastAPI app.

Register with register_exception_handlers(app). Maps domain and framework
exceptions to HTTP responses.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from control_plane.core.config import get_settings
from control_plane.domain.exceptions import ConflictException, ControlPlaneException

logger = logging.getLogger(__name__)

# Map domain error_code to HTTP status
_ERROR_CODE_STATUS: dict[str, int] = {
    "VALIDATION_ERROR": 400,
    "UNAUTHENTICATED": 401,
    "INSUFFICIENT_PERMISSION": 403,
    "FORBIDDEN": 403,
    "RESOURCE_NOT_FOUND": 404,
    "TENANT_NOT_FOUND": 404,
    "MEMBERSHIP_NOT_FOUND": 404,
    "INVITATION_NOT_FOUND": 404,
    "INVARIANT_VIOLATION": 409,
    "CONFLICT": 409,
    "MEMBERSHIP_ALREADY_EXISTS": 409,
    "PERMISSION_GRANT_EXISTS": 409,
    "TENANT_ALREADY_EXISTS": 409,
    "UPSTREAM_FAILURE": 502,
    "SQL_NOT_CONFIGURED": 503,
}


def status_for(exc: ControlPlaneException) -> int:
    """HTTP status for a domain exception (conflicts default to 409, others to 400)."""
    status = _ERROR_CODE_STATUS.get(exc.error_code)
    if status is not None:
        return status
    return 409 if isinstance(exc, ConflictException) else 400


def _control_plane_exception_handler(
    request: Request, exc: ControlPlaneException
) -> JSONResponse:
    """Return JSON from ControlPlaneException.to_dict() with appropriate status code."""
    headers = {"WWW-Authenticate": "Bearer"} if exc.error_code == "UNAUTHENTICATED" else None
    return JSONResponse(
        status_code=status_for(exc),
        content=exc.to_dict(),
        headers=headers,
    )


def _validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return 422 with validation error details."""
    return JSONResponse(
        status_code=422,
        content={
            "error": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "details": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Pydantic error dicts without the non-serializable ctx payloads."""
    return [
        {k: v for k, v in error.items() if k not in ("ctx", "input")}
        for error in exc.errors()
    ]


def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Return JSON for Starlette HTTP exceptions (status + detail)."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "HTTP_ERROR", "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def _generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return 500; include detail only when debug is True."""
    logger.exception("Unhandled exception: %s", exc)
    settings = get_settings()
    detail: Any = str(exc) if settings.debug else "Internal server error"
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "message": detail},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app.

    Call once after creating the app. Handlers: ControlPlaneException (and
    subclasses), RequestValidationError,
    StarletteHTTPException, generic Exception.
    """
    app.add_exception_handler(ControlPlaneException, _control_plane_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(Exception, _generic_exception_handler)
