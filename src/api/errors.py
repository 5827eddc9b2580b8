"""
Wire format for failures.

Every error response has the same JSON shape:

    {"status": "error", "message": "...", "code": "FORBIDDEN", "details": "..."}

The core raises PlatformError with an ErrorKind; this module decides the
HTTP status and machine-readable code. Access errors and storage errors
map differently because a NOT_FOUND from storage is a 404 while a gate
failure is always 401/403/500.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..core.errors import AccessError, ErrorKind, PlatformError, StorageError

logger = logging.getLogger(__name__)


ACCESS_ERRORS: dict[ErrorKind, tuple[int, str]] = {
    ErrorKind.UNAUTHENTICATED: (status.HTTP_401_UNAUTHORIZED, "AUTH_REQUIRED"),
    ErrorKind.FORBIDDEN: (status.HTTP_403_FORBIDDEN, "FORBIDDEN"),
    ErrorKind.INTERNAL_FAULT: (status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_SERVER_ERROR"),
}

STORAGE_ERRORS: dict[ErrorKind, tuple[int, str]] = {
    ErrorKind.NOT_FOUND: (status.HTTP_404_NOT_FOUND, "FILE_NOT_FOUND"),
    ErrorKind.PRECONDITION_MISSING: (status.HTTP_400_BAD_REQUEST, "MISSING_PARAMETERS"),
    ErrorKind.TRANSPORT_FAILURE: (status.HTTP_500_INTERNAL_SERVER_ERROR, "STORAGE_ERROR"),
    ErrorKind.INTERNAL_FAULT: (status.HTTP_500_INTERNAL_SERVER_ERROR, "STORAGE_ERROR"),
}

_FALLBACK = (status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_SERVER_ERROR")


class ApiError(Exception):
    """Error raised by the HTTP layer itself (upload limits, adapters)."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


def error_response(
    status_code: int,
    message: str,
    code: str,
    details: Optional[Any] = None,
) -> JSONResponse:
    content: dict[str, Any] = {
        "status": "error",
        "message": message,
        "code": code,
    }
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def status_for(error: PlatformError) -> tuple[int, str]:
    """HTTP status and code for a core error."""
    if isinstance(error, AccessError):
        return ACCESS_ERRORS.get(error.kind, _FALLBACK)
    if isinstance(error, StorageError):
        return STORAGE_ERRORS.get(error.kind, _FALLBACK)
    return _FALLBACK


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers that render errors in the shared JSON shape."""

    @app.exception_handler(PlatformError)
    async def platform_error_handler(request: Request, exc: PlatformError) -> JSONResponse:
        status_code, code = status_for(exc)
        return error_response(status_code, exc.message, code, exc.details)

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        return error_response(exc.status_code, exc.message, exc.code, exc.details)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Catch-all exception handler.

        Logs the full error server-side but returns a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal Server Error",
            "INTERNAL_SERVER_ERROR",
        )
