from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from satoken.api.schemas import ERROR_CODES, Envelope, ErrorBody
from satoken.logging import get_correlation_id, get_logger
from satoken.service.errors import ServiceError
from satoken.storage.errors import StorageError

if TYPE_CHECKING:
    from satoken.api.binding import AuthBinding

logger = get_logger(__name__)


# Fallback codes for ServiceErrors raised with a code the envelope does not know
_STATUS_TO_CODE = {
    400: "validation_error",
    401: "not_login",
    403: "permission_denied",
}


def _error_code_for(status_code: int, code: Optional[str]) -> str:
    if code in ERROR_CODES:
        return code
    return _STATUS_TO_CODE.get(status_code, "server_error")


def _error_response(
    status_code: int,
    message: str,
    details: dict | list | None = None,
    code: Optional[str] = None,
) -> JSONResponse:
    """Create an error response envelope."""
    error_body = ErrorBody(
        code=_error_code_for(status_code, code), message=message, details=details or None
    )
    cid = get_correlation_id()
    envelope = (
        Envelope(status="error", error=error_body, request_id=cid)
        if cid
        else Envelope(status="error", error=error_body)
    )
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


def service_error_response(exc: ServiceError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message, exc.detail, code=exc.error_code)


def register_exception_handlers(app: FastAPI, binding: Optional["AuthBinding"] = None) -> None:
    """Install envelope-rendering handlers for authentication and storage errors.

    When ``binding`` is given its ``write_error`` renders ``ServiceError``s so
    handlers and dependencies share one response shape.
    """

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
        )
        if binding is not None:
            return binding.write_error(exc)
        return service_error_response(exc)

    @app.exception_handler(StorageError)
    async def handle_storage_error(request: Request, exc: StorageError):
        logger.error(
            "storage_error",
            path=request.url.path,
            method=request.method,
            message=exc.message,
        )
        return _error_response(503, "authentication storage unavailable", code="storage_error")
