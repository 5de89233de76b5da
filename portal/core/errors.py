from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from portal.core.context import get_request_id

logger = logging.getLogger(__name__)


class PortalError(Exception):
    """Base class for errors raised by the document lifecycle services."""

    status_code: int = 400
    code: str = "bad_request"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(PortalError):
    status_code = 422
    code = "validation_error"


class PermissionDeniedError(PortalError, PermissionError):
    status_code = 403
    code = "forbidden"


class NotFoundError(PortalError):
    status_code = 404
    code = "not_found"


class ConflictError(PortalError):
    status_code = 409
    code = "conflict"


class InvalidStateTransitionError(PortalError):
    status_code = 409
    code = "invalid_state_transition"

    def __init__(self, message: str, *, current_state: str | None = None) -> None:
        super().__init__(message, details={"current_state": current_state})
        self.current_state = current_state


class UpstreamStorageError(PortalError):
    status_code = 502
    code = "upstream_storage_error"


_HTTP_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
    422: "validation_error",
    429: "rate_limited",
}


def _phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    payload = {
        "code": code,
        "message": message,
        "data": None,
        "details": details or {},
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


async def portal_exception_handler(request: Request, exc: PortalError) -> JSONResponse:
    level = logging.WARNING if exc.status_code >= 500 else logging.INFO
    logger.log(level, "%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _HTTP_CODES.get(exc.status_code, "http_error")
    if isinstance(exc.detail, str):
        message, details = exc.detail, {}
    else:
        message, details = _phrase(exc.status_code), {"detail": exc.detail}
    response = error_response(exc.status_code, code, message, details)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


def _clean_error(error: dict[str, Any]) -> dict[str, Any]:
    # ``input`` can echo whole signature images or file metadata back to the caller.
    loc = [str(part) for part in error.get("loc", ()) if part not in {"body", "query", "path"}]
    return {"field": ".".join(loc) or None, "message": error.get("msg"), "type": error.get("type")}


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [_clean_error(error) for error in exc.errors()]
    message = "Validation failed"
    if errors:
        first = errors[0]
        message = f"{first['field']}: {first['message']}" if first["field"] else str(first["message"])
    return error_response(422, "validation_error", message, {"errors": errors})


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.info("Rate limit hit on %s %s: %s", request.method, request.url.path, exc.detail)
    response = error_response(429, "rate_limited", _phrase(429), {"limit": str(exc.detail)})
    if isinstance(getattr(exc, "headers", None), dict):
        response.headers.update(exc.headers)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(
        500,
        "internal_server_error",
        "Internal server error",
        {"request_id": get_request_id()},
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(PortalError, portal_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
