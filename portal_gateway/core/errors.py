"""Error taxonomy and the JSON error envelope."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.code.replace("_", " ").capitalize()


class ValidationFailed(GatewayError):
    status_code = 400
    code = "BAD_REQUEST"


class NotAuthenticated(GatewayError):
    """No valid session. Deliberately carries no reason."""

    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class Forbidden(GatewayError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(GatewayError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(GatewayError):
    status_code = 409
    code = "CONFLICT"


class LinkError(Conflict):
    """An account-linkage rule would be violated."""

    code = "LINK_ERROR"


class ProviderError(GatewayError):
    """The upstream identity provider failed; the caller may retry."""

    status_code = 502
    code = "PROVIDER_ERROR"
    retryable = True


class ConfigurationError(GatewayError):
    status_code = 503
    code = "NOT_CONFIGURED"


def error_response(error: GatewayError) -> JSONResponse:
    payload = {"error": error.code, "message": error.message}
    if error.retryable:
        payload["retryable"] = True
    return JSONResponse(payload, status_code=error.status_code)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatewayError)
    async def handle_gateway_error(request: Request, exc: GatewayError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_bad_request(request: Request, exc: RequestValidationError):
        return error_response(ValidationFailed("Malformed request"))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            {"error": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
            status_code=500,
        )


__all__ = [
    "Conflict",
    "ConfigurationError",
    "Forbidden",
    "GatewayError",
    "LinkError",
    "NotAuthenticated",
    "NotFound",
    "ProviderError",
    "ValidationFailed",
    "error_response",
    "register_error_handlers",
]
