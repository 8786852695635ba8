from __future__ import annotations
"""Error taxonomy shared by every service and the HTTP layer.

Each error carries an HTTP status, a short machine-readable reason and a
human-readable message. ``register_exception_handlers`` renders them all as
``{"error": {"reason": ..., "message": ..., "detail": ...}}``.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class GenvaultError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_code: int = 500
    reason: str = "internal_error"

    def __init__(self, message: str, *, detail: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"reason": self.reason, "message": self.message}
        if self.detail is not None:
            body["detail"] = self.detail
        return {"error": body}


class ValidationError(GenvaultError):
    status_code = 400
    reason = "invalid_request"


class AuthError(GenvaultError):
    status_code = 401
    reason = "unauthenticated"


class NotFoundError(GenvaultError):
    status_code = 404
    reason = "not_found"


class PayloadTooLarge(GenvaultError):
    status_code = 413
    reason = "payload_too_large"

    def __init__(self, message: str, *, limit: int, size: int | None = None) -> None:
        super().__init__(message, detail={"limit": limit, "size": size})
        self.limit = limit
        self.size = size


class ProviderRequestError(GenvaultError):
    """Non-2xx response from the external generation API.

    The provider's status is passed through to the caller with its body
    attached as detail.
    """

    reason = "provider_error"

    def __init__(self, status: int, body: Any, message: str | None = None) -> None:
        super().__init__(message or f"Provider request failed with status {status}", detail=body)
        self.status = status
        self.body = body
        self.status_code = status if 400 <= status <= 599 else 502


class ProviderResponseError(ProviderRequestError):
    """2xx response whose shape violates the provider contract."""

    reason = "provider_bad_response"

    def __init__(self, message: str, body: Any = None) -> None:
        super().__init__(502, body, message)


class StorageError(GenvaultError):
    status_code = 500
    reason = "storage_error"


async def _handle_genvault_error(request: Request, exc: GenvaultError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.reason, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed bodies and query values are plain invalid requests, not 422s
    error = ValidationError("Request validation failed", detail=jsonable_encoder(exc.errors()))
    return await _handle_genvault_error(request, error)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the JSON error renderer for the whole taxonomy."""
    app.add_exception_handler(GenvaultError, _handle_genvault_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
