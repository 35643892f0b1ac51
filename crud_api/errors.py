from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base for errors that map onto a structured JSON error response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_body(self) -> dict:
        return {"success": False, "error": self.message}


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid user data"

    def __init__(self, details: List[str], message: Optional[str] = None) -> None:
        super().__init__(message)
        self.details = list(details)

    def to_body(self) -> dict:
        body = super().to_body()
        body["details"] = self.details
        return body


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "User not found"


class StoreUnavailableError(ServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Database not ready"


class StoreOperationError(ServiceError):
    """A query reached the database and failed. The message is the public one."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Server error"


class RouteNotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Route not found"


def _respond(exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if isinstance(exc, StoreUnavailableError):
        logger.warning(
            "Request rejected, database not ready",
            extra={"context": {"endpoint": request.url.path, "method": request.method, "status": exc.status_code}},
        )
    return _respond(exc)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # unmatched path, or a known path without that verb
    if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
        logger.warning(
            "Route not found",
            extra={"context": {"endpoint": request.url.path, "method": request.method, "status": 404}},
        )
        return _respond(RouteNotFoundError())
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error",
        extra={"context": {"endpoint": request.url.path, "method": request.method, "error": str(exc)}},
    )
    return _respond(ServiceError())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


__all__ = [
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "StoreUnavailableError",
    "StoreOperationError",
    "RouteNotFoundError",
    "register_exception_handlers",
]
