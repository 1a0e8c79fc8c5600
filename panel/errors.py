"""Error taxonomy surfaced by the HTTP layer."""

from __future__ import annotations

import logging
import sqlite3
from typing import Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("panel.errors")


class PanelError(Exception):
    """Base class for failures translated into structured HTTP responses."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, headers: Optional[Dict[str, str]] = None) -> None:
        self.message = message or self.default_message
        self.headers = headers
        super().__init__(self.message)


class ValidationError(PanelError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class Conflict(PanelError):
    # Registration clients expect a 400 for duplicate emails.
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Resource already exists"


class NotFound(PanelError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Unauthorized(PanelError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid authentication credentials"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(PanelError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Insufficient role for this resource"


class PayloadTooLarge(PanelError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    default_message = "Upload exceeds the configured size limit"


class InternalError(PanelError):
    pass


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    message = str(first.get("msg", "invalid value"))
    if location:
        return f"{'.'.join(location)}: {message}"
    return message


def install_error_handlers(app: FastAPI) -> None:
    """Register handlers that turn failures into ``{"detail": ...}`` responses."""

    @app.exception_handler(PanelError)
    async def _panel_error(request: Request, exc: PanelError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message},
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": _describe_validation_error(exc)},
        )

    @app.exception_handler(sqlite3.Error)
    async def _database_error(request: Request, exc: sqlite3.Error) -> JSONResponse:
        logger.exception("Database failure on %s", request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": InternalError.default_message},
        )

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled %s on %s", type(exc).__name__, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": InternalError.default_message},
        )


__all__ = [
    "Conflict",
    "Forbidden",
    "InternalError",
    "NotFound",
    "PanelError",
    "PayloadTooLarge",
    "Unauthorized",
    "ValidationError",
    "install_error_handlers",
]
